"""Durable tunnel registry."""

from subtunnel.registry.store import TunnelRegistry
from subtunnel.registry.tokens import TOKEN_ALPHABET, TOKEN_LENGTH, generate_token

__all__ = ["TunnelRegistry", "TOKEN_ALPHABET", "TOKEN_LENGTH", "generate_token"]
