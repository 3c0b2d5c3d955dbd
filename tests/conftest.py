"""Shared fixtures for subtunnel tests."""

import json

import pytest
from loguru import logger

from subtunnel.registry.store import TunnelRegistry


@pytest.fixture
def registry_path(tmp_path):
    return tmp_path / "tunnels.json"


@pytest.fixture
def registry(registry_path):
    return TunnelRegistry(registry_path)


@pytest.fixture
def write_registry(registry_path):
    """Write raw tunnels to the registry file, bypassing the registry API."""

    def _write(tunnels):
        registry_path.write_text(json.dumps({"tunnels": tunnels}))

    return _write


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(
        lambda message: messages.append(message.record["message"]), level="DEBUG"
    )
    yield messages
    logger.remove(handler_id)
