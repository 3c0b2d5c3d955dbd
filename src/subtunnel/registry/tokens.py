"""Random path token generation."""

import secrets
import string
from collections.abc import Iterable

TOKEN_LENGTH = 10
TOKEN_ALPHABET = string.ascii_letters

# 52^10 tokens; a handful of retries is plenty
MAX_ATTEMPTS = 16


def generate_token(existing: Iterable[str] = (), length: int = TOKEN_LENGTH) -> str:
    """
    Generate a random token that is not in `existing`.

    Raises:
        RuntimeError: If no free token was found within MAX_ATTEMPTS.
    """
    taken = set(existing)
    for _ in range(MAX_ATTEMPTS):
        token = "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))
        if token not in taken:
            return token
    raise RuntimeError(
        f"Could not generate a unique token after {MAX_ATTEMPTS} attempts"
    )
