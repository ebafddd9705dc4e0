"""Cryptographically secure one-time code generation."""

import secrets

from app.config import settings

CODE_ALPHABET = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "abcdefghijklmnopqrstuvwxyz"
    "0123456789"
    "!@#$%^&*"
)


def generate_secure_code(length: int = None) -> str:
    """Generate a random code drawn uniformly from CODE_ALPHABET.

    Uses the OS CSPRNG via `secrets`; each call is independent.
    """
    if length is None:
        length = settings.BREAK_GLASS_CODE_LENGTH
    if length <= 0:
        raise ValueError("Code length must be positive")
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
