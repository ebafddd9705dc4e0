"""Credential store for break-glass codes (bcrypt via passlib)."""

from passlib.context import CryptContext
import logging

from app.config import settings
from app.exceptions import InvalidStateError

logger = logging.getLogger(__name__)

_contexts = {}


def _get_context(rounds: int) -> CryptContext:
    """One CryptContext per cost factor."""
    if rounds not in _contexts:
        _contexts[rounds] = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )
    return _contexts[rounds]


class CredentialService:
    """Hashes and verifies one-time codes. Plaintext is never stored here."""

    def __init__(self, rounds: int = None):
        self.rounds = rounds or settings.BREAK_GLASS_BCRYPT_ROUNDS
        self.pwd_context = _get_context(self.rounds)

    def hash(self, secret: str) -> str:
        """Salted slow hash of a secret."""
        return self.pwd_context.hash(secret)

    def verify(self, secret: str, hashed: str) -> bool:
        """Check a secret against a stored hash.

        Returns False on mismatch. A stored hash that cannot be parsed means
        the session row is corrupt and raises InvalidStateError.
        """
        if not hashed:
            logger.error("Break-glass session has no stored hash")
            raise InvalidStateError("Stored code hash is missing", detail="Invalid session state")
        try:
            return self.pwd_context.verify(secret, hashed)
        except (ValueError, TypeError) as e:
            logger.error(f"Stored break-glass hash could not be verified: {type(e).__name__}")
            raise InvalidStateError("Stored code hash is malformed", detail="Invalid session state")

    def dummy_verify(self) -> bool:
        """Spend the same CPU as a real verify; always False."""
        self.pwd_context.dummy_verify()
        return False
