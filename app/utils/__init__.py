"""Shared utilities."""

from app.utils.secure_codes import generate_secure_code
from app.utils.timezone import utc_now, format_utc_iso

__all__ = ["generate_secure_code", "utc_now", "format_utc_iso"]
