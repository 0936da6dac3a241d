"""One-time credentials and log-safe identifiers."""
from __future__ import annotations

import secrets
import string


MIN_PASSWORD_LENGTH = 8
_SYMBOLS = "!@#$%^&*"
_ALPHABET = string.ascii_letters + string.digits + _SYMBOLS


def generate_one_time_credential(length: int = 16) -> str:
    """Return a random password drawn from a CSPRNG.

    Contains at least one lowercase letter, uppercase letter, digit and symbol
    so identity provider password policies accept it.
    """
    if length < MIN_PASSWORD_LENGTH:
        raise ValueError("credential_too_short")
    while True:
        candidate = "".join(secrets.choice(_ALPHABET) for _ in range(length))
        if (
            any(c.islower() for c in candidate)
            and any(c.isupper() for c in candidate)
            and any(c.isdigit() for c in candidate)
            and any(c in _SYMBOLS for c in candidate)
        ):
            return candidate


def mask_email(email: str) -> str:
    """Mask email for logs to reduce PII exposure."""
    local, sep, domain = (email or "").partition("@")
    if not sep:
        return "***"
    return f"{local[:2]}***@{domain}"


__all__ = ["MIN_PASSWORD_LENGTH", "generate_one_time_credential", "mask_email"]
