"""
Identity domain constants and simple helpers.

Why:
- Centralize allowed roles to avoid drift between tools, policies and the web layer.
- Accounts may hold several roles; authorization only ever looks at the single
  effective role derived by `effective_role`.
"""

from __future__ import annotations

from typing import Iterable, Optional

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"admin", "staff", "student"})

# Roles an admin may hand out through the provisioning workflow.
PROVISIONABLE_ROLES = frozenset({"student", "staff"})

# Highest privilege first.
ROLE_PRECEDENCE = ("admin", "staff", "student")


def effective_role(roles: Iterable[str]) -> Optional[str]:
    """Return the highest-precedence role held, or None when no known role is held.

    Unknown role names are ignored; comparison is case-insensitive.
    """
    held = {str(r).strip().lower() for r in roles or () if isinstance(r, str)}
    for role in ROLE_PRECEDENCE:
        if role in held:
            return role
    return None


__all__ = ["ALLOWED_ROLES", "PROVISIONABLE_ROLES", "ROLE_PRECEDENCE", "effective_role"]
