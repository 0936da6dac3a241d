"""
Centralized storage configuration for the profile-picture bucket.

Intent:
    Provide a single source of truth for the bucket name, size limit and
    accepted image types used by provisioning and the web adapter.

Behavior:
    - PROFILE_PICTURES_BUCKET_DEFAULT is the canonical bucket ("profile-pictures").
    - get_profile_pictures_bucket() reads the PROFILE_PICTURES_BUCKET override.
    - get_profile_picture_max_bytes() reads PROFILE_PICTURE_MAX_BYTES, clamped
      to 5 MiB.

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

import os


PROFILE_PICTURES_BUCKET_DEFAULT = "profile-pictures"
PROFILE_PICTURE_CONTRACT_MAX = 5 * 1024 * 1024

# content type -> file extension used in the object key
IMAGE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


def get_profile_pictures_bucket() -> str:
    """Return the configured profile-picture bucket name.

    Env:
        PROFILE_PICTURES_BUCKET: optional override; otherwise defaults to
        PROFILE_PICTURES_BUCKET_DEFAULT.
    """
    return (os.getenv("PROFILE_PICTURES_BUCKET") or PROFILE_PICTURES_BUCKET_DEFAULT).strip()


def _parse_int_env(name: str, default: int, *, contract_max: int | None = None) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    if isinstance(contract_max, int) and contract_max > 0:
        value = min(value, contract_max)
    return value


def get_profile_picture_max_bytes() -> int:
    """Maximum profile picture size (default/clamped 5 MiB)."""
    return _parse_int_env(
        "PROFILE_PICTURE_MAX_BYTES", PROFILE_PICTURE_CONTRACT_MAX, contract_max=PROFILE_PICTURE_CONTRACT_MAX
    )


def extension_for(content_type: str) -> str | None:
    return IMAGE_EXTENSIONS.get((content_type or "").split(";", 1)[0].strip().lower())


def profile_picture_key(account_id: str, content_type: str) -> str:
    """Object key inside the bucket: `<account>/<account>.<ext>`.

    The first path segment is the owning account; the storage write policy
    compares it against the caller.
    """
    ext = extension_for(content_type)
    if not ext:
        raise ValueError("unsupported_image_type")
    return f"{account_id}/{account_id}.{ext}"


__all__ = [
    "PROFILE_PICTURES_BUCKET_DEFAULT",
    "PROFILE_PICTURE_CONTRACT_MAX",
    "IMAGE_EXTENSIONS",
    "get_profile_pictures_bucket",
    "get_profile_picture_max_bytes",
    "extension_for",
    "profile_picture_key",
]
