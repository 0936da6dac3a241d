"""
Storage ports used by provisioning.

Keep these small and framework-agnostic so tests can supply simple fakes.
"""
from __future__ import annotations

from typing import Protocol


class PublicBlobStorage(Protocol):
    """Write a binary object and return the URL it is publicly readable at.

    Permissions:
        Implementations run with service credentials; callers check the
        bucket policy (owner folder or admin) before writing.
    """

    def upload(self, *, bucket: str, key: str, body: bytes, content_type: str) -> str: ...

    def delete_object(self, *, bucket: str, key: str) -> None: ...


__all__ = ["PublicBlobStorage"]
