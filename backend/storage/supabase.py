"""
Supabase-backed storage adapter for profile pictures.

This adapter implements `PublicBlobStorage` using a provided Supabase client.
It is duck-typed to avoid a hard dependency during testing. The client is
expected to expose `.storage.from_(bucket)` (supabase) or `.from_(bucket)`
(storage3) which returns an object offering:

- upload(path, body, file_options) -> Any
- get_public_url(path) -> str | { publicUrl | public_url | publicURL }
- remove([path]) -> Any

Security:
- The client must be initialized with the Service Role key. The web layer
  and provisioning check the bucket policy before calling `upload`.
- The profile-picture bucket is public-read; only writes are restricted.
"""
from __future__ import annotations

from typing import Any, Dict, Optional
import logging
import os


logger = logging.getLogger("webcapz.storage")


class SupabaseStorageAdapter:
    """Storage adapter using a supabase client for Storage operations."""

    def __init__(self, client: Any):
        # Duck-typed supabase client, e.g., from `supabase import create_client(...)`.
        self._client = client

    # --- Helpers -----------------------------------------------------------------

    def _bucket(self, bucket: str) -> Any:
        """Return a bucket proxy from either supabase client or storage3 client."""
        c = self._client
        storage = getattr(c, "storage", None)
        if storage is not None and hasattr(storage, "from_"):
            return storage.from_(bucket)
        if hasattr(c, "from_"):
            return c.from_(bucket)  # type: ignore[attr-defined]
        raise RuntimeError("invalid_supabase_client")

    @staticmethod
    def _first_key(d: Dict[str, Any], *keys: str) -> Any:
        for k in keys:
            if k in d and d[k] is not None:
                return d[k]
        return None

    @staticmethod
    def _relative_key(bucket: str, key: str) -> str:
        # storage3 prepends the bucket id itself
        norm_key = key.lstrip("/")
        prefix = f"{bucket}/"
        if norm_key.startswith(prefix):
            norm_key = norm_key[len(prefix):]
        return norm_key

    def _public_url(self, b: Any, key: str) -> str:
        res = b.get_public_url(key)
        url: Optional[str] = None
        if isinstance(res, str):
            url = res
        elif isinstance(res, dict):
            url = self._first_key(res, "publicUrl", "public_url", "publicURL")
            data = res.get("data") if "data" in res else None
            if url is None and isinstance(data, dict):
                url = self._first_key(data, "publicUrl", "public_url", "publicURL")
        if not url:
            raise RuntimeError("failed_to_resolve_public_url")
        # Some client versions append a bare '?' to public URLs
        return str(url).rstrip("?")

    # --- Port methods ------------------------------------------------------------

    def upload(self, *, bucket: str, key: str, body: bytes, content_type: str) -> str:
        """Upload (or replace) an object and return its public URL.

        Behavior:
            - Normalizes the key relative to the bucket.
            - Sends `upsert` so re-uploading a picture replaces the old object.
            - Passes content-type with both kebab and camel case keys to stay
              compatible across client versions.

        Raises:
            Propagates client exceptions. The caller decides whether a failed
            upload is fatal.
        """
        b = self._bucket(bucket)
        norm_key = self._relative_key(bucket, key)
        opts = {"content-type": content_type, "contentType": content_type, "upsert": "true"}
        b.upload(norm_key, body, opts)
        url = self._public_url(b, norm_key)
        logger.info("Stored object: bucket=%s bytes=%s", bucket, len(body))
        return url

    def delete_object(self, *, bucket: str, key: str) -> None:
        b = self._bucket(bucket)
        b.remove([self._relative_key(bucket, key)])


def build_storage_from_env() -> Optional[SupabaseStorageAdapter]:
    """Create an adapter from SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY.

    Behavior:
        - Returns None when storage is not configured; provisioning then skips
          picture uploads with a warning.
        - Prefers the official `supabase` client; falls back to a `storage3`
          client when the supabase client rejects non-JWT local dev keys.
    """
    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not url or not key:
        return None
    try:
        from supabase import create_client  # type: ignore

        return SupabaseStorageAdapter(create_client(url, key))
    except Exception as exc:
        logger.warning("Supabase client unavailable: %s; falling back to storage3", exc.__class__.__name__)
    from storage3._sync.client import SyncStorageClient  # type: ignore

    client = SyncStorageClient(url.rstrip("/") + "/storage/v1", {"Authorization": f"Bearer {key}", "apikey": key})
    return SupabaseStorageAdapter(client)


__all__ = ["SupabaseStorageAdapter", "build_storage_from_env"]
