"""
Supabase-backed storage adapter for course media.

This adapter implements StorageAdapterProtocol using a provided Supabase client.
It is duck-typed so tests can pass a fake client. The client is expected to
expose `.storage.from_(bucket)` which returns an object offering:

- create_signed_upload_url(path) -> { signed_url | signedURL | url }
- info(path) / stat(path) -> { size, mimetype | content_type }
- get_public_url(path) -> str

Security:
- The caller must ensure the client is initialized with the Service Role key.
- Uploads go straight from the browser to storage through short-lived signed URLs.
"""
from __future__ import annotations

from typing import Any, Dict

from .storage import StorageAdapterProtocol


class SupabaseStorageAdapter(StorageAdapterProtocol):
    """Storage adapter using a supabase client for Storage operations."""

    def __init__(self, client: Any):
        self._client = client

    def _bucket(self, bucket: str) -> Any:
        """Return a bucket proxy from either a supabase client or a storage3 client."""
        c = self._client
        storage = getattr(c, "storage", None)
        if storage is not None and hasattr(storage, "from_"):
            return storage.from_(bucket)
        if hasattr(c, "from_"):
            return c.from_(bucket)
        raise RuntimeError("invalid_supabase_client")

    @staticmethod
    def _first_key(d: Dict[str, Any], *keys: str) -> Any:
        for k in keys:
            if k in d and d[k] is not None:
                return d[k]
        return None

    @staticmethod
    def _relative(bucket: str, key: str) -> str:
        # storage3 prepends the bucket id itself
        norm_key = key.lstrip("/")
        prefix = f"{bucket}/"
        if norm_key.startswith(prefix):
            norm_key = norm_key[len(prefix):]
        return norm_key

    def presign_upload(self, *, bucket: str, key: str, expires_in: int, headers: Dict[str, str]) -> Dict[str, Any]:
        res = self._bucket(bucket).create_signed_upload_url(self._relative(bucket, key))
        url = None
        if isinstance(res, dict):
            url = self._first_key(res, "url", "signed_url", "signedURL")
            data = res.get("data")
            if url is None and isinstance(data, dict):
                url = self._first_key(data, "url", "signed_url", "signedURL")
        if not url:
            raise RuntimeError("failed_to_presign_upload")
        # Echo headers back to the client with lowercase keys.
        hdrs = {str(k).lower(): v for k, v in dict(headers or {}).items()}
        return {"url": str(url), "headers": hdrs}

    def head_object(self, *, bucket: str, key: str) -> Dict[str, Any]:
        b = self._bucket(bucket)
        path = self._relative(bucket, key)
        lookup = getattr(b, "info", None) or getattr(b, "stat", None)
        if lookup is None:
            return {"content_length": None, "content_type": None}
        info = lookup(path)
        if not isinstance(info, dict):
            return {"content_length": None, "content_type": None}
        data = info["data"] if isinstance(info.get("data"), dict) else info
        meta = data.get("metadata") if isinstance(data.get("metadata"), dict) else data
        size = self._first_key(meta, "size", "contentLength")
        mime = self._first_key(meta, "mimetype", "content_type", "contentType")
        return {"content_length": size, "content_type": mime}

    def public_url(self, *, bucket: str, key: str) -> str:
        res = self._bucket(bucket).get_public_url(self._relative(bucket, key))
        if isinstance(res, dict):
            res = self._first_key(res, "publicUrl", "public_url", "url")
        if not res:
            raise RuntimeError("failed_to_resolve_public_url")
        return str(res).rstrip("?")


__all__ = ["SupabaseStorageAdapter"]
