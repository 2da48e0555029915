"""Storage adapter interface for course media."""
from __future__ import annotations

from typing import Any, Dict, Protocol


class StorageAdapterProtocol(Protocol):
    """Protocol describing the storage adapter used for thumbnails and lesson videos."""

    def presign_upload(self, *, bucket: str, key: str, expires_in: int, headers: Dict[str, str]) -> Dict[str, Any]: ...

    def head_object(self, *, bucket: str, key: str) -> Dict[str, Any]: ...

    def public_url(self, *, bucket: str, key: str) -> str: ...


class NullStorageAdapter:
    """Fallback adapter that signals the storage backend is not configured."""

    def presign_upload(self, *, bucket: str, key: str, expires_in: int, headers: Dict[str, str]) -> Dict[str, Any]:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")

    def head_object(self, *, bucket: str, key: str) -> Dict[str, Any]:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")

    def public_url(self, *, bucket: str, key: str) -> str:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")


__all__ = ["StorageAdapterProtocol", "NullStorageAdapter"]
