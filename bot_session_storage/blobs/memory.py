"""In-process blob backend."""

from __future__ import annotations

from ..namespacing import split_namespaced_key
from .base import BlobBackend


class MemoryBlobBackend(BlobBackend):
    """Blobs kept in a dict. Used in tests and single-process setups."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    async def get(self, namespaced_key: str) -> bytes | None:
        return self._blobs.get(namespaced_key)

    async def put(self, namespaced_key: str, data: bytes) -> None:
        self._blobs[namespaced_key] = bytes(data)

    async def delete(self, namespaced_key: str) -> None:
        self._blobs.pop(namespaced_key, None)

    async def list_keys(self, tenant_id: int) -> set[str]:
        keys = set()
        for namespaced_key in self._blobs:
            owner, key = split_namespaced_key(namespaced_key)
            if owner == tenant_id:
                keys.add(key)
        return keys

    def __len__(self) -> int:
        return len(self._blobs)

    def __contains__(self, namespaced_key: object) -> bool:
        return namespaced_key in self._blobs
