"""
Abstract blob backend interface.

Blob backends are opaque get/put/delete object stores addressed by namespaced
keys. They give per-key last-write-wins and nothing more.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class BlobBackend(ABC):
    """Object store holding session payloads."""

    async def initialize(self) -> None:
        """Connect to the backing store. Default: nothing to do."""

    async def close(self) -> None:
        """Release backing store resources. Default: nothing to do."""

    async def __aenter__(self) -> BlobBackend:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @abstractmethod
    async def get(self, namespaced_key: str) -> bytes | None:
        """Return the stored payload, or None if absent."""
        ...

    @abstractmethod
    async def put(self, namespaced_key: str, data: bytes) -> None:
        """Store (or overwrite) a payload."""
        ...

    @abstractmethod
    async def delete(self, namespaced_key: str) -> None:
        """Remove a payload. Deleting an absent key is not an error."""
        ...

    @abstractmethod
    async def list_keys(self, tenant_id: int) -> set[str]:
        """Return the session keys (without namespace) of one tenant's stored blobs."""
        ...
