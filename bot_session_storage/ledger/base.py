"""
Abstract metadata ledger interface.

The ledger is the per-tenant set of live session keys. It exists only to
enforce the key-count quota and to answer "list all keys"; reads never go
through it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..limits import MAX_SESSION_COUNT


class MetadataLedger(ABC):
    """Per-tenant record of reserved session keys.

    Implementations must make try_reserve() a single atomic unit per tenant
    record: checking the quota and adding the key can never be interleaved
    with another writer for the same tenant.
    """

    def __init__(self, max_session_count: int = MAX_SESSION_COUNT):
        if max_session_count < 1:
            raise ValueError("max_session_count must be positive")
        self.max_session_count = max_session_count

    async def initialize(self) -> None:
        """Connect to the backing store. Default: nothing to do."""

    async def close(self) -> None:
        """Release backing store resources. Default: nothing to do."""

    async def __aenter__(self) -> MetadataLedger:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @abstractmethod
    async def try_reserve(self, tenant_id: int, key: str) -> bool:
        """Admit a key into the tenant's quota.

        Args:
            tenant_id: Tenant owning the key
            key: Session key to reserve

        Returns:
            True if the key is now a member (newly added or already present),
            False if the tenant is at capacity and the key was not a member.

        Raises:
            StorageIOError: If the backing store fails
        """
        ...

    @abstractmethod
    async def release(self, tenant_id: int, key: str) -> None:
        """Remove a key from the tenant's record. Idempotent."""
        ...

    @abstractmethod
    async def list_keys(self, tenant_id: int) -> set[str]:
        """Return the tenant's reserved keys (empty if no record exists)."""
        ...
