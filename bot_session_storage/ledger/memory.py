"""In-process ledger guarded by one asyncio.Lock per tenant."""

from __future__ import annotations

import asyncio
from collections import defaultdict

from ..limits import MAX_SESSION_COUNT
from .base import MetadataLedger


class MemoryLedger(MetadataLedger):
    """Ledger kept in a dict, for tests and single-process deployments.

    The per-tenant lock turns the quota check and the insert into one unit,
    standing in for the conditional document update a database would do.
    """

    def __init__(self, max_session_count: int = MAX_SESSION_COUNT):
        super().__init__(max_session_count)
        self._records: dict[int, set[str]] = {}
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def try_reserve(self, tenant_id: int, key: str) -> bool:
        async with self._locks[tenant_id]:
            keys = self._records.setdefault(tenant_id, set())
            if key in keys:
                return True
            if len(keys) >= self.max_session_count:
                return False
            keys.add(key)
            return True

    async def release(self, tenant_id: int, key: str) -> None:
        async with self._locks[tenant_id]:
            keys = self._records.get(tenant_id)
            if keys is not None:
                keys.discard(key)

    async def list_keys(self, tenant_id: int) -> set[str]:
        async with self._locks[tenant_id]:
            return set(self._records.get(tenant_id, ()))
