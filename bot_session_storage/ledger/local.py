"""
Local file ledger.

One JSON document per tenant, mirroring the document layout used by the
Cosmos ledger:

    {base_path}/{tenant_id}.json  ->  {"id": "42", "tenant_id": "42", "keys": [...]}

Updates are read-modify-write under a per-tenant asyncio.Lock and land on
disk atomically (temp file + rename). The lock is process-local, so a single
process must own the directory.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from pathlib import Path

from ..limits import MAX_SESSION_COUNT
from ..local.file_ops import ensure_directory, read_json, write_json_atomic
from .base import MetadataLedger

logger = logging.getLogger(__name__)


class LocalFileLedger(MetadataLedger):
    """Ledger persisted as one JSON file per tenant."""

    def __init__(self, base_path: Path, max_session_count: int = MAX_SESSION_COUNT):
        """Initialize local file ledger.

        Args:
            base_path: Directory holding the tenant documents
            max_session_count: Largest number of keys a tenant may hold
        """
        super().__init__(max_session_count)
        self.base_path = Path(base_path)
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def initialize(self) -> None:
        await ensure_directory(self.base_path)
        logger.info(f"Local ledger initialized: {self.base_path}")

    def _record_path(self, tenant_id: int) -> Path:
        return self.base_path / f"{tenant_id}.json"

    async def _read_keys(self, tenant_id: int) -> list[str]:
        doc = await read_json(self._record_path(tenant_id))
        if doc is None:
            return []
        return list(doc.get("keys", []))

    async def _write_keys(self, tenant_id: int, keys: list[str]) -> None:
        doc = {"id": str(tenant_id), "tenant_id": str(tenant_id), "keys": keys}
        await write_json_atomic(self._record_path(tenant_id), doc)

    async def try_reserve(self, tenant_id: int, key: str) -> bool:
        async with self._locks[tenant_id]:
            keys = await self._read_keys(tenant_id)
            if key in keys:
                return True
            if len(keys) >= self.max_session_count:
                return False
            keys.append(key)
            await self._write_keys(tenant_id, keys)
            return True

    async def release(self, tenant_id: int, key: str) -> None:
        async with self._locks[tenant_id]:
            keys = await self._read_keys(tenant_id)
            if key not in keys:
                return
            keys.remove(key)
            await self._write_keys(tenant_id, keys)

    async def list_keys(self, tenant_id: int) -> set[str]:
        async with self._locks[tenant_id]:
            return set(await self._read_keys(tenant_id))
