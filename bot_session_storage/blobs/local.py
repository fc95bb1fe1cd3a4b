"""
Local file blob backend.

Stores each blob under a name derived from the SHA-256 of its namespaced key,
so arbitrary session keys ("..", "/", very long unicode) can never escape the
root directory or exceed file name limits:

    {base_path}/{digest[:2]}/{digest}.blob   - payload
    {base_path}/{digest[:2]}/{digest}.key    - the namespaced key, for list_keys()
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from ..local.file_ops import (
    ensure_directory,
    file_exists,
    list_files,
    read_bytes,
    remove_file,
    write_bytes_atomic,
)
from ..namespacing import split_namespaced_key
from .base import BlobBackend

logger = logging.getLogger(__name__)

BLOB_SUFFIX = ".blob"
KEY_SUFFIX = ".key"


class LocalFileBlobBackend(BlobBackend):
    """Blob backend on the local filesystem."""

    def __init__(self, base_path: Path):
        """Initialize local blob storage.

        Args:
            base_path: Root directory for blob files
        """
        self.base_path = Path(base_path)

    async def initialize(self) -> None:
        await ensure_directory(self.base_path)
        logger.info(f"Local blob storage initialized: {self.base_path}")

    def _blob_path(self, namespaced_key: str) -> Path:
        digest = hashlib.sha256(namespaced_key.encode("utf-8")).hexdigest()
        return self.base_path / digest[:2] / f"{digest}{BLOB_SUFFIX}"

    async def get(self, namespaced_key: str) -> bytes | None:
        return await read_bytes(self._blob_path(namespaced_key))

    async def put(self, namespaced_key: str, data: bytes) -> None:
        path = self._blob_path(namespaced_key)
        await write_bytes_atomic(path.with_suffix(KEY_SUFFIX), namespaced_key.encode("utf-8"))
        await write_bytes_atomic(path, data)

    async def delete(self, namespaced_key: str) -> None:
        path = self._blob_path(namespaced_key)
        await remove_file(path)
        await remove_file(path.with_suffix(KEY_SUFFIX))

    async def list_keys(self, tenant_id: int) -> set[str]:
        keys = set()
        for key_path in await list_files(self.base_path, KEY_SUFFIX):
            # A sidecar without its blob is a put that never finished
            if not await file_exists(key_path.with_suffix(BLOB_SUFFIX)):
                continue
            raw = await read_bytes(key_path)
            if raw is None:
                continue
            try:
                owner, key = split_namespaced_key(raw.decode("utf-8"))
            except (UnicodeDecodeError, ValueError):
                logger.warning(f"Skipping unreadable key file: {key_path}")
                continue
            if owner == tenant_id:
                keys.add(key)
        return keys
