"""
Store configuration and factory.

Backend selection and connection settings come from a StoreConfig, built
directly or from environment variables:

    BOT_SESSIONS_LEDGER: cosmos | local | memory (default: memory)
    BOT_SESSIONS_BLOBS: s3 | local | memory (default: memory)
    BOT_SESSIONS_LOCAL_PATH: Root directory for local backends
                             (default: ~/.bot-sessions)

plus the backend-specific variables documented on CosmosLedgerConfig,
S3BlobConfig and SessionLimits.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from .blobs.base import BlobBackend
from .blobs.local import LocalFileBlobBackend
from .blobs.memory import MemoryBlobBackend
from .exceptions import SessionValidationError
from .ledger.base import MetadataLedger
from .ledger.local import LocalFileLedger
from .ledger.memory import MemoryLedger
from .limits import SessionLimits
from .store import SessionStore

if TYPE_CHECKING:
    from .blobs.s3 import S3BlobConfig
    from .ledger.cosmos import CosmosLedgerConfig

DEFAULT_LOCAL_PATH = Path.home() / ".bot-sessions"


class LedgerKind(Enum):
    """Which metadata ledger to use."""

    COSMOS = "cosmos"
    LOCAL = "local"
    MEMORY = "memory"


class BlobKind(Enum):
    """Which blob backend to use."""

    S3 = "s3"
    LOCAL = "local"
    MEMORY = "memory"


@dataclass
class StoreConfig:
    """Configuration for a SessionStore.

    Attributes:
        ledger: Ledger backend kind
        blobs: Blob backend kind
        limits: Per-tenant limits
        local_path: Root directory for local backends
        cosmos: Cosmos ledger settings (required for LedgerKind.COSMOS)
        s3: S3 settings (required for BlobKind.S3)
    """

    ledger: LedgerKind = LedgerKind.MEMORY
    blobs: BlobKind = BlobKind.MEMORY
    limits: SessionLimits = field(default_factory=SessionLimits)
    local_path: Path = DEFAULT_LOCAL_PATH
    cosmos: CosmosLedgerConfig | None = None
    s3: S3BlobConfig | None = None

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Create configuration from environment variables."""
        try:
            ledger = LedgerKind(os.environ.get("BOT_SESSIONS_LEDGER", "memory").lower())
            blobs = BlobKind(os.environ.get("BOT_SESSIONS_BLOBS", "memory").lower())
        except ValueError as e:
            raise SessionValidationError(f"Unknown storage backend: {e}") from e

        cosmos = None
        if ledger is LedgerKind.COSMOS:
            from .ledger.cosmos import CosmosLedgerConfig

            cosmos = CosmosLedgerConfig.from_env()

        s3 = None
        if blobs is BlobKind.S3:
            from .blobs.s3 import S3BlobConfig

            s3 = S3BlobConfig.from_env()

        local_path = os.environ.get("BOT_SESSIONS_LOCAL_PATH")

        return cls(
            ledger=ledger,
            blobs=blobs,
            limits=SessionLimits.from_env(),
            local_path=Path(local_path) if local_path else DEFAULT_LOCAL_PATH,
            cosmos=cosmos,
            s3=s3,
        )


def create_ledger(config: StoreConfig) -> MetadataLedger:
    """Build the configured metadata ledger (not yet initialized)."""
    max_count = config.limits.max_session_count

    if config.ledger is LedgerKind.COSMOS:
        if config.cosmos is None:
            raise SessionValidationError("Cosmos ledger selected without cosmos config")
        from .ledger.cosmos import CosmosLedger

        return CosmosLedger(config.cosmos, max_session_count=max_count)
    if config.ledger is LedgerKind.LOCAL:
        return LocalFileLedger(config.local_path / "ledger", max_session_count=max_count)
    return MemoryLedger(max_session_count=max_count)


def create_blob_backend(config: StoreConfig) -> BlobBackend:
    """Build the configured blob backend (not yet initialized)."""
    if config.blobs is BlobKind.S3:
        if config.s3 is None:
            raise SessionValidationError("S3 blob backend selected without s3 config")
        from .blobs.s3 import S3BlobBackend

        return S3BlobBackend(config.s3)
    if config.blobs is BlobKind.LOCAL:
        return LocalFileBlobBackend(config.local_path / "blobs")
    return MemoryBlobBackend()


def create_session_store(config: StoreConfig | None = None) -> SessionStore:
    """Build a SessionStore from configuration.

    The store is returned uninitialized; call ``await store.initialize()``
    (or use it as an async context manager) before handing it to handlers.

    Args:
        config: Store configuration (defaults to environment variables)
    """
    if config is None:
        config = StoreConfig.from_env()
    return SessionStore(create_ledger(config), create_blob_backend(config), config.limits)
