"""
Bot Session Storage

Multi-tenant key-value session store for bot API clients.

Provides:
- Per-tenant quotas on key count, key length and payload size
- A metadata ledger (Cosmos DB, local files, memory) enforcing the key-count
  quota with a single atomic check-and-reserve
- A blob layer (S3-compatible storage, local files, memory) for payloads
- Bounded reading of request bodies
- A thin aiohttp transport

Usage:

    >>> from bot_session_storage import StoreConfig, create_session_store
    >>> store = create_session_store(StoreConfig.from_env())
    >>> async with store:
    ...     await store.write_session(tenant_id, "settings", payload_stream)
    ...     data = await store.read_session(tenant_id, "settings")
    ...     keys = await store.list_session_keys(tenant_id)

Backend Selection:

    # Cosmos DB ledger + S3 blobs for production
    from bot_session_storage.ledger.cosmos import CosmosLedger, CosmosLedgerConfig
    from bot_session_storage.blobs.s3 import S3BlobBackend, S3BlobConfig

    # Local files for development
    from bot_session_storage.ledger import LocalFileLedger
    from bot_session_storage.blobs import LocalFileBlobBackend
"""

from .blobs import BlobBackend, LocalFileBlobBackend, MemoryBlobBackend
from .bounded_reader import read_bounded
from .config import BlobKind, LedgerKind, StoreConfig, create_session_store
from .exceptions import (
    AuthenticationError,
    PayloadTooLargeError,
    QuotaExceededError,
    SessionKeyTooLongError,
    SessionOutcome,
    SessionStorageError,
    SessionValidationError,
    StorageConnectionError,
    StorageIOError,
    StoreNotInitializedError,
)
from .ledger import LocalFileLedger, MemoryLedger, MetadataLedger
from .limits import (
    MAX_SESSION_COUNT,
    MAX_SESSION_DATA_BYTES,
    MAX_SESSION_KEY_LENGTH,
    SessionLimits,
)
from .namespacing import namespace_key
from .store import SessionStore, TenantAudit

__all__ = [
    # Core
    "SessionStore",
    "TenantAudit",
    "SessionLimits",
    "SessionOutcome",
    "StoreConfig",
    "LedgerKind",
    "BlobKind",
    "create_session_store",
    "read_bounded",
    "namespace_key",
    # Backends
    "MetadataLedger",
    "MemoryLedger",
    "LocalFileLedger",
    "BlobBackend",
    "MemoryBlobBackend",
    "LocalFileBlobBackend",
    # Limits
    "MAX_SESSION_KEY_LENGTH",
    "MAX_SESSION_DATA_BYTES",
    "MAX_SESSION_COUNT",
    # Exceptions
    "SessionStorageError",
    "SessionValidationError",
    "SessionKeyTooLongError",
    "PayloadTooLargeError",
    "QuotaExceededError",
    "StorageIOError",
    "StorageConnectionError",
    "AuthenticationError",
    "StoreNotInitializedError",
]

__version__ = "0.1.0"
