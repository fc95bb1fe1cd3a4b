"""
Quota-enforced session store.

Composes a metadata ledger (which keys exist per tenant) with a blob backend
(the payloads). There is no transaction spanning the two, so the write order
is fixed:

    validate key -> drain payload under the byte cap -> reserve in ledger -> put blob

A crash or failure between reservation and the blob put leaves a key that is
listed but reads as not found. The next write of that key repairs it
(reservation is idempotent) and the next delete clears it. Storing the blob
before reserving would instead risk blobs that are never counted against the
quota, so the order must not change.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from .blobs.base import BlobBackend
from .bounded_reader import ByteStream, read_bounded
from .exceptions import (
    PayloadTooLargeError,
    QuotaExceededError,
    SessionKeyTooLongError,
    SessionOutcome,
    StorageIOError,
    StoreNotInitializedError,
)
from .ledger.base import MetadataLedger
from .limits import SessionLimits, utf16_length
from .logging_utils import StorageLoggerAdapter, get_storage_logger
from .namespacing import namespace_key, validate_tenant_id


@dataclass
class TenantAudit:
    """Differences between a tenant's ledger entries and its stored blobs.

    Attributes:
        tenant_id: Audited tenant
        listed_without_blob: Reserved keys with no payload (a blob put failed
            after reservation). They count against the quota until rewritten
            or deleted.
        stored_without_listing: Payloads whose ledger entry is gone (a blob
            delete failed after release). Not counted against the quota.
    """

    tenant_id: int
    listed_without_blob: set[str] = field(default_factory=set)
    stored_without_listing: set[str] = field(default_factory=set)

    @property
    def consistent(self) -> bool:
        return not self.listed_without_blob and not self.stored_without_listing


class SessionStore:
    """Multi-tenant key-value session store.

    Construct it with its backends, call initialize() once, then share the
    instance between request handlers. Operations before initialize() raise
    StoreNotInitializedError; the store never reconnects lazily.

    Example:
        >>> store = SessionStore(MemoryLedger(), MemoryBlobBackend())
        >>> async with store:
        ...     await store.write_session(42, "settings", b'{"lang": "en"}')
        ...     data = await store.read_session(42, "settings")
    """

    def __init__(
        self,
        ledger: MetadataLedger,
        blobs: BlobBackend,
        limits: SessionLimits | None = None,
    ):
        """Initialize the session store.

        Args:
            ledger: Metadata ledger enforcing the key-count quota
            blobs: Blob backend holding payloads
            limits: Limits to enforce (defaults to the standard limits)

        Raises:
            ValueError: If the ledger was built with a different key-count limit
        """
        self.limits = limits or SessionLimits()
        if ledger.max_session_count != self.limits.max_session_count:
            raise ValueError(
                f"Ledger enforces {ledger.max_session_count} sessions per tenant, "
                f"store limits say {self.limits.max_session_count}"
            )
        self.ledger = ledger
        self.blobs = blobs
        self._initialized = False
        self._logger = get_storage_logger("store")

    async def initialize(self) -> None:
        """Connect both backends. Must complete before any operation."""
        if self._initialized:
            return

        await self.ledger.initialize()
        try:
            await self.blobs.initialize()
        except Exception:
            await self.ledger.close()
            raise

        self._initialized = True
        self._logger.info(
            f"Session store initialized "
            f"(ledger={type(self.ledger).__name__}, blobs={type(self.blobs).__name__})"
        )

    async def close(self) -> None:
        """Close both backends."""
        self._initialized = False
        try:
            await self.blobs.close()
        finally:
            await self.ledger.close()

    async def __aenter__(self) -> SessionStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise StoreNotInitializedError("SessionStore")

    def _tenant_logger(self, tenant_id: int) -> logging.LoggerAdapter:
        return StorageLoggerAdapter.for_tenant(self._logger, tenant_id)

    # =========================================================================
    # Session Operations
    # =========================================================================

    async def read_session(self, tenant_id: int, key: str) -> bytes | None:
        """Read a session payload.

        The ledger is not consulted: a stale or missing ledger entry never
        blocks reading a blob that exists.

        Returns:
            The payload, or None if the session does not exist

        Raises:
            StorageIOError: If the blob backend fails
        """
        self._require_initialized()
        return await self.blobs.get(namespace_key(tenant_id, key))

    async def write_session(self, tenant_id: int, key: str, stream: ByteStream) -> SessionOutcome:
        """Create or overwrite a session payload.

        Args:
            tenant_id: Authenticated tenant
            key: Session key
            stream: Payload as bytes or a (sync or async) iterable of chunks

        Returns:
            SessionOutcome.WRITTEN

        Raises:
            SessionKeyTooLongError: Key reaches max_key_length; nothing touched
            PayloadTooLargeError: Payload passes max_data_bytes; no quota used
            QuotaExceededError: Tenant is full; no blob written
            StorageIOError: A backend failed
        """
        self._require_initialized()
        namespaced = namespace_key(tenant_id, key)
        log = self._tenant_logger(tenant_id)

        key_length = utf16_length(key)
        if key_length >= self.limits.max_key_length:
            log.info(f"Rejected session key of length {key_length}")
            raise SessionKeyTooLongError(key_length, self.limits.max_key_length)

        try:
            data = await read_bounded(stream, self.limits.max_data_bytes)
        except PayloadTooLargeError:
            log.info(f"Rejected payload over {self.limits.max_data_bytes} bytes")
            raise

        if not await self.ledger.try_reserve(tenant_id, key):
            log.info(f"Session quota of {self.limits.max_session_count} exhausted")
            raise QuotaExceededError(tenant_id, self.limits.max_session_count)

        try:
            await self.blobs.put(namespaced, data)
        except StorageIOError:
            log.warning("Blob write failed after reservation; key stays reserved")
            raise

        return SessionOutcome.WRITTEN

    async def delete_session(self, tenant_id: int, key: str) -> SessionOutcome:
        """Delete a session. Deleting a key that does not exist succeeds.

        The ledger release and the blob delete run concurrently. Both are
        idempotent, so a partial failure is repaired by calling again.

        Returns:
            SessionOutcome.DELETED

        Raises:
            StorageIOError: If either backend failed (after both finished)
        """
        self._require_initialized()
        namespaced = namespace_key(tenant_id, key)

        results = await asyncio.gather(
            self.ledger.release(tenant_id, key),
            self.blobs.delete(namespaced),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            self._tenant_logger(tenant_id).warning(
                f"Delete partially failed ({len(errors)} of 2 backends)"
            )
            raise errors[0]

        return SessionOutcome.DELETED

    async def list_session_keys(self, tenant_id: int) -> set[str]:
        """List the tenant's session keys.

        May include a key whose blob write failed after reservation; such a
        key reads as not found.
        """
        self._require_initialized()
        validate_tenant_id(tenant_id)
        return await self.ledger.list_keys(tenant_id)

    async def audit_tenant(self, tenant_id: int) -> TenantAudit:
        """Compare the tenant's ledger entries with its stored blobs.

        Read-only. Each difference is repaired by delete_session() for the
        key, or by writing it again.
        """
        self._require_initialized()
        validate_tenant_id(tenant_id)
        listed, stored = await asyncio.gather(
            self.ledger.list_keys(tenant_id),
            self.blobs.list_keys(tenant_id),
        )
        audit = TenantAudit(
            tenant_id=tenant_id,
            listed_without_blob=listed - stored,
            stored_without_listing=stored - listed,
        )
        if not audit.consistent:
            self._tenant_logger(tenant_id).warning(
                f"Ledger and blobs disagree: {len(audit.listed_without_blob)} listed without "
                f"blob, {len(audit.stored_without_listing)} stored without listing"
            )
        return audit
