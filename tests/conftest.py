"""
Shared test configuration and fixtures.

Stores are built on the in-memory backends unless a test needs the local
file backends; Cosmos and S3 are exercised through mocks (and live tests that
skip without credentials).
"""

import pytest

from bot_session_storage import (
    MemoryBlobBackend,
    MemoryLedger,
    SessionLimits,
    SessionStore,
)

from helpers import SMALL_SESSION_COUNT


@pytest.fixture
def ledger() -> MemoryLedger:
    return MemoryLedger()


@pytest.fixture
def blobs() -> MemoryBlobBackend:
    return MemoryBlobBackend()


@pytest.fixture
async def store(ledger: MemoryLedger, blobs: MemoryBlobBackend):
    """Initialized store with the default limits."""
    async with SessionStore(ledger, blobs) as store:
        yield store


@pytest.fixture
async def small_store():
    """Initialized store whose tenants may only hold a few keys."""
    limits = SessionLimits(max_session_count=SMALL_SESSION_COUNT)
    store = SessionStore(MemoryLedger(SMALL_SESSION_COUNT), MemoryBlobBackend(), limits)
    async with store:
        yield store
