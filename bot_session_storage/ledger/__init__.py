"""
Metadata ledger backends.

The ledger tracks which session keys exist per tenant so the key-count quota
can be enforced atomically:
- MemoryLedger: in-process, per-tenant asyncio.Lock
- LocalFileLedger: one JSON document per tenant on disk
- CosmosLedger: Azure Cosmos DB, conditional single-document patch
"""

from .base import MetadataLedger
from .local import LocalFileLedger
from .memory import MemoryLedger

__all__ = [
    "MetadataLedger",
    "MemoryLedger",
    "LocalFileLedger",
]
