"""
Blob backends.

Opaque object stores holding session payloads under namespaced keys:
- MemoryBlobBackend: in-process dict
- LocalFileBlobBackend: files on disk
- S3BlobBackend: S3-compatible object storage (aioboto3)
"""

from .base import BlobBackend
from .local import LocalFileBlobBackend
from .memory import MemoryBlobBackend

__all__ = [
    "BlobBackend",
    "MemoryBlobBackend",
    "LocalFileBlobBackend",
]
