"""
Local filesystem primitives.

Atomic JSON and blob writes shared by the local-file ledger and blob backend.
"""

from .file_ops import (
    ensure_directory,
    file_exists,
    list_files,
    read_bytes,
    read_json,
    remove_file,
    write_bytes_atomic,
    write_json_atomic,
)

__all__ = [
    "ensure_directory",
    "file_exists",
    "list_files",
    "read_bytes",
    "read_json",
    "remove_file",
    "write_bytes_atomic",
    "write_json_atomic",
]
