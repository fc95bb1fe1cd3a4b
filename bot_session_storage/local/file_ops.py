"""
Async file operations for local storage.

Provides atomic read/write operations for JSON documents and raw blobs:
- Atomic writes using temp file + rename
- Missing files reported as None instead of raising
- OS failures wrapped in StorageIOError
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from ..exceptions import StorageIOError


async def ensure_directory(path: Path) -> None:
    """Ensure directory exists, creating if necessary.

    Args:
        path: Directory path to ensure exists
    """
    try:
        await aiofiles.os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise StorageIOError("create_directory", str(path), e) from e


async def read_json(path: Path) -> dict[str, Any] | None:
    """Read a JSON file.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON data or None if file doesn't exist
    """
    try:
        if not await aiofiles.os.path.exists(path):
            return None
        async with aiofiles.open(path, encoding="utf-8") as f:
            content = await f.read()
            return json.loads(content) if content.strip() else None
    except json.JSONDecodeError as e:
        raise StorageIOError("parse_json", str(path), e) from e
    except OSError as e:
        raise StorageIOError("read_json", str(path), e) from e


async def write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    """Write JSON file atomically using temp file + rename.

    Args:
        path: Target path for JSON file
        data: Data to serialize as JSON
    """
    await _write_atomic(path, json.dumps(data).encode("utf-8"), ".json", "write_json")


async def read_bytes(path: Path) -> bytes | None:
    """Read a whole file as bytes.

    Args:
        path: Path to read

    Returns:
        File contents or None if the file doesn't exist
    """
    try:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise StorageIOError("read_bytes", str(path), e) from e


async def write_bytes_atomic(path: Path, data: bytes) -> None:
    """Write a file atomically using temp file + rename.

    Args:
        path: Target path
        data: Bytes to write
    """
    await _write_atomic(path, data, ".bin", "write_bytes")


async def file_exists(path: Path) -> bool:
    """Check if a file exists.

    Args:
        path: Path to check

    Returns:
        True if file exists
    """
    try:
        return await aiofiles.os.path.exists(path)
    except OSError:
        return False


async def remove_file(path: Path) -> bool:
    """Remove a file if it exists.

    Args:
        path: Path to remove

    Returns:
        True if file was removed, False if it didn't exist
    """
    try:
        await aiofiles.os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        raise StorageIOError("remove", str(path), e) from e


async def list_files(path: Path, suffix: str) -> list[Path]:
    """List files with a given suffix below a directory, recursively.

    Args:
        path: Directory to walk
        suffix: File suffix to match (e.g. ".key")

    Returns:
        Matching file paths, or an empty list if the directory doesn't exist
    """
    try:
        if not await aiofiles.os.path.exists(path):
            return []
        found: list[Path] = []
        for entry in await aiofiles.os.listdir(path):
            entry_path = path / entry
            if await aiofiles.os.path.isdir(entry_path):
                found.extend(await list_files(entry_path, suffix))
            elif entry.endswith(suffix):
                found.append(entry_path)
        return found
    except OSError as e:
        raise StorageIOError("list_files", str(path), e) from e


async def _write_atomic(path: Path, data: bytes, suffix: str, operation: str) -> None:
    await ensure_directory(path.parent)

    # Write to temp file first
    fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=".tmp_",
        suffix=suffix,
    )
    try:
        os.close(fd)
        async with aiofiles.open(temp_path, "wb") as f:
            await f.write(data)
            await f.flush()
            os.fsync(f.fileno())

        # Atomic rename
        await aiofiles.os.replace(temp_path, path)
    except Exception as e:
        # Clean up temp file on error
        try:
            await aiofiles.os.remove(temp_path)
        except OSError:
            pass
        raise StorageIOError(operation, str(path), e) from e
