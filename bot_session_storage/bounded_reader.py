"""
Bounded payload reader.

Drains a byte stream into memory while refusing to hold more than a fixed
number of bytes. The stream is abandoned the moment the cap is crossed, so an
oversized upload costs at most ``max_bytes`` of memory and never gets drained
to the end.
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterable, Iterable
from typing import Union

from .exceptions import PayloadTooLargeError

ByteChunk = Union[bytes, bytearray, memoryview]
ByteStream = Union[ByteChunk, Iterable[ByteChunk], AsyncIterable[ByteChunk]]


class _Accumulator:
    def __init__(self, max_bytes: int | None):
        self.max_bytes = max_bytes
        self.chunks: list[bytes] = []
        self.total = 0

    def add(self, chunk: ByteChunk) -> bool:
        """Append a chunk; return False if it would cross the cap."""
        size = len(chunk)
        if self.max_bytes is not None and self.total + size > self.max_bytes:
            return False
        if size:
            self.chunks.append(bytes(chunk))
            self.total += size
        return True

    def result(self) -> bytes:
        return b"".join(self.chunks)


async def read_bounded(stream: ByteStream, max_bytes: int | None = None) -> bytes:
    """Read a whole stream, failing fast when it exceeds ``max_bytes``.

    Args:
        stream: Raw bytes, a sync iterable of chunks or an async iterable of chunks
        max_bytes: Largest accepted total size (inclusive). None reads to completion.

    Returns:
        The concatenated payload

    Raises:
        PayloadTooLargeError: As soon as the running total passes ``max_bytes``
        ValueError: If ``max_bytes`` is negative
    """
    if max_bytes is not None and max_bytes < 0:
        raise ValueError("max_bytes must not be negative")

    acc = _Accumulator(max_bytes)

    if isinstance(stream, (bytes, bytearray, memoryview)):
        if not acc.add(stream):
            raise PayloadTooLargeError(max_bytes)  # type: ignore[arg-type]
        return acc.result()

    if isinstance(stream, AsyncIterable):
        try:
            async for chunk in stream:
                if not acc.add(chunk):
                    raise PayloadTooLargeError(max_bytes)  # type: ignore[arg-type]
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                closing = aclose()
                if inspect.isawaitable(closing):
                    await closing
        return acc.result()

    iterator = iter(stream)
    try:
        for chunk in iterator:
            if not acc.add(chunk):
                raise PayloadTooLargeError(max_bytes)  # type: ignore[arg-type]
    finally:
        close = getattr(iterator, "close", None)
        if close is not None:
            close()
    return acc.result()
