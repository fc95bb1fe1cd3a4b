"""Byte stream doubles shared by the tests."""

from collections.abc import AsyncIterator, Iterator

# Key-count limit used by stores that test quota exhaustion
SMALL_SESSION_COUNT = 5


async def chunks(*parts: bytes) -> AsyncIterator[bytes]:
    """Async stream yielding the given chunks."""
    for part in parts:
        yield part


class TrackingStream:
    """Endless async byte stream that records how much was pulled from it."""

    def __init__(self, chunk: bytes = b"x" * 1024):
        self.chunk = chunk
        self.bytes_pulled = 0
        self.closed = False

    def __aiter__(self) -> "TrackingStream":
        return self

    async def __anext__(self) -> bytes:
        self.bytes_pulled += len(self.chunk)
        return self.chunk

    async def aclose(self) -> None:
        self.closed = True


class TrackingIterable:
    """Sync chunk iterable that records whether it was touched."""

    def __init__(self, *parts: bytes):
        self.parts = parts
        self.touched = False

    def __iter__(self) -> Iterator[bytes]:
        self.touched = True
        return iter(self.parts)
