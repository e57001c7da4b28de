from __future__ import annotations


class ChunkError(Exception):
    """Base class for failures inside a single chunk's load sequence."""


class RetryableChunkError(ChunkError):
    pass


class TransportError(RetryableChunkError):
    """Network failure, HTTP non-success or attempt timeout."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class SizeMismatch(RetryableChunkError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"invalid chunk size: expected {expected}, got {actual}")
        self.expected = int(expected)
        self.actual = int(actual)


class EmptyBody(RetryableChunkError):
    pass


class MaterializeError(ChunkError):
    pass


class FallbackError(ChunkError):
    pass


class DuplicatePublish(ChunkError):
    def __init__(self, key) -> None:
        super().__init__(f"chunk {key} is already published")
        self.key = key


class LoadCancelled(ChunkError):
    """The viewer was disposed while a load was suspended."""
