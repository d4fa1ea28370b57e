"""Abstract object store protocol for BucketGate."""

from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True)
class ObjectStat:
    """Size and modification time of a stored object.

    Attributes:
        size: Object size in bytes.
        mtime: Last modification time as a POSIX timestamp.
    """

    size: int
    mtime: float


class ObjectSink(Protocol):
    """Byte sink returned by ``ObjectStore.open_for_write``."""

    bytes_written: int
    etag: str

    def write(self, chunk: bytes) -> None:
        """Append a chunk of bytes to the object being written."""
        ...


class ObjectStore(Protocol):
    """Protocol defining the hierarchical byte-store capability.

    Every method takes an already resolved, confined path (see
    ``KeyPathCodec``). The store is the only component that performs
    physical I/O; nothing is cached between calls.
    """

    async def init(self) -> None:
        """Initialize the store (create directories, clean temp files)."""
        ...

    async def close(self) -> None:
        """Release resources held by the store."""
        ...

    async def exists(self, path: Path) -> bool:
        """Return True if ``path`` is a stored object."""
        ...

    async def stat(self, path: Path) -> ObjectStat:
        """Return size and mtime of an object.

        Raises:
            NoSuchKey: If no object exists at ``path``.
        """
        ...

    def open_for_read(self, path: Path, chunk_size: int = ...) -> AsyncIterator[bytes]:
        """Stream an object's bytes in chunks."""
        ...

    def open_for_write(self, path: Path) -> AbstractAsyncContextManager[ObjectSink]:
        """Open a sink that replaces the object at ``path`` on success."""
        ...

    async def delete(self, path: Path) -> None:
        """Delete an object.

        Raises:
            NoSuchKey: If no object exists at ``path``.
        """
        ...

    def enumerate_all(self, root: Path) -> AsyncIterator[Path]:
        """Yield every object path under ``root``, in no particular order."""
        ...

    async def content_hash(self, path: Path) -> str:
        """Return the hex MD5 digest of an object's bytes."""
        ...
