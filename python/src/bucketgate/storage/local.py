"""Local filesystem object store for BucketGate.

Implements the ObjectStore protocol on top of a directory tree. Objects are
stored under ``{root}/{bucket}/{key}``; in-flight uploads are staged under
``{root}/.tmp/``.

Crash-only design:
    - Writes go to a temp file, are fsync'd, then renamed into place.
    - A failed write never leaves a truncated object behind.
    - Startup removes orphan temp files from interrupted writes.
"""

import hashlib
import logging
import os
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import BinaryIO

from bucketgate.errors import InvalidRequest, NoSuchKey
from bucketgate.storage.backend import ObjectStat

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB
_CHUNK_SIZE = 64 * 1024

_TMP_DIR_NAME = ".tmp"


class _HashingSink:
    """Write-through sink that tracks size and MD5 of written bytes."""

    def __init__(self, fh: BinaryIO) -> None:
        self._fh = fh
        self._md5 = hashlib.md5()
        self.bytes_written = 0

    def write(self, chunk: bytes) -> None:
        self._fh.write(chunk)
        self._md5.update(chunk)
        self.bytes_written += len(chunk)

    @property
    def etag(self) -> str:
        return self._md5.hexdigest()


class LocalObjectStore:
    """Object store that persists objects on the local filesystem.

    Attributes:
        root: The root directory for all stored data.
    """

    def __init__(self, root: str | Path) -> None:
        """Initialize the local object store.

        Args:
            root: Root directory path for object storage.
        """
        self.root = Path(root).resolve()
        self._tmp_dir = self.root / _TMP_DIR_NAME

    async def init(self) -> None:
        """Create the root directory and clean up orphan temp files.

        Crash-only design: every startup is a recovery.
        """
        self.root.mkdir(parents=True, exist_ok=True)
        self._tmp_dir.mkdir(exist_ok=True)
        self._clean_temp_files()
        logger.info("Local object store initialized at %s", self.root)

    def _clean_temp_files(self) -> None:
        """Remove temp files left by interrupted writes."""
        count = 0
        for child in self._tmp_dir.iterdir():
            try:
                child.unlink()
                count += 1
            except OSError:
                logger.warning("Could not remove orphan temp file %s", child)
        if count > 0:
            logger.info("Cleaned %d orphan temp files on startup", count)

    async def close(self) -> None:
        """No-op for the local filesystem."""
        pass

    async def exists(self, path: Path) -> bool:
        """Return True if a regular file exists at ``path``."""
        return path.is_file()

    async def stat(self, path: Path) -> ObjectStat:
        """Return size and mtime of the object at ``path``.

        Raises:
            NoSuchKey: If there is no regular file at ``path``.
        """
        if not path.is_file():
            raise NoSuchKey()
        st = path.stat()
        return ObjectStat(size=st.st_size, mtime=st.st_mtime)

    async def open_for_read(
        self, path: Path, chunk_size: int = _CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        """Yield the object's bytes in ``chunk_size`` pieces.

        The file handle is closed when the iterator is exhausted or closed.
        """
        with open(path, "rb") as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    @asynccontextmanager
    async def open_for_write(self, path: Path) -> AsyncIterator[_HashingSink]:
        """Open a sink that atomically replaces the object at ``path``.

        Parent directories implied by the key are created first. Bytes are
        staged in the temp area, fsync'd, and renamed over ``path`` once the
        ``async with`` block exits cleanly. On any error the temp file is
        removed, directories created for the key are pruned again, and the
        previous object, if any, is left untouched.

        Raises:
            InvalidRequest: If the key collides with an existing key prefix
                (a directory) or an ancestor is an existing object.
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except (FileExistsError, NotADirectoryError):
            raise InvalidRequest("An existing object is a prefix of this key")
        if path.is_dir():
            raise InvalidRequest("An existing key prefix conflicts with this key")

        self._tmp_dir.mkdir(parents=True, exist_ok=True)
        tmp = self._tmp_dir / f"{uuid.uuid4().hex}.part"
        try:
            with open(tmp, "wb") as fh:
                sink = _HashingSink(fh)
                yield sink
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, path)
        except BaseException:
            try:
                tmp.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not remove temp file %s", tmp)
            self._prune_empty_parents(path)
            raise

    async def delete(self, path: Path) -> None:
        """Delete the object at ``path`` and prune empty parent directories.

        Raises:
            NoSuchKey: If there is no regular file at ``path``.
        """
        if not path.is_file():
            raise NoSuchKey()
        try:
            path.unlink()
        except FileNotFoundError:
            raise NoSuchKey()

        self._prune_empty_parents(path)

    def _prune_empty_parents(self, path: Path) -> None:
        """Remove empty directories above ``path``, up to the bucket dir."""
        bucket_dir = self.root / path.relative_to(self.root).parts[0]
        parent = path.parent
        while parent != bucket_dir and parent != self.root:
            try:
                parent.rmdir()  # Only removes empty dirs
            except OSError:
                break
            parent = parent.parent

    async def enumerate_all(self, root: Path) -> AsyncIterator[Path]:
        """Yield every regular file under ``root``.

        Order follows the directory walk and is not sorted. Symlinks are
        not objects and are skipped. A missing root yields nothing.
        """
        for dirpath, _dirnames, filenames in os.walk(root):
            for fname in filenames:
                path = Path(dirpath) / fname
                if path.is_symlink() or not path.is_file():
                    continue
                yield path

    async def content_hash(self, path: Path) -> str:
        """Stream the object through MD5 and return the hex digest."""
        md5 = hashlib.md5()
        with open(path, "rb") as f:
            while True:
                chunk = f.read(_CHUNK_SIZE)
                if not chunk:
                    break
                md5.update(chunk)
        return md5.hexdigest()
