"""Unit tests for the local filesystem object store.

Tests cover write+read round trip, streaming, stat, delete (including the
missing-object error), enumeration, hashing, atomic replacement and temp
file cleanup on startup.
"""

import hashlib
import os

import pytest

from bucketgate.errors import InvalidRequest, NoSuchKey
from bucketgate.storage.local import LocalObjectStore


async def _write(store: LocalObjectStore, path, data: bytes) -> str:
    async with store.open_for_write(path) as sink:
        sink.write(data)
    return sink.etag


async def _read(store: LocalObjectStore, path) -> bytes:
    chunks = []
    async for chunk in store.open_for_read(path):
        chunks.append(chunk)
    return b"".join(chunks)


class TestInit:
    """Tests for LocalObjectStore.init()."""

    async def test_creates_root_directory(self, tmp_path):
        """init() creates the root directory if it does not exist."""
        root = tmp_path / "new-root"
        assert not root.exists()

        backend = LocalObjectStore(root)
        await backend.init()

        assert root.is_dir()

    async def test_idempotent_init(self, tmp_path):
        """init() can be called twice without error (crash-only)."""
        backend = LocalObjectStore(tmp_path / "idempotent")
        await backend.init()
        await backend.init()
        assert backend.root.exists()

    async def test_cleans_temp_files(self, tmp_path):
        """init() removes orphan temp files from previous crashes."""
        root = tmp_path / "cleanup"
        tmp_dir = root / ".tmp"
        tmp_dir.mkdir(parents=True)
        orphan = tmp_dir / "abc123.part"
        orphan.write_bytes(b"leftover data")

        backend = LocalObjectStore(root)
        await backend.init()

        assert not orphan.exists()


class TestWriteAndRead:
    """Tests for open_for_write() and open_for_read()."""

    async def test_round_trip(self, store):
        """Bytes written through the sink are read back unchanged."""
        path = store.root / "bucket" / "test.txt"
        await _write(store, path, b"hello world")
        assert await _read(store, path) == b"hello world"

    async def test_etag_is_md5(self, store):
        """The sink reports the hex MD5 of the written bytes."""
        data = b"hello world"
        etag = await _write(store, store.root / "bucket" / "md5.txt", data)
        assert etag == hashlib.md5(data).hexdigest()

    async def test_chunked_write(self, store):
        """Several write() calls are concatenated."""
        path = store.root / "bucket" / "chunks.txt"
        async with store.open_for_write(path) as sink:
            sink.write(b"abc")
            sink.write(b"def")
        assert await _read(store, path) == b"abcdef"
        assert sink.bytes_written == 6

    async def test_creates_parent_directories(self, store):
        """Parent directories implied by the key are created."""
        path = store.root / "bucket" / "path" / "to" / "deep" / "file.txt"
        await _write(store, path, b"nested data")
        assert path.is_file()

    async def test_overwrites_existing(self, store):
        """Writing the same path replaces the previous object."""
        path = store.root / "bucket" / "overwrite.txt"
        await _write(store, path, b"original")
        await _write(store, path, b"updated")
        assert await _read(store, path) == b"updated"

    async def test_empty_object(self, store):
        """Zero-length objects are stored."""
        path = store.root / "bucket" / "empty.txt"
        etag = await _write(store, path, b"")
        assert await _read(store, path) == b""
        assert etag == hashlib.md5(b"").hexdigest()

    async def test_large_object_streams_in_chunks(self, store):
        """Objects larger than the chunk size are read in several chunks."""
        data = os.urandom(200 * 1024)
        path = store.root / "bucket" / "big.bin"
        await _write(store, path, data)

        chunks = [chunk async for chunk in store.open_for_read(path)]
        assert b"".join(chunks) == data
        assert len(chunks) > 1

    async def test_failed_write_keeps_previous_object(self, store):
        """An exception inside the write block leaves the old object intact."""
        path = store.root / "bucket" / "keep.txt"
        await _write(store, path, b"original")

        with pytest.raises(RuntimeError):
            async with store.open_for_write(path) as sink:
                sink.write(b"partial")
                raise RuntimeError("client went away")

        assert await _read(store, path) == b"original"
        assert list((store.root / ".tmp").iterdir()) == []

    async def test_failed_write_removes_created_directories(self, store):
        """An aborted upload leaves no directories that block later keys."""
        bucket = store.root / "bucket"
        with pytest.raises(ConnectionError):
            async with store.open_for_write(bucket / "x" / "y") as sink:
                sink.write(b"partial")
                raise ConnectionError("client disconnected")

        assert not (bucket / "x").exists()
        assert bucket.is_dir()

        await _write(store, bucket / "x", b"now a file")
        assert await _read(store, bucket / "x") == b"now a file"

    async def test_failed_write_keeps_populated_directories(self, store):
        bucket = store.root / "bucket"
        await _write(store, bucket / "x" / "keep.txt", b"keep")
        with pytest.raises(ConnectionError):
            async with store.open_for_write(bucket / "x" / "new" / "y"):
                raise ConnectionError("client disconnected")

        assert not (bucket / "x" / "new").exists()
        assert (bucket / "x" / "keep.txt").is_file()

    async def test_no_temp_files_after_write(self, store):
        """After a successful write only the final file exists."""
        path = store.root / "bucket" / "atomic.txt"
        await _write(store, path, b"data")
        assert [p.name for p in (store.root / "bucket").iterdir()] == ["atomic.txt"]
        assert list((store.root / ".tmp").iterdir()) == []

    async def test_key_under_existing_object_rejected(self, store):
        """A key whose parent is an existing object cannot be written."""
        await _write(store, store.root / "bucket" / "a", b"file")
        with pytest.raises(InvalidRequest):
            await _write(store, store.root / "bucket" / "a" / "b", b"child")

    async def test_key_over_existing_prefix_rejected(self, store):
        """A key that names an existing directory cannot be written."""
        await _write(store, store.root / "bucket" / "a" / "b", b"child")
        with pytest.raises(InvalidRequest):
            await _write(store, store.root / "bucket" / "a", b"file")


class TestStatAndExists:
    """Tests for stat() and exists()."""

    async def test_stat_reports_size(self, store):
        path = store.root / "bucket" / "sized.txt"
        await _write(store, path, b"12345")
        stat = await store.stat(path)
        assert stat.size == 5
        assert stat.mtime > 0

    async def test_stat_missing_raises(self, store):
        with pytest.raises(NoSuchKey):
            await store.stat(store.root / "bucket" / "missing.txt")

    async def test_directory_is_not_an_object(self, store):
        """Directories implied by keys are not objects."""
        await _write(store, store.root / "bucket" / "dir" / "file.txt", b"x")
        assert not await store.exists(store.root / "bucket" / "dir")
        assert await store.exists(store.root / "bucket" / "dir" / "file.txt")
        with pytest.raises(NoSuchKey):
            await store.stat(store.root / "bucket" / "dir")


class TestDelete:
    """Tests for delete()."""

    async def test_delete_existing(self, store):
        """delete() removes the file from disk."""
        path = store.root / "bucket" / "delete-me.txt"
        await _write(store, path, b"data")
        await store.delete(path)
        assert not await store.exists(path)

    async def test_delete_missing_raises(self, store):
        """Deleting a missing object raises NoSuchKey."""
        with pytest.raises(NoSuchKey):
            await store.delete(store.root / "bucket" / "never-existed.txt")

    async def test_delete_twice_raises(self, store):
        """The second delete of the same object raises NoSuchKey."""
        path = store.root / "bucket" / "once.txt"
        await _write(store, path, b"data")
        await store.delete(path)
        with pytest.raises(NoSuchKey):
            await store.delete(path)

    async def test_delete_prunes_empty_parents(self, store):
        """Empty directories are removed up to, not including, the bucket."""
        path = store.root / "bucket" / "a" / "b" / "c.txt"
        await _write(store, path, b"data")
        await store.delete(path)
        assert not (store.root / "bucket" / "a").exists()
        assert (store.root / "bucket").is_dir()

    async def test_delete_keeps_non_empty_parents(self, store):
        keep = store.root / "bucket" / "a" / "keep.txt"
        gone = store.root / "bucket" / "a" / "b" / "gone.txt"
        await _write(store, keep, b"keep")
        await _write(store, gone, b"gone")
        await store.delete(gone)
        assert keep.is_file()
        assert not (store.root / "bucket" / "a" / "b").exists()


class TestEnumerateAndHash:
    """Tests for enumerate_all() and content_hash()."""

    async def test_enumerates_files_recursively(self, store):
        bucket = store.root / "bucket"
        for rel in ("a.txt", "x/b.txt", "x/y/c.txt"):
            await _write(store, bucket / rel, b"data")

        found = sorted([p.relative_to(bucket).as_posix() async for p in store.enumerate_all(bucket)])
        assert found == ["a.txt", "x/b.txt", "x/y/c.txt"]

    async def test_enumeration_is_restartable(self, store):
        bucket = store.root / "bucket"
        await _write(store, bucket / "one.txt", b"1")
        first = [p async for p in store.enumerate_all(bucket)]
        second = [p async for p in store.enumerate_all(bucket)]
        assert first == second

    async def test_missing_root_yields_nothing(self, store):
        assert [p async for p in store.enumerate_all(store.root / "nope")] == []

    async def test_symlinks_are_skipped(self, store, tmp_path):
        outside = tmp_path / "outside.txt"
        outside.write_bytes(b"secret")
        bucket = store.root / "bucket"
        await _write(store, bucket / "real.txt", b"data")
        os.symlink(outside, bucket / "link.txt")

        found = [p.name async for p in store.enumerate_all(bucket)]
        assert found == ["real.txt"]

    async def test_content_hash_matches_md5(self, store):
        data = os.urandom(150 * 1024)
        path = store.root / "bucket" / "hash.bin"
        await _write(store, path, data)
        assert await store.content_hash(path) == hashlib.md5(data).hexdigest()
