"""Bucket/key to filesystem path mapping for BucketGate.

Objects live at ``{root}/{bucket}/{key}``. Keys are flat strings that use
``/`` as a hierarchy separator; every segment is an opaque name and the
resolved path must stay inside the bucket directory.
"""

from pathlib import Path, PurePosixPath

from bucketgate.errors import InvalidRequest
from bucketgate.validation import validate_bucket_name, validate_object_key


def normalize_key(key: str) -> str:
    """Strip leading and trailing slashes from an object key."""
    return key.strip("/")


class KeyPathCodec:
    """Bidirectional mapping between (bucket, key) pairs and paths.

    Attributes:
        root: Absolute root directory that holds one directory per bucket.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def bucket_root(self, bucket: str) -> Path:
        """Return the directory that backs ``bucket``.

        Raises:
            InvalidRequest: If the bucket name is not a safe path segment.
        """
        validate_bucket_name(bucket)
        path = self.root / bucket
        if path.resolve().parent != self.root:
            raise InvalidRequest(f"Invalid bucket name: {bucket}")
        return path

    def resolve(self, bucket: str, key: str) -> Path:
        """Resolve an object to its filesystem path.

        The key is normalized, validated segment by segment, and the joined
        path is canonicalized (following symlinks) and checked for
        containment before any caller touches the filesystem.

        Args:
            bucket: The bucket name.
            key: The raw object key.

        Returns:
            The absolute path of the object file.

        Raises:
            InvalidRequest: If the key is empty or escapes the bucket.
        """
        key = normalize_key(key)
        validate_object_key(key)
        bucket_dir = self.bucket_root(bucket).resolve()

        path = (bucket_dir / key).resolve()
        if path == bucket_dir or not path.is_relative_to(bucket_dir):
            raise InvalidRequest("Key resolves outside of its bucket", key=key)
        return path

    @staticmethod
    def relative_key(bucket_root: Path, path: Path) -> str:
        """Return the object key for ``path`` under ``bucket_root``."""
        return PurePosixPath(path.relative_to(bucket_root)).as_posix()
