"""Input validation helpers for BucketGate.

These functions enforce naming and parameter rules *independently* of any
HTTP handler so they can be unit-tested in isolation.

Name checks raise ``InvalidRequest``; query parameter helpers never raise and
fall back to a sane value instead.
"""

from bucketgate.errors import InvalidRequest

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Bucket names are opaque single path segments. Names starting with "." are
# reserved for store-internal directories such as the temp area.
_FORBIDDEN_CHARS = ("/", "\\", "\x00")

_MAX_KEY_BYTES = 1024
_MAX_MAX_KEYS = 1000
DEFAULT_MAX_KEYS = 1000


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_bucket_name(name: str) -> None:
    """Validate a bucket name as a single, non-escaping path segment.

    Args:
        name: The candidate bucket name.

    Raises:
        InvalidRequest: If the name is empty, dot-prefixed or contains a
            separator or NUL byte.
    """
    if not name:
        raise InvalidRequest("Bucket name cannot be empty")

    if name.startswith("."):
        raise InvalidRequest(f"Invalid bucket name: {name}")

    if any(ch in name for ch in _FORBIDDEN_CHARS):
        raise InvalidRequest(f"Invalid bucket name: {name}")


def validate_object_key(key: str) -> None:
    """Validate a normalized object key.

    Every ``/``-separated segment is treated as an opaque name: relative
    segments (``.`` and ``..``) and empty segments are refused, as are
    backslashes and NUL bytes.

    Args:
        key: The object key with leading/trailing slashes already trimmed.

    Raises:
        InvalidRequest: If the key is empty, too long, or unsafe.
    """
    if not key:
        raise InvalidRequest("Path cannot be empty")

    if len(key.encode("utf-8")) > _MAX_KEY_BYTES:
        raise InvalidRequest("Your key is too long", key=key)

    if "\\" in key or "\x00" in key:
        raise InvalidRequest("Key contains a forbidden character", key=key)

    for segment in key.split("/"):
        if segment in ("", ".", ".."):
            raise InvalidRequest("Key contains an invalid path segment", key=key)


def clamp_max_keys(value: str | int | None) -> int:
    """Parse the ``max-keys`` query parameter, failing soft.

    Args:
        value: The raw value from the query string, or None when absent.

    Returns:
        An integer in the range [0, 1000]. Unparseable input yields the
        default of 1000.
    """
    if value is None:
        return DEFAULT_MAX_KEYS
    try:
        n = int(value)
    except (ValueError, TypeError):
        return DEFAULT_MAX_KEYS
    return max(0, min(n, _MAX_MAX_KEYS))
