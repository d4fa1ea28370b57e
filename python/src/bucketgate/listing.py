"""S3 ListObjects semantics reconstructed from a filesystem walk.

The bucket directory is enumerated as a flat list of keys. Each key is either
rolled up into a *common prefix* (when the delimiter occurs past the prefix
offset) or reported as a leaf object. Pagination uses an exclusive marker
and truncation is signalled when the page fills up to ``max_keys``.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from bucketgate.errors import NoSuchKey
from bucketgate.keys import KeyPathCodec
from bucketgate.storage.backend import ObjectStore
from bucketgate.validation import clamp_max_keys

logger = logging.getLogger(__name__)

DEFAULT_DELIMITER = "/"


@dataclass
class ObjectSummary:
    """One ``<Contents>`` entry of a listing."""

    key: str
    last_modified: str
    etag: str
    size: int
    storage_class: str = "STANDARD"


@dataclass
class ListingPage:
    """Result of one listing call, with the request parameters echoed."""

    prefix: str
    delimiter: str
    marker: str
    max_keys: int
    contents: list[ObjectSummary] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)
    is_truncated: bool = False

    @property
    def key_count(self) -> int:
        return len(self.contents) + len(self.common_prefixes)


@dataclass(frozen=True)
class ListParams:
    """Normalized listing query parameters."""

    prefix: str = ""
    delimiter: str = DEFAULT_DELIMITER
    marker: str = ""
    max_keys: int = 1000


def format_iso8601(ts: float) -> str:
    """Format a POSIX timestamp as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def normalize_prefix(prefix: str) -> str:
    """Drop leading slashes; a trailing delimiter is significant and kept."""
    return prefix.lstrip("/")


def normalize_marker(marker: str) -> str:
    return marker.strip("/")


def parse_list_params(query: Mapping[str, str]) -> ListParams:
    """Build ListParams from raw query parameters.

    Never raises: bad ``max-keys`` values are clamped or defaulted. An absent
    ``delimiter`` means ``/``; an explicitly empty one disables rollup.
    """
    return ListParams(
        prefix=normalize_prefix(query.get("prefix", "")),
        delimiter=query.get("delimiter", DEFAULT_DELIMITER),
        marker=normalize_marker(query.get("marker", "")),
        max_keys=clamp_max_keys(query.get("max-keys")),
    )


class ListingEngine:
    """Partitions a bucket's keys into objects and common prefixes.

    Attributes:
        store: The object store used to enumerate, stat and hash objects.
    """

    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    async def list(
        self,
        bucket_root: Path,
        prefix: str = "",
        delimiter: str = DEFAULT_DELIMITER,
        marker: str = "",
        max_keys: int = 1000,
    ) -> ListingPage:
        """List one page of a bucket.

        Keys are visited in enumeration order. Keys outside the prefix, at or
        below the marker, or already covered by a discovered common prefix
        are skipped. Enumeration stops once the page holds ``max_keys``
        entries. Both result lists are sorted before returning.

        ``is_truncated`` is true whenever the page is full, even when no
        further key exists; clients then issue one extra, empty request.

        Args:
            bucket_root: Directory backing the bucket.
            prefix: Only keys starting with this string are listed.
            delimiter: Rollup delimiter; empty disables rollup.
            marker: Exclusive pagination cursor.
            max_keys: Page size ceiling, clamped to [0, 1000].

        Returns:
            The populated ListingPage.
        """
        prefix = normalize_prefix(prefix)
        marker = normalize_marker(marker)
        max_keys = clamp_max_keys(max_keys)

        page = ListingPage(
            prefix=prefix, delimiter=delimiter, marker=marker, max_keys=max_keys
        )
        seen_prefixes: set[str] = set()
        hit_ceiling = False

        async for path in self.store.enumerate_all(bucket_root):
            key = KeyPathCodec.relative_key(bucket_root, path)

            if prefix and not key.startswith(prefix):
                continue
            if marker and key <= marker:
                continue
            if any(key.startswith(cp) for cp in seen_prefixes):
                continue

            if page.key_count >= max_keys:
                hit_ceiling = True
                break

            if delimiter:
                pos = key.find(delimiter, len(prefix))
                if pos != -1:
                    common_prefix = key[: pos + len(delimiter)]
                    if common_prefix not in seen_prefixes:
                        seen_prefixes.add(common_prefix)
                        page.common_prefixes.append(common_prefix)
                    continue

            try:
                page.contents.append(await self._summarize(key, path))
            except (NoSuchKey, FileNotFoundError):
                # Deleted between enumeration and stat.
                logger.debug("Skipping vanished object %s", key)

        page.contents.sort(key=lambda obj: obj.key)
        page.common_prefixes.sort()
        page.is_truncated = hit_ceiling or (max_keys > 0 and page.key_count >= max_keys)

        logger.debug(
            "Listed %s prefix=%r delimiter=%r marker=%r: %d objects, %d prefixes",
            bucket_root.name,
            prefix,
            delimiter,
            marker,
            len(page.contents),
            len(page.common_prefixes),
        )
        return page

    async def _summarize(self, key: str, path: Path) -> ObjectSummary:
        stat = await self.store.stat(path)
        etag = await self.store.content_hash(path)
        return ObjectSummary(
            key=key,
            last_modified=format_iso8601(stat.mtime),
            etag=f'"{etag}"',
            size=stat.size,
        )
