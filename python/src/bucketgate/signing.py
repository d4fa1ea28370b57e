"""Signed upload URLs for BucketGate.

A signed grant authorizes exactly one (method, bucket, key) triple until a
wall-clock expiry. Grants are stateless: nothing is stored, and verification
recomputes the HMAC-SHA256 over the same canonical payload.
"""

import base64
import hashlib
import hmac
import json
import logging
import time
import urllib.parse
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from bucketgate.errors import ConfigError

logger = logging.getLogger(__name__)

GRANT_METHOD = "PUT"

MIN_TTL_SECONDS = 1
MAX_TTL_SECONDS = 604800  # 7 days
DEFAULT_TTL_SECONDS = 3600


class GrantStatus(Enum):
    """Outcome of checking a signed grant."""

    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass(frozen=True)
class SignedGrant:
    """An issued upload grant."""

    url: str
    signature: str
    expires_at: int
    expires_in: int
    method: str = GRANT_METHOD


def clamp_ttl(value: str | int | None) -> int:
    """Parse a TTL in seconds and clamp it to [1, 604800].

    Missing or unparseable values yield the default of one hour.
    """
    if value is None or value == "":
        return DEFAULT_TTL_SECONDS
    try:
        ttl = int(value)
    except (ValueError, TypeError):
        return DEFAULT_TTL_SECONDS
    return max(MIN_TTL_SECONDS, min(ttl, MAX_TTL_SECONDS))


def canonical_payload(method: str, bucket: str, key: str, expires_at: int) -> bytes:
    """Serialize the signed fields in a fixed order with JSON escaping."""
    return json.dumps(
        [method, bucket, key, int(expires_at)],
        separators=(",", ":"),
        ensure_ascii=True,
    ).encode()


class SignedURLIssuer:
    """Issues and verifies time-limited upload grants.

    Attributes:
        base_url: Default URL prefix for issued URLs (scheme and host).
    """

    def __init__(
        self,
        secret_key: str,
        base_url: str = "",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self._clock = clock

    def _key(self) -> bytes:
        if not self._secret_key:
            raise ConfigError("Signing key is not configured")
        return self._secret_key.encode()

    def sign(self, bucket: str, key: str, expires_at: int, method: str = GRANT_METHOD) -> str:
        """Return the URL-safe base64 HMAC-SHA256 of the canonical payload.

        Raises:
            ConfigError: If no signing key is configured.
        """
        digest = hmac.new(
            self._key(),
            canonical_payload(method, bucket, key, expires_at),
            hashlib.sha256,
        ).digest()
        return base64.urlsafe_b64encode(digest).decode().rstrip("=")

    def issue(
        self,
        bucket: str,
        key: str,
        ttl_seconds: int | str | None = DEFAULT_TTL_SECONDS,
        base_url: str | None = None,
    ) -> SignedGrant:
        """Issue a grant for uploading ``bucket``/``key``.

        Args:
            bucket: The bucket name.
            key: The normalized object key.
            ttl_seconds: Lifetime in seconds, clamped to [1, 604800].
            base_url: URL prefix overriding the configured one.

        Returns:
            The SignedGrant including a ready-to-use URL.

        Raises:
            ConfigError: If no signing key is configured.
        """
        ttl = clamp_ttl(ttl_seconds)
        expires_at = int(self._clock()) + ttl
        signature = self.sign(bucket, key, expires_at)

        prefix = (base_url if base_url is not None else self.base_url).rstrip("/")
        path = "/buckets/{}/{}".format(
            urllib.parse.quote(bucket, safe=""),
            urllib.parse.quote(key, safe="/"),
        )
        query = urllib.parse.urlencode({"expires": expires_at, "signature": signature})
        url = f"{prefix}{path}?{query}"

        logger.info("Issued upload grant for %s/%s expiring at %d", bucket, key, expires_at)
        return SignedGrant(url=url, signature=signature, expires_at=expires_at, expires_in=ttl)

    def verify(self, signature: str, bucket: str, key: str, expires_at: int) -> bool:
        """Return True if ``signature`` matches the payload.

        Expiry is not checked here; see ``check``.

        Raises:
            ConfigError: If no signing key is configured.
        """
        expected = self.sign(bucket, key, expires_at)
        return hmac.compare_digest(expected.encode(), signature.encode())

    def check(self, signature: str, bucket: str, key: str, expires_at: int) -> GrantStatus:
        """Check expiry, then signature.

        An expired grant is reported as EXPIRED without recomputing the
        signature.
        """
        if self._clock() > expires_at:
            return GrantStatus.EXPIRED
        if not self.verify(signature, bucket, key, expires_at):
            return GrantStatus.INVALID
        return GrantStatus.VALID
