"""Request authorization for BucketGate.

Two credentials are accepted for mutating requests:

1. ``Authorization: Bearer <token>`` matching the configured bearer token.
2. A signed upload grant passed as ``expires`` and ``signature`` query
   parameters (PUT/POST only), issued by ``SignedURLIssuer``.

Secrets are compared in constant time.
"""

import logging
import secrets

from fastapi import Request

from bucketgate.errors import ConfigError, ExpiredToken, InvalidToken
from bucketgate.signing import GrantStatus, SignedURLIssuer

logger = logging.getLogger(__name__)


def extract_bearer_token(request: Request) -> str | None:
    """Return the token from an ``Authorization: Bearer`` header, if any."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


class GatewayAuthenticator:
    """Checks bearer tokens and signed grants.

    Attributes:
        issuer: The SignedURLIssuer used to verify grants.
    """

    def __init__(self, bearer_token: str, issuer: SignedURLIssuer) -> None:
        self._bearer_token = bearer_token
        self.issuer = issuer

    def require_bearer(self, request: Request) -> None:
        """Require a bearer token equal to the configured one.

        Raises:
            ConfigError: If no bearer token is configured on the server.
            InvalidToken: If the token is missing or does not match.
        """
        if not self._bearer_token:
            raise ConfigError("AUTH_BEARER is not configured")

        token = extract_bearer_token(request)
        if token is None or not secrets.compare_digest(
            token.encode(), self._bearer_token.encode()
        ):
            logger.info("Rejected bearer token for %s %s", request.method, request.url.path)
            raise InvalidToken()

    def require_bearer_or_grant(self, request: Request, bucket: str, key: str) -> None:
        """Authorize an upload by signed grant or bearer token.

        When ``signature`` and ``expires`` are both present the grant alone
        decides; expiry is checked before the signature.

        Raises:
            ExpiredToken: If the grant has expired.
            InvalidToken: If the grant signature does not match, or no grant
                is present and the bearer token check fails.
            ConfigError: If the relevant server secret is not configured.
        """
        signature = request.query_params.get("signature")
        expires = request.query_params.get("expires")
        if signature is None or expires is None:
            self.require_bearer(request)
            return

        try:
            expires_at = int(expires)
        except ValueError:
            raise InvalidToken("The expires parameter is not a valid timestamp")

        status = self.issuer.check(signature, bucket, key, expires_at)
        if status is GrantStatus.EXPIRED:
            raise ExpiredToken()
        if status is GrantStatus.INVALID:
            logger.info("Rejected upload grant for %s/%s", bucket, key)
            raise InvalidToken("The request signature does not match")
