"""S3-compatible error definitions for BucketGate."""


class S3Error(Exception):
    """An S3-compatible error with code, message, and HTTP status.

    Core components raise these; only the HTTP layer turns them into
    responses.

    Attributes:
        code: The S3 error code string (e.g. "NoSuchKey", "InvalidToken").
        message: Human-readable error description.
        http_status: The HTTP status code to return.
        key: The object key the error refers to, rendered as ``<Key>``.
    """

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int = 400,
        key: str = "",
    ) -> None:
        """Initialize the S3 error.

        Args:
            code: S3 error code.
            message: Error description.
            http_status: HTTP status code (default 400).
            key: Optional object key for the error envelope.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.key = key


# -- Error taxonomy -------------------------------------------------------------


class InvalidRequest(S3Error):
    """The request is malformed: empty key, unsafe key or bucket name."""

    def __init__(self, message: str = "Invalid Request", key: str = "") -> None:
        super().__init__(code="InvalidRequest", message=message, http_status=400, key=key)


class InvalidToken(S3Error):
    """Bearer token missing or mismatched, or signature mismatch."""

    def __init__(self, message: str = "The provided token is invalid") -> None:
        super().__init__(code="InvalidToken", message=message, http_status=403)


class ExpiredToken(S3Error):
    """A signed grant was used after its expiry time."""

    def __init__(self, message: str = "The provided token has expired") -> None:
        super().__init__(code="ExpiredToken", message=message, http_status=403)


class NoSuchKey(S3Error):
    """The specified key does not exist."""

    def __init__(self, key: str = "") -> None:
        super().__init__(
            code="NoSuchKey",
            message="The specified key does not exist.",
            http_status=404,
            key=key,
        )


class InternalError(S3Error):
    """An internal server error occurred."""

    def __init__(self, message: str = "Internal Error") -> None:
        super().__init__(code="InternalError", message=message, http_status=500)


class ConfigError(S3Error):
    """A required server secret is not configured."""

    def __init__(self, message: str = "Server secret is not configured") -> None:
        super().__init__(code="ConfigError", message=message, http_status=500)
