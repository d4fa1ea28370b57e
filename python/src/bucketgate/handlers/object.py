"""Object-level request handlers for BucketGate.

Implements:
    - PutObject (PUT/POST /buckets/{bucket}/{key})
    - GetObject (GET /buckets/{bucket}/{key}), listing when the key is empty
    - HeadObject (HEAD /buckets/{bucket}/{key})
    - DeleteObject (DELETE /buckets/{bucket}/{key})
    - ListBucket (GET /buckets/{bucket})
    - CreateSignedUrl (POST /buckets/{bucket}/{key}/signed-url)
"""

import email.utils
import json
import logging
import mimetypes
from collections.abc import AsyncIterator
from pathlib import Path

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from bucketgate import metrics
from bucketgate.errors import InternalError, InvalidRequest, NoSuchKey, S3Error
from bucketgate.keys import normalize_key
from bucketgate.listing import parse_list_params
from bucketgate.xml_utils import render_list_bucket_result, xml_response

logger = logging.getLogger(__name__)

_DEFAULT_CONTENT_TYPE = "application/octet-stream"


def guess_content_type(key: str) -> str:
    """Infer a Content-Type from the key's file extension."""
    content_type, _encoding = mimetypes.guess_type(key, strict=False)
    return content_type or _DEFAULT_CONTENT_TYPE


def json_error(exc: S3Error) -> JSONResponse:
    """Render an S3Error as the JSON error object used by the signing endpoint."""
    return JSONResponse(
        status_code=exc.http_status,
        content={"Error": {"Code": exc.code, "Message": exc.message}},
    )


class ObjectHandler:
    """Handles object and listing operations.

    Attributes:
        app: The parent FastAPI application.
    """

    def __init__(self, app: FastAPI) -> None:
        """Initialize the object handler.

        Args:
            app: The FastAPI application instance.
        """
        self.app = app

    @property
    def storage(self):
        """Shortcut to the object store on app.state."""
        return self.app.state.storage

    @property
    def codec(self):
        """Shortcut to the KeyPathCodec on app.state."""
        return self.app.state.codec

    @property
    def listing(self):
        """Shortcut to the ListingEngine on app.state."""
        return self.app.state.listing

    @property
    def authenticator(self):
        """Shortcut to the GatewayAuthenticator on app.state."""
        return self.app.state.authenticator

    @property
    def config(self):
        """Shortcut to the BucketGateConfig on app.state."""
        return self.app.state.config

    async def _object_headers(self, path: Path, key: str) -> dict[str, str]:
        """Stat and hash an object and build its response headers.

        Raises:
            NoSuchKey: If the object does not exist.
        """
        try:
            stat = await self.storage.stat(path)
            etag = await self.storage.content_hash(path)
        except (NoSuchKey, FileNotFoundError):
            raise NoSuchKey(key) from None

        return {
            "Content-Type": guess_content_type(key),
            "Content-Length": str(stat.size),
            "Last-Modified": email.utils.formatdate(stat.mtime, usegmt=True),
            "ETag": f'"{etag}"',
        }

    async def put_object(self, request: Request, bucket: str, key: str) -> Response:
        """Store the request body as an object.

        Implements: PUT/POST /buckets/{bucket}/{key}

        The body is streamed to storage chunk by chunk; the ETag is the MD5
        of the stored bytes.

        Args:
            request: The incoming HTTP request.
            bucket: The bucket name from the URL path.
            key: The object key from the URL path.

        Returns:
            200 OK with ETag header and an empty body.
        """
        request.state.operation = "PutObject"
        key = normalize_key(key)
        self.authenticator.require_bearer_or_grant(request, bucket, key)
        path = self.codec.resolve(bucket, key)

        try:
            async with self.storage.open_for_write(path) as sink:
                async for chunk in request.stream():
                    if chunk:
                        sink.write(chunk)
        except OSError as exc:
            logger.exception("Failed to write object %s/%s", bucket, key)
            raise InternalError(f"Failed to store object: {exc.strerror or exc}") from exc

        metrics.record_bytes_received(sink.bytes_written)
        logger.debug(
            "Stored %s/%s (%d bytes)",
            bucket,
            key,
            sink.bytes_written,
            extra={"operation": "PutObject", "bucket": bucket, "key": key},
        )
        return Response(
            status_code=200,
            headers={"ETag": f'"{sink.etag}"', "Content-Length": "0"},
        )

    async def get_object(self, request: Request, bucket: str, key: str) -> Response:
        """Stream an object, or list the bucket when the key is empty.

        Implements: GET /buckets/{bucket}/{key}

        Args:
            request: The incoming HTTP request.
            bucket: The bucket name from the URL path.
            key: The object key from the URL path.

        Returns:
            A streaming response with the object body and metadata headers.
        """
        key = normalize_key(key)
        if not key:
            return await self.list_bucket(request, bucket)

        request.state.operation = "GetObject"
        path = self.codec.resolve(bucket, key)
        headers = await self._object_headers(path, key)

        return StreamingResponse(
            content=self._counted(self.storage.open_for_read(path)),
            status_code=200,
            headers=headers,
            media_type=headers["Content-Type"],
        )

    @staticmethod
    async def _counted(chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        async for chunk in chunks:
            metrics.record_bytes_sent(len(chunk))
            yield chunk

    async def head_object(self, request: Request, bucket: str, key: str) -> Response:
        """Return object metadata without the body.

        Implements: HEAD /buckets/{bucket}/{key}

        Args:
            request: The incoming HTTP request.
            bucket: The bucket name from the URL path.
            key: The object key from the URL path.

        Returns:
            200 OK with the same headers as GetObject and no body.
        """
        request.state.operation = "HeadObject"
        path = self.codec.resolve(bucket, key)
        headers = await self._object_headers(path, normalize_key(key))
        return Response(status_code=200, headers=headers)

    async def delete_object(self, request: Request, bucket: str, key: str) -> Response:
        """Delete a single object.

        Implements: DELETE /buckets/{bucket}/{key}

        Deleting a missing key is reported as NoSuchKey, not as 204.

        Args:
            request: The incoming HTTP request.
            bucket: The bucket name from the URL path.
            key: The object key from the URL path.

        Returns:
            204 No Content on success.
        """
        request.state.operation = "DeleteObject"
        self.authenticator.require_bearer(request)
        key = normalize_key(key)
        path = self.codec.resolve(bucket, key)

        try:
            await self.storage.delete(path)
        except NoSuchKey:
            raise NoSuchKey(key) from None

        logger.debug(
            "Deleted %s/%s",
            bucket,
            key,
            extra={"operation": "DeleteObject", "bucket": bucket, "key": key},
        )
        return Response(status_code=204)

    async def list_bucket(self, request: Request, bucket: str) -> Response:
        """List a bucket's objects and common prefixes.

        Implements: GET /buckets/{bucket}

        Supports prefix, delimiter, marker and max-keys query parameters.
        Malformed values are clamped or defaulted, never rejected. A bucket
        that was never written to lists as empty.

        Args:
            request: The incoming HTTP request.
            bucket: The bucket name from the URL path.

        Returns:
            XML response with ListBucketResult.
        """
        request.state.operation = "ListObjects"
        params = parse_list_params(request.query_params)
        bucket_root = self.codec.bucket_root(bucket)

        page = await self.listing.list(
            bucket_root,
            prefix=params.prefix,
            delimiter=params.delimiter,
            marker=params.marker,
            max_keys=params.max_keys,
        )
        return xml_response(render_list_bucket_result(bucket, page), status=200)

    async def create_signed_url(self, request: Request, bucket: str, key: str) -> Response:
        """Issue a signed URL that authorizes one upload of ``bucket``/``key``.

        Implements: POST /buckets/{bucket}/{key}/signed-url

        The lifetime comes from the ``expires`` query parameter or the
        ``expires`` field of a JSON body, clamped to [1, 604800] seconds.
        Errors are answered as JSON rather than XML.

        Args:
            request: The incoming HTTP request.
            bucket: The bucket name from the URL path.
            key: The object key from the URL path.

        Returns:
            JSON with url, expires_at, expires_in and method.
        """
        request.state.operation = "CreateSignedUrl"
        try:
            self.authenticator.require_bearer(request)
            key = normalize_key(key)
            # Validates bucket and key without touching the filesystem.
            self.codec.resolve(bucket, key)

            ttl = request.query_params.get("expires")
            if ttl is None:
                ttl = await self._body_field(request, "expires")

            base_url = self.config.server.public_url or str(request.base_url)
            grant = self.authenticator.issuer.issue(bucket, key, ttl, base_url=base_url)
        except S3Error as exc:
            return json_error(exc)

        return JSONResponse(
            content={
                "url": grant.url,
                "expires_at": grant.expires_at,
                "expires_in": grant.expires_in,
                "method": grant.method,
            }
        )

    @staticmethod
    async def _body_field(request: Request, name: str):
        """Read one field from a JSON object body, or None."""
        body = await request.body()
        if not body:
            return None
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise InvalidRequest("Request body is not valid JSON")
        if not isinstance(data, dict):
            return None
        return data.get(name)
