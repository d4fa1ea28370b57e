"""FastAPI application factory and route setup for BucketGate."""

import email.utils
import json
import logging
import secrets
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, Response

from bucketgate import metrics
from bucketgate.auth import GatewayAuthenticator
from bucketgate.config import BucketGateConfig
from bucketgate.errors import S3Error
from bucketgate.handlers.object import ObjectHandler
from bucketgate.keys import KeyPathCodec
from bucketgate.listing import ListingEngine
from bucketgate.signing import SignedURLIssuer
from bucketgate.storage.backend import ObjectStore
from bucketgate.storage.local import LocalObjectStore
from bucketgate.xml_utils import render_error, xml_response

logger = logging.getLogger(__name__)

# Module-level singleton so multiple create_app() calls (e.g. in tests)
# don't re-register the same Prometheus collectors in the global registry.
_instrumentator = None


def _get_instrumentator():
    global _instrumentator
    if _instrumentator is None:
        from prometheus_fastapi_instrumentator import Instrumentator

        _instrumentator = Instrumentator(
            should_instrument_requests_inprogress=True,
            excluded_handlers=["/metrics"],
        )
    return _instrumentator


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(config: BucketGateConfig, store: ObjectStore | None = None) -> FastAPI:
    """Create and configure the BucketGate FastAPI application.

    All collaborators (object store, key codec, listing engine, signer and
    authenticator) are built here from ``config`` and attached to
    ``app.state``; nothing in the request path reads global settings.

    Args:
        config: The loaded BucketGate configuration.
        store: Object store to use instead of a LocalObjectStore rooted at
            ``config.storage.local_root``.

    Returns:
        A configured FastAPI application ready to run.
    """
    storage = store if store is not None else LocalObjectStore(config.storage.local_root)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan hook: initialize the object store.

        Crash-only design: every startup is a recovery that removes orphan
        temp files from interrupted uploads.
        """
        await storage.init()
        if not config.auth.bearer_token:
            logger.warning("No bearer token configured; write operations will fail")
        if not config.auth.signing_key:
            logger.warning("No signing key configured; signed URLs are disabled")
        logger.info("Object store initialized at %s", config.storage.local_root)

        yield

        await storage.close()
        logger.info("Object store closed")

    app = FastAPI(
        title="BucketGate",
        version="0.1.0",
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = config
    _wire_state(app, config, storage)

    _register_exception_handlers(app)
    _register_middleware(app, config)

    # /metrics must be registered before the bucket routes.
    if config.observability.metrics:
        metrics.init_metrics()
        _get_instrumentator().instrument(app, metric_namespace="bucketgate").expose(
            app, endpoint="/metrics"
        )

    _setup_routes(app, config)

    return app


def _wire_state(app: FastAPI, config: BucketGateConfig, storage: ObjectStore) -> None:
    """Attach the core components to ``app.state``."""
    app.state.storage = storage
    app.state.codec = KeyPathCodec(getattr(storage, "root", config.storage.local_root))
    app.state.listing = ListingEngine(storage)
    issuer = SignedURLIssuer(
        secret_key=config.auth.signing_key,
        base_url=config.server.public_url,
    )
    app.state.authenticator = GatewayAuthenticator(
        bearer_token=config.auth.bearer_token,
        issuer=issuer,
    )


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the FastAPI app."""

    @app.exception_handler(S3Error)
    async def s3_error_handler(request: Request, exc: S3Error) -> Response:
        """Render S3Error exceptions as S3 error XML.

        HEAD requests must not have a body.
        """
        request_id = getattr(request.state, "request_id", "")

        if request.method == "HEAD":
            return Response(status_code=exc.http_status)

        body = render_error(
            code=exc.code,
            message=exc.message,
            key=exc.key,
            request_id=request_id,
        )
        return xml_response(body, status=exc.http_status)

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> Response:
        """Catch unexpected exceptions and return InternalError."""
        logger.exception("Unhandled exception in request handler")
        return _internal_error_response(request)


def _internal_error_response(request: Request) -> Response:
    """Build the InternalError response for an unexpected exception."""
    if request.method == "HEAD":
        return Response(status_code=500)

    body = render_error(
        code="InternalError",
        message="We encountered an internal error. Please try again.",
        request_id=getattr(request.state, "request_id", ""),
    )
    return xml_response(body, status=500)


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _register_middleware(app: FastAPI, config: BucketGateConfig) -> None:
    """Register the common-headers and access-log middleware."""

    # Paths to suppress from per-request logging
    _QUIET_PATHS = {"/metrics", "/health"}

    @app.middleware("http")
    async def common_headers_middleware(request: Request, call_next) -> Response:
        """Add common S3 response headers to every response.

        Generates x-amz-request-id (16-char uppercase hex) and stores it on
        request.state so exception handlers can echo it in the error body.
        Also records the operation counter and writes the access log line.

        Unexpected exceptions are rendered here: Starlette routes handlers
        for ``Exception`` to the outermost error middleware, which would
        skip these headers.
        """
        request_id = secrets.token_hex(8).upper()
        request.state.request_id = request_id
        start = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled exception in request handler")
            response = _internal_error_response(request)

        duration_ms = round((time.monotonic() - start) * 1000, 2)

        response.headers["x-amz-request-id"] = request_id
        response.headers["Date"] = email.utils.formatdate(usegmt=True)
        response.headers["Server"] = "BucketGate"

        operation = getattr(request.state, "operation", None)
        if operation is not None:
            metrics.record_operation(operation, str(response.status_code))

        if request.url.path not in _QUIET_PATHS:
            logger.info(
                "%s %s %d %.2fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "request_id": request_id,
                    "operation": operation,
                },
            )

        return response


# ---------------------------------------------------------------------------
# Health check helpers
# ---------------------------------------------------------------------------


async def _check_storage(app: FastAPI) -> dict:
    """Probe the object store (check the root directory exists).

    Returns a dict with ``status`` and ``latency_ms`` keys.
    """
    storage = getattr(app.state, "storage", None)
    if storage is None:
        return {"status": "error", "error": "object store not initialized", "latency_ms": 0}
    start = time.monotonic()
    root = getattr(storage, "root", None)
    if root is not None and not Path(root).is_dir():
        return {
            "status": "error",
            "error": "data directory not found",
            "latency_ms": round((time.monotonic() - start) * 1000, 1),
        }
    return {"status": "ok", "latency_ms": round((time.monotonic() - start) * 1000, 1)}


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


def _setup_routes(app: FastAPI, config: BucketGateConfig) -> None:
    """Register all gateway routes on the application.

    The signed-url route is registered before the catch-all object POST so
    that ``.../{key}/signed-url`` reaches the signer.

    Args:
        app: The FastAPI application to attach routes to.
        config: The BucketGate configuration.
    """
    object_handler = ObjectHandler(app)

    health_check_enabled = config.observability.health_check

    @app.get("/health")
    async def health_check(request: Request) -> Response:
        """Return health status.

        When health_check is enabled the object store is probed and the
        result reported per component; otherwise a static ok is returned.
        """
        if not health_check_enabled:
            return Response(content='{"status":"ok"}', media_type="application/json")

        storage_check = await _check_storage(app)
        all_ok = storage_check["status"] == "ok"
        body = json.dumps(
            {
                "status": "ok" if all_ok else "degraded",
                "checks": {"storage": storage_check},
            }
        )
        return Response(
            content=body,
            status_code=200 if all_ok else 503,
            media_type="application/json",
        )

    # Bucket-level routes
    @app.get("/buckets/{bucket}")
    async def handle_bucket_get(bucket: str, request: Request) -> Response:
        """Handle GET /buckets/{bucket} -- ListBucket."""
        return await object_handler.list_bucket(request, bucket)

    # Signed URL issuance
    @app.post("/buckets/{bucket}/{key:path}/signed-url")
    async def handle_signed_url(bucket: str, key: str, request: Request) -> Response:
        """Handle POST /buckets/{bucket}/{key}/signed-url -- CreateSignedUrl."""
        return await object_handler.create_signed_url(request, bucket, key)

    # Object-level routes (key can contain slashes via {key:path})
    @app.put("/buckets/{bucket}/{key:path}")
    async def handle_object_put(bucket: str, key: str, request: Request) -> Response:
        """Handle PUT /buckets/{bucket}/{key} -- PutObject."""
        return await object_handler.put_object(request, bucket, key)

    @app.post("/buckets/{bucket}/{key:path}")
    async def handle_object_post(bucket: str, key: str, request: Request) -> Response:
        """Handle POST /buckets/{bucket}/{key} -- PutObject."""
        return await object_handler.put_object(request, bucket, key)

    @app.head("/buckets/{bucket}/{key:path}")
    async def handle_object_head(bucket: str, key: str, request: Request) -> Response:
        """Handle HEAD /buckets/{bucket}/{key} -- HeadObject."""
        return await object_handler.head_object(request, bucket, key)

    @app.get("/buckets/{bucket}/{key:path}")
    async def handle_object_get(bucket: str, key: str, request: Request) -> Response:
        """Handle GET /buckets/{bucket}/{key} -- GetObject, or list on empty key."""
        return await object_handler.get_object(request, bucket, key)

    @app.delete("/buckets/{bucket}/{key:path}")
    async def handle_object_delete(bucket: str, key: str, request: Request) -> Response:
        """Handle DELETE /buckets/{bucket}/{key} -- DeleteObject."""
        return await object_handler.delete_object(request, bucket, key)
