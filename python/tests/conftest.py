"""Shared pytest fixtures for BucketGate tests.

Each test gets its own app rooted in ``tmp_path`` with metrics disabled.
A single metrics-enabled app is created per session, because the
instrumentator registers gauges in the global prometheus_client registry
and a second instrumented app would register them again. The object store is
initialized manually because the lifespan does not run under
ASGITransport.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from bucketgate.config import (
    AuthConfig,
    BucketGateConfig,
    ObservabilityConfig,
    ServerConfig,
    StorageConfig,
)
from bucketgate.server import create_app
from bucketgate.storage.local import LocalObjectStore

BEARER_TOKEN = "test-bearer-token"
SIGNING_KEY = "test-signing-key"


@pytest.fixture
def config(tmp_path) -> BucketGateConfig:
    """Create a test BucketGateConfig rooted in a temp directory."""
    return BucketGateConfig(
        server=ServerConfig(host="127.0.0.1", port=9010),
        auth=AuthConfig(bearer_token=BEARER_TOKEN, signing_key=SIGNING_KEY),
        storage=StorageConfig(local_root=str(tmp_path / "buckets")),
        observability=ObservabilityConfig(metrics=False, health_check=False),
    )


@pytest.fixture
def app(config: BucketGateConfig):
    """Create a test FastAPI application."""
    return create_app(config)


@pytest.fixture
async def client(app) -> AsyncClient:
    """Create an async test client with an initialized object store."""
    await app.state.storage.init()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Authorization header carrying the configured bearer token."""
    return {"Authorization": f"Bearer {BEARER_TOKEN}"}


@pytest.fixture
async def store(tmp_path) -> LocalObjectStore:
    """Create and initialize a local object store in a temp directory."""
    backend = LocalObjectStore(tmp_path / "store")
    await backend.init()
    yield backend
    await backend.close()


@pytest.fixture(scope="session")
def metrics_app(tmp_path_factory):
    """Create the one metrics-enabled FastAPI application for the session."""
    root = tmp_path_factory.mktemp("metrics") / "buckets"
    return create_app(
        BucketGateConfig(
            server=ServerConfig(host="127.0.0.1", port=9010),
            auth=AuthConfig(bearer_token=BEARER_TOKEN, signing_key=SIGNING_KEY),
            storage=StorageConfig(local_root=str(root)),
            observability=ObservabilityConfig(metrics=True, health_check=False),
        )
    )


@pytest.fixture
async def metrics_client(metrics_app) -> AsyncClient:
    """Create an async test client for the metrics-enabled app."""
    await metrics_app.state.storage.init()
    transport = ASGITransport(app=metrics_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
