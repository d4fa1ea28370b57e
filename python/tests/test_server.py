"""Tests for the application factory: health, common headers, error
rendering and metrics."""

import shutil
import xml.etree.ElementTree as ET

import pytest
from httpx import ASGITransport, AsyncClient

from bucketgate import metrics
from bucketgate.server import create_app
from bucketgate.storage.local import LocalObjectStore


class ExplodingStore(LocalObjectStore):
    """Local store whose stat() fails with an unexpected error."""

    async def stat(self, path):
        raise RuntimeError("disk on fire")


async def _client_for(app) -> AsyncClient:
    await app.state.storage.init()
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


class TestHealth:
    async def test_static_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    async def test_health_probe(self, config):
        config.observability.health_check = True
        async with await _client_for(create_app(config)) as ac:
            resp = await ac.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["checks"]["storage"]["status"] == "ok"

    async def test_health_degraded_without_root(self, config):
        config.observability.health_check = True
        app = create_app(config)
        async with await _client_for(app) as ac:
            shutil.rmtree(app.state.storage.root)
            resp = await ac.get("/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "degraded"


class TestCommonHeaders:
    """Every response carries the request id, Date and Server headers."""

    @pytest.mark.parametrize(
        "method, path",
        [
            ("GET", "/health"),
            ("GET", "/buckets/media"),
            ("GET", "/buckets/media/missing.txt"),
            ("HEAD", "/buckets/media/missing.txt"),
            ("PUT", "/buckets/media/x.txt"),
            ("DELETE", "/buckets/media/x.txt"),
            ("POST", "/buckets/media/x.txt/signed-url"),
        ],
    )
    async def test_headers_present(self, client, method, path):
        resp = await client.request(method, path)
        request_id = resp.headers["x-amz-request-id"]
        assert len(request_id) == 16
        assert request_id == request_id.upper()
        assert resp.headers["server"] == "BucketGate"
        assert "date" in resp.headers

    async def test_request_ids_are_unique(self, client):
        first = await client.get("/health")
        second = await client.get("/health")
        assert first.headers["x-amz-request-id"] != second.headers["x-amz-request-id"]


class TestUnexpectedErrors:
    async def test_internal_error_is_xml(self, config, auth_headers):
        app = create_app(config, store=ExplodingStore(config.storage.local_root))
        async with await _client_for(app) as ac:
            await ac.put("/buckets/media/x.txt", content=b"x", headers=auth_headers)
            resp = await ac.get("/buckets/media/x.txt")
        assert resp.status_code == 500
        root = ET.fromstring(resp.text)
        assert root.findtext("Code") == "InternalError"
        assert root.findtext("RequestId") == resp.headers["x-amz-request-id"]

    async def test_internal_error_head_has_no_body(self, config):
        app = create_app(config, store=ExplodingStore(config.storage.local_root))
        async with await _client_for(app) as ac:
            resp = await ac.head("/buckets/media/x.txt")
        assert resp.status_code == 500
        assert resp.content == b""

    async def test_missing_bearer_config(self, config):
        config.auth.bearer_token = ""
        async with await _client_for(create_app(config)) as ac:
            resp = await ac.delete(
                "/buckets/media/x.txt", headers={"Authorization": "Bearer anything"}
            )
        assert resp.status_code == 500
        assert ET.fromstring(resp.text).findtext("Code") == "ConfigError"


class TestMetrics:
    """Tests for GET /metrics with metrics enabled."""

    async def test_metrics_endpoint(self, metrics_client):
        resp = await metrics_client.get("/metrics")
        assert resp.status_code == 200
        assert "text/plain" in resp.headers["content-type"]

    async def test_gateway_counters_registered(self, metrics_client):
        body = (await metrics_client.get("/metrics")).text
        assert "bucketgate_s3_operations_total" in body
        assert "bucketgate_bytes_received_total" in body
        assert "bucketgate_bytes_sent_total" in body

    async def test_operations_recorded(self, metrics_client, auth_headers):
        await metrics_client.put("/buckets/media/m.txt", content=b"abc", headers=auth_headers)
        await metrics_client.get("/buckets/media/m.txt")
        body = (await metrics_client.get("/metrics")).text
        assert 'bucketgate_s3_operations_total{operation="PutObject",status="200"}' in body
        assert 'bucketgate_s3_operations_total{operation="GetObject",status="200"}' in body

    async def test_byte_counters_advance(self, metrics_client, auth_headers):
        before = metrics.bytes_received_total._value.get()
        await metrics_client.put("/buckets/media/b.bin", content=b"12345", headers=auth_headers)
        assert metrics.bytes_received_total._value.get() == before + 5


class TestMetricsDisabled:
    async def test_metrics_returns_404_when_disabled(self, client):
        resp = await client.get("/metrics")
        assert resp.status_code == 404
