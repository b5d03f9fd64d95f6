"""
Tests for structured request logging.

Uses a bare FastAPI app so no database is involved.
"""

import json
import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from storefront.middleware.logging import (
    RequestIdFilter,
    StructuredFormatter,
    StructuredLoggingMiddleware,
    get_request_id,
    request_id_var,
)


@pytest.fixture
def client():
    app = FastAPI()
    app.add_middleware(StructuredLoggingMiddleware)

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    @app.get("/api/v1/widgets")
    async def widgets():
        return {"request_id": get_request_id()}

    return TestClient(app)


class TestStructuredLoggingMiddleware:
    def test_request_id_header_echoed(self, client):
        response = client.get("/api/v1/widgets", headers={"X-Request-ID": "trace-123"})

        assert response.headers["x-request-id"] == "trace-123"
        assert response.json() == {"request_id": "trace-123"}

    def test_request_id_generated(self, client):
        response = client.get("/api/v1/widgets")

        assert response.headers["x-request-id"]
        assert response.json()["request_id"] == response.headers["x-request-id"]

    def test_access_record(self, client, caplog):
        caplog.set_level(logging.INFO, logger="storefront.access")

        client.get("/api/v1/widgets?plugin_id=P")

        records = [r for r in caplog.records if r.name == "storefront.access"]
        assert len(records) == 1
        assert records[0].path == "/api/v1/widgets"
        assert records[0].status_code == 200
        assert records[0].levelno == logging.INFO

    def test_missing_route_logged_as_warning(self, client, caplog):
        caplog.set_level(logging.INFO, logger="storefront.access")

        client.get("/api/v1/nowhere")

        records = [r for r in caplog.records if r.name == "storefront.access"]
        assert records[0].levelno == logging.WARNING

    def test_health_is_not_logged(self, client, caplog):
        caplog.set_level(logging.INFO, logger="storefront.access")

        client.get("/health")

        assert not [r for r in caplog.records if r.name == "storefront.access"]


class TestStructuredFormatter:
    def _record(self, **extra):
        record = logging.LogRecord("storefront.plugins.P", logging.ERROR, __file__, 1, "failed %s", ("cart",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_document(self):
        token = request_id_var.set("req-1")
        try:
            record = self._record(store_id="store-acme", plugin_id="P", controller_name="cart", unrelated="x")
            RequestIdFilter().filter(record)
        finally:
            request_id_var.reset(token)

        data = json.loads(StructuredFormatter().format(record))

        assert data["message"] == "failed cart"
        assert data["logger"] == "storefront.plugins.P"
        assert data["request_id"] == "req-1"
        assert data["store_id"] == "store-acme"
        assert data["plugin_id"] == "P"
        assert data["controller_name"] == "cart"
        assert "unrelated" not in data
