import logging

import pytest

from gateway.logging_filters import RequestIdFilter
from gateway.middleware import REQUEST_ID_CTX

PING_URL = "/api/orders/ping/"


def test_request_id_generated_when_missing(client):
    r = client.get(PING_URL)
    assert r.status_code == 200
    assert r.json() == {"ok": True}
    assert len(r.headers["X-Request-ID"]) == 36


def test_request_id_echoed_from_gateway(client):
    r = client.get(PING_URL, HTTP_X_REQUEST_ID="trace-42")
    assert r.headers["X-Request-ID"] == "trace-42"


@pytest.mark.django_db
def test_oversized_api_body_is_rejected(client, settings):
    settings.API_MAX_BYTES = 64
    r = client.post("/api/orders/", data={"shippingAddress": "x" * 200}, content_type="application/json")
    assert r.status_code == 413
    assert r.json()["detail"] == "PAYLOAD_TOO_LARGE"


def test_log_filter_adds_request_id():
    record = logging.LogRecord("apps.orders", logging.INFO, __file__, 1, "hello", None, None)
    token = REQUEST_ID_CTX.set("rid-7")
    try:
        assert RequestIdFilter().filter(record) is True
    finally:
        REQUEST_ID_CTX.reset(token)
    assert record.request_id == "rid-7"


def test_log_filter_keeps_explicit_request_id():
    record = logging.LogRecord("apps.orders", logging.INFO, __file__, 1, "hello", None, None)
    record.request_id = "explicit"
    RequestIdFilter().filter(record)
    assert record.request_id == "explicit"
