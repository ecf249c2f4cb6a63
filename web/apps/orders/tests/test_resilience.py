from types import SimpleNamespace

import httpx
import pytest

from apps.orders import http_adapters
from apps.orders.errors import UpstreamUnavailableError
from apps.orders.http_adapters import CircuitBreaker, HttpCatalogClient, catalog_cb

PRODUCT_ID = "8d4f1b6e-2c3a-4e5f-9a7b-1c2d3e4f5a6b"
ORDER_ID = "5e6f7a8b-9c0d-4e1f-a2b3-c4d5e6f7a8b9"


@pytest.fixture(autouse=True)
def fast_retries(settings, monkeypatch):
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    monkeypatch.setattr("time.sleep", lambda *a, **k: None, raising=True)
    # reset the circuit breaker so state does not leak between tests
    catalog_cb.on_success()
    yield
    catalog_cb.on_success()


def test_catalog_retries_on_5xx(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 1
    calls = {"n": 0, "retry_headers": []}

    def fake_request(self, method, url, headers=None, **kwargs):
        calls["n"] += 1
        calls["retry_headers"].append(headers["X-Retry-Count"])
        if calls["n"] == 1:
            return httpx.Response(502)
        return httpx.Response(200, json={"reserved": True})

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)

    assert HttpCatalogClient(base_url="http://x").mark_unavailable(PRODUCT_ID, ORDER_ID) is True
    assert calls["n"] == 2
    assert calls["retry_headers"] == ["0", "1"]


def test_catalog_retries_on_transport_error_then_gives_up(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 2
    calls = {"n": 0}

    def fake_request(self, method, url, headers=None, **kwargs):
        calls["n"] += 1
        raise httpx.ConnectTimeout("slow")

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)

    with pytest.raises(UpstreamUnavailableError) as e:
        HttpCatalogClient(base_url="http://x").get_product(PRODUCT_ID)
    assert calls["n"] == 3
    assert e.value.http_status == 503


def test_catalog_no_retry_on_unexpected_4xx(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 3
    calls = {"n": 0}

    def fake_request(self, method, url, headers=None, **kwargs):
        calls["n"] += 1
        return httpx.Response(422, json={"detail": "bad"})

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)

    with pytest.raises(UpstreamUnavailableError):
        HttpCatalogClient(base_url="http://x").get_product(PRODUCT_ID)
    assert calls["n"] == 1
    assert catalog_cb.state == "CLOSED"


def test_business_conflict_is_not_a_failure(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 3
    calls = {"n": 0}

    def fake_request(self, method, url, headers=None, **kwargs):
        calls["n"] += 1
        return httpx.Response(409, json={"reserved": False})

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)

    assert HttpCatalogClient(base_url="http://x").mark_unavailable(PRODUCT_ID, ORDER_ID) is False
    assert calls["n"] == 1


def test_open_circuit_short_circuits_calls(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 0
    calls = {"n": 0}

    def fake_request(self, method, url, headers=None, **kwargs):
        calls["n"] += 1
        return httpx.Response(503)

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    client = HttpCatalogClient(base_url="http://x")

    for _ in range(catalog_cb.fail_threshold):
        with pytest.raises(UpstreamUnavailableError):
            client.get_product(PRODUCT_ID)
    assert catalog_cb.state == "OPEN"

    with pytest.raises(UpstreamUnavailableError):
        client.get_product(PRODUCT_ID)
    assert calls["n"] == catalog_cb.fail_threshold


def test_circuit_breaker_half_open_probe(monkeypatch):
    clock = {"t": 1000.0}
    monkeypatch.setattr(http_adapters, "time", SimpleNamespace(monotonic=lambda: clock["t"]))
    cb = CircuitBreaker("test", fail_threshold=2, reset_timeout=30)

    cb.on_failure()
    assert cb.state == "CLOSED"
    cb.on_failure()
    assert cb.state == "OPEN"
    with pytest.raises(UpstreamUnavailableError):
        cb.before_call()

    clock["t"] += 31
    assert cb.before_call() == "HALF_OPEN"
    # only one probe at a time
    with pytest.raises(UpstreamUnavailableError):
        cb.before_call()

    cb.on_failure()
    assert cb.state == "OPEN"

    clock["t"] += 31
    cb.before_call()
    cb.on_success()
    assert cb.state == "CLOSED"
    assert cb.before_call() == "CLOSED"


@pytest.mark.django_db
def test_catalog_outage_returns_503_and_no_order(client, settings, monkeypatch, make_user, as_user):
    from apps.orders.models import OrderModel

    settings.USE_HTTP_ADAPTERS = True
    settings.HTTP_RETRY_MAX = 1

    def fake_request(self, method, url, headers=None, **kwargs):
        raise httpx.ConnectError("catalog down")

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)

    payload = {"productId": PRODUCT_ID, "paymentMethod": "cod", "shippingAddress": "7 Pine Road"}
    r = client.post("/api/orders/", data=payload, content_type="application/json", **as_user(make_user()))
    assert r.status_code == 503
    assert r.json()["detail"] == "UPSTREAM_UNAVAILABLE"
    assert OrderModel.objects.count() == 0


class FlakyCatalog:
    """Remote catalog whose reserve lands but whose answer gets lost.

    The first ``lost`` reserve calls store the holder and then time out;
    later calls answer from the stored state like the real service.
    """

    def __init__(self, seller_id, lost=1):
        self.seller_id = seller_id
        self.lost = lost
        self.holder = None
        self.calls = []

    def __call__(self, method, url, headers=None, json=None, **kwargs):
        self.calls.append((method, url.rsplit("/", 1)[-1], json))
        if method == "GET":
            return httpx.Response(200, json={
                "id": PRODUCT_ID,
                "title": "Road bike",
                "price": "250.00",
                "seller_id": str(self.seller_id),
                "is_available": self.holder is None,
                "status": "active",
            })
        order_id = json["orderId"]
        if url.endswith("/release"):
            released = self.holder == order_id
            if released:
                self.holder = None
            return httpx.Response(200, json={"released": released})
        if self.holder is None:
            self.holder = order_id
        elif self.holder != order_id:
            return httpx.Response(409, json={"reserved": False, "detail": "PRODUCT_UNAVAILABLE"})
        if self.lost > 0:
            self.lost -= 1
            raise httpx.ReadTimeout("response lost")
        return httpx.Response(200, json={"reserved": True})


def test_reserve_retry_after_lost_response_succeeds(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 2
    catalog = FlakyCatalog(seller_id="1a2b3c4d-5e6f-4a1b-8c2d-3e4f5a6b7c8d")
    monkeypatch.setattr(httpx.Client, "request", catalog, raising=True)

    assert HttpCatalogClient(base_url="http://x").mark_unavailable(PRODUCT_ID, ORDER_ID) is True
    assert [c[1] for c in catalog.calls] == ["reserve", "reserve"]
    assert catalog.holder == ORDER_ID


@pytest.mark.django_db
def test_order_created_when_first_reserve_response_is_lost(client, settings, monkeypatch, make_user, as_user):
    from apps.orders.models import OrderModel

    settings.USE_HTTP_ADAPTERS = True
    settings.HTTP_RETRY_MAX = 2
    seller, buyer = make_user("seller"), make_user("buyer")
    catalog = FlakyCatalog(seller.id)
    monkeypatch.setattr(httpx.Client, "request", catalog, raising=True)

    payload = {"productId": PRODUCT_ID, "paymentMethod": "cod", "shippingAddress": "7 Pine Road"}
    r = client.post("/api/orders/", data=payload, content_type="application/json", **as_user(buyer))
    assert r.status_code == 201
    assert catalog.holder == r.json()["id"]
    assert OrderModel.objects.count() == 1
    assert "release" not in [c[1] for c in catalog.calls]


@pytest.mark.django_db
def test_exhausted_reserve_retries_release_the_product(client, settings, monkeypatch, make_user, as_user):
    from apps.orders.models import OrderModel

    settings.USE_HTTP_ADAPTERS = True
    settings.HTTP_RETRY_MAX = 1
    seller, buyer = make_user("seller"), make_user("buyer")
    catalog = FlakyCatalog(seller.id, lost=2)
    monkeypatch.setattr(httpx.Client, "request", catalog, raising=True)

    payload = {"productId": PRODUCT_ID, "paymentMethod": "cod", "shippingAddress": "7 Pine Road"}
    r = client.post("/api/orders/", data=payload, content_type="application/json", **as_user(buyer))
    assert r.status_code == 503
    assert r.json()["detail"] == "UPSTREAM_UNAVAILABLE"
    assert OrderModel.objects.count() == 0

    reserve_ids = {c[2]["orderId"] for c in catalog.calls if c[1] == "reserve"}
    releases = [c for c in catalog.calls if c[1] == "release"]
    assert len(reserve_ids) == 1
    assert [c[2]["orderId"] for c in releases] == list(reserve_ids)
    assert catalog.holder is None


@pytest.mark.django_db
def test_catalog_outage_on_order_lists_returns_503_json(client, settings, monkeypatch, make_user, make_product, as_user):
    seller, buyer = make_user("seller"), make_user("buyer")
    product = make_product(seller)
    payload = {"productId": str(product.id), "paymentMethod": "cod", "shippingAddress": "7 Pine Road"}
    assert client.post("/api/orders/", data=payload, content_type="application/json", **as_user(buyer)).status_code == 201

    settings.USE_HTTP_ADAPTERS = True
    settings.HTTP_RETRY_MAX = 0

    def fake_request(self, method, url, headers=None, **kwargs):
        raise httpx.ConnectError("catalog down")

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)

    for url, user in (("/api/orders/mine/", buyer), ("/api/orders/sales/", seller)):
        r = client.get(url, **as_user(user))
        assert r.status_code == 503
        assert r["Content-Type"] == "application/json"
        assert r.json()["detail"] == "UPSTREAM_UNAVAILABLE"
