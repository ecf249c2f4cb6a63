"""API tests for the catalog service.

The service runs against a throwaway SQLite database; ``TestClient`` runs
the startup hook that creates the schema.
"""

import uuid
from decimal import Decimal


def _seed(repo, **kw):
    pid = uuid.uuid4()
    repo.upsert(
        pid,
        kw.get("title", "Road bike"),
        Decimal(kw.get("price", "250.00")),
        kw.get("seller_id", uuid.uuid4()),
        kw.get("is_available", True),
        kw.get("status", "active"),
    )
    return pid


def test_health(api):
    r = api.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}
    assert r.headers.get("X-Request-ID")


def test_request_id_is_echoed(api):
    r = api.get("/health", headers={"X-Request-ID": "rid-123"})
    assert r.headers["X-Request-ID"] == "rid-123"


def test_get_product(api, catalog_repo):
    seller = uuid.uuid4()
    pid = _seed(catalog_repo, seller_id=seller, price="99.90")
    r = api.get(f"/products/{pid}")
    assert r.status_code == 200
    body = r.json()
    assert body["id"] == str(pid)
    assert body["seller_id"] == str(seller)
    assert Decimal(str(body["price"])) == Decimal("99.90")
    assert body["is_available"] is True
    assert body["status"] == "active"


def test_get_missing_product_returns_404(api):
    r = api.get(f"/products/{uuid.uuid4()}")
    assert r.status_code == 404


def test_put_product_creates_listing(api):
    pid = uuid.uuid4()
    payload = {"title": "Desk", "price": "40.00", "seller_id": str(uuid.uuid4())}
    r = api.put(f"/products/{pid}", json=payload)
    assert r.status_code == 200
    assert api.get(f"/products/{pid}").json()["title"] == "Desk"


def _hold(order_id=None):
    return {"orderId": str(order_id or uuid.uuid4())}


def test_reserve_flips_availability_once(api, catalog_repo):
    pid = _seed(catalog_repo)

    r1 = api.post(f"/products/{pid}/reserve", json=_hold())
    assert r1.status_code == 200
    assert r1.json()["reserved"] is True
    assert catalog_repo.get(pid).is_available is False

    r2 = api.post(f"/products/{pid}/reserve", json=_hold())
    assert r2.status_code == 409
    assert r2.json() == {"reserved": False, "detail": "PRODUCT_UNAVAILABLE"}


def test_repeat_reserve_from_holding_order_succeeds(api, catalog_repo):
    pid = _seed(catalog_repo)
    order_id = uuid.uuid4()
    assert api.post(f"/products/{pid}/reserve", json=_hold(order_id)).status_code == 200

    again = api.post(f"/products/{pid}/reserve", json=_hold(order_id))
    assert again.status_code == 200
    assert again.json()["reserved"] is True
    assert catalog_repo.get(pid).reserved_order_id == order_id


def test_reserve_requires_order_id(api, catalog_repo):
    pid = _seed(catalog_repo)
    assert api.post(f"/products/{pid}/reserve", json={}).status_code == 422
    assert catalog_repo.get(pid).is_available is True


def test_reserve_inactive_listing_conflicts(api, catalog_repo):
    pid = _seed(catalog_repo, status="inactive")
    r = api.post(f"/products/{pid}/reserve", json=_hold())
    assert r.status_code == 409
    assert catalog_repo.get(pid).is_available is True


def test_reserve_missing_product_returns_404(api):
    r = api.post(f"/products/{uuid.uuid4()}/reserve", json=_hold())
    assert r.status_code == 404


def test_release_puts_listing_back(api, catalog_repo):
    pid = _seed(catalog_repo)
    order_id = uuid.uuid4()
    api.post(f"/products/{pid}/reserve", json=_hold(order_id))

    r = api.post(f"/products/{pid}/release", json=_hold(order_id))
    assert r.status_code == 200
    assert r.json() == {"released": True}
    row = catalog_repo.get(pid)
    assert row.is_available is True
    assert row.reserved_order_id is None
    assert api.post(f"/products/{pid}/reserve", json=_hold()).status_code == 200


def test_release_from_other_order_keeps_listing_taken(api, catalog_repo):
    pid = _seed(catalog_repo)
    api.post(f"/products/{pid}/reserve", json=_hold())

    r = api.post(f"/products/{pid}/release", json=_hold())
    assert r.status_code == 200
    assert r.json() == {"released": False}
    assert catalog_repo.get(pid).is_available is False


def test_release_missing_product_returns_404(api):
    assert api.post(f"/products/{uuid.uuid4()}/release", json=_hold()).status_code == 404
