import pytest

from apps.orders.errors import InternalError
from apps.orders.models import IdempotencyKey, OrderModel

CREATE_URL = "/api/orders/"


def _payload(product, address="12 Elm Street"):
    return {"productId": str(product.id), "paymentMethod": "cod", "shippingAddress": address}


@pytest.mark.django_db
def test_idempotent_same_payload_returns_same_order_and_status_on_retry(client, make_user, make_product, as_user):
    buyer = make_user("buyer")
    product = make_product(make_user("seller"))
    key = "idem-same-1"

    # first attempt
    r1 = client.post(
        CREATE_URL, data=_payload(product), content_type="application/json", HTTP_IDEMPOTENCY_KEY=key, **as_user(buyer)
    )
    assert r1.status_code == 201
    body1 = r1.json()

    # retry (replay)
    r2 = client.post(
        CREATE_URL, data=_payload(product), content_type="application/json", HTTP_IDEMPOTENCY_KEY=key, **as_user(buyer)
    )
    assert r2.status_code == 201
    assert r2.json() == body1
    assert r2.headers.get("Idempotent-Replay") == "true"
    assert OrderModel.objects.count() == 1
    assert str(IdempotencyKey.objects.get().order_id) == body1["id"]


@pytest.mark.django_db
def test_idempotent_conflict_on_different_payload_with_same_key(client, make_user, make_product, as_user):
    buyer = make_user("buyer")
    product = make_product(make_user("seller"))
    key = "idem-conflict-1"

    r1 = client.post(
        CREATE_URL, data=_payload(product), content_type="application/json", HTTP_IDEMPOTENCY_KEY=key, **as_user(buyer)
    )
    assert r1.status_code == 201

    r2 = client.post(
        CREATE_URL,
        data=_payload(product, address="99 Other Road"),
        content_type="application/json",
        HTTP_IDEMPOTENCY_KEY=key,
        **as_user(buyer),
    )
    assert r2.status_code == 409
    assert r2.json()["detail"] == "IDEMPOTENCY_CONFLICT"


@pytest.mark.django_db
def test_same_key_from_two_users_is_two_requests(client, make_user, make_product, as_user):
    seller = make_user("seller")
    p1, p2 = make_product(seller), make_product(seller)
    key = "shared-key"

    r1 = client.post(
        CREATE_URL, data=_payload(p1), content_type="application/json", HTTP_IDEMPOTENCY_KEY=key, **as_user(make_user())
    )
    r2 = client.post(
        CREATE_URL, data=_payload(p2), content_type="application/json", HTTP_IDEMPOTENCY_KEY=key, **as_user(make_user())
    )
    assert r1.status_code == r2.status_code == 201
    assert r2.headers.get("Idempotent-Replay") is None
    assert OrderModel.objects.count() == 2


@pytest.mark.django_db
def test_idempotent_replay_preserves_400_status(client, make_user, make_product, as_user):
    buyer = make_user("buyer")
    product = make_product(make_user("seller"), is_available=False)
    key = "idem-400"

    r1 = client.post(
        CREATE_URL, data=_payload(product), content_type="application/json", HTTP_IDEMPOTENCY_KEY=key, **as_user(buyer)
    )
    assert r1.status_code == 400

    # even if the listing comes back, the stored outcome is replayed
    product.is_available = True
    product.save()

    r2 = client.post(
        CREATE_URL, data=_payload(product), content_type="application/json", HTTP_IDEMPOTENCY_KEY=key, **as_user(buyer)
    )
    assert r2.status_code == 400
    assert r2.json() == r1.json()
    assert r2.headers.get("Idempotent-Replay") == "true"


@pytest.mark.django_db
def test_server_error_releases_key_for_retry(client, monkeypatch, make_user, make_product, as_user):
    from apps.orders import providers

    buyer = make_user("buyer")
    product = make_product(make_user("seller"))
    key = "idem-500"
    real = providers.get_order_service

    class FailingService:
        def place_order(self, **kwargs):
            raise InternalError("Error creating order")

    monkeypatch.setattr(providers, "get_order_service", lambda: FailingService())
    r1 = client.post(
        CREATE_URL, data=_payload(product), content_type="application/json", HTTP_IDEMPOTENCY_KEY=key, **as_user(buyer)
    )
    assert r1.status_code == 500
    assert not IdempotencyKey.objects.exists()

    monkeypatch.setattr(providers, "get_order_service", real)
    r2 = client.post(
        CREATE_URL, data=_payload(product), content_type="application/json", HTTP_IDEMPOTENCY_KEY=key, **as_user(buyer)
    )
    assert r2.status_code == 201
    assert r2.headers.get("Idempotent-Replay") is None


@pytest.mark.django_db
def test_overlong_key_is_rejected_before_anything_is_stored(client, make_user, make_product, as_user):
    buyer = make_user("buyer")
    product = make_product(make_user("seller"))

    r = client.post(
        CREATE_URL,
        data=_payload(product),
        content_type="application/json",
        HTTP_IDEMPOTENCY_KEY="k" * 201,
        **as_user(buyer),
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"
    assert "Idempotency-Key" in r.json()["message"]
    assert IdempotencyKey.objects.count() == 0
    assert OrderModel.objects.count() == 0
    product.refresh_from_db()
    assert product.is_available is True


@pytest.mark.django_db
def test_longest_allowed_key_is_stored(client, make_user, make_product, as_user):
    buyer = make_user("buyer")
    product = make_product(make_user("seller"))
    key = "k" * 200

    r = client.post(
        CREATE_URL, data=_payload(product), content_type="application/json", HTTP_IDEMPOTENCY_KEY=key, **as_user(buyer)
    )
    assert r.status_code == 201
    assert IdempotencyKey.objects.get().key == f"{buyer.id}:{key}"
