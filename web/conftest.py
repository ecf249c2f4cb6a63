import uuid
from decimal import Decimal

import pytest
from django.core.cache import cache


@pytest.fixture(autouse=True)
def use_local_catalog_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    # throttle counters live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def make_user(db):
    from apps.accounts.models import UserModel

    def _make(role="user", name=None, email=None, phone=""):
        suffix = uuid.uuid4().hex[:8]
        return UserModel.objects.create(
            name=name or f"{role}-{suffix}",
            email=email or f"{role}-{suffix}@example.com",
            phone=phone,
            role=role,
        )

    return _make


@pytest.fixture
def make_product(db):
    from apps.catalog.models import ProductModel

    def _make(seller, price="100.00", title="Vintage lamp", **kwargs):
        return ProductModel.objects.create(seller=seller, price=Decimal(price), title=title, **kwargs)

    return _make


@pytest.fixture
def as_user():
    """Return the Django test client headers that authenticate ``user``."""

    def _headers(user):
        return {"HTTP_X_USER_ID": str(user.id)}

    return _headers
