"""Service provider helpers for wiring OrderService with its ports.

This module exposes a small factory function ``get_order_service`` that
returns a configured ``OrderService``. Orders and users always live in the
local database. The catalog is read from the local ``products`` table by
default, or from the remote catalog service when
``settings.USE_HTTP_ADAPTERS`` is truthy.
"""

from django.conf import settings

from apps.accounts.directory import UserDirectory
from apps.catalog.repository import CatalogRepository
from .adapters import SimulatedPaymentGateway
from .domain import CatalogPort, OrderService
from .http_adapters import HttpCatalogClient
from .repository import OrderRepository


def get_catalog() -> CatalogPort:
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        return HttpCatalogClient()
    return CatalogRepository()


def get_order_service() -> OrderService:
    """Return a configured OrderService instance."""
    return OrderService(
        orders=OrderRepository(),
        catalog=get_catalog(),
        directory=UserDirectory(),
        gateway=SimulatedPaymentGateway(),
    )
