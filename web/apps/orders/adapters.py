"""In-process adapters for the orders domain ports.

``SimulatedPaymentGateway`` is the card "gateway" used in every
environment: it approves every authorization and returns a ``sim_``
transaction id, matching the marketplace's current behaviour of treating
card orders as paid at checkout.

The ``InMemory*`` classes implement the store, catalog and directory ports
without a database. They are intended for unit tests and local
experiments where deterministic behaviour is useful.
"""

import copy
import secrets
import string
import uuid
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, Iterator, List, Optional

from .domain import (
    CatalogPort,
    DirectoryPort,
    Order,
    OrderStatus,
    OrderStorePort,
    PaymentGatewayPort,
    PaymentStatus,
    Product,
    UserSummary,
)

_BASE36 = string.ascii_lowercase + string.digits


class SimulatedPaymentGateway(PaymentGatewayPort):
    """Approve every card authorization without contacting a gateway."""

    def authorize(self, amount: Decimal, card_number: Optional[str]) -> str:
        """Return a simulated transaction id.

        Args:
            amount: Amount being authorized (ignored).
            card_number: Card number supplied by the buyer (ignored).

        Returns:
            str: ``sim_`` followed by 13 random base-36 characters.
        """
        return "sim_" + "".join(secrets.choice(_BASE36) for _ in range(13))


class InMemoryOrderStore(OrderStorePort):
    """Dict-backed order store.

    Orders are deep-copied on the way in and out so callers can only change
    stored state through ``add``/``save``. ``atomic()`` snapshots the store
    and restores it when the block raises.
    """

    def __init__(self):
        self._orders: Dict[uuid.UUID, Order] = {}

    @contextmanager
    def atomic(self) -> Iterator[None]:
        snapshot = copy.deepcopy(self._orders)
        try:
            yield
        except BaseException:
            self._orders = snapshot
            raise

    def add(self, order: Order) -> None:
        if order.id in self._orders:
            raise ValueError(f"Order {order.id} already exists")
        self._orders[order.id] = copy.deepcopy(order)

    def get(self, order_id: uuid.UUID, for_update: bool = False) -> Optional[Order]:
        order = self._orders.get(order_id)
        return copy.deepcopy(order) if order else None

    def save(self, order: Order) -> None:
        self._orders[order.id] = copy.deepcopy(order)

    def _newest_first(self, orders) -> List[Order]:
        return [copy.deepcopy(o) for o in sorted(orders, key=lambda o: o.created_at, reverse=True)]

    def list_for_buyer(self, buyer_id: uuid.UUID) -> List[Order]:
        return self._newest_first(o for o in self._orders.values() if o.buyer_id == buyer_id)

    def list_for_seller(self, seller_id: uuid.UUID) -> List[Order]:
        return self._newest_first(o for o in self._orders.values() if o.seller_id == seller_id)

    def _filtered(self, status, payment_status):
        return [
            o
            for o in self._orders.values()
            if (status is None or o.status is status)
            and (payment_status is None or o.payment_status is payment_status)
        ]

    def list_all(
        self,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Order]:
        orders = self._newest_first(self._filtered(status, payment_status))
        end = None if limit is None else offset + limit
        return orders[offset:end]

    def count_all(
        self,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
    ) -> int:
        return len(self._filtered(status, payment_status))


class InMemoryCatalog(CatalogPort):
    """Dict-backed catalog holding ``Product`` records and their holders."""

    def __init__(self, products: Optional[List[Product]] = None):
        self._products: Dict[uuid.UUID, Product] = {p.id: p for p in products or []}
        self._holders: Dict[uuid.UUID, uuid.UUID] = {}

    def get_product(self, product_id: uuid.UUID) -> Optional[Product]:
        return self._products.get(product_id)

    def holder_of(self, product_id: uuid.UUID) -> Optional[uuid.UUID]:
        return self._holders.get(product_id)

    def mark_unavailable(self, product_id: uuid.UUID, order_id: uuid.UUID) -> bool:
        product = self._products.get(product_id)
        if product is None:
            return False
        if not product.is_available:
            return self._holders.get(product_id) == order_id
        self._set_available(product, False)
        self._holders[product_id] = order_id
        return True

    def mark_available(self, product_id: uuid.UUID, order_id: uuid.UUID) -> None:
        product = self._products.get(product_id)
        if product is not None and self._holders.get(product_id) == order_id:
            del self._holders[product_id]
            self._set_available(product, True)

    def _set_available(self, product: Product, available: bool) -> None:
        self._products[product.id] = Product(
            id=product.id,
            title=product.title,
            price=product.price,
            seller_id=product.seller_id,
            is_available=available,
        )


class InMemoryDirectory(DirectoryPort):
    """Dict-backed user directory."""

    def __init__(self, users: Optional[List[UserSummary]] = None):
        self._users: Dict[uuid.UUID, UserSummary] = {u.id: u for u in users or []}

    def get_user(self, user_id: uuid.UUID) -> Optional[UserSummary]:
        return self._users.get(user_id)
