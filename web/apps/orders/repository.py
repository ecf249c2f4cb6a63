"""Repository layer for persisting orders.

This module maps domain ``Order`` objects to ``OrderModel`` rows and back.
It implements ``OrderStorePort`` so the domain service stays unaware of
Django ORM details; the unit of work is a Django transaction.
"""

import uuid
from typing import List, Optional

from django.db import transaction

from .domain import (
    Order,
    OrderStatus,
    OrderStorePort,
    PaymentMethod,
    PaymentStatus,
    Tracking,
    payment_details_from_dict,
)
from .models import OrderModel


def to_domain(obj: OrderModel) -> Order:
    """Build a domain ``Order`` from a persisted row."""
    method = PaymentMethod(obj.payment_method)
    return Order(
        id=obj.id,
        product_id=obj.product_id,
        buyer_id=obj.buyer_id,
        seller_id=obj.seller_id,
        price=obj.price,
        tax=obj.tax,
        shipping=obj.shipping,
        total=obj.total,
        payment_method=method,
        shipping_address=obj.shipping_address,
        status=OrderStatus(obj.status),
        payment_status=PaymentStatus(obj.payment_status),
        payment_details=payment_details_from_dict(method, obj.payment_details),
        tracking=Tracking.from_dict(obj.tracking),
        delivery_date=obj.delivery_date,
        notes=obj.notes,
        created_at=obj.created_at,
        updated_at=obj.updated_at,
    )


class OrderRepository(OrderStorePort):
    """Repository that persists Order domain objects using Django ORM."""

    def atomic(self):
        return transaction.atomic()

    def add(self, order: Order) -> None:
        """Insert a new order row with its frozen price quote."""
        OrderModel.objects.create(
            id=order.id,
            product_id=order.product_id,
            buyer_id=order.buyer_id,
            seller_id=order.seller_id,
            price=order.price,
            tax=order.tax,
            shipping=order.shipping,
            total=order.total,
            status=order.status.value,
            payment_method=order.payment_method.value,
            payment_status=order.payment_status.value,
            payment_details=order.payment_details.as_dict(),
            shipping_address=order.shipping_address,
            tracking=order.tracking.as_dict() if order.tracking else None,
            delivery_date=order.delivery_date,
            notes=order.notes,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )

    def get(self, order_id: uuid.UUID, for_update: bool = False) -> Optional[Order]:
        """Fetch an order, optionally locking the row for the current transaction."""
        qs = OrderModel.objects.all()
        if for_update:
            qs = qs.select_for_update()
        obj = qs.filter(id=order_id).first()
        return to_domain(obj) if obj else None

    def save(self, order: Order) -> None:
        """Persist the mutable part of an order.

        Product, parties, quote, payment method and address are written once
        by ``add`` and never updated.
        """
        OrderModel.objects.filter(id=order.id).update(
            status=order.status.value,
            payment_status=order.payment_status.value,
            tracking=order.tracking.as_dict() if order.tracking else None,
            delivery_date=order.delivery_date,
            notes=order.notes,
            updated_at=order.updated_at,
        )

    def list_for_buyer(self, buyer_id: uuid.UUID) -> List[Order]:
        return [to_domain(o) for o in OrderModel.objects.filter(buyer_id=buyer_id).order_by("-created_at")]

    def list_for_seller(self, seller_id: uuid.UUID) -> List[Order]:
        return [to_domain(o) for o in OrderModel.objects.filter(seller_id=seller_id).order_by("-created_at")]

    def _filtered(self, status: Optional[OrderStatus], payment_status: Optional[PaymentStatus]):
        qs = OrderModel.objects.all()
        if status is not None:
            qs = qs.filter(status=status.value)
        if payment_status is not None:
            qs = qs.filter(payment_status=payment_status.value)
        return qs

    def list_all(
        self,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Order]:
        qs = self._filtered(status, payment_status).order_by("-created_at")
        qs = qs[offset:] if limit is None else qs[offset:offset + limit]
        return [to_domain(o) for o in qs]

    def count_all(
        self,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
    ) -> int:
        return self._filtered(status, payment_status).count()
