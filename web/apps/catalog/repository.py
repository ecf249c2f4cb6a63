"""Catalog store adapter backed by the local ``products`` table.

Used by the order engine when the catalog lives in the same database as
orders (the default). Because both tables share a connection, the
availability flip joins the order's transaction.
"""

import uuid
from typing import Optional

from django.utils import timezone

from apps.orders.domain import CatalogPort, Product
from .models import ProductModel


class CatalogRepository(CatalogPort):
    """Read products and flip their availability with conditional updates."""

    def get_product(self, product_id: uuid.UUID) -> Optional[Product]:
        obj = ProductModel.objects.filter(id=product_id).first()
        if obj is None:
            return None
        return Product(
            id=obj.id,
            title=obj.title,
            price=obj.price,
            seller_id=obj.seller_id,
            is_available=obj.is_available and obj.status == ProductModel.Status.ACTIVE,
        )

    def mark_unavailable(self, product_id: uuid.UUID, order_id: uuid.UUID) -> bool:
        """Flip ``is_available`` to False if, and only if, it is still True.

        The ``WHERE is_available`` guard makes two concurrent buyers race on
        the row: exactly one update matches. A repeat call for the order that
        already holds the listing also succeeds.

        Returns:
            bool: True when ``order_id`` holds the product off the market.
        """
        updated = ProductModel.objects.filter(
            id=product_id,
            is_available=True,
            status=ProductModel.Status.ACTIVE,
        ).update(is_available=False, reserved_order_id=order_id, updated_at=timezone.now())
        if updated == 1:
            return True
        return ProductModel.objects.filter(id=product_id, is_available=False, reserved_order_id=order_id).exists()

    def mark_available(self, product_id: uuid.UUID, order_id: uuid.UUID) -> None:
        ProductModel.objects.filter(id=product_id, reserved_order_id=order_id).update(
            is_available=True, reserved_order_id=None, updated_at=timezone.now()
        )
