"""SQLAlchemy repository for marketplace listings.

This module provides database persistence for the catalog service. Each
listing is one-of-a-kind, so availability is a flag rather than a stock
count: reserving a product flips ``is_available`` from true to false with
a single conditional UPDATE, which lets exactly one of several concurrent
buyers win.

The connection string comes from ``DATABASE_URL`` when set, otherwise it is
assembled from the ``DB_*`` environment variables.
"""

import os
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, Numeric, String, Uuid, create_engine, update
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

DB_HOST = os.getenv("DB_HOST", "catalog-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "catalog")
DB_USER = os.getenv("DB_USER", "catalog_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "catalog-pass")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
engine = create_engine(DATABASE_URL, pool_pre_ping=True)

ACTIVE = "active"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ProductRow(Base):
    """A listing as stored by the catalog service.

    Attributes:
        id: Listing id, shared with the web side's order records.
        title: Display title.
        price: Asking price with two decimal places.
        seller_id: Owner of the listing.
        is_available: False once an order has been placed.
        reserved_order_id: Order holding the listing while it is off the
            market; repeat reserves from that order succeed.
        status: ``active``, ``inactive`` or ``removed``; only active
            listings can be reserved.
    """

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    seller_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    reserved_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ACTIVE)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


def init_db() -> None:
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    """Context manager that yields a SQLAlchemy session.

    The session is automatically closed when exiting the context.
    """
    with Session(engine) as s:
        yield s


class CatalogRepo:
    """Repository class for listing lookups and availability changes."""

    def get(self, product_id: uuid.UUID) -> Optional[ProductRow]:
        with get_session() as s:
            row = s.get(ProductRow, product_id)
            if row is not None:
                s.expunge(row)
            return row

    def upsert(
        self,
        product_id: uuid.UUID,
        title: str,
        price: Decimal,
        seller_id: uuid.UUID,
        is_available: bool = True,
        status: str = ACTIVE,
    ) -> None:
        """Create or replace a listing."""
        with get_session() as s:
            s.merge(ProductRow(
                id=product_id,
                title=title,
                price=price,
                seller_id=seller_id,
                is_available=is_available,
                status=status,
                reserved_order_id=None,
                updated_at=_now(),
            ))
            s.commit()

    def reserve(self, product_id: uuid.UUID, order_id: uuid.UUID) -> bool:
        """Take an available, active listing off the market for an order.

        A repeat call from the order already holding the listing succeeds
        without changing it, so a reserve whose response was lost can be
        retried safely.

        Returns:
            bool: True if ``order_id`` holds the listing; False when the
                listing is missing, inactive or held by another order.
        """
        with get_session() as s:
            result = s.execute(
                update(ProductRow)
                .where(
                    ProductRow.id == product_id,
                    ProductRow.is_available.is_(True),
                    ProductRow.status == ACTIVE,
                )
                .values(is_available=False, reserved_order_id=order_id, updated_at=_now())
            )
            s.commit()
            if result.rowcount == 1:
                return True
            row = s.get(ProductRow, product_id)
            return row is not None and not row.is_available and row.reserved_order_id == order_id

    def release(self, product_id: uuid.UUID, order_id: uuid.UUID) -> bool:
        """Put a listing back on the market after a failed order.

        Only the order holding the listing can release it.

        Returns:
            bool: True when the listing went back on the market.
        """
        with get_session() as s:
            result = s.execute(
                update(ProductRow)
                .where(ProductRow.id == product_id, ProductRow.reserved_order_id == order_id)
                .values(is_available=True, reserved_order_id=None, updated_at=_now())
            )
            s.commit()
            return result.rowcount == 1
