"""Pydantic schemas for orders.

This module exposes the request/validation schemas used by the orders API
and the read schema that shapes order responses. Field aliases carry the
camelCase names clients and stored records use.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator

from .domain import OrderView, PaymentMethod, Product, Tracking, UserSummary

# Money leaves the API as a JSON number, as clients of the marketplace expect.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

PAYMENT_METHODS = {m.value for m in PaymentMethod}


class CreateOrderDTO(BaseModel):
    """Schema for placing an order.

    Attributes:
        product_id: Catalog id of the product being bought.
        payment_method: One of ``credit_card``, ``bank_transfer``, ``cod``,
            ``other``; normalized to lowercase.
        shipping_address: Non-blank delivery address, stripped.
        payment_details: Optional method-specific input, e.g.
            ``{"cardNumber": "4242..."}`` for cards.
    """

    model_config = ConfigDict(populate_by_name=True)

    product_id: UUID = Field(alias="productId")
    payment_method: str = Field(alias="paymentMethod")
    shipping_address: str = Field(alias="shippingAddress", max_length=500)
    payment_details: Optional[dict[str, Any]] = Field(default=None, alias="paymentDetails")

    @field_validator("payment_method")
    @classmethod
    def validate_payment_method(cls, v: str) -> str:
        """Normalize and check the payment method.

        Raises:
            ValueError: When the method is not supported.
        """
        v2 = v.strip().lower()
        if v2 not in PAYMENT_METHODS:
            raise ValueError("Unsupported payment method")
        return v2

    @field_validator("shipping_address")
    @classmethod
    def validate_shipping_address(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("A valid shipping address is required")
        return v2


class TrackingDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    carrier: Optional[str] = Field(default=None, max_length=100)
    tracking_number: Optional[str] = Field(default=None, alias="trackingNumber", max_length=100)
    tracking_url: Optional[str] = Field(default=None, alias="trackingURL", max_length=500)

    def to_domain(self) -> Tracking:
        return Tracking(carrier=self.carrier, tracking_number=self.tracking_number, tracking_url=self.tracking_url)


class UpdateStatusDTO(BaseModel):
    """Schema for a status change by the seller or an admin.

    The status value itself is checked by the domain so that authorization
    is decided before the value is judged.
    """

    status: str
    tracking: Optional[TrackingDTO] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class PageQueryDTO(BaseModel):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class ProductSummaryDTO(BaseModel):
    id: UUID
    title: str
    price: Money

    @classmethod
    def from_domain(cls, product: Product) -> "ProductSummaryDTO":
        return cls(id=product.id, title=product.title, price=product.price)


class UserSummaryDTO(BaseModel):
    id: UUID
    name: str
    email: str
    phone: str = ""

    @classmethod
    def from_domain(cls, user: UserSummary) -> "UserSummaryDTO":
        return cls(id=user.id, name=user.name, email=user.email, phone=user.phone)


class OrderReadDTO(BaseModel):
    """Read schema for an order.

    ``product``, ``buyer`` and ``seller`` are summaries when the engine
    enriched the order, plain ids otherwise.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    product: Union[ProductSummaryDTO, UUID]
    buyer: Union[UserSummaryDTO, UUID]
    seller: Union[UserSummaryDTO, UUID]
    price: Money
    tax: Money
    shipping: Money
    total: Money
    status: str
    payment_method: str = Field(alias="paymentMethod")
    payment_status: str = Field(alias="paymentStatus")
    payment_details: dict[str, Any] = Field(default_factory=dict, alias="paymentDetails")
    shipping_address: str = Field(alias="shippingAddress")
    tracking: Optional[TrackingDTO] = None
    delivery_date: Optional[datetime] = Field(default=None, alias="deliveryDate")
    notes: str = ""
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @classmethod
    def from_view(cls, view: OrderView) -> "OrderReadDTO":
        o = view.order
        return cls(
            id=o.id,
            product=ProductSummaryDTO.from_domain(view.product) if view.product else o.product_id,
            buyer=UserSummaryDTO.from_domain(view.buyer) if view.buyer else o.buyer_id,
            seller=UserSummaryDTO.from_domain(view.seller) if view.seller else o.seller_id,
            price=o.price,
            tax=o.tax,
            shipping=o.shipping,
            total=o.total,
            status=o.status.value,
            payment_method=o.payment_method.value,
            payment_status=o.payment_status.value,
            payment_details=o.payment_details.as_dict(),
            shipping_address=o.shipping_address,
            tracking=TrackingDTO.model_validate(o.tracking.as_dict()) if o.tracking else None,
            delivery_date=o.delivery_date,
            notes=o.notes,
            created_at=o.created_at,
            updated_at=o.updated_at,
        )

    def to_json(self) -> dict:
        """Dump to a JSON-ready dict using the camelCase field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
