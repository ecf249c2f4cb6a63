"""Domain models, ports and service for marketplace orders.

This module contains the enums and dataclasses describing an order, the
pricing rules that freeze a quote at purchase time, the delivery status
state machine, protocol definitions (ports) for the collaborators the
engine depends on (catalog, order store, user directory, payment
gateway), and the ``OrderService`` that implements the order use cases.

Nothing in here imports Django; persistence and HTTP concerns live in the
adapters wired by ``providers.get_order_service``.
"""

import logging
import re
import secrets
import string
import uuid
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Protocol, Union

from .errors import (
    ForbiddenError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    OrderError,
    ValidationError,
)

logger = logging.getLogger(__name__)

TAX_RATE = Decimal("0.08")
SHIPPING_FEE = Decimal("5.00")
CENTS = Decimal("0.01")


# ---- Enums ----
class OrderStatus(str, Enum):
    """Delivery progress of an order."""

    PENDING_PAYMENT = "pending_payment"
    PENDING_DELIVERY = "pending_delivery"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    COD = "cod"
    OTHER = "other"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class Role(str, Enum):
    USER = "user"
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


# cancelled and returned are terminal
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING_PAYMENT: frozenset({OrderStatus.PENDING_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.PENDING_DELIVERY: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.RETURNED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.RETURNED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}

# Payment methods whose payment is collected outside the platform and
# confirmed by hand.
MANUALLY_CONFIRMED = frozenset({PaymentMethod.BANK_TRANSFER, PaymentMethod.COD})

BANK_TRANSFER_NOTICE = "Bank transfer details will be sent separately"


def to_money(value: Any) -> Decimal:
    """Convert ``value`` to a Decimal rounded half-up to cents."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_enum(enum_cls, value: Any, field_name: str):
    """Parse ``value`` into ``enum_cls`` or raise ``ValidationError``."""
    if isinstance(value, enum_cls):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field_name} is required")
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid {field_name} value: {value!r}") from None


def mask_card_number(card_number: Any) -> str:
    """Return ``****`` followed by the last four digits of ``card_number``.

    Non-digit characters are ignored; when no digits are supplied the result
    is just ``****``.
    """
    digits = re.sub(r"\D", "", str(card_number or ""))
    return "****" + digits[-4:]


def new_reference_id() -> str:
    """Generate the human-readable code a buyer quotes on a bank transfer."""
    alphabet = string.ascii_uppercase + string.digits
    return "REF_" + "".join(secrets.choice(alphabet) for _ in range(8))


# ---- Value objects ----
@dataclass(frozen=True)
class Pricing:
    """A price quote frozen at purchase time.

    Attributes:
        price: Product price snapshot.
        tax: ``round(price * TAX_RATE, 2)``.
        shipping: Flat shipping fee.
        total: ``round(price + shipping + tax, 2)``.
    """

    price: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    @classmethod
    def quote(cls, price: Any) -> "Pricing":
        """Build the quote for a product priced at ``price``."""
        p = to_money(price)
        if p < 0:
            raise ValidationError("Price cannot be negative")
        tax = to_money(p * TAX_RATE)
        return cls(price=p, tax=tax, shipping=SHIPPING_FEE, total=to_money(p + SHIPPING_FEE + tax))


@dataclass(frozen=True)
class CreditCardDetails:
    """Simulated card authorization; only the masked card number is kept."""

    transaction_id: str
    card_number: str

    def as_dict(self) -> dict:
        return {"transactionId": self.transaction_id, "cardNumber": self.card_number}


@dataclass(frozen=True)
class BankTransferDetails:
    reference_id: str
    bank_details: str = BANK_TRANSFER_NOTICE

    def as_dict(self) -> dict:
        return {"bankDetails": self.bank_details, "referenceId": self.reference_id}


@dataclass(frozen=True)
class CodDetails:
    """Address where cash is collected on delivery."""

    cod_address: str

    def as_dict(self) -> dict:
        return {"codAddress": self.cod_address}


@dataclass(frozen=True)
class NoPaymentDetails:
    def as_dict(self) -> dict:
        return {}


PaymentDetails = Union[CreditCardDetails, BankTransferDetails, CodDetails, NoPaymentDetails]


def payment_details_from_dict(method: PaymentMethod, data: Optional[Mapping[str, Any]]) -> PaymentDetails:
    """Rebuild the payment details variant stored for ``method``."""
    data = data or {}
    if method is PaymentMethod.CREDIT_CARD:
        return CreditCardDetails(
            transaction_id=str(data.get("transactionId", "")),
            card_number=str(data.get("cardNumber", "****")),
        )
    if method is PaymentMethod.BANK_TRANSFER:
        return BankTransferDetails(
            reference_id=str(data.get("referenceId", "")),
            bank_details=str(data.get("bankDetails", BANK_TRANSFER_NOTICE)),
        )
    if method is PaymentMethod.COD:
        return CodDetails(cod_address=str(data.get("codAddress", "")))
    return NoPaymentDetails()


@dataclass(frozen=True)
class Tracking:
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "carrier": self.carrier,
            "trackingNumber": self.tracking_number,
            "trackingURL": self.tracking_url,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["Tracking"]:
        if not data:
            return None
        return cls(
            carrier=data.get("carrier"),
            tracking_number=data.get("trackingNumber"),
            tracking_url=data.get("trackingURL"),
        )


@dataclass(frozen=True)
class Actor:
    """The authenticated caller as resolved by the identity provider."""

    id: uuid.UUID
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


@dataclass(frozen=True)
class Product:
    """What the order engine needs to know about a catalog item."""

    id: uuid.UUID
    title: str
    price: Decimal
    seller_id: uuid.UUID
    is_available: bool


@dataclass(frozen=True)
class UserSummary:
    id: uuid.UUID
    name: str
    email: str
    phone: str = ""


# ---- Entities ----
@dataclass
class Order:
    """A purchase record linking one buyer, one seller and one product.

    ``price``, ``tax``, ``shipping`` and ``total`` form the frozen quote and
    are never recomputed. Only ``status``, ``payment_status``, ``tracking``,
    ``delivery_date``, ``notes`` and ``updated_at`` change after creation,
    and only through ``transition_to`` and ``confirm_payment``.
    """

    id: uuid.UUID
    product_id: uuid.UUID
    buyer_id: uuid.UUID
    seller_id: uuid.UUID
    price: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    payment_method: PaymentMethod
    shipping_address: str
    status: OrderStatus = OrderStatus.PENDING_PAYMENT
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_details: PaymentDetails = field(default_factory=NoPaymentDetails)
    tracking: Optional[Tracking] = None
    delivery_date: Optional[datetime] = None
    notes: str = ""
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.total != to_money(self.price + self.shipping + self.tax):
            raise InternalError(f"Order {self.id} total does not match its price quote")

    def is_party(self, actor: Actor) -> bool:
        return actor.is_admin or actor.id in (self.buyer_id, self.seller_id)

    def can_manage(self, actor: Actor) -> bool:
        return actor.is_admin or actor.id == self.seller_id

    def transition_to(self, new_status: OrderStatus, at: datetime) -> None:
        """Move the order to ``new_status``.

        Raises:
            InvalidStateError: When the transition is not allowed from the
                current status.
        """
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStateError(
                f"Cannot change order status from {self.status.value} to {new_status.value}",
                code="INVALID_TRANSITION",
            )
        self.status = new_status
        if new_status is OrderStatus.DELIVERED:
            self.delivery_date = at
            # cash is collected by the courier
            if self.payment_method is PaymentMethod.COD:
                self.payment_status = PaymentStatus.PAID
        self.updated_at = at

    def confirm_payment(self, at: datetime) -> None:
        if self.payment_method not in MANUALLY_CONFIRMED:
            raise ValidationError(
                "Invalid payment method for manual confirmation",
                code="INVALID_PAYMENT_METHOD",
            )
        self.payment_status = PaymentStatus.PAID
        self.updated_at = at


@dataclass(frozen=True)
class OrderView:
    """An order enriched with product and party summaries for reads."""

    order: Order
    product: Optional[Product] = None
    buyer: Optional[UserSummary] = None
    seller: Optional[UserSummary] = None


@dataclass(frozen=True)
class OrderPage:
    total: int
    page: int
    page_size: int
    items: List[OrderView]

    @property
    def pages(self) -> int:
        return max(1, -(-self.total // self.page_size))


# ---- Ports (DIP) ----
class CatalogPort(Protocol):
    """Port describing the catalog store operations used by the engine."""

    def get_product(self, product_id: uuid.UUID) -> Optional[Product]:
        """Return the product or None when it does not exist."""
        raise NotImplementedError()

    def mark_unavailable(self, product_id: uuid.UUID, order_id: uuid.UUID) -> bool:
        """Flip ``isAvailable`` from true to false on behalf of ``order_id``.

        Repeating the call for the order that already holds the product
        succeeds again, so a retried request cannot lose the reservation.

        Returns:
            True if ``order_id`` now holds the product, False if it was
            unavailable or held by another order.
        """
        raise NotImplementedError()

    def mark_available(self, product_id: uuid.UUID, order_id: uuid.UUID) -> None:
        """Put the product back on the market if ``order_id`` holds it."""
        raise NotImplementedError()


class OrderStorePort(Protocol):
    """Port describing order persistence.

    ``atomic()`` opens the unit of work; writes made inside it are undone
    when the block raises. List methods return orders newest first.
    """

    def atomic(self) -> AbstractContextManager:
        raise NotImplementedError()

    def add(self, order: Order) -> None:
        raise NotImplementedError()

    def get(self, order_id: uuid.UUID, for_update: bool = False) -> Optional[Order]:
        raise NotImplementedError()

    def save(self, order: Order) -> None:
        raise NotImplementedError()

    def list_for_buyer(self, buyer_id: uuid.UUID) -> List[Order]:
        raise NotImplementedError()

    def list_for_seller(self, seller_id: uuid.UUID) -> List[Order]:
        raise NotImplementedError()

    def list_all(
        self,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Order]:
        raise NotImplementedError()

    def count_all(
        self,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
    ) -> int:
        raise NotImplementedError()


class DirectoryPort(Protocol):
    """Port describing user lookups against the identity provider."""

    def get_user(self, user_id: uuid.UUID) -> Optional[UserSummary]:
        raise NotImplementedError()


class PaymentGatewayPort(Protocol):
    """Port describing card payment authorization."""

    def authorize(self, amount: Decimal, card_number: Optional[str]) -> str:
        """Authorize ``amount`` and return the gateway transaction id."""
        raise NotImplementedError()


# ---- Domain service ----
class OrderService:
    """Domain service implementing the order use cases.

    The service validates input, enforces authorization and the status state
    machine, and coordinates the order store with the catalog so that an
    order exists if and only if its product was taken off the market.
    """

    def __init__(
        self,
        orders: OrderStorePort,
        catalog: CatalogPort,
        directory: DirectoryPort,
        gateway: PaymentGatewayPort,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.orders = orders
        self.catalog = catalog
        self.directory = directory
        self.gateway = gateway
        self.clock = clock

    def place_order(
        self,
        buyer_id: uuid.UUID,
        product_id: Optional[uuid.UUID],
        payment_method: Any,
        shipping_address: Any,
        payment_details: Optional[Mapping[str, Any]] = None,
    ) -> Order:
        """Create an order for a product and take the product off the market.

        Args:
            buyer_id: Identity of the purchasing user.
            product_id: Catalog id of the product being bought.
            payment_method: One of the ``PaymentMethod`` values.
            shipping_address: Delivery address; surrounding whitespace is
                stripped.
            payment_details: Method-specific input (for cards, an optional
                ``cardNumber``). Only whitelisted fields are kept.

        Returns:
            The persisted Order.

        Raises:
            ValidationError: Missing product id, unknown payment method or
                blank shipping address.
            NotFoundError: The product does not exist.
            InvalidStateError: The product is not available (including when
                a concurrent order took it first).
            InternalError: Persisting the order or updating the catalog
                failed; no order is left behind and the product is released
                if this order took it.
            UpstreamUnavailableError: The remote catalog could not be
                reached; handled like ``InternalError``.
        """
        if not product_id:
            raise ValidationError("Product ID is required")
        method = parse_enum(PaymentMethod, payment_method, "payment method")
        if not isinstance(shipping_address, str) or not shipping_address.strip():
            raise ValidationError("A valid shipping address is required")
        address = shipping_address.strip()

        product = self.catalog.get_product(product_id)
        if product is None:
            raise NotFoundError("Product not found")
        if not product.is_available:
            raise InvalidStateError("Product is not available for purchase", code="PRODUCT_UNAVAILABLE")

        pricing = Pricing.quote(product.price)
        now = self.clock()
        payment_status, details = self._settle_payment(method, address, payment_details or {}, pricing)
        order = Order(
            id=uuid.uuid4(),
            product_id=product.id,
            buyer_id=buyer_id,
            seller_id=product.seller_id,
            price=pricing.price,
            tax=pricing.tax,
            shipping=pricing.shipping,
            total=pricing.total,
            payment_method=method,
            shipping_address=address,
            status=OrderStatus.PENDING_DELIVERY if method is PaymentMethod.COD else OrderStatus.PENDING_PAYMENT,
            payment_status=payment_status,
            payment_details=details,
            created_at=now,
            updated_at=now,
        )

        # set once the flip has been sent; from then on its outcome may be
        # unknown and a failure must release whatever this order holds
        flip_sent = False
        try:
            with self.orders.atomic():
                self.orders.add(order)
                flip_sent = True
                self._take_off_market(product.id, order.id)
        except Exception as exc:
            if flip_sent:
                self._put_back_on_market(product.id, order.id)
            if isinstance(exc, OrderError):
                raise
            raise InternalError("Error creating order") from exc

        logger.info(
            "order created",
            extra={"order_id": str(order.id), "product_id": str(product.id), "payment_method": method.value},
        )
        return order

    def update_status(
        self,
        actor: Actor,
        order_id: uuid.UUID,
        new_status: Any,
        tracking: Optional[Tracking] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """Advance the delivery status of an order (seller or admin only).

        Delivering a cash-on-delivery order also marks it paid.

        Raises:
            NotFoundError: The order does not exist.
            ForbiddenError: The actor is neither the seller nor an admin.
            ValidationError: ``new_status`` is not a known status.
            InvalidStateError: The transition is not allowed.
        """
        with self.orders.atomic():
            order = self._load(order_id, for_update=True)
            if not order.can_manage(actor):
                raise ForbiddenError("Not authorized to update this order")
            status = parse_enum(OrderStatus, new_status, "status")
            previous = order.status
            order.transition_to(status, self.clock())
            if tracking is not None:
                order.tracking = tracking
            if notes and notes.strip():
                order.notes = notes.strip()
            self.orders.save(order)

        logger.info(
            "order status changed",
            extra={"order_id": str(order.id), "from_status": previous.value, "to_status": order.status.value},
        )
        return order

    def confirm_payment(self, actor: Actor, order_id: uuid.UUID) -> Order:
        """Mark a bank transfer or cash-on-delivery order as paid.

        Confirming an order that is already paid is a no-op success.

        Raises:
            NotFoundError: The order does not exist.
            ForbiddenError: The actor is neither the seller nor an admin.
            ValidationError: The order was paid by card or another method.
        """
        with self.orders.atomic():
            order = self._load(order_id, for_update=True)
            if not order.can_manage(actor):
                raise ForbiddenError("Not authorized to confirm payment")
            order.confirm_payment(self.clock())
            self.orders.save(order)

        logger.info("order payment confirmed", extra={"order_id": str(order.id)})
        return order

    def get_order(self, actor: Actor, order_id: uuid.UUID) -> OrderView:
        order = self._load(order_id)
        if not order.is_party(actor):
            raise ForbiddenError("Not authorized to view this order")
        return self._view(order, with_buyer=True, with_seller=True)

    def list_for_buyer(self, buyer_id: uuid.UUID) -> List[OrderView]:
        return [self._view(o, with_seller=True) for o in self.orders.list_for_buyer(buyer_id)]

    def list_for_seller(self, seller_id: uuid.UUID) -> List[OrderView]:
        return [self._view(o, with_buyer=True) for o in self.orders.list_for_seller(seller_id)]

    def list_orders(
        self,
        actor: Actor,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> OrderPage:
        """List every order newest first, optionally filtered (admin only).

        Raises:
            ForbiddenError: The actor is not an admin.
            ValidationError: A filter value is not a known status.
        """
        if not actor.is_admin:
            raise ForbiddenError("Access denied. Admin role required.")
        status_filter = parse_enum(OrderStatus, status, "status") if status else None
        payment_filter = parse_enum(PaymentStatus, payment_status, "payment status") if payment_status else None
        page = max(1, page)
        page_size = max(1, page_size)

        total = self.orders.count_all(status=status_filter, payment_status=payment_filter)
        orders = self.orders.list_all(
            status=status_filter,
            payment_status=payment_filter,
            offset=(page - 1) * page_size,
            limit=page_size,
        )
        return OrderPage(
            total=total,
            page=page,
            page_size=page_size,
            items=[self._view(o, with_buyer=True, with_seller=True) for o in orders],
        )

    # ---- helpers ----
    def _load(self, order_id: uuid.UUID, for_update: bool = False) -> Order:
        order = self.orders.get(order_id, for_update=for_update)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def _view(self, order: Order, with_buyer: bool = False, with_seller: bool = False) -> OrderView:
        return OrderView(
            order=order,
            product=self.catalog.get_product(order.product_id),
            buyer=self.directory.get_user(order.buyer_id) if with_buyer else None,
            seller=self.directory.get_user(order.seller_id) if with_seller else None,
        )

    def _settle_payment(
        self,
        method: PaymentMethod,
        address: str,
        raw: Mapping[str, Any],
        pricing: Pricing,
    ) -> tuple[PaymentStatus, PaymentDetails]:
        if method is PaymentMethod.CREDIT_CARD:
            # TODO: replace the simulated gateway with a real authorization
            # call and stop marking card orders paid before capture.
            card_number = raw.get("cardNumber")
            transaction_id = self.gateway.authorize(pricing.total, card_number)
            return PaymentStatus.PAID, CreditCardDetails(
                transaction_id=transaction_id,
                card_number=mask_card_number(card_number),
            )
        if method is PaymentMethod.COD:
            return PaymentStatus.PENDING, CodDetails(cod_address=address)
        if method is PaymentMethod.BANK_TRANSFER:
            return PaymentStatus.PENDING, BankTransferDetails(reference_id=new_reference_id())
        return PaymentStatus.PENDING, NoPaymentDetails()

    def _take_off_market(self, product_id: uuid.UUID, order_id: uuid.UUID) -> None:
        try:
            flipped = self.catalog.mark_unavailable(product_id, order_id)
        except OrderError:
            raise
        except Exception as exc:
            raise InternalError("Error updating product availability") from exc
        if not flipped:
            raise InvalidStateError("Product is not available for purchase", code="PRODUCT_UNAVAILABLE")

    def _put_back_on_market(self, product_id: uuid.UUID, order_id: uuid.UUID) -> None:
        try:
            self.catalog.mark_available(product_id, order_id)
        except Exception:
            logger.exception(
                "failed to release product after order rollback",
                extra={"product_id": str(product_id), "order_id": str(order_id)},
            )
