import uuid
from django.db import models
from django.utils import timezone


class OrderModel(models.Model):
    # UUID PK exposed in the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Status(models.TextChoices):
        PENDING_PAYMENT = "pending_payment"
        PENDING_DELIVERY = "pending_delivery"
        SHIPPED = "shipped"
        DELIVERED = "delivered"
        CANCELLED = "cancelled"
        RETURNED = "returned"

    class PaymentMethod(models.TextChoices):
        CREDIT_CARD = "credit_card"
        BANK_TRANSFER = "bank_transfer"
        COD = "cod"
        OTHER = "other"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending"
        PAID = "paid"
        REFUNDED = "refunded"
        FAILED = "failed"

    # Product lives in the catalog store, which may be a remote service,
    # so it is referenced by id only.
    product_id = models.UUIDField(db_index=True)
    buyer = models.ForeignKey("accounts.UserModel", on_delete=models.PROTECT, related_name="purchases")
    seller = models.ForeignKey("accounts.UserModel", on_delete=models.PROTECT, related_name="sales")

    price = models.DecimalField(max_digits=10, decimal_places=2)
    tax = models.DecimalField(max_digits=10, decimal_places=2)
    shipping = models.DecimalField(max_digits=10, decimal_places=2)
    total = models.DecimalField(max_digits=10, decimal_places=2)

    status = models.CharField(max_length=32, choices=Status.choices, default=Status.PENDING_PAYMENT)
    payment_method = models.CharField(max_length=32, choices=PaymentMethod.choices)
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    payment_details = models.JSONField(default=dict, blank=True)
    shipping_address = models.TextField()

    tracking = models.JSONField(null=True, blank=True)
    delivery_date = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_7f3b2a_idx"),
            models.Index(fields=["payment_status"], name="orders_payment_4c9d1e_idx"),
            models.Index(fields=["created_at"], name="orders_created_a81e55_idx"),
        ]


class IdempotencyKey(models.Model):
    """Stored outcome of an order creation request keyed by client key."""

    key = models.CharField(max_length=255, primary_key=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict, blank=True)
    order = models.ForeignKey(OrderModel, null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
