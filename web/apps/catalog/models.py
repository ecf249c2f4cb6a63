import uuid
from django.db import models


class ProductModel(models.Model):
    """A single marketplace listing.

    Listings are one-of-a-kind: once an order is placed ``is_available``
    flips to False and the item can no longer be bought.
    """

    class Category(models.TextChoices):
        ELECTRONICS = "electronics"
        FURNITURE = "furniture"
        CLOTHING = "clothing"
        BOOKS = "books"
        TOYS = "toys"
        SPORTS = "sports"
        AUTOMOTIVE = "automotive"
        OTHER = "other"

    class Condition(models.TextChoices):
        NEW = "new"
        LIKE_NEW = "like-new"
        GOOD = "good"
        FAIR = "fair"
        POOR = "poor"

    class Status(models.TextChoices):
        ACTIVE = "active"
        INACTIVE = "inactive"
        REMOVED = "removed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(max_digits=10, decimal_places=2)
    category = models.CharField(max_length=32, choices=Category.choices, default=Category.OTHER)
    condition = models.CharField(max_length=16, choices=Condition.choices, default=Condition.GOOD)
    seller = models.ForeignKey("accounts.UserModel", on_delete=models.PROTECT, related_name="products")
    location = models.CharField(max_length=200, blank=True, default="")
    is_available = models.BooleanField(default=True)
    # order currently holding the listing off the market
    reserved_order_id = models.UUIDField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "products"
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["is_available", "status"], name="products_is_avai_7c1f0e_idx")]

    def __str__(self):
        return self.title
