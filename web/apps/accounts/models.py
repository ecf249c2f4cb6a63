import uuid
from django.db import models


class UserModel(models.Model):
    """A marketplace user as known to the identity provider.

    Authentication happens upstream; this table only answers "who is this id
    and what role do they hold". Roles are stored data and never derived
    from the email address at request time.
    """

    class Role(models.TextChoices):
        USER = "user"
        BUYER = "buyer"
        SELLER = "seller"
        ADMIN = "admin"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=120)
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=32, blank=True, default="")
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.USER)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # DRF permission classes look at these on request.user
    is_authenticated = True
    is_anonymous = False

    class Meta:
        db_table = "users"
        ordering = ["-created_at"]

    def save(self, *args, **kwargs):
        self.email = (self.email or "").strip().lower()
        self.name = (self.name or "").strip()
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.email} ({self.role})"
