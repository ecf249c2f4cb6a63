"""Provision the first administrator account.

Admin rights are granted here, at provisioning time, and nowhere else:
the request path only ever reads the stored role.

Usage::

    python manage.py seed_admin --email ops@example.com --name "Ops"

``--email`` falls back to the ``SEED_ADMIN_EMAIL`` setting. Running the
command for an existing user promotes that user; running it twice is a
no-op.
"""

import logging

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.core.validators import validate_email
from django.core.exceptions import ValidationError
from django.db import transaction

from apps.accounts.models import UserModel

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Create or promote the bootstrap admin account."

    def add_arguments(self, parser):
        parser.add_argument("--email", default=None)
        parser.add_argument("--name", default="Administrator")
        parser.add_argument("--phone", default="")

    @transaction.atomic
    def handle(self, *args, **options):
        email = (options["email"] or getattr(settings, "SEED_ADMIN_EMAIL", "") or "").strip().lower()
        if not email:
            raise CommandError("An admin email is required (--email or SEED_ADMIN_EMAIL)")
        try:
            validate_email(email)
        except ValidationError:
            raise CommandError(f"Invalid email address: {email}")

        user, created = UserModel.objects.select_for_update().get_or_create(
            email=email,
            defaults={"name": options["name"], "phone": options["phone"], "role": UserModel.Role.ADMIN},
        )
        if created:
            logger.info("admin account created", extra={"user_id": str(user.id)})
            self.stdout.write(self.style.SUCCESS(f"Created admin {email} ({user.id})"))
            return

        if user.role != UserModel.Role.ADMIN:
            user.role = UserModel.Role.ADMIN
            user.save(update_fields=["role", "updated_at"])
            logger.info("user promoted to admin", extra={"user_id": str(user.id)})
            self.stdout.write(self.style.SUCCESS(f"Promoted {email} to admin"))
        else:
            self.stdout.write(f"{email} is already an admin")
