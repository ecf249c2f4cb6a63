"""User directory backed by the accounts table.

Implements the orders ``DirectoryPort`` so the order engine can enrich
reads with buyer/seller contact summaries without importing Django models.
"""

import uuid
from typing import Optional

from apps.orders.domain import Actor, DirectoryPort, Role, UserSummary
from .models import UserModel


class UserDirectory(DirectoryPort):
    """Resolve user ids to ``UserSummary`` records."""

    def get_user(self, user_id: uuid.UUID) -> Optional[UserSummary]:
        obj = UserModel.objects.filter(id=user_id).only("id", "name", "email", "phone").first()
        if obj is None:
            return None
        return UserSummary(id=obj.id, name=obj.name, email=obj.email, phone=obj.phone)


def actor_for(user: UserModel) -> Actor:
    """Build the domain ``Actor`` for an authenticated user."""
    return Actor(id=user.id, role=Role(user.role))
