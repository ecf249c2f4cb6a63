"""DRF authentication for callers already authenticated by the gateway.

The upstream auth gateway validates the client's credentials and forwards
the user id in ``X-User-Id``. This class resolves that id against the
accounts table. The role used for authorization is always the stored one;
nothing in the request can raise it.
"""

import logging
import uuid

from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication

from apps.accounts.models import UserModel

logger = logging.getLogger(__name__)


class GatewayUserAuthentication(BaseAuthentication):
    HEADER = "HTTP_X_USER_ID"

    def authenticate(self, request):
        """Return ``(user, None)`` for a known user id, None when absent.

        Raises:
            AuthenticationFailed: The header is malformed or names an unknown
                user.
        """
        raw = request.META.get(self.HEADER)
        if not raw:
            return None
        try:
            user_id = uuid.UUID(raw.strip())
        except ValueError:
            raise exceptions.AuthenticationFailed("Invalid user id")

        user = UserModel.objects.filter(id=user_id).first()
        if user is None:
            logger.warning("unknown user id from gateway", extra={"user_id": str(user_id)})
            raise exceptions.AuthenticationFailed("User not found")
        return user, None

    def authenticate_header(self, request):
        # a non-empty value makes DRF answer 401 instead of 403
        return "X-User-Id"
