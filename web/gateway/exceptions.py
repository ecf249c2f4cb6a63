"""DRF exception handler shaping every API error as ``{detail, message}``.

Views translate the errors they expect themselves. This handler catches
whatever escapes them. Domain errors keep their own status and code. An
exception DRF does not know is logged and answered with a JSON 500 rather
than Django's HTML error page.
"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler, set_rollback

from apps.orders.errors import OrderError

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    if isinstance(exc, OrderError):
        set_rollback()
        if exc.http_status >= 500:
            logger.warning("request failed", extra={"code": exc.code, "view": _view_name(context)})
        return Response({"detail": exc.code, "message": exc.message}, status=exc.http_status)

    response = exception_handler(exc, context)
    if response is not None:
        return response

    logger.error("unhandled error", exc_info=exc, extra={"view": _view_name(context)})
    set_rollback()
    return Response(
        {"detail": "INTERNAL_ERROR", "message": "Internal server error"},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def _view_name(context) -> str:
    view = context.get("view")
    return type(view).__name__ if view is not None else "-"
