"""Gateway middleware: request correlation and API payload limits.

``RequestIdMiddleware`` makes sure every request carries a request id. The
id is taken from the incoming ``X-Request-Id`` header when the upstream
gateway provides one, or generated (UUIDv4) otherwise. It is stored on the
request, in the ``REQUEST_ID_CTX`` context variable for code that has no
request at hand (log filters, outgoing HTTP clients), and echoed back in
the ``X-Request-ID`` response header.

``ApiSizeLimitMiddleware`` rejects ``/api/`` requests whose declared body
exceeds ``API_MAX_BYTES`` with HTTP 413 before any view runs.
"""

import uuid
import contextvars

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")


class RequestIdMiddleware(MiddlewareMixin):
    """Set and return a per-request identifier.

    Attributes:
        HEADER (str): Incoming header name in ``request.META`` casing.
        RESPONSE_HEADER (str): Header added to outgoing responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER)
        if not rid:
            rid = str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if request.path.startswith("/api/"):
            limit = getattr(settings, "API_MAX_BYTES", 1024 * 1024)
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > limit:
                return JsonResponse(
                    {"detail": "PAYLOAD_TOO_LARGE", "message": f"Request body exceeds {limit} bytes"},
                    status=413,
                )
