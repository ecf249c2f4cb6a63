"""HTTP views for the orders app.

This module contains DRF API views for the order engine. Views are kept
intentionally small: they validate requests (via Pydantic), resolve the
caller into a domain ``Actor``, delegate to the ``OrderService`` returned by
``providers.get_order_service()``, and shape the JSON response with
``OrderReadDTO``.

Domain errors carry their own HTTP status. The API exception handler
(``gateway.exceptions``) turns them into ``{"detail": CODE, "message": text}``
bodies; only the create endpoint catches them itself, to record the outcome
against its idempotency key.

Idempotency: when an ``Idempotency-Key`` header is provided, the create
endpoint ensures idempotent processing. The first request creates a record
and, upon completion, stores the response. Retries with the same payload
replay the stored status and body with ``Idempotent-Replay: true``. Reusing
the key with a different payload returns HTTP 409.
"""
import logging

from pydantic import ValidationError as DTOValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.accounts.directory import actor_for
from . import providers
from .domain import OrderView
from .errors import OrderError
from .idempotency import MAX_CLIENT_KEY_LENGTH, discard, finalize, get_or_create_idempotent, scoped_key
from .schemas import CreateOrderDTO, OrderReadDTO, PageQueryDTO, UpdateStatusDTO

logger = logging.getLogger(__name__)


def _error_response(exc: OrderError) -> Response:
    return Response({"detail": exc.code, "message": exc.message}, status=exc.http_status)


def _dto_error_response(exc: DTOValidationError) -> Response:
    message = "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in exc.errors()
    )
    return Response({"detail": "VALIDATION_ERROR", "message": message}, status=status.HTTP_400_BAD_REQUEST)


def _order_body(view: OrderView) -> dict:
    return OrderReadDTO.from_view(view).to_json()


class OrdersPingView(APIView):
    """Simple health-check endpoint for the orders module."""

    authentication_classes = []
    permission_classes = []

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """Place an order (any user) or list all orders (admins).

    POST validates the payload using a Pydantic DTO, asks the domain service
    to place the order (price snapshot, payment branch, availability flip in
    one unit of work), and returns the created order. GET returns a
    paginated, filterable list of every order and is restricted to admins.
    """
    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        """List orders for moderation.

        Query params: ``page``, ``page_size``, ``status``, ``paymentStatus``.

        Returns:
            Response: 200 with ``{count, page, page_size, pages, results}``;
            400 for bad paging or filter values; 403 for non-admins.
        """
        try:
            q = PageQueryDTO.model_validate({
                "page": request.GET.get("page", 1),
                "page_size": request.GET.get("page_size", 20),
            })
        except DTOValidationError as e:
            return _dto_error_response(e)

        page = providers.get_order_service().list_orders(
            actor_for(request.user),
            status=request.GET.get("status"),
            payment_status=request.GET.get("paymentStatus"),
            page=q.page,
            page_size=q.page_size,
        )

        return Response(
            {
                "count": page.total,
                "page": page.page,
                "page_size": page.page_size,
                "pages": page.pages,
                "results": [_order_body(v) for v in page.items],
            },
            status=200,
        )

    def post(self, request):
        """Create a new order.

        Args:
            request (Request): DRF request with JSON body
                ``{productId, paymentMethod, shippingAddress, paymentDetails?}``
                and optional ``Idempotency-Key`` header.

        Returns:
            Response: One of the following responses.
            - 201 with the created order.
            - 200/4xx replay of the stored response on an idempotent retry.
            - 409 ``IDEMPOTENCY_CONFLICT`` when the key is reused with a
              different payload.
            - 400 for validation errors (including an over-long
              ``Idempotency-Key``) or an unavailable product.
            - 404 when the product does not exist.
            - 500/503 when storage or the catalog fails.
        """
        idem_key = request.headers.get("Idempotency-Key")
        if idem_key and len(idem_key) > MAX_CLIENT_KEY_LENGTH:
            return Response(
                {
                    "detail": "VALIDATION_ERROR",
                    "message": f"Idempotency-Key must be at most {MAX_CLIENT_KEY_LENGTH} characters",
                },
                status=status.HTTP_400_BAD_REQUEST,
            )

        # 1) Pydantic validation
        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except DTOValidationError as e:
            return _dto_error_response(e)

        # 2) Idempotency get-or-create
        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(scoped_key(request.user.id, idem_key), request.data)
            except ValueError:
                return Response(
                    {"detail": "IDEMPOTENCY_CONFLICT", "message": "Idempotency key reused with a different payload"},
                    status=status.HTTP_409_CONFLICT,
                )
            if existing:
                if not rec.response_status:
                    return Response(
                        {"detail": "IDEMPOTENCY_IN_PROGRESS", "message": "A request with this key is in progress"},
                        status=status.HTTP_409_CONFLICT,
                    )
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Domain
        service = providers.get_order_service()
        try:
            order = service.place_order(
                buyer_id=request.user.id,
                product_id=dto.product_id,
                payment_method=dto.payment_method,
                shipping_address=dto.shipping_address,
                payment_details=dto.payment_details,
            )
        except OrderError as e:
            logger.warning("order not created", extra={"code": e.code, "product_id": str(dto.product_id)})
            if rec:
                if e.http_status < 500:
                    finalize(rec, e.http_status, {"detail": e.code, "message": e.message})
                else:
                    discard(rec)
            return _error_response(e)
        except Exception:
            logger.exception("unexpected error creating order", extra={"product_id": str(dto.product_id)})
            if rec:
                discard(rec)
            return Response(
                {"detail": "INTERNAL_ERROR", "message": "Error creating order"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        # 4) Response
        body = _order_body(OrderView(order=order))
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.id)
        return Response(body, status=status.HTTP_201_CREATED)


class BuyerOrdersView(APIView):
    """Orders placed by the caller, newest first, with seller contacts."""
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_list"

    def get(self, request):
        views = providers.get_order_service().list_for_buyer(request.user.id)
        return Response([_order_body(v) for v in views], status=200)


class SellerOrdersView(APIView):
    """Orders for the caller's listings, newest first, with buyer contacts."""
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_list"

    def get(self, request):
        views = providers.get_order_service().list_for_seller(request.user.id)
        return Response([_order_body(v) for v in views], status=200)


class RetrieveOrderView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        view = providers.get_order_service().get_order(actor_for(request.user), oid)
        return Response(_order_body(view), status=200)


class OrderStatusView(APIView):
    """Advance an order through its delivery lifecycle (seller or admin)."""
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_update"

    def patch(self, request, oid):
        try:
            dto = UpdateStatusDTO.model_validate(request.data)
        except DTOValidationError as e:
            return _dto_error_response(e)

        order = providers.get_order_service().update_status(
            actor_for(request.user),
            oid,
            dto.status,
            tracking=dto.tracking.to_domain() if dto.tracking else None,
            notes=dto.notes,
        )
        return Response(_order_body(OrderView(order=order)), status=200)


class ConfirmPaymentView(APIView):
    """Record that a bank transfer or cash-on-delivery payment arrived."""
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_update"

    def patch(self, request, oid):
        order = providers.get_order_service().confirm_payment(actor_for(request.user), oid)
        return Response(_order_body(OrderView(order=order)), status=200)
