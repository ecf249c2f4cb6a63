"""HTTP adapter for a remote catalog store with retries and a circuit breaker.

This module implements ``CatalogPort`` against the catalog service
(``services/catalog``) using ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
  by the gateway middleware.
- A circuit breaker for the catalog service to avoid hammering an
  unhealthy dependency, with HALF_OPEN probing after a timeout.
- A retry policy with exponential backoff for transport errors and 5xx.

Business outcomes (404 product missing, 409 product already taken) are
returned to the domain and never count as circuit failures. When retries
are exhausted or the circuit is open the client raises
``UpstreamUnavailableError``.
"""

import logging
import threading
import time
import uuid
from decimal import Decimal
from typing import Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import CatalogPort, Product
from .errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED -> OPEN when consecutive failures reach ``fail_threshold``.
    - OPEN -> HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN -> CLOSED on a successful probe, back to OPEN on failure.
      Only one probe is allowed in flight.

    Thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Admit a call or refuse it.

        Raises:
            UpstreamUnavailableError: If the circuit is OPEN or a HALF_OPEN
                probe is already in flight.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise UpstreamUnavailableError(f"{self.name} circuit is open")
            if st == "HALF_OPEN":
                if self._probe_in_flight:
                    raise UpstreamUnavailableError(f"{self.name} circuit is probing")
                self._probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._probe_in_flight = False
                logger.warning("circuit opened", extra={"circuit": self.name, "failures": self._failures})

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._probe_in_flight = False


catalog_cb = CircuitBreaker(
    "catalog",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build outgoing headers carrying the current ``X-Request-ID``."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_retries, backoff_base_seconds)."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    # Retry only on transport errors or 5xx
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


# ---------------- Catalog Adapter ---------------- #

class HttpCatalogClient(CatalogPort):
    """HTTP client for the catalog service with retry and circuit breaker."""

    # statuses the catalog uses for business outcomes
    EXPECTED = (200, 404, 409)

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.CATALOG_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def get_product(self, product_id: uuid.UUID) -> Optional[Product]:
        """Fetch a product.

        Returns:
            Product | None: The product on 200, None on 404.
        """
        resp = self._send("GET", f"/products/{product_id}")
        if resp.status_code == 404:
            return None
        data = resp.json()
        return Product(
            id=uuid.UUID(str(data["id"])),
            title=data["title"],
            price=Decimal(str(data["price"])),
            seller_id=uuid.UUID(str(data["seller_id"])),
            is_available=bool(data.get("is_available")) and data.get("status", "active") == "active",
        )

    def mark_unavailable(self, product_id: uuid.UUID, order_id: uuid.UUID) -> bool:
        """Reserve the product for ``order_id``.

        200 means the order holds it, including a repeat of a reserve whose
        response was lost. 409 means another order holds it.
        """
        resp = self._send("POST", f"/products/{product_id}/reserve", json={"orderId": str(order_id)})
        if resp.status_code == 200:
            return bool(resp.json().get("reserved", False))
        return False

    def mark_available(self, product_id: uuid.UUID, order_id: uuid.UUID) -> None:
        self._send("POST", f"/products/{product_id}/release", json={"orderId": str(order_id)})

    def ping(self) -> bool:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                return client.get(f"{self.base_url}/health", headers=_request_headers()).status_code == 200
        except httpx.HTTPError:
            return False

    def _send(self, method: str, path: str, json: Optional[dict] = None) -> httpx.Response:
        """Send a request with circuit-breaker precheck and retries.

        Transport errors and 5xx are retried with exponential backoff, at
        most ``HTTP_RETRY_MAX`` times after the first attempt. Any status in
        ``EXPECTED`` is returned to the caller.

        Raises:
            UpstreamUnavailableError: Circuit open, retries exhausted, or an
                unexpected non-retriable status.
        """
        max_retries, backoff = _retry_policy()
        max_retries = max(0, max_retries)
        cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
        tries = 0

        state = catalog_cb.before_call()
        headers = _request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.request(method, f"{self.base_url}{path}", headers=headers, json=json)
                        if resp.status_code in self.EXPECTED:
                            catalog_cb.on_success()
                            return resp
                        if not _should_retry(resp, None):
                            # 4xx we do not understand; the dependency is
                            # healthy but the contract is broken
                            catalog_cb.on_success()
                            raise UpstreamUnavailableError(
                                f"catalog returned unexpected status {resp.status_code} for {method} {path}"
                            )
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries > max_retries:
                        catalog_cb.on_failure()
                        logger.warning(
                            "catalog call failed",
                            extra={"method": method, "path": path, "tries": tries},
                        )
                        raise UpstreamUnavailableError("Catalog service unavailable") from exc

                    sleep_s = backoff * (2 ** (tries - 1))
                    time.sleep(min(sleep_s, cap))
        finally:
            catalog_cb.on_finish()
