"""Catalog service API built with FastAPI.

This module exposes the listing operations the order engine needs when the
catalog runs out of process: product lookup, reserving a listing for an
order and releasing it again when the order could not be stored.
Validation is performed with Pydantic models, while persistence and the
conditional availability flip are delegated to the SQLAlchemy-backed
repository in ``repo.CatalogRepo``.
"""

import logging
import time
import uuid
from decimal import Decimal

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pythonjsonlogger import jsonlogger
from sqlalchemy import text

from repo import ACTIVE, CatalogRepo, engine, init_db

app = FastAPI(title="Catalog Service")

# logger JSON
logger = logging.getLogger("catalog")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # wait briefly for the database to accept connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


class ProductIn(BaseModel):
    """Request body for creating or replacing a listing."""

    title: str = Field(min_length=1, max_length=200)
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    seller_id: uuid.UUID
    is_available: bool = True
    status: str = Field(default=ACTIVE, pattern=r"^(active|inactive|removed)$")


class ProductOut(BaseModel):
    id: uuid.UUID
    title: str
    price: Decimal
    seller_id: uuid.UUID
    is_available: bool
    status: str


class HoldIn(BaseModel):
    """Request body for reserve and release: the order taking the listing."""

    order_id: uuid.UUID = Field(alias="orderId")


class ReserveResponse(BaseModel):
    """Response body for the reserve endpoint.

    Attributes:
        reserved: Whether the order holds the listing.
        detail: Error code when it did not.
    """

    reserved: bool
    detail: str | None = None


def _to_out(row) -> ProductOut:
    return ProductOut(
        id=row.id,
        title=row.title,
        price=row.price,
        seller_id=row.seller_id,
        is_available=row.is_available,
        status=row.status,
    )


@app.get("/health")
def health():
    """Liveness/health probe endpoint."""
    return {"ok": True}


@app.get("/products/{product_id}", response_model=ProductOut)
def get_product(product_id: uuid.UUID):
    row = CatalogRepo().get(product_id)
    if row is None:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    return _to_out(row)


@app.put("/products/{product_id}", response_model=ProductOut)
def put_product(product_id: uuid.UUID, body: ProductIn):
    repo = CatalogRepo()
    repo.upsert(product_id, body.title, body.price, body.seller_id, body.is_available, body.status)
    return _to_out(repo.get(product_id))


@app.post("/products/{product_id}/reserve", response_model=ReserveResponse)
def reserve(product_id: uuid.UUID, body: HoldIn):
    """Take a listing off the market for an order.

    Reserving again for the order that already holds the listing answers
    200 as well.

    Returns:
        ReserveResponse: ``reserved=True`` when the order holds the listing.

    Raises:
        HTTPException: 404 when the listing does not exist.
    """
    repo = CatalogRepo()
    if repo.reserve(product_id, body.order_id):
        logger.info("product reserved", extra={"product_id": str(product_id), "order_id": str(body.order_id)})
        return ReserveResponse(reserved=True)
    if repo.get(product_id) is None:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    # already sold or no longer listed
    return JSONResponse(status_code=409, content={"reserved": False, "detail": "PRODUCT_UNAVAILABLE"})


@app.post("/products/{product_id}/release")
def release(product_id: uuid.UUID, body: HoldIn):
    """Put a listing back on the market (compensation for a failed order).

    A release from an order that does not hold the listing changes nothing
    and answers ``released=False``.
    """
    repo = CatalogRepo()
    if repo.release(product_id, body.order_id):
        logger.info("product released", extra={"product_id": str(product_id), "order_id": str(body.order_id)})
        return {"released": True}
    if repo.get(product_id) is None:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    return {"released": False}


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
