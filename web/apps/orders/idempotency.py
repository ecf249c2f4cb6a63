"""Idempotency utilities for safely handling duplicate order requests.

This module stores and retrieves idempotency keys so a client retrying an
order placement never buys twice. Keys are scoped to the caller: the same
key sent by two users identifies two unrelated requests.
"""

import hashlib, json
from django.db import transaction, IntegrityError
from .models import IdempotencyKey

# longest client key that still fits IdempotencyKey.key once scoped
MAX_CLIENT_KEY_LENGTH = 200


def _hash(payload: dict) -> str:
    """Compute a stable SHA-256 hash for a JSON-serializable payload.

    The payload is serialized with sorted keys and compact separators to
    ensure a deterministic representation before hashing.
    """
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def scoped_key(user_id, key: str) -> str:
    return f"{user_id}:{key}"


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict):
    """Get-or-create an idempotency record for the given key and payload.

    Behavior:
        - First request with a new key: create a record and return
          ``(False, rec)``; the caller processes the request and calls
          ``finalize``.
        - Retry with the same key and payload: lock the row and return
          ``(True, rec)``.
        - Same key with a different payload: raise
          ``ValueError("IDEMPOTENCY_CONFLICT")``.

    The create path runs in a nested savepoint so an ``IntegrityError`` only
    rolls back that block; the existing-record path takes a row lock
    (``SELECT ... FOR UPDATE``) to avoid races under concurrency.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, rec)``.
    """
    h = _hash(payload)

    try:
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(key=key, request_hash=h, response_status=0, response_body={})
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise ValueError("IDEMPOTENCY_CONFLICT")
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None):
    """Persist the final response for an idempotent request.

    Subsequent retries replay this status and body without re-running side
    effects.
    """
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order"])


def discard(rec: IdempotencyKey):
    """Forget a key whose request failed for infrastructure reasons.

    The client may retry with the same key and have the request processed
    afresh.
    """
    rec.delete()
