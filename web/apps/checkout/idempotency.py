"""Idempotency-Key handling for checkout submissions.

A checkout is not idempotent by itself: repeating it creates new
transactions. Clients that may retry send an ``Idempotency-Key`` header;
the first request with a key is processed and its response stored, later
requests with the same key and payload get the stored response back, and
reusing a key with a different payload is a conflict.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from .models import IdempotencyKey


class IdempotencyConflict(Exception):
    """The key was already used with a different payload."""


def request_hash(payload: dict) -> str:
    """Return the SHA-256 hex digest of a canonical JSON encoding of ``payload``."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def claim(key: str, payload: dict):
    """Get-or-create the idempotency record for ``key``.

    Args:
        key: Client-provided idempotency key.
        payload: Request body used to detect key reuse.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, rec)``; ``existing`` is
        True when an earlier request already claimed the key.

    Raises:
        IdempotencyConflict: The key exists with a different payload hash.
    """
    h = request_hash(payload)
    try:
        # savepoint so an IntegrityError only rolls back the insert
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(key=key, request_hash=h)
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise IdempotencyConflict(key)
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict) -> None:
    """Store the response so retries can return it without side effects."""
    rec.response_status = status_code
    rec.response_body = body
    rec.save(update_fields=["response_status", "response_body"])
