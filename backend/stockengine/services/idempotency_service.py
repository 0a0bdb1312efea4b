# Overview: Idempotency keys for mutations that must not be applied twice.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ValidationError
from ..extensions import db
from ..models import IdempotencyRecord

MAX_KEY_LENGTH = 128


def _normalize_key(key) -> str | None:
    if key is None:
        return None
    key = str(key).strip()
    if not key:
        return None
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationError(f"idempotency_key exceeds max length {MAX_KEY_LENGTH}")
    return key


def find_replay(tenant_id: int, key, operation: str) -> IdempotencyRecord | None:
    """
    Return the record left by an earlier call with this key, if any.

    A key is bound to the operation that first used it; reusing it for a
    different operation is a caller bug.
    """
    key = _normalize_key(key)
    if key is None:
        return None

    rec = db.session.query(IdempotencyRecord).filter_by(
        tenant_id=tenant_id, idempotency_key=key
    ).first()
    if rec and rec.operation != operation:
        raise ValidationError(
            "idempotency_key already used for a different operation",
            idempotency_key=key,
            operation=rec.operation,
        )
    return rec


def remember(tenant_id: int, key, operation: str, entity_type: str, entity_id: int) -> IdempotencyRecord | None:
    """Store the key in the current unit of work (no-op when key is empty)."""
    key = _normalize_key(key)
    if key is None:
        return None

    rec = IdempotencyRecord(
        tenant_id=tenant_id,
        idempotency_key=key,
        operation=operation,
        entity_type=entity_type,
        entity_id=entity_id,
    )
    db.session.add(rec)
    try:
        db.session.flush()
    except IntegrityError as exc:
        # Same key committed by a concurrent call; the retry will replay it.
        raise StaleDataError(f"idempotency key {key!r} recorded concurrently") from exc
    return rec
