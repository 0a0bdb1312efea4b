# Overview: Append-only stock ledger; every quantity change is one InventoryTransaction row.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import InventoryTransaction
from ..time_utils import normalize_datetime, utcnow
from ..validation import to_cost, to_nonzero_quantity, to_text
"""
Stock Ledger Invariants (authoritative)

- Append-only: rows are never updated or deleted.
- Every row references exactly one related document.
- The ledger performs no counter mutation; callers write the row and the
  InventoryItem counter update inside the same DB transaction.
- SUM(quantity_change) per (tenant, product, location) is the true on-hand.
"""


TRANSACTION_TYPES = (
    "SALE",
    "RETURN",
    "ADJUSTMENT",
    "TRANSFER_OUT",
    "TRANSFER_OUT_REVERSAL",
    "TRANSFER_IN",
    "PO_RECEIPT",
    "COUNT_RECONCILE",
)

RELATED_DOCUMENT_TYPES = (
    "ORDER",
    "PURCHASE_ORDER",
    "TRANSFER",
    "ADJUSTMENT",
    "STOCK_COUNT",
    "RETURN",
)


@dataclass(frozen=True)
class RelatedDocument:
    """The single business document a ledger row belongs to."""
    kind: str
    id: int

    def __post_init__(self):
        if self.kind not in RELATED_DOCUMENT_TYPES:
            raise ValidationError(f"Unknown related document type: {self.kind}")
        if self.id is None or isinstance(self.id, bool) or not isinstance(self.id, int):
            raise ValidationError("related document id must be an integer")


def record(
    *,
    tenant_id: int,
    product_id: int,
    location_id: int,
    transaction_type: str,
    quantity_change,
    user_id: int | None,
    related_document: RelatedDocument,
    unit_cost=None,
    notes: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    occurred_at: Optional[datetime] = None,
) -> int:
    """
    Append one ledger row and return its id.

    - No counter mutation here (see inventory_service.apply_movement).
    - Flushes so the id is assigned; never commits.
    """
    if transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"Unknown transaction type: {transaction_type}")
    if not isinstance(related_document, RelatedDocument):
        raise ValidationError("related_document is required")

    qty = to_nonzero_quantity(quantity_change)
    cost = to_cost(unit_cost)
    notes = to_text(notes)

    txn = InventoryTransaction(
        tenant_id=tenant_id,
        product_id=product_id,
        location_id=location_id,
        transaction_type=transaction_type,
        quantity_change=qty,
        unit_cost=cost,
        related_document_type=related_document.kind,
        related_document_id=related_document.id,
        user_id=user_id,
        notes=notes,
        idempotency_key=idempotency_key,
        occurred_at=normalize_datetime(occurred_at) or utcnow(),
    )
    db.session.add(txn)
    db.session.flush()
    return txn.id


def get_transaction(tenant_id: int, transaction_id: int) -> InventoryTransaction | None:
    return db.session.query(InventoryTransaction).filter_by(
        tenant_id=tenant_id, id=transaction_id
    ).first()


def list_by_product(
    tenant_id: int,
    product_id: int,
    location_id: int | None = None,
    limit: int = 200,
) -> list[InventoryTransaction]:
    """Ledger history for a product, oldest first."""
    q = db.session.query(InventoryTransaction).filter(
        InventoryTransaction.tenant_id == tenant_id,
        InventoryTransaction.product_id == product_id,
    )
    if location_id is not None:
        q = q.filter(InventoryTransaction.location_id == location_id)

    limit = max(1, min(int(limit), 1000))
    return q.order_by(InventoryTransaction.occurred_at.asc(), InventoryTransaction.id.asc()).limit(limit).all()


def list_by_date_range(
    tenant_id: int,
    start,
    end,
    location_id: int | None = None,
    transaction_type: str | None = None,
) -> list[InventoryTransaction]:
    """
    Ledger rows with start <= occurred_at <= end (both inclusive).

    start/end accept datetimes or ISO-8601 strings.
    """
    start_dt = normalize_datetime(start)
    end_dt = normalize_datetime(end)
    if start_dt is None or end_dt is None:
        raise ValidationError("start and end are required")
    if start_dt > end_dt:
        raise ValidationError("start must be before end")
    if transaction_type is not None and transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"Unknown transaction type: {transaction_type}")

    q = db.session.query(InventoryTransaction).filter(
        InventoryTransaction.tenant_id == tenant_id,
        InventoryTransaction.occurred_at >= start_dt,
        InventoryTransaction.occurred_at <= end_dt,
    )
    if location_id is not None:
        q = q.filter(InventoryTransaction.location_id == location_id)
    if transaction_type is not None:
        q = q.filter(InventoryTransaction.transaction_type == transaction_type)

    return q.order_by(InventoryTransaction.occurred_at.asc(), InventoryTransaction.id.asc()).all()


def list_by_related_document(tenant_id: int, related_document: RelatedDocument) -> list[InventoryTransaction]:
    return (
        db.session.query(InventoryTransaction)
        .filter_by(
            tenant_id=tenant_id,
            related_document_type=related_document.kind,
            related_document_id=related_document.id,
        )
        .order_by(InventoryTransaction.id.asc())
        .all()
    )


def sum_quantity(tenant_id: int, product_id: int, location_id: int) -> Decimal:
    """Ledger-derived on-hand for one key (0 when no rows)."""
    total = (
        db.session.query(func.coalesce(func.sum(InventoryTransaction.quantity_change), 0))
        .filter(
            InventoryTransaction.tenant_id == tenant_id,
            InventoryTransaction.product_id == product_id,
            InventoryTransaction.location_id == location_id,
        )
        .scalar()
    )
    return Decimal(str(total or 0))
