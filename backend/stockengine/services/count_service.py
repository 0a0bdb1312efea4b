# backend/stockengine/services/count_service.py
"""
Physical stock count service.

Compares the system on-hand snapshotted at initiation with what was
physically counted, and posts reviewer-approved variances to the ledger as
COUNT_RECONCILE movements.

LIFECYCLE:
1. PENDING: Count created, expected quantities snapshotted
2. COUNTING: Physical quantities being entered
3. REVIEWED: Lines approved or rejected by a reviewer (late lines may
   still be counted and reviewed)
4. COMPLETED: Approved variances posted
5. CANCELLED: Abandoned before posting

Rejected lines never reach the ledger. No backward transitions once COMPLETED.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import IncompleteCountError, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryItem, Product, StockCount, StockCountItem
from ..time_utils import utcnow
from ..validation import format_decimal, require_items, require_key, to_quantity, to_text
from . import audit_service, idempotency_service, inventory_service
from .adjustment_service import record_movement
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_document_number
from .ledger_service import RelatedDocument


# Count status constants
COUNT_STATUS_PENDING = "PENDING"
COUNT_STATUS_COUNTING = "COUNTING"
COUNT_STATUS_REVIEWED = "REVIEWED"
COUNT_STATUS_COMPLETED = "COMPLETED"
COUNT_STATUS_CANCELLED = "CANCELLED"

# Count item status constants
ITEM_STATUS_PENDING = "PENDING"
ITEM_STATUS_COUNTED = "COUNTED"
ITEM_STATUS_APPROVED = "APPROVED"
ITEM_STATUS_REJECTED = "REJECTED"

# Count type constants
COUNT_TYPE_FULL = "FULL"
COUNT_TYPE_PARTIAL = "PARTIAL"

REVIEW_ACTIONS = (ITEM_STATUS_APPROVED, ITEM_STATUS_REJECTED)
COUNTABLE_STATUSES = (COUNT_STATUS_PENDING, COUNT_STATUS_COUNTING, COUNT_STATUS_REVIEWED)
CLOSED_STATUSES = (COUNT_STATUS_COMPLETED, COUNT_STATUS_CANCELLED)

OPERATION_POST_COUNT = "stock_count.post"


def _load_count(tenant_id: int, stock_count_id: int, *, lock: bool = False) -> StockCount:
    query = db.session.query(StockCount).filter_by(id=stock_count_id, tenant_id=tenant_id)
    if lock:
        query = lock_for_update(query)
    count = query.first()
    if not count:
        raise NotFoundError("Stock count not found", stock_count_id=stock_count_id)
    return count


def _items_by_id(count: StockCount) -> dict[int, StockCountItem]:
    return {item.id: item for item in count.items}


def initiate_count(
    *,
    tenant_id: int,
    location_id: int,
    count_type: str,
    user_id: int,
    product_ids=None,
    notes: str | None = None,
    commit: bool = True,
) -> StockCount:
    """
    Start a count and snapshot expected quantities (status: PENDING).

    FULL counts every inventory item at the location whose product is active
    and stock-tracked. PARTIAL counts the given products only; a product with
    no item row yet is expected at zero.

    The snapshot is physical on-hand, not available stock.

    Raises:
        ValidationError: Unknown count type, PARTIAL without products, or
            nothing to count
    """
    if count_type not in (COUNT_TYPE_FULL, COUNT_TYPE_PARTIAL):
        raise ValidationError(f"Invalid count type: {count_type}")

    wanted: list[int] = []
    if count_type == COUNT_TYPE_PARTIAL:
        for product_id in require_items(product_ids, "product_ids"):
            if product_id not in wanted:
                wanted.append(product_id)

    def _op() -> StockCount:
        inventory_service.require_location(tenant_id, location_id)

        snapshot: list[tuple[int, Decimal, Decimal | None]] = []
        if count_type == COUNT_TYPE_FULL:
            rows = (
                db.session.query(InventoryItem)
                .join(Product, Product.id == InventoryItem.product_id)
                .filter(
                    InventoryItem.tenant_id == tenant_id,
                    InventoryItem.location_id == location_id,
                    Product.is_active.is_(True),
                    Product.is_stock_tracked.is_(True),
                )
                .order_by(InventoryItem.product_id.asc())
                .all()
            )
            for item in rows:
                snapshot.append((item.product_id, Decimal(item.quantity_on_hand), item.average_cost))
        else:
            for product_id in wanted:
                inventory_service.require_product(tenant_id, product_id)
                item = inventory_service.get_item(tenant_id, product_id, location_id)
                if item is None:
                    snapshot.append((product_id, Decimal("0"), None))
                else:
                    snapshot.append((product_id, Decimal(item.quantity_on_hand), item.average_cost))

        if not snapshot:
            raise ValidationError("Nothing to count at this location", location_id=location_id)

        year = utcnow().year
        count = StockCount(
            tenant_id=tenant_id,
            location_id=location_id,
            count_number=next_document_number(
                tenant_id=tenant_id,
                document_type=f"STOCK_COUNT_{year}",
                prefix=f"SC-{year}",
                pad=5,
            ),
            count_type=count_type,
            status=COUNT_STATUS_PENDING,
            notes=notes,
            initiated_by_user_id=user_id,
        )
        db.session.add(count)
        db.session.flush()

        for product_id, on_hand, unit_cost in snapshot:
            db.session.add(StockCountItem(
                tenant_id=tenant_id,
                stock_count_id=count.id,
                product_id=product_id,
                snapshot_quantity=on_hand,
                unit_cost_at_snapshot=unit_cost,
                status=ITEM_STATUS_PENDING,
            ))
        db.session.flush()

        audit_service.append_audit_event(
            tenant_id=tenant_id,
            event_type="stock_count.initiated",
            entity_type="stock_count",
            entity_id=count.id,
            actor_user_id=user_id,
            location_id=location_id,
            payload={"count_type": count_type, "items": len(snapshot)},
        )
        return count

    return run_in_transaction(_op, commit=commit)


def enter_counts(
    *,
    tenant_id: int,
    stock_count_id: int,
    user_id: int,
    items,
    commit: bool = True,
) -> StockCount:
    """
    Record physical quantities (no inventory effect).

    Args:
        items: [{"item_id", "counted_quantity", "notes"?}]; item_id is the
            StockCountItem id. Re-entering a COUNTED line overwrites it.

    Lines still uncounted when a REVIEWED count was reviewed can be counted
    here and then reviewed; the count stays REVIEWED.

    Raises:
        InvalidStateError: Count not PENDING/COUNTING/REVIEWED, or line already reviewed
        ValidationError: Negative count or line not on this count
    """
    entries = []
    for raw in require_items(items):
        counted = to_quantity(require_key(raw, "counted_quantity"), "counted_quantity")
        if counted < 0:
            raise ValidationError("counted_quantity cannot be negative")
        entries.append({
            "item_id": require_key(raw, "item_id"),
            "counted_quantity": counted,
            "notes": to_text(raw.get("notes")),
        })

    def _op() -> StockCount:
        count = _load_count(tenant_id, stock_count_id, lock=True)
        if count.status not in COUNTABLE_STATUSES:
            raise InvalidStateError(
                f"Cannot enter counts in {count.status} status",
                stock_count_id=stock_count_id,
                status=count.status,
            )

        by_id = _items_by_id(count)
        now = utcnow()
        for entry in entries:
            item = by_id.get(entry["item_id"])
            if item is None:
                raise ValidationError("Item is not on this count", item_id=entry["item_id"])
            if item.status in REVIEW_ACTIONS:
                raise InvalidStateError(
                    f"Cannot recount an item that is {item.status}",
                    item_id=item.id,
                )
            item.counted_quantity = entry["counted_quantity"]
            item.variance = entry["counted_quantity"] - Decimal(item.snapshot_quantity)
            item.status = ITEM_STATUS_COUNTED
            item.counted_by_user_id = user_id
            item.counted_at = now
            if entry["notes"] is not None:
                item.notes = entry["notes"]

        if count.status == COUNT_STATUS_PENDING:
            count.status = COUNT_STATUS_COUNTING
        db.session.flush()
        return count

    return run_in_transaction(_op, commit=commit)


def review_count(
    *,
    tenant_id: int,
    stock_count_id: int,
    user_id: int,
    items,
    commit: bool = True,
) -> StockCount:
    """
    Approve or reject counted lines (status: REVIEWED).

    Args:
        items: [{"item_id", "action": "APPROVED"|"REJECTED", "notes"?}];
            a reviewed line may be reviewed again to change the decision

    Raises:
        InvalidStateError: Count not COUNTING/REVIEWED, or line not counted yet
        ValidationError: Unknown action or line not on this count
    """
    decisions = []
    for raw in require_items(items):
        action = require_key(raw, "action")
        if action not in REVIEW_ACTIONS:
            raise ValidationError(f"Invalid review action: {action}")
        decisions.append({
            "item_id": require_key(raw, "item_id"),
            "action": action,
            "notes": to_text(raw.get("notes")),
        })

    def _op() -> StockCount:
        count = _load_count(tenant_id, stock_count_id, lock=True)
        if count.status not in (COUNT_STATUS_COUNTING, COUNT_STATUS_REVIEWED):
            raise InvalidStateError(
                f"Cannot review count in {count.status} status",
                stock_count_id=stock_count_id,
                status=count.status,
            )

        by_id = _items_by_id(count)
        for decision in decisions:
            item = by_id.get(decision["item_id"])
            if item is None:
                raise ValidationError("Item is not on this count", item_id=decision["item_id"])
            if item.status == ITEM_STATUS_PENDING:
                raise InvalidStateError("Cannot review an item that has not been counted", item_id=item.id)
            item.status = decision["action"]
            if decision["notes"] is not None:
                item.review_notes = decision["notes"]

        count.status = COUNT_STATUS_REVIEWED
        count.reviewed_by_user_id = user_id
        count.reviewed_at = utcnow()
        db.session.flush()
        return count

    return run_in_transaction(_op, commit=commit)


def post_count(
    *,
    tenant_id: int,
    stock_count_id: int,
    user_id: int,
    idempotency_key: str | None = None,
    commit: bool = True,
) -> StockCount:
    """
    Post approved variances to the ledger (status: COMPLETED).

    One COUNT_RECONCILE movement per APPROVED line with a non-zero variance;
    REJECTED lines and zero variances write nothing.

    Raises:
        InvalidStateError: Count already COMPLETED/CANCELLED or not REVIEWED
        IncompleteCountError: Some lines are still PENDING or COUNTED
    """
    def _op() -> StockCount:
        replay = idempotency_service.find_replay(tenant_id, idempotency_key, OPERATION_POST_COUNT)
        if replay:
            return _load_count(tenant_id, replay.entity_id)

        count = _load_count(tenant_id, stock_count_id, lock=True)
        if count.status in CLOSED_STATUSES:
            raise InvalidStateError(
                f"Cannot post count in {count.status} status",
                stock_count_id=stock_count_id,
                status=count.status,
            )

        unreviewed = [item.id for item in count.items if item.status not in REVIEW_ACTIONS]
        if unreviewed:
            raise IncompleteCountError(
                "All items must be approved or rejected before posting",
                stock_count_id=stock_count_id,
                unreviewed_item_ids=unreviewed,
            )
        if count.status != COUNT_STATUS_REVIEWED:
            raise InvalidStateError(
                f"Cannot post count in {count.status} status",
                stock_count_id=stock_count_id,
                status=count.status,
            )

        related = RelatedDocument("STOCK_COUNT", count.id)
        posted = 0
        for item in count.items:
            if item.status != ITEM_STATUS_APPROVED:
                continue
            variance = Decimal(item.variance or 0)
            if variance == 0:
                continue
            _, txn = record_movement(
                tenant_id=tenant_id,
                product_id=item.product_id,
                location_id=count.location_id,
                transaction_type="COUNT_RECONCILE",
                quantity_change=variance,
                user_id=user_id,
                related_document=related,
                unit_cost=item.unit_cost_at_snapshot,
                notes=f"Stock count {count.count_number}",
                idempotency_key=idempotency_key,
            )
            item.inventory_transaction_id = txn.id
            posted += 1

        count.status = COUNT_STATUS_COMPLETED
        count.completed_by_user_id = user_id
        count.completed_at = utcnow()
        db.session.flush()

        audit_service.append_audit_event(
            tenant_id=tenant_id,
            event_type="stock_count.posted",
            entity_type="stock_count",
            entity_id=count.id,
            actor_user_id=user_id,
            location_id=count.location_id,
            payload={"movements": posted},
        )
        idempotency_service.remember(
            tenant_id, idempotency_key, OPERATION_POST_COUNT, "stock_count", count.id
        )
        return count

    count = run_in_transaction(_op, commit=commit)
    current_app.logger.info("Stock count %s posted", count.count_number)
    return count


def cancel_count(
    *,
    tenant_id: int,
    stock_count_id: int,
    user_id: int,
    reason: str | None = None,
    commit: bool = True,
) -> StockCount:
    """Cancel a count that has not been posted; nothing reaches the ledger."""
    def _op() -> StockCount:
        count = _load_count(tenant_id, stock_count_id, lock=True)
        if count.status in CLOSED_STATUSES:
            raise InvalidStateError(
                f"Cannot cancel count in {count.status} status",
                stock_count_id=stock_count_id,
                status=count.status,
            )

        count.status = COUNT_STATUS_CANCELLED
        count.cancelled_by_user_id = user_id
        count.cancelled_at = utcnow()
        count.cancellation_reason = reason
        db.session.flush()

        audit_service.append_audit_event(
            tenant_id=tenant_id,
            event_type="stock_count.cancelled",
            entity_type="stock_count",
            entity_id=count.id,
            actor_user_id=user_id,
            location_id=count.location_id,
            note=reason,
        )
        return count

    return run_in_transaction(_op, commit=commit)


def get_count(tenant_id: int, stock_count_id: int) -> StockCount:
    return _load_count(tenant_id, stock_count_id)


def get_count_summary(tenant_id: int, stock_count_id: int) -> dict:
    """
    Count header, lines and totals.

    Variance totals cover counted lines that were not rejected.
    """
    count = _load_count(tenant_id, stock_count_id)
    items = count.items

    counted = [i for i in items if i.status != ITEM_STATUS_PENDING]
    effective = [i for i in counted if i.status != ITEM_STATUS_REJECTED]

    variance_units = sum((Decimal(i.variance or 0) for i in effective), Decimal("0"))
    variance_value = sum(
        (i.variance_value for i in effective if i.variance_value is not None),
        Decimal("0"),
    )

    return {
        "count": count.to_dict(),
        "items": [i.to_dict() for i in items],
        "total_items": len(items),
        "counted_items": len(counted),
        "approved_items": sum(1 for i in items if i.status == ITEM_STATUS_APPROVED),
        "rejected_items": sum(1 for i in items if i.status == ITEM_STATUS_REJECTED),
        "total_variance_units": format_decimal(variance_units),
        "total_variance_value": format_decimal(variance_value),
    }


def list_counts(
    tenant_id: int,
    location_id: int | None = None,
    status: str | None = None,
) -> list[StockCount]:
    q = db.session.query(StockCount).filter(StockCount.tenant_id == tenant_id)
    if location_id is not None:
        q = q.filter(StockCount.location_id == location_id)
    if status:
        q = q.filter(StockCount.status == status)
    return q.order_by(StockCount.id.desc()).all()
