# Overview: The movement primitive plus adjustments, sales, returns and PO receipts built on it.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryAdjustment, InventoryAdjustmentItem, InventoryItem, InventoryTransaction
from ..validation import (
    MAX_CODE_LENGTH,
    require_items,
    require_key,
    to_cost,
    to_nonzero_quantity,
    to_positive_quantity,
    to_text,
)
from . import audit_service, idempotency_service, inventory_service, ledger_service, settings_service
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_document_number
from .ledger_service import RelatedDocument
"""
Movement Invariants (authoritative)

- record_movement is the ONLY way on-hand changes: one ledger row plus one
  counter increment, in the same DB transaction, never committed here.
- Negative on-hand is refused only when the tenant policy disallows it.
- Only inbound PO_RECEIPT, RETURN and TRANSFER_IN movements carrying a unit
  cost feed the moving average cost.
- Adjustments are immutable once posted; corrections are new adjustments.
"""

COST_BEARING_TYPES = ("PO_RECEIPT", "RETURN", "TRANSFER_IN")

OPERATION_POST_ADJUSTMENT = "adjustment.post"


def record_movement(
    *,
    tenant_id: int,
    product_id: int,
    location_id: int,
    transaction_type: str,
    quantity_change,
    user_id: int | None,
    related_document: RelatedDocument,
    unit_cost=None,
    notes: str | None = None,
    idempotency_key: str | None = None,
    policy=None,
) -> tuple[InventoryItem, InventoryTransaction]:
    """
    Write one ledger row and apply it to the item counters.

    Args:
        quantity_change: Signed, non-zero quantity in base units
        related_document: The business document this movement belongs to
        unit_cost: Stored on the ledger row; feeds average cost for
            PO_RECEIPT/RETURN/TRANSFER_IN

    Returns:
        (InventoryItem, InventoryTransaction)

    Raises:
        InsufficientStockError: Movement would take on-hand below zero and the
            tenant does not allow negative stock
    """
    qty = to_nonzero_quantity(quantity_change)
    cost = to_cost(unit_cost)
    if policy is None:
        policy = settings_service.get_inventory_settings(tenant_id)

    if qty < 0:
        item = lock_for_update(
            db.session.query(InventoryItem).filter_by(
                tenant_id=tenant_id, product_id=product_id, location_id=location_id
            )
        ).first()
        on_hand = Decimal(item.quantity_on_hand) if item is not None else Decimal("0")
        resulting = on_hand + qty
        if resulting < 0:
            if not policy.allow_negative_stock:
                raise InsufficientStockError(
                    "Movement would make on-hand negative",
                    product_id=product_id,
                    location_id=location_id,
                    on_hand=str(on_hand),
                    quantity_change=str(qty),
                )
            current_app.logger.warning(
                "Negative stock allowed by policy: tenant=%s product=%s location=%s on_hand=%s",
                tenant_id, product_id, location_id, resulting,
            )

    txn_id = ledger_service.record(
        tenant_id=tenant_id,
        product_id=product_id,
        location_id=location_id,
        transaction_type=transaction_type,
        quantity_change=qty,
        user_id=user_id,
        related_document=related_document,
        unit_cost=cost,
        notes=notes,
        idempotency_key=idempotency_key,
    )

    cost_basis = cost if transaction_type in COST_BEARING_TYPES else None
    item = inventory_service.apply_movement(
        tenant_id=tenant_id,
        product_id=product_id,
        location_id=location_id,
        quantity_change=qty,
        cost_basis=cost_basis,
        policy=policy,
    )
    return item, db.session.get(InventoryTransaction, txn_id)


# ===== ADJUSTMENTS =====

def _parse_adjustment_lines(items) -> list[dict]:
    lines = []
    for raw in require_items(items):
        product_id = require_key(raw, "product_id")
        lines.append({
            "product_id": product_id,
            "quantity_change": to_nonzero_quantity(require_key(raw, "quantity_change")),
            "unit_cost": to_cost(raw.get("unit_cost")),
            "notes": to_text(raw.get("notes")),
        })
    return lines


def post_adjustment(
    *,
    tenant_id: int,
    location_id: int,
    user_id: int,
    items,
    reason_code: str | None = None,
    notes: str | None = None,
    idempotency_key: str | None = None,
    commit: bool = True,
) -> InventoryAdjustment:
    """
    Post a manual quantity adjustment at one location.

    Every line becomes one ADJUSTMENT ledger row; the header, lines, ledger
    rows and counters commit together or not at all.

    Args:
        items: [{"product_id", "quantity_change", "unit_cost"?, "notes"?}]
        idempotency_key: Replaying a key returns the adjustment it produced

    Raises:
        ValidationError: Empty items, zero quantity, inactive or untracked product,
            or a line note or reason code longer than its column
        NotFoundError: Location or product not in this tenant
    """
    lines = _parse_adjustment_lines(items)
    reason_code = to_text(reason_code, "reason_code", max_length=MAX_CODE_LENGTH)

    def _op() -> InventoryAdjustment:
        replay = idempotency_service.find_replay(tenant_id, idempotency_key, OPERATION_POST_ADJUSTMENT)
        if replay:
            return get_adjustment(tenant_id, replay.entity_id)

        inventory_service.require_location(tenant_id, location_id)
        for line in lines:
            inventory_service.require_product(tenant_id, line["product_id"])

        policy = settings_service.get_inventory_settings(tenant_id)
        adjustment = InventoryAdjustment(
            tenant_id=tenant_id,
            location_id=location_id,
            document_number=next_document_number(
                tenant_id=tenant_id, document_type="ADJUSTMENT", prefix="ADJ"
            ),
            reason_code=reason_code,
            notes=notes,
            created_by_user_id=user_id,
        )
        db.session.add(adjustment)
        db.session.flush()

        related = RelatedDocument("ADJUSTMENT", adjustment.id)
        for line in lines:
            _, txn = record_movement(
                tenant_id=tenant_id,
                product_id=line["product_id"],
                location_id=location_id,
                transaction_type="ADJUSTMENT",
                quantity_change=line["quantity_change"],
                user_id=user_id,
                related_document=related,
                unit_cost=line["unit_cost"],
                notes=line["notes"] or reason_code,
                idempotency_key=idempotency_key,
                policy=policy,
            )
            db.session.add(InventoryAdjustmentItem(
                tenant_id=tenant_id,
                adjustment_id=adjustment.id,
                product_id=line["product_id"],
                quantity_change=line["quantity_change"],
                unit_cost=line["unit_cost"],
                inventory_transaction_id=txn.id,
            ))
        db.session.flush()

        audit_service.append_audit_event(
            tenant_id=tenant_id,
            event_type="adjustment.posted",
            entity_type="inventory_adjustment",
            entity_id=adjustment.id,
            actor_user_id=user_id,
            location_id=location_id,
            note=reason_code,
            payload={"document_number": adjustment.document_number, "lines": len(lines)},
        )
        idempotency_service.remember(
            tenant_id, idempotency_key, OPERATION_POST_ADJUSTMENT, "inventory_adjustment", adjustment.id
        )
        return adjustment

    adjustment = run_in_transaction(_op, commit=commit)
    current_app.logger.info(
        "Adjustment %s posted at location %s (%d lines)",
        adjustment.document_number, location_id, len(lines),
    )
    return adjustment


def get_adjustment(tenant_id: int, adjustment_id: int) -> InventoryAdjustment:
    adjustment = db.session.query(InventoryAdjustment).filter_by(
        id=adjustment_id, tenant_id=tenant_id
    ).first()
    if not adjustment:
        raise NotFoundError("Adjustment not found", adjustment_id=adjustment_id)
    return adjustment


def list_adjustments(tenant_id: int, location_id: int | None = None) -> list[InventoryAdjustment]:
    q = db.session.query(InventoryAdjustment).filter(InventoryAdjustment.tenant_id == tenant_id)
    if location_id is not None:
        q = q.filter(InventoryAdjustment.location_id == location_id)
    return q.order_by(InventoryAdjustment.id.desc()).all()


# ===== ORDER / RETURN / PURCHASE ORDER ENTRY POINTS =====

def record_sale(
    *,
    tenant_id: int,
    product_id: int,
    location_id: int,
    quantity,
    order_id: int,
    user_id: int | None = None,
    release_allocation: bool = False,
    notes: str | None = None,
    commit: bool = True,
) -> tuple[InventoryItem, InventoryTransaction]:
    """
    Take sold stock out of a location (SALE, negative).

    With release_allocation the same quantity is first released from the
    order's allocation. When the tenant enforces available stock on sale the
    quantity must not exceed what is available.
    """
    qty = to_positive_quantity(quantity)
    if order_id is None:
        raise ValidationError("order_id is required for a sale")

    def _op():
        inventory_service.require_product(tenant_id, product_id)
        inventory_service.require_location(tenant_id, location_id)
        policy = settings_service.get_inventory_settings(tenant_id)

        if release_allocation:
            inventory_service.release(
                tenant_id=tenant_id,
                product_id=product_id,
                location_id=location_id,
                quantity=qty,
                commit=False,
            )

        if policy.enforce_available_on_sale:
            item = inventory_service.get_item(tenant_id, product_id, location_id)
            available = item.quantity_available if item is not None else Decimal("0")
            if available < qty:
                raise InsufficientStockError(
                    "Insufficient available stock for sale",
                    product_id=product_id,
                    location_id=location_id,
                    requested=str(qty),
                    available=str(available),
                )

        return record_movement(
            tenant_id=tenant_id,
            product_id=product_id,
            location_id=location_id,
            transaction_type="SALE",
            quantity_change=-qty,
            user_id=user_id,
            related_document=RelatedDocument("ORDER", order_id),
            notes=notes,
            policy=policy,
        )

    return run_in_transaction(_op, commit=commit)


def record_return(
    *,
    tenant_id: int,
    product_id: int,
    location_id: int,
    quantity,
    return_id: int,
    unit_cost=None,
    user_id: int | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> tuple[InventoryItem, InventoryTransaction]:
    """Put returned stock back into a location (RETURN, positive)."""
    qty = to_positive_quantity(quantity)
    cost = to_cost(unit_cost)
    if return_id is None:
        raise ValidationError("return_id is required for a return")

    def _op():
        inventory_service.require_product(tenant_id, product_id)
        inventory_service.require_location(tenant_id, location_id)
        return record_movement(
            tenant_id=tenant_id,
            product_id=product_id,
            location_id=location_id,
            transaction_type="RETURN",
            quantity_change=qty,
            user_id=user_id,
            related_document=RelatedDocument("RETURN", return_id),
            unit_cost=cost,
            notes=notes,
        )

    return run_in_transaction(_op, commit=commit)


def receive_purchase_order_line(
    *,
    tenant_id: int,
    product_id: int,
    location_id: int,
    quantity,
    unit_cost,
    purchase_order_id: int,
    user_id: int | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> tuple[InventoryItem, InventoryTransaction]:
    """
    Receive purchased stock (PO_RECEIPT, positive).

    The unit cost feeds the moving average; quantity_incoming drops by the
    received quantity (floored at zero).
    """
    qty = to_positive_quantity(quantity)
    cost = to_cost(unit_cost)
    if cost is None:
        raise ValidationError("unit_cost is required for a purchase order receipt")
    if purchase_order_id is None:
        raise ValidationError("purchase_order_id is required for a purchase order receipt")

    def _op():
        inventory_service.require_product(tenant_id, product_id)
        inventory_service.require_location(tenant_id, location_id)
        item, txn = record_movement(
            tenant_id=tenant_id,
            product_id=product_id,
            location_id=location_id,
            transaction_type="PO_RECEIPT",
            quantity_change=qty,
            user_id=user_id,
            related_document=RelatedDocument("PURCHASE_ORDER", purchase_order_id),
            unit_cost=cost,
            notes=notes,
        )
        item = inventory_service.adjust_incoming(
            tenant_id=tenant_id,
            product_id=product_id,
            location_id=location_id,
            quantity_change=-qty,
            commit=False,
        )
        return item, txn

    return run_in_transaction(_op, commit=commit)
