# Overview: Ledger-vs-counter verification and repair; the ledger is authoritative.

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import InventoryItem, InventoryTransaction
from ..validation import QUANTITY_QUANT, format_decimal
from . import audit_service, inventory_service, ledger_service
from .concurrency import run_in_transaction


def _q(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(QUANTITY_QUANT)


def verify_item(tenant_id: int, product_id: int, location_id: int) -> dict:
    """Compare one item's on-hand with the ledger sum for the same key."""
    item = inventory_service.get_item(tenant_id, product_id, location_id)
    on_hand = _q(item.quantity_on_hand) if item is not None else _q(0)
    ledger_sum = _q(ledger_service.sum_quantity(tenant_id, product_id, location_id))
    return {
        "tenant_id": tenant_id,
        "product_id": product_id,
        "location_id": location_id,
        "item_id": item.id if item is not None else None,
        "quantity_on_hand": on_hand,
        "ledger_quantity": ledger_sum,
        "difference": on_hand - ledger_sum,
        "consistent": on_hand == ledger_sum,
    }


def find_discrepancies(tenant_id: int | None = None) -> list[dict]:
    """Every key whose counter disagrees with its ledger (optionally one tenant)."""
    sums = db.session.query(
        InventoryTransaction.tenant_id,
        InventoryTransaction.product_id,
        InventoryTransaction.location_id,
        func.sum(InventoryTransaction.quantity_change),
    )
    items = db.session.query(InventoryItem)
    if tenant_id is not None:
        sums = sums.filter(InventoryTransaction.tenant_id == tenant_id)
        items = items.filter(InventoryItem.tenant_id == tenant_id)
    sums = sums.group_by(
        InventoryTransaction.tenant_id,
        InventoryTransaction.product_id,
        InventoryTransaction.location_id,
    )

    ledger = {(t, p, loc): _q(total) for t, p, loc, total in sums.all()}

    found = []
    for item in items.order_by(InventoryItem.id.asc()).all():
        key = (item.tenant_id, item.product_id, item.location_id)
        expected = ledger.pop(key, _q(0))
        on_hand = _q(item.quantity_on_hand)
        if on_hand != expected:
            found.append({
                "tenant_id": item.tenant_id,
                "product_id": item.product_id,
                "location_id": item.location_id,
                "item_id": item.id,
                "quantity_on_hand": on_hand,
                "ledger_quantity": expected,
                "difference": on_hand - expected,
                "consistent": False,
            })

    # Ledger rows without a counter row at all
    for (t, p, loc), expected in sorted(ledger.items()):
        if expected != 0:
            found.append({
                "tenant_id": t,
                "product_id": p,
                "location_id": loc,
                "item_id": None,
                "quantity_on_hand": _q(0),
                "ledger_quantity": expected,
                "difference": -expected,
                "consistent": False,
            })
    return found


def repair_discrepancies(tenant_id: int | None = None, *, user_id: int | None = None, commit: bool = True) -> list[dict]:
    """
    Reset drifted counters to the ledger sum.

    Only quantity_on_hand is rewritten; the ledger is never touched. Each
    repair leaves an audit event.
    """
    def _op() -> list[dict]:
        repaired = []
        for found in find_discrepancies(tenant_id):
            item = inventory_service.get_or_create_item(
                found["tenant_id"], found["product_id"], found["location_id"], lock=True
            )
            item.quantity_on_hand = found["ledger_quantity"]
            db.session.flush()

            audit_service.append_audit_event(
                tenant_id=found["tenant_id"],
                event_type="inventory_item.repaired",
                entity_type="inventory_item",
                entity_id=item.id,
                actor_user_id=user_id,
                location_id=found["location_id"],
                payload={
                    "product_id": found["product_id"],
                    "previous_on_hand": format_decimal(found["quantity_on_hand"]),
                    "ledger_quantity": format_decimal(found["ledger_quantity"]),
                },
            )
            repaired.append({**found, "item_id": item.id})
        return repaired

    repaired = run_in_transaction(_op, commit=commit)
    for found in repaired:
        current_app.logger.warning(
            "Repaired inventory item %s: on_hand %s -> %s (ledger)",
            found["item_id"], found["quantity_on_hand"], found["ledger_quantity"],
        )
    return repaired
