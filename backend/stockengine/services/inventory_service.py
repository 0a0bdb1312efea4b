# Overview: Per (tenant, product, location) stock counters kept in step with the ledger.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import InsufficientAllocationError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryItem, Location, Product
from ..validation import COST_QUANT, to_nonzero_quantity, to_positive_quantity, to_cost, to_quantity
from . import notification_service, settings_service
from .concurrency import lock_for_update, run_in_transaction
"""
Inventory Item Store Invariants (authoritative)

Counters:
- quantity_on_hand == SUM(ledger.quantity_change) for the same key, always.
- quantity_on_hand only changes through apply_movement, in the same DB
  transaction as the ledger row that explains it.
- quantity_allocated >= 0 and quantity_incoming >= 0.
- quantity_available = on_hand - allocated is the only figure offered for sale.

Concurrency:
- apply_movement issues one atomic SQL increment per call.
- Read-then-write paths (allocate, release, incoming, negative-stock guard)
  read the row through lock_for_update and are guarded by version_id.

Cost:
- Moving weighted average, changed only by inbound movements that carry a
  cost basis (PO_RECEIPT, RETURN, TRANSFER_IN).
"""

ZERO = Decimal("0")


# ===== TENANT-SCOPED LOOKUPS =====

def require_location(tenant_id: int, location_id: int, *, require_active: bool = True, lock: bool = False) -> Location:
    query = db.session.query(Location).filter_by(id=location_id, tenant_id=tenant_id)
    if lock:
        query = lock_for_update(query)
    location = query.first()
    if location is None:
        raise NotFoundError("Location not found", location_id=location_id)
    if require_active and not location.is_active:
        raise ValidationError("Location is inactive", location_id=location_id)
    return location


def require_product(tenant_id: int, product_id: int, *, require_stock_tracked: bool = True) -> Product:
    """
    Load a tenant product. With require_stock_tracked, the product must also
    be active and stock-tracked (the default for anything that moves stock).
    """
    product = db.session.query(Product).filter_by(id=product_id, tenant_id=tenant_id).first()
    if product is None:
        raise NotFoundError("Product not found", product_id=product_id)
    if require_stock_tracked:
        if not product.is_active:
            raise ValidationError("Product is inactive", product_id=product_id)
        if not product.is_stock_tracked:
            raise ValidationError("Product is not stock-tracked", product_id=product_id)
    return product


def _item_query(tenant_id: int, product_id: int, location_id: int):
    return db.session.query(InventoryItem).filter_by(
        tenant_id=tenant_id,
        product_id=product_id,
        location_id=location_id,
    )


def get_or_create_item(tenant_id: int, product_id: int, location_id: int, *, lock: bool = False) -> InventoryItem:
    """
    Return the item row, creating it with a zero baseline on first use.

    A concurrent creator wins the unique constraint; the loser surfaces as a
    StaleDataError so the unit of work is retried and finds the row.
    """
    query = _item_query(tenant_id, product_id, location_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is not None:
        return item

    item = InventoryItem(
        tenant_id=tenant_id,
        product_id=product_id,
        location_id=location_id,
        quantity_on_hand=ZERO,
        quantity_allocated=ZERO,
        quantity_incoming=ZERO,
    )
    db.session.add(item)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise StaleDataError("inventory item created concurrently") from exc
    return item


def weighted_average_cost(
    old_on_hand: Decimal,
    old_average: Decimal | None,
    quantity: Decimal,
    unit_cost: Decimal,
) -> Decimal | None:
    """
    (old_on_hand * old_avg + qty * cost) / (old_on_hand + qty)

    With no prior average or no positive prior stock the receipt cost becomes
    the average. A non-positive denominator keeps the old average.
    """
    if old_average is None or old_on_hand <= 0:
        return unit_cost.quantize(COST_QUANT, rounding=ROUND_HALF_UP)

    denominator = old_on_hand + quantity
    if denominator <= 0:
        return old_average

    total = old_on_hand * Decimal(old_average) + quantity * unit_cost
    return (total / denominator).quantize(COST_QUANT, rounding=ROUND_HALF_UP)


# ===== MOVEMENTS =====

def apply_movement(
    *,
    tenant_id: int,
    product_id: int,
    location_id: int,
    quantity_change,
    cost_basis=None,
    policy=None,
) -> InventoryItem:
    """
    Apply a signed on-hand change to the item counters.

    Must run inside the same unit of work as the ledger append that explains
    it; never commits. Queues a post-commit stock-change notification.
    """
    qty = to_nonzero_quantity(quantity_change)
    cost = to_cost(cost_basis, "cost_basis")

    item = get_or_create_item(tenant_id, product_id, location_id, lock=True)

    values = {
        "quantity_on_hand": InventoryItem.quantity_on_hand + qty,
        "version_id": InventoryItem.version_id + 1,
    }
    if cost is not None and qty > 0:
        old_average = Decimal(item.average_cost) if item.average_cost is not None else None
        new_average = weighted_average_cost(Decimal(item.quantity_on_hand), old_average, qty, cost)
        if new_average != old_average:
            values["average_cost"] = new_average

    db.session.execute(
        update(InventoryItem)
        .where(InventoryItem.id == item.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(item)

    notification_service.queue_stock_change(item, policy)
    current_app.logger.debug(
        "Stock movement tenant=%s product=%s location=%s change=%s on_hand=%s",
        tenant_id, product_id, location_id, qty, item.quantity_on_hand,
    )
    return item


def allocate(
    *,
    tenant_id: int,
    product_id: int,
    location_id: int,
    quantity,
    enforce_available: bool | None = None,
    commit: bool = True,
) -> InventoryItem:
    """
    Reserve stock for an order.

    When the tenant enforces available stock on sale (or the caller passes
    enforce_available=True), allocating more than is available raises
    InsufficientStockError and nothing changes.
    """
    qty = to_positive_quantity(quantity)

    def _op() -> InventoryItem:
        require_product(tenant_id, product_id)
        require_location(tenant_id, location_id)
        policy = settings_service.get_inventory_settings(tenant_id)
        enforce = policy.enforce_available_on_sale if enforce_available is None else enforce_available

        item = lock_for_update(_item_query(tenant_id, product_id, location_id)).first()
        available = item.quantity_available if item is not None else ZERO
        if enforce and available < qty:
            raise InsufficientStockError(
                "Insufficient available stock",
                product_id=product_id,
                location_id=location_id,
                requested=str(qty),
                available=str(available),
            )

        if item is None:
            item = get_or_create_item(tenant_id, product_id, location_id)
        item.quantity_allocated = Decimal(item.quantity_allocated) + qty
        db.session.flush()
        notification_service.queue_stock_change(item, policy)
        return item

    return run_in_transaction(_op, commit=commit)


def release(
    *,
    tenant_id: int,
    product_id: int,
    location_id: int,
    quantity,
    commit: bool = True,
) -> InventoryItem:
    """Give back an allocation; releasing more than is allocated changes nothing."""
    qty = to_positive_quantity(quantity)

    def _op() -> InventoryItem:
        item = lock_for_update(_item_query(tenant_id, product_id, location_id)).first()
        allocated = Decimal(item.quantity_allocated) if item is not None else ZERO
        if item is None or allocated < qty:
            raise InsufficientAllocationError(
                "Cannot release more than is allocated",
                product_id=product_id,
                location_id=location_id,
                requested=str(qty),
                allocated=str(allocated),
            )
        item.quantity_allocated = allocated - qty
        db.session.flush()
        notification_service.queue_stock_change(item)
        return item

    return run_in_transaction(_op, commit=commit)


def adjust_incoming(
    *,
    tenant_id: int,
    product_id: int,
    location_id: int,
    quantity_change,
    commit: bool = True,
) -> InventoryItem:
    """Move quantity_incoming by a signed amount, floored at zero."""
    qty = to_nonzero_quantity(quantity_change)

    def _op() -> InventoryItem:
        item = get_or_create_item(tenant_id, product_id, location_id, lock=True)
        new_incoming = Decimal(item.quantity_incoming) + qty
        item.quantity_incoming = new_incoming if new_incoming > 0 else ZERO
        db.session.flush()
        return item

    return run_in_transaction(_op, commit=commit)


def set_reorder_point(
    *,
    tenant_id: int,
    product_id: int,
    location_id: int,
    reorder_point,
    commit: bool = True,
) -> InventoryItem:
    """Set (or clear with None) the low-stock threshold for an item."""
    point = None
    if reorder_point is not None:
        point = to_quantity(reorder_point, "reorder_point")
        if point < 0:
            raise ValidationError("reorder_point cannot be negative")

    def _op() -> InventoryItem:
        require_product(tenant_id, product_id, require_stock_tracked=False)
        require_location(tenant_id, location_id, require_active=False)
        item = get_or_create_item(tenant_id, product_id, location_id, lock=True)
        item.reorder_point = point
        db.session.flush()
        return item

    return run_in_transaction(_op, commit=commit)


# ===== READS =====

def get_item(tenant_id: int, product_id: int, location_id: int) -> InventoryItem | None:
    return _item_query(tenant_id, product_id, location_id).first()


def get_stock_level(tenant_id: int, product_id: int, location_id: int) -> dict:
    """Counter snapshot for one key; zeros when the item was never moved."""
    item = get_item(tenant_id, product_id, location_id)
    if item is None:
        return {
            "tenant_id": tenant_id,
            "product_id": product_id,
            "location_id": location_id,
            "quantity_on_hand": ZERO,
            "quantity_allocated": ZERO,
            "quantity_available": ZERO,
            "quantity_incoming": ZERO,
            "average_cost": None,
        }
    return {
        "tenant_id": tenant_id,
        "product_id": product_id,
        "location_id": location_id,
        "quantity_on_hand": Decimal(item.quantity_on_hand),
        "quantity_allocated": Decimal(item.quantity_allocated),
        "quantity_available": item.quantity_available,
        "quantity_incoming": Decimal(item.quantity_incoming),
        "average_cost": Decimal(item.average_cost) if item.average_cost is not None else None,
    }


def list_items(
    tenant_id: int,
    location_id: int | None = None,
    product_id: int | None = None,
) -> list[InventoryItem]:
    q = db.session.query(InventoryItem).filter(InventoryItem.tenant_id == tenant_id)
    if location_id is not None:
        q = q.filter(InventoryItem.location_id == location_id)
    if product_id is not None:
        q = q.filter(InventoryItem.product_id == product_id)
    return q.order_by(InventoryItem.location_id.asc(), InventoryItem.product_id.asc()).all()
