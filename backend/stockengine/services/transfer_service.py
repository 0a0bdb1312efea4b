# backend/stockengine/services/transfer_service.py
"""
Inter-location transfer service.

Moves stock between two locations of the same tenant through the movement
primitive: TRANSFER_OUT at the source when shipped, TRANSFER_IN at the
destination when received (possibly over several partial receipts).

LIFECYCLE:
1. DRAFT: Transfer created with its lines, nothing has moved
2. SHIPPED: Source decremented, destination incoming raised
3. PARTIALLY_RECEIVED: Some lines (or part of a line) arrived
4. COMPLETED: Every line fully received
5. CANCELLED: From DRAFT, or from SHIPPED before anything was received
   (shipped stock is put back with TRANSFER_OUT_REVERSAL)

Quantities are converted to base units with the line's UOM factor when
shipped; received quantities are tracked in base units per line.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryTransfer, InventoryTransferItem, UnitOfMeasure
from ..time_utils import utcnow
from ..validation import format_decimal, require_items, require_key, to_positive_quantity, to_quantity
from . import audit_service, idempotency_service, inventory_service
from .adjustment_service import record_movement
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_document_number
from .ledger_service import RelatedDocument


# Transfer status constants
TRANSFER_STATUS_DRAFT = "DRAFT"
TRANSFER_STATUS_SHIPPED = "SHIPPED"
TRANSFER_STATUS_PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
TRANSFER_STATUS_COMPLETED = "COMPLETED"
TRANSFER_STATUS_CANCELLED = "CANCELLED"

RECEIVABLE_STATUSES = (TRANSFER_STATUS_SHIPPED, TRANSFER_STATUS_PARTIALLY_RECEIVED)

OPERATION_RECEIVE_TRANSFER = "transfer.receive"


def _resolve_uom_factor(tenant_id: int, product_id: int, uom_id: int | None) -> Decimal:
    """Base units per one of uom_id; the unit must belong to product_id."""
    if uom_id is None:
        return Decimal("1")
    uom = db.session.query(UnitOfMeasure).filter_by(id=uom_id, tenant_id=tenant_id).first()
    if not uom:
        raise NotFoundError("Unit of measure not found", uom_id=uom_id)
    if uom.product_id != product_id:
        raise ValidationError(
            "Unit of measure belongs to a different product",
            uom_id=uom_id,
            product_id=product_id,
        )
    return Decimal(uom.conversion_factor)


def _load_transfer(tenant_id: int, transfer_id: int, *, lock: bool = False) -> InventoryTransfer:
    query = db.session.query(InventoryTransfer).filter_by(id=transfer_id, tenant_id=tenant_id)
    if lock:
        query = lock_for_update(query)
    transfer = query.first()
    if not transfer:
        raise NotFoundError("Transfer not found", transfer_id=transfer_id)
    return transfer


def create_transfer(
    *,
    tenant_id: int,
    source_location_id: int,
    destination_location_id: int,
    user_id: int,
    items,
    tracking_number: str | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> InventoryTransfer:
    """
    Create a transfer document (status: DRAFT).

    Args:
        items: [{"product_id", "quantity", "uom_id"?}], quantity in the given unit

    Returns:
        InventoryTransfer: The created transfer with its lines

    Raises:
        ValidationError: Same source and destination, empty or duplicate
            lines, non-positive quantity, inactive location or product,
            or a unit of measure that belongs to another product
        NotFoundError: Location, product or UOM not in this tenant
    """
    if source_location_id == destination_location_id:
        raise ValidationError("Source and destination locations must differ")

    lines = []
    seen = set()
    for raw in require_items(items):
        product_id = require_key(raw, "product_id")
        if product_id in seen:
            raise ValidationError("Duplicate product on transfer", product_id=product_id)
        seen.add(product_id)
        lines.append({
            "product_id": product_id,
            "quantity": to_positive_quantity(require_key(raw, "quantity")),
            "uom_id": raw.get("uom_id"),
        })

    def _op() -> InventoryTransfer:
        inventory_service.require_location(tenant_id, source_location_id)
        inventory_service.require_location(tenant_id, destination_location_id)

        transfer = InventoryTransfer(
            tenant_id=tenant_id,
            source_location_id=source_location_id,
            destination_location_id=destination_location_id,
            document_number=next_document_number(
                tenant_id=tenant_id, document_type="TRANSFER", prefix="T"
            ),
            status=TRANSFER_STATUS_DRAFT,
            tracking_number=tracking_number,
            notes=notes,
            created_by_user_id=user_id,
        )
        db.session.add(transfer)
        db.session.flush()

        for line in lines:
            inventory_service.require_product(tenant_id, line["product_id"])
            db.session.add(InventoryTransferItem(
                tenant_id=tenant_id,
                transfer_id=transfer.id,
                product_id=line["product_id"],
                uom_id=line["uom_id"],
                quantity_requested=line["quantity"],
                conversion_factor=_resolve_uom_factor(tenant_id, line["product_id"], line["uom_id"]),
                quantity_shipped_base=Decimal("0"),
                quantity_received_base=Decimal("0"),
            ))
        db.session.flush()

        audit_service.append_audit_event(
            tenant_id=tenant_id,
            event_type="transfer.created",
            entity_type="inventory_transfer",
            entity_id=transfer.id,
            actor_user_id=user_id,
            location_id=source_location_id,
            note=notes,
        )
        return transfer

    return run_in_transaction(_op, commit=commit)


def ship_transfer(*, tenant_id: int, transfer_id: int, user_id: int, commit: bool = True) -> InventoryTransfer:
    """
    Ship a DRAFT transfer.

    Per line: TRANSFER_OUT of the base quantity at the source, and the same
    quantity added to the destination's incoming.

    Raises:
        InvalidStateError: Transfer is not DRAFT
        InsufficientStockError: Source would go negative and policy forbids it
    """
    def _op() -> InventoryTransfer:
        transfer = _load_transfer(tenant_id, transfer_id, lock=True)
        if transfer.status != TRANSFER_STATUS_DRAFT:
            raise InvalidStateError(
                f"Cannot ship transfer in {transfer.status} status",
                transfer_id=transfer_id,
                status=transfer.status,
            )

        related = RelatedDocument("TRANSFER", transfer.id)
        for line in transfer.items:
            base = line.quantity_requested_base
            source_item = inventory_service.get_item(tenant_id, line.product_id, transfer.source_location_id)
            unit_cost = source_item.average_cost if source_item is not None else None

            record_movement(
                tenant_id=tenant_id,
                product_id=line.product_id,
                location_id=transfer.source_location_id,
                transaction_type="TRANSFER_OUT",
                quantity_change=-base,
                user_id=user_id,
                related_document=related,
                unit_cost=unit_cost,
                notes=f"Transfer {transfer.document_number} shipped",
            )
            inventory_service.adjust_incoming(
                tenant_id=tenant_id,
                product_id=line.product_id,
                location_id=transfer.destination_location_id,
                quantity_change=base,
                commit=False,
            )
            line.quantity_shipped_base = base
            line.unit_cost = unit_cost

        transfer.status = TRANSFER_STATUS_SHIPPED
        transfer.shipped_by_user_id = user_id
        transfer.shipped_at = utcnow()
        db.session.flush()

        audit_service.append_audit_event(
            tenant_id=tenant_id,
            event_type="transfer.shipped",
            entity_type="inventory_transfer",
            entity_id=transfer.id,
            actor_user_id=user_id,
            location_id=transfer.source_location_id,
            payload={"tracking_number": transfer.tracking_number},
        )
        return transfer

    transfer = run_in_transaction(_op, commit=commit)
    current_app.logger.info("Transfer %s shipped", transfer.document_number)
    return transfer


def receive_transfer(
    *,
    tenant_id: int,
    transfer_id: int,
    user_id: int,
    items,
    idempotency_key: str | None = None,
    commit: bool = True,
) -> InventoryTransfer:
    """
    Receive all or part of a shipped transfer at the destination.

    Args:
        items: [{"product_id", "quantity", "uom_id"?}]; without uom_id the
            line's own unit applies, with it that unit's factor is used

    Raises:
        InvalidStateError: Transfer is not SHIPPED or PARTIALLY_RECEIVED
        ValidationError: Unknown product for this transfer, non-positive
            quantity, more than is still outstanding, or a unit of measure
            of another product
    """
    submitted = []
    for raw in require_items(items):
        submitted.append({
            "product_id": require_key(raw, "product_id"),
            "quantity": to_quantity(require_key(raw, "quantity")),
            "uom_id": raw.get("uom_id"),
        })

    def _op() -> InventoryTransfer:
        replay = idempotency_service.find_replay(tenant_id, idempotency_key, OPERATION_RECEIVE_TRANSFER)
        if replay:
            return _load_transfer(tenant_id, replay.entity_id)

        transfer = _load_transfer(tenant_id, transfer_id, lock=True)
        if transfer.status not in RECEIVABLE_STATUSES:
            raise InvalidStateError(
                f"Cannot receive transfer in {transfer.status} status",
                transfer_id=transfer_id,
                status=transfer.status,
            )

        lines_by_product = {line.product_id: line for line in transfer.items}
        related = RelatedDocument("TRANSFER", transfer.id)

        for entry in submitted:
            line = lines_by_product.get(entry["product_id"])
            if line is None:
                raise ValidationError(
                    "Product is not on this transfer",
                    product_id=entry["product_id"],
                )
            if entry["quantity"] <= 0:
                raise ValidationError("Received quantity must be positive", product_id=entry["product_id"])

            if entry["uom_id"] is not None:
                factor = _resolve_uom_factor(tenant_id, line.product_id, entry["uom_id"])
            else:
                factor = Decimal(line.conversion_factor)
            base = to_quantity(entry["quantity"] * factor)

            outstanding = line.quantity_outstanding_base
            if base > outstanding:
                raise ValidationError(
                    "Received quantity exceeds outstanding quantity",
                    product_id=line.product_id,
                    received=format_decimal(base),
                    outstanding=format_decimal(outstanding),
                )

            record_movement(
                tenant_id=tenant_id,
                product_id=line.product_id,
                location_id=transfer.destination_location_id,
                transaction_type="TRANSFER_IN",
                quantity_change=base,
                user_id=user_id,
                related_document=related,
                unit_cost=line.unit_cost,
                notes=f"Transfer {transfer.document_number} received",
                idempotency_key=idempotency_key,
            )
            inventory_service.adjust_incoming(
                tenant_id=tenant_id,
                product_id=line.product_id,
                location_id=transfer.destination_location_id,
                quantity_change=-base,
                commit=False,
            )
            line.quantity_received_base = Decimal(line.quantity_received_base) + base

        if all(line.is_fully_received for line in transfer.items):
            transfer.status = TRANSFER_STATUS_COMPLETED
        else:
            transfer.status = TRANSFER_STATUS_PARTIALLY_RECEIVED
        transfer.received_by_user_id = user_id
        transfer.received_at = utcnow()
        db.session.flush()

        audit_service.append_audit_event(
            tenant_id=tenant_id,
            event_type="transfer.received",
            entity_type="inventory_transfer",
            entity_id=transfer.id,
            actor_user_id=user_id,
            location_id=transfer.destination_location_id,
            payload={"status": transfer.status, "lines": len(submitted)},
        )
        idempotency_service.remember(
            tenant_id, idempotency_key, OPERATION_RECEIVE_TRANSFER, "inventory_transfer", transfer.id
        )
        return transfer

    transfer = run_in_transaction(_op, commit=commit)
    current_app.logger.info("Transfer %s received (%s)", transfer.document_number, transfer.status)
    return transfer


def cancel_transfer(
    *,
    tenant_id: int,
    transfer_id: int,
    user_id: int,
    reason: str | None = None,
    commit: bool = True,
) -> InventoryTransfer:
    """
    Cancel a transfer.

    DRAFT: no stock has moved, status only.
    SHIPPED with nothing received: shipped stock goes back to the source
    (TRANSFER_OUT_REVERSAL) and the destination's incoming is reversed.

    Raises:
        InvalidStateError: Any other status, or something was already received
    """
    def _op() -> InventoryTransfer:
        transfer = _load_transfer(tenant_id, transfer_id, lock=True)

        if transfer.status == TRANSFER_STATUS_SHIPPED:
            if any(Decimal(line.quantity_received_base) > 0 for line in transfer.items):
                raise InvalidStateError(
                    "Cannot cancel a transfer that has received stock",
                    transfer_id=transfer_id,
                )
            related = RelatedDocument("TRANSFER", transfer.id)
            for line in transfer.items:
                shipped = Decimal(line.quantity_shipped_base)
                if shipped <= 0:
                    continue
                record_movement(
                    tenant_id=tenant_id,
                    product_id=line.product_id,
                    location_id=transfer.source_location_id,
                    transaction_type="TRANSFER_OUT_REVERSAL",
                    quantity_change=shipped,
                    user_id=user_id,
                    related_document=related,
                    unit_cost=line.unit_cost,
                    notes=f"Transfer {transfer.document_number} cancelled",
                )
                inventory_service.adjust_incoming(
                    tenant_id=tenant_id,
                    product_id=line.product_id,
                    location_id=transfer.destination_location_id,
                    quantity_change=-shipped,
                    commit=False,
                )
        elif transfer.status != TRANSFER_STATUS_DRAFT:
            raise InvalidStateError(
                f"Cannot cancel transfer in {transfer.status} status",
                transfer_id=transfer_id,
                status=transfer.status,
            )

        transfer.status = TRANSFER_STATUS_CANCELLED
        transfer.cancelled_by_user_id = user_id
        transfer.cancelled_at = utcnow()
        transfer.cancellation_reason = reason
        db.session.flush()

        audit_service.append_audit_event(
            tenant_id=tenant_id,
            event_type="transfer.cancelled",
            entity_type="inventory_transfer",
            entity_id=transfer.id,
            actor_user_id=user_id,
            location_id=transfer.source_location_id,
            note=reason,
        )
        return transfer

    transfer = run_in_transaction(_op, commit=commit)
    current_app.logger.info("Transfer %s cancelled", transfer.document_number)
    return transfer


def get_transfer(tenant_id: int, transfer_id: int) -> InventoryTransfer:
    return _load_transfer(tenant_id, transfer_id)


def get_transfer_summary(tenant_id: int, transfer_id: int) -> dict:
    """Transfer header, lines and base-unit totals."""
    transfer = _load_transfer(tenant_id, transfer_id)
    lines = transfer.items

    requested = sum((line.quantity_requested_base for line in lines), Decimal("0"))
    shipped = sum((Decimal(line.quantity_shipped_base) for line in lines), Decimal("0"))
    received = sum((Decimal(line.quantity_received_base) for line in lines), Decimal("0"))

    return {
        "transfer": transfer.to_dict(),
        "lines": [line.to_dict() for line in lines],
        "total_requested_base": format_decimal(requested),
        "total_shipped_base": format_decimal(shipped),
        "total_received_base": format_decimal(received),
        "total_outstanding_base": format_decimal(requested - received),
    }


def list_transfers(
    tenant_id: int,
    status: str | None = None,
    location_id: int | None = None,
) -> list[InventoryTransfer]:
    q = db.session.query(InventoryTransfer).filter(InventoryTransfer.tenant_id == tenant_id)
    if status:
        q = q.filter(InventoryTransfer.status == status)
    if location_id is not None:
        q = q.filter(
            (InventoryTransfer.source_location_id == location_id)
            | (InventoryTransfer.destination_location_id == location_id)
        )
    return q.order_by(InventoryTransfer.id.desc()).all()
