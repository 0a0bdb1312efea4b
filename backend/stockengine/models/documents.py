from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import QUANTITY_QUANT, format_decimal
from .inventory import Quantity, Cost


class InventoryAdjustment(db.Model):
    """
    Manual, reason-coded quantity correction document.

    IMMUTABLE: written once by adjustment_service.post_adjustment inside the
    same transaction as its ledger rows. Corrections are new adjustments.
    """
    __tablename__ = "inventory_adjustments"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document_number", name="uq_adjustments_tenant_docnum"),
        db.Index("ix_adjustments_tenant_location", "tenant_id", "location_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    document_number = db.Column(db.String(64), nullable=False)
    reason_code = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "InventoryAdjustmentItem",
        backref="adjustment",
        lazy=True,
        order_by="InventoryAdjustmentItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "location_id": self.location_id,
            "document_number": self.document_number,
            "reason_code": self.reason_code,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryAdjustmentItem(db.Model):
    __tablename__ = "inventory_adjustment_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    adjustment_id = db.Column(db.Integer, db.ForeignKey("inventory_adjustments.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity_change = db.Column(Quantity, nullable=False)
    unit_cost = db.Column(Cost, nullable=True)

    inventory_transaction_id = db.Column(db.Integer, db.ForeignKey("inventory_transactions.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "adjustment_id": self.adjustment_id,
            "product_id": self.product_id,
            "quantity_change": format_decimal(self.quantity_change),
            "unit_cost": format_decimal(self.unit_cost),
            "inventory_transaction_id": self.inventory_transaction_id,
        }


class InventoryTransfer(db.Model):
    """
    Inter-location transfer document.

    LIFECYCLE:
    1. DRAFT: created with its lines, nothing has moved
    2. SHIPPED: TRANSFER_OUT written at the source for every line
    3. PARTIALLY_RECEIVED: some, not all, base units arrived at destination
    4. COMPLETED: every line fully received
    5. CANCELLED: from DRAFT, or from SHIPPED before anything was received
    """
    __tablename__ = "inventory_transfers"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document_number", name="uq_transfers_tenant_docnum"),
        db.CheckConstraint("source_location_id <> destination_location_id", name="ck_transfers_distinct_locations"),
        db.Index("ix_transfers_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    source_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    destination_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    document_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(24), nullable=False, default="DRAFT", index=True)

    tracking_number = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False)
    shipped_by_user_id = db.Column(db.Integer, nullable=True)
    received_by_user_id = db.Column(db.Integer, nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "InventoryTransferItem",
        backref="transfer",
        lazy=True,
        order_by="InventoryTransferItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryTransfer id={self.id} doc_num={self.document_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "document_number": self.document_number,
            "source_location_id": self.source_location_id,
            "destination_location_id": self.destination_location_id,
            "status": self.status,
            "tracking_number": self.tracking_number,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "shipped_by_user_id": self.shipped_by_user_id,
            "received_by_user_id": self.received_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "shipped_at": to_utc_z(self.shipped_at),
            "received_at": to_utc_z(self.received_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
        }


class InventoryTransferItem(db.Model):
    """
    One product line on a transfer.

    quantity_requested is in the requested unit; shipped/received are tracked
    in base units so partial receipts in a different UOM stay exact.
    """
    __tablename__ = "inventory_transfer_items"
    __table_args__ = (
        db.UniqueConstraint("transfer_id", "product_id", name="uq_transfer_items_transfer_product"),
        db.CheckConstraint("conversion_factor > 0", name="ck_transfer_items_factor_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("inventory_transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    uom_id = db.Column(db.Integer, db.ForeignKey("units_of_measure.id"), nullable=True)
    quantity_requested = db.Column(Quantity, nullable=False)
    conversion_factor = db.Column(Quantity, nullable=False, default=Decimal("1"))

    quantity_shipped_base = db.Column(Quantity, nullable=False, default=Decimal("0"))
    quantity_received_base = db.Column(Quantity, nullable=False, default=Decimal("0"))

    # Source average cost when shipped; carried to the destination on receipt
    unit_cost = db.Column(Cost, nullable=True)

    @property
    def quantity_requested_base(self) -> Decimal:
        base = Decimal(self.quantity_requested) * Decimal(self.conversion_factor)
        return base.quantize(QUANTITY_QUANT, rounding=ROUND_HALF_UP)

    @property
    def quantity_outstanding_base(self) -> Decimal:
        return self.quantity_requested_base - Decimal(self.quantity_received_base or 0)

    @property
    def is_fully_received(self) -> bool:
        return Decimal(self.quantity_received_base or 0) == self.quantity_requested_base

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "product_id": self.product_id,
            "uom_id": self.uom_id,
            "quantity_requested": format_decimal(self.quantity_requested),
            "conversion_factor": format_decimal(self.conversion_factor),
            "quantity_requested_base": format_decimal(self.quantity_requested_base),
            "quantity_shipped_base": format_decimal(self.quantity_shipped_base),
            "quantity_received_base": format_decimal(self.quantity_received_base),
            "unit_cost": format_decimal(self.unit_cost),
        }


class StockCount(db.Model):
    """
    Physical stock count document.

    LIFECYCLE:
    1. PENDING: expected quantities snapshotted, nothing counted yet
    2. COUNTING: physical counts being entered
    3. REVIEWED: lines approved or rejected by a reviewer
    4. COMPLETED: approved variances posted as COUNT_RECONCILE movements
    5. CANCELLED: abandoned before posting

    No backward transitions once COMPLETED.
    """
    __tablename__ = "stock_counts"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "count_number", name="uq_stock_counts_tenant_number"),
        db.Index("ix_stock_counts_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    count_number = db.Column(db.String(64), nullable=False)
    count_type = db.Column(db.String(16), nullable=False)  # FULL, PARTIAL
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    notes = db.Column(db.Text, nullable=True)

    initiated_by_user_id = db.Column(db.Integer, nullable=False)
    reviewed_by_user_id = db.Column(db.Integer, nullable=True)
    completed_by_user_id = db.Column(db.Integer, nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, nullable=True)

    initiated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "StockCountItem",
        backref="stock_count",
        lazy=True,
        order_by="StockCountItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "location_id": self.location_id,
            "count_number": self.count_number,
            "count_type": self.count_type,
            "status": self.status,
            "notes": self.notes,
            "initiated_by_user_id": self.initiated_by_user_id,
            "reviewed_by_user_id": self.reviewed_by_user_id,
            "completed_by_user_id": self.completed_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "initiated_at": to_utc_z(self.initiated_at),
            "reviewed_at": to_utc_z(self.reviewed_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
        }


class StockCountItem(db.Model):
    __tablename__ = "stock_count_items"
    __table_args__ = (
        db.UniqueConstraint("stock_count_id", "product_id", name="uq_stock_count_items_count_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    stock_count_id = db.Column(db.Integer, db.ForeignKey("stock_counts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # Physical on-hand at initiation, not available-minus-allocated
    snapshot_quantity = db.Column(Quantity, nullable=False)
    unit_cost_at_snapshot = db.Column(Cost, nullable=True)

    counted_quantity = db.Column(Quantity, nullable=True)
    variance = db.Column(Quantity, nullable=True)

    # PENDING, COUNTED, APPROVED, REJECTED
    status = db.Column(db.String(16), nullable=False, default="PENDING")

    notes = db.Column(db.String(255), nullable=True)
    review_notes = db.Column(db.String(255), nullable=True)

    counted_by_user_id = db.Column(db.Integer, nullable=True)
    counted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    inventory_transaction_id = db.Column(db.Integer, db.ForeignKey("inventory_transactions.id"), nullable=True)

    @property
    def variance_value(self) -> Decimal | None:
        if self.variance is None or self.unit_cost_at_snapshot is None:
            return None
        return Decimal(self.variance) * Decimal(self.unit_cost_at_snapshot)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_count_id": self.stock_count_id,
            "product_id": self.product_id,
            "snapshot_quantity": format_decimal(self.snapshot_quantity),
            "unit_cost_at_snapshot": format_decimal(self.unit_cost_at_snapshot),
            "counted_quantity": format_decimal(self.counted_quantity),
            "variance": format_decimal(self.variance),
            "variance_value": format_decimal(self.variance_value),
            "status": self.status,
            "notes": self.notes,
            "review_notes": self.review_notes,
            "counted_by_user_id": self.counted_by_user_id,
            "counted_at": to_utc_z(self.counted_at),
            "inventory_transaction_id": self.inventory_transaction_id,
        }


class AuditEvent(db.Model):
    """
    Append-only audit trail for document lifecycle events.

    Holds no business state: services write one row per transition inside
    the same DB transaction as the transition itself.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_tenant_occurred", "tenant_id", "occurred_at"),
        db.Index("ix_audit_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g. transfer.shipped
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    actor_user_id = db.Column(db.Integer, nullable=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "location_id": self.location_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-tenant document sequences.

    Prevents races when generating adjustment, transfer and count numbers.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document_type", name="uq_doc_sequences_tenant_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())


class IdempotencyRecord(db.Model):
    """
    Caller-supplied idempotency key -> entity produced by the first call.

    Written in the same transaction as the mutation it guards, so a replay
    either sees the committed result or nothing at all.
    """
    __tablename__ = "idempotency_records"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "idempotency_key", name="uq_idempotency_tenant_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    idempotency_key = db.Column(db.String(128), nullable=False)
    operation = db.Column(db.String(64), nullable=False)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
