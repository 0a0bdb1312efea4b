from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import format_decimal

# Quantities and unit costs carry four decimal places
Quantity = db.Numeric(18, 4)
Cost = db.Numeric(18, 4)


class UnitOfMeasure(db.Model):
    """
    Unit of measure for one product, with its multiplier to that product's base unit.

    conversion_factor is "base units per one of this unit" (a case of 10 has
    factor 10). The base unit itself has factor 1 and needs no row.
    """
    __tablename__ = "units_of_measure"
    __table_args__ = (
        db.UniqueConstraint("product_id", "code", name="uq_uom_product_code"),
        db.CheckConstraint("conversion_factor > 0", name="ck_uom_factor_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    conversion_factor = db.Column(Quantity, nullable=False, default=Decimal("1"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "code": self.code,
            "name": self.name,
            "conversion_factor": format_decimal(self.conversion_factor),
        }


class Product(db.Model):
    """
    Product master data, scoped to a tenant.

    Only products that are active AND stock-tracked may be moved, counted or
    transferred by the engine. Service-type products set is_stock_tracked=False.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.Index("ix_products_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_stock_tracked = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    units = db.relationship("UnitOfMeasure", backref="product", lazy=True)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sku": self.sku,
            "name": self.name,
            "is_active": self.is_active,
            "is_stock_tracked": self.is_stock_tracked,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryItem(db.Model):
    """
    Stock counters for one (tenant, product, location).

    The counters are a materialized projection of the inventory ledger:
    SUM(inventory_transactions.quantity_change) must equal quantity_on_hand.
    Rows are created lazily on the first movement and never deleted.

    quantity_on_hand is only ever changed by an atomic SQL increment issued
    from inventory_service.apply_movement. version_id guards the
    read-then-write paths (allocate/release) with optimistic locking.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "product_id", "location_id", name="uq_inventory_items_key"),
        db.Index("ix_inventory_items_tenant_location", "tenant_id", "location_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    quantity_on_hand = db.Column(Quantity, nullable=False, default=Decimal("0"))
    quantity_allocated = db.Column(Quantity, nullable=False, default=Decimal("0"))
    quantity_incoming = db.Column(Quantity, nullable=False, default=Decimal("0"))

    # Moving weighted average; NULL until the first costed receipt
    average_cost = db.Column(Cost, nullable=True)

    reorder_point = db.Column(Quantity, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")
    location = db.relationship("Location")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def quantity_available(self) -> Decimal:
        return Decimal(self.quantity_on_hand or 0) - Decimal(self.quantity_allocated or 0)

    def __repr__(self) -> str:
        return (
            f"<InventoryItem id={self.id} product_id={self.product_id} "
            f"location_id={self.location_id} on_hand={self.quantity_on_hand}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity_on_hand": format_decimal(self.quantity_on_hand),
            "quantity_allocated": format_decimal(self.quantity_allocated),
            "quantity_available": format_decimal(self.quantity_available),
            "quantity_incoming": format_decimal(self.quantity_incoming),
            "average_cost": format_decimal(self.average_cost),
            "reorder_point": format_decimal(self.reorder_point),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


# related_document_type -> legacy-shaped key exposed by to_dict()
RELATED_DOCUMENT_KEYS = {
    "ORDER": "related_order_id",
    "PURCHASE_ORDER": "related_po_id",
    "TRANSFER": "related_transfer_id",
    "ADJUSTMENT": "related_adjustment_id",
    "STOCK_COUNT": "related_stock_count_id",
    "RETURN": "related_return_id",
}


class InventoryTransaction(db.Model):
    """
    Append-only stock ledger row. Never updated, never deleted.

    Exactly one related document is referenced through the
    (related_document_type, related_document_id) pair.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_key_occurred", "tenant_id", "product_id", "location_id", "occurred_at"),
        db.Index("ix_invtx_related", "related_document_type", "related_document_id"),
        db.Index("ix_invtx_tenant_idempotency", "tenant_id", "idempotency_key"),
        db.CheckConstraint("quantity_change <> 0", name="ck_invtx_nonzero"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(32), nullable=False, index=True)
    quantity_change = db.Column(Quantity, nullable=False)
    unit_cost = db.Column(Cost, nullable=True)

    related_document_type = db.Column(db.String(32), nullable=False)
    related_document_id = db.Column(db.Integer, nullable=False)

    user_id = db.Column(db.Integer, nullable=True, index=True)
    notes = db.Column(db.String(255), nullable=True)
    idempotency_key = db.Column(db.String(128), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "transaction_type": self.transaction_type,
            "quantity_change": format_decimal(self.quantity_change),
            "unit_cost": format_decimal(self.unit_cost),
            "related_document_type": self.related_document_type,
            "related_document_id": self.related_document_id,
            "user_id": self.user_id,
            "notes": self.notes,
            "idempotency_key": self.idempotency_key,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }
        for kind, key in RELATED_DOCUMENT_KEYS.items():
            data[key] = self.related_document_id if self.related_document_type == kind else None
        return data
