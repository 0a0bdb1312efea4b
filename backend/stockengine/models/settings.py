from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class TenantInventorySettings(db.Model):
    """
    Explicit, versioned inventory policy per tenant.

    Replaces a free-form JSON config blob: every option is a typed column and
    schema_version records which option set the row was written against.
    A tenant without a row uses the application Config defaults.
    """
    __tablename__ = "tenant_inventory_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, unique=True, index=True)

    schema_version = db.Column(db.Integer, nullable=False, default=1)

    allow_negative_stock = db.Column(db.Boolean, nullable=False, default=True)
    enforce_available_on_sale = db.Column(db.Boolean, nullable=False, default=False)
    low_stock_alerts_enabled = db.Column(db.Boolean, nullable=False, default=True)

    updated_by_user_id = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "schema_version": self.schema_version,
            "allow_negative_stock": self.allow_negative_stock,
            "enforce_available_on_sale": self.enforce_available_on_sale,
            "low_stock_alerts_enabled": self.low_stock_alerts_enabled,
            "updated_by_user_id": self.updated_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
        }
