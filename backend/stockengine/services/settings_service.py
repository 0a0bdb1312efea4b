# Overview: Typed, versioned per-tenant inventory policy.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import TenantInventorySettings
from .concurrency import run_in_transaction

SETTINGS_SCHEMA_VERSION = 1

# option -> Config key supplying the default
POLICY_DEFAULTS = {
    "allow_negative_stock": "INVENTORY_ALLOW_NEGATIVE_STOCK",
    "enforce_available_on_sale": "INVENTORY_ENFORCE_AVAILABLE_ON_SALE",
    "low_stock_alerts_enabled": "INVENTORY_LOW_STOCK_ALERTS",
}


@dataclass(frozen=True)
class InventoryPolicy:
    tenant_id: int
    allow_negative_stock: bool = True
    enforce_available_on_sale: bool = False
    low_stock_alerts_enabled: bool = True
    schema_version: int = SETTINGS_SCHEMA_VERSION


def _defaults() -> dict:
    return {
        option: bool(current_app.config.get(config_key, InventoryPolicy.__dataclass_fields__[option].default))
        for option, config_key in POLICY_DEFAULTS.items()
    }


def get_inventory_settings(tenant_id: int) -> InventoryPolicy:
    """Effective policy: the tenant row when present, Config defaults otherwise."""
    row = db.session.query(TenantInventorySettings).filter_by(tenant_id=tenant_id).first()
    if not row:
        return InventoryPolicy(tenant_id=tenant_id, **_defaults())
    return InventoryPolicy(
        tenant_id=tenant_id,
        allow_negative_stock=bool(row.allow_negative_stock),
        enforce_available_on_sale=bool(row.enforce_available_on_sale),
        low_stock_alerts_enabled=bool(row.low_stock_alerts_enabled),
        schema_version=row.schema_version,
    )


def update_inventory_settings(
    tenant_id: int,
    *,
    user_id: int | None = None,
    commit: bool = True,
    **changes,
) -> InventoryPolicy:
    """
    Validate and persist policy changes for a tenant.

    Unknown options and non-boolean values are rejected.
    """
    if not changes:
        raise ValidationError("No settings to update")

    unknown = sorted(k for k in changes if k not in POLICY_DEFAULTS)
    if unknown:
        raise ValidationError(f"Unknown inventory settings: {', '.join(unknown)}")
    for key, value in changes.items():
        if not isinstance(value, bool):
            raise ValidationError(f"{key} must be a boolean")

    def _op() -> InventoryPolicy:
        row = db.session.query(TenantInventorySettings).filter_by(tenant_id=tenant_id).first()
        if not row:
            row = TenantInventorySettings(tenant_id=tenant_id, **_defaults())
            db.session.add(row)

        for key, value in changes.items():
            setattr(row, key, value)
        row.schema_version = SETTINGS_SCHEMA_VERSION
        row.updated_by_user_id = user_id
        db.session.flush()
        return get_inventory_settings(tenant_id)

    policy = run_in_transaction(_op, commit=commit)
    current_app.logger.info("Inventory settings updated for tenant %s: %s", tenant_id, changes)
    return policy
