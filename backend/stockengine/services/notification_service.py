# Overview: Post-commit stock-change and low-stock signals.

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import event

from ..extensions import db
from ..signals import low_stock, stock_changed
from . import settings_service
"""
Stock Notification Invariants (authoritative)

- Notifications are queued on the session while the unit of work runs and
  sent only after it commits; a rollback discards them.
- One notification per (tenant, location, product) per commit, carrying the
  last state written.
- A failing receiver is logged and never breaks the committed operation.
"""

_PENDING_KEY = "stockengine.pending_stock_events"


def check_low_stock(item, policy=None) -> bool:
    """True when alerts are enabled and available stock is at or below the reorder point."""
    if item.reorder_point is None:
        return False
    if policy is None:
        policy = settings_service.get_inventory_settings(item.tenant_id)
    if not policy.low_stock_alerts_enabled:
        return False
    return item.quantity_available <= Decimal(item.reorder_point)


def queue_stock_change(item, policy=None) -> None:
    """Snapshot the item's counters for dispatch after commit."""
    pending = db.session.info.setdefault(_PENDING_KEY, {})
    pending[(item.tenant_id, item.location_id, item.product_id)] = {
        "tenant_id": item.tenant_id,
        "location_id": item.location_id,
        "product_id": item.product_id,
        "quantity_on_hand": Decimal(item.quantity_on_hand),
        "quantity_allocated": Decimal(item.quantity_allocated),
        "quantity_available": item.quantity_available,
        "reorder_point": Decimal(item.reorder_point) if item.reorder_point is not None else None,
        "is_low": check_low_stock(item, policy),
    }


def pending_notifications() -> list[dict]:
    return list(db.session.info.get(_PENDING_KEY, {}).values())


def _send(signal, payload: dict) -> None:
    sender = current_app._get_current_object()
    for receiver in list(signal.receivers_for(sender)):
        try:
            receiver(sender, **payload)
        except Exception:
            current_app.logger.exception("Stock notification receiver %r failed", receiver)


def _dispatch_after_commit(session) -> None:
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return

    for snap in pending.values():
        _send(stock_changed, {
            "tenant_id": snap["tenant_id"],
            "location_id": snap["location_id"],
            "product_id": snap["product_id"],
            "quantity_on_hand": snap["quantity_on_hand"],
            "quantity_allocated": snap["quantity_allocated"],
        })
        if snap["is_low"]:
            current_app.logger.warning(
                "Low stock: tenant=%s location=%s product=%s available=%s reorder_point=%s",
                snap["tenant_id"], snap["location_id"], snap["product_id"],
                snap["quantity_available"], snap["reorder_point"],
            )
            _send(low_stock, {
                "tenant_id": snap["tenant_id"],
                "location_id": snap["location_id"],
                "product_id": snap["product_id"],
                "quantity_available": snap["quantity_available"],
                "reorder_point": snap["reorder_point"],
            })


def _discard_after_rollback(session) -> None:
    session.info.pop(_PENDING_KEY, None)


def install_session_hooks() -> None:
    """Attach dispatch/discard listeners to the Flask-SQLAlchemy session (once)."""
    if not event.contains(db.session, "after_commit", _dispatch_after_commit):
        event.listen(db.session, "after_commit", _dispatch_after_commit)
    if not event.contains(db.session, "after_rollback", _discard_after_rollback):
        event.listen(db.session, "after_rollback", _discard_after_rollback)
