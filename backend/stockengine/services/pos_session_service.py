"""
POS Session Cash Reconciliation Service

Tracks the cash drawer of a POS terminal between opening and closing, and
reconciles the counted cash against what the recorded transactions say
should be there.

DESIGN PRINCIPLES:
- One OPEN session per (tenant, location, terminal) at a time
- Calculated cash is always derived, never accumulated:
  starting + CASH_SALE + PAY_IN - CASH_REFUND - PAY_OUT
- Card transactions are recorded for the session totals but never move cash
- The starting float is the session's starting_cash, not a transaction
- Sessions never touch inventory counters
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidStateError, NotFoundError, SessionAlreadyOpenError, ValidationError
from ..extensions import db
from ..models import PosSession, PosSessionTransaction
from ..models.pos import CASH_IN_TYPES, CASH_OUT_TYPES
from ..time_utils import utcnow
from ..validation import CASH_QUANT, format_decimal, to_cash, to_text
from . import audit_service, inventory_service
from .concurrency import lock_for_update, run_in_transaction


# Session status constants
SESSION_STATUS_OPEN = "OPEN"
SESSION_STATUS_CLOSED = "CLOSED"
SESSION_STATUS_RECONCILED = "RECONCILED"

TRANSACTION_TYPES = (
    "CASH_SALE",
    "CARD_SALE",
    "CASH_REFUND",
    "CARD_REFUND",
    "PAY_IN",
    "PAY_OUT",
)
SALE_TYPES = ("CASH_SALE", "CARD_SALE")
REFUND_TYPES = ("CASH_REFUND", "CARD_REFUND")

ZERO = Decimal("0.00")


def _load_session(tenant_id: int, session_id: int, *, lock: bool = False) -> PosSession:
    query = db.session.query(PosSession).filter_by(id=session_id, tenant_id=tenant_id)
    if lock:
        query = lock_for_update(query)
    session = query.first()
    if not session:
        raise NotFoundError("POS session not found", session_id=session_id)
    return session


def _totals_by_type(session_id: int) -> dict[str, Decimal]:
    rows = (
        db.session.query(PosSessionTransaction.transaction_type, func.sum(PosSessionTransaction.amount))
        .filter(PosSessionTransaction.pos_session_id == session_id)
        .group_by(PosSessionTransaction.transaction_type)
        .all()
    )
    totals = {t: ZERO for t in TRANSACTION_TYPES}
    for transaction_type, amount in rows:
        totals[transaction_type] = Decimal(str(amount or 0)).quantize(CASH_QUANT)
    return totals


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

def start_session(
    *,
    tenant_id: int,
    location_id: int,
    terminal_id: str,
    user_id: int,
    starting_cash,
    commit: bool = True,
) -> PosSession:
    """
    Open a cash-drawer session on a terminal.

    Args:
        terminal_id: Terminal identifier, unique within the location
        starting_cash: Float placed in the drawer (>= 0)

    Raises:
        SessionAlreadyOpenError: The terminal already has an OPEN session
        ValidationError: Negative starting cash or missing terminal
        NotFoundError: Location not in this tenant
    """
    if terminal_id is None or not str(terminal_id).strip():
        raise ValidationError("terminal_id is required")
    terminal_id = str(terminal_id).strip()

    cash = to_cash(starting_cash, "starting_cash")
    if cash < 0:
        raise ValidationError("starting_cash cannot be negative")

    def _op() -> PosSession:
        # Lock the location row so two starts on the same terminal serialize
        inventory_service.require_location(tenant_id, location_id, lock=True)

        existing = db.session.query(PosSession).filter_by(
            tenant_id=tenant_id,
            location_id=location_id,
            terminal_id=terminal_id,
            status=SESSION_STATUS_OPEN,
        ).first()
        if existing:
            raise SessionAlreadyOpenError(
                "Terminal already has an open session",
                terminal_id=terminal_id,
                session_id=existing.id,
            )

        session = PosSession(
            tenant_id=tenant_id,
            location_id=location_id,
            terminal_id=terminal_id,
            user_id=user_id,
            status=SESSION_STATUS_OPEN,
            starting_cash=cash,
            opened_at=utcnow(),
        )
        db.session.add(session)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise SessionAlreadyOpenError(
                "Terminal already has an open session",
                terminal_id=terminal_id,
            ) from exc

        audit_service.append_audit_event(
            tenant_id=tenant_id,
            event_type="pos_session.opened",
            entity_type="pos_session",
            entity_id=session.id,
            actor_user_id=user_id,
            location_id=location_id,
            payload={"terminal_id": terminal_id, "starting_cash": format_decimal(cash)},
        )
        return session

    session = run_in_transaction(_op, commit=commit)
    current_app.logger.info("POS session %s opened on terminal %s", session.id, terminal_id)
    return session


def end_session(
    *,
    tenant_id: int,
    session_id: int,
    ending_cash,
    user_id: int | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> PosSession:
    """
    Close an OPEN session with the counted drawer cash.

    Stores ending, calculated and difference (ending - calculated).

    Raises:
        InvalidStateError: Session is not OPEN
    """
    counted = to_cash(ending_cash, "ending_cash")
    if counted < 0:
        raise ValidationError("ending_cash cannot be negative")

    def _op() -> PosSession:
        session = _load_session(tenant_id, session_id, lock=True)
        if session.status != SESSION_STATUS_OPEN:
            raise InvalidStateError(
                f"Cannot close session in {session.status} status",
                session_id=session_id,
                status=session.status,
            )

        calculated = calculate_cash(session.id, tenant_id=tenant_id)
        session.ending_cash = counted
        session.calculated_cash = calculated
        session.difference = counted - calculated
        session.status = SESSION_STATUS_CLOSED
        session.closed_at = utcnow()
        session.closed_by_user_id = user_id
        if notes is not None:
            session.notes = notes
        db.session.flush()

        audit_service.append_audit_event(
            tenant_id=tenant_id,
            event_type="pos_session.closed",
            entity_type="pos_session",
            entity_id=session.id,
            actor_user_id=user_id,
            location_id=session.location_id,
            payload={
                "ending_cash": format_decimal(counted),
                "calculated_cash": format_decimal(calculated),
                "difference": format_decimal(counted - calculated),
            },
        )
        return session

    session = run_in_transaction(_op, commit=commit)
    difference = Decimal(session.difference)
    if difference != 0:
        current_app.logger.warning(
            "POS session %s closed with cash difference %s (calculated %s, counted %s)",
            session.id, difference, session.calculated_cash, session.ending_cash,
        )
    else:
        current_app.logger.info("POS session %s closed, cash balanced", session.id)
    return session


def reconcile_session(*, tenant_id: int, session_id: int, user_id: int, commit: bool = True) -> PosSession:
    """
    Manager sign-off of a CLOSED session.

    Raises:
        InvalidStateError: Session is not CLOSED
    """
    def _op() -> PosSession:
        session = _load_session(tenant_id, session_id, lock=True)
        if session.status != SESSION_STATUS_CLOSED:
            raise InvalidStateError(
                f"Cannot reconcile session in {session.status} status",
                session_id=session_id,
                status=session.status,
            )

        session.status = SESSION_STATUS_RECONCILED
        session.reconciled_at = utcnow()
        session.reconciled_by_user_id = user_id
        db.session.flush()

        audit_service.append_audit_event(
            tenant_id=tenant_id,
            event_type="pos_session.reconciled",
            entity_type="pos_session",
            entity_id=session.id,
            actor_user_id=user_id,
            location_id=session.location_id,
        )
        return session

    session = run_in_transaction(_op, commit=commit)
    current_app.logger.info("POS session %s reconciled", session.id)
    return session


# =============================================================================
# SESSION TRANSACTIONS
# =============================================================================

def record_transaction(
    *,
    tenant_id: int,
    session_id: int,
    transaction_type: str,
    amount,
    user_id: int | None = None,
    related_order_id: int | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> PosSessionTransaction:
    """
    Record a money movement against an OPEN session.

    Raises:
        InvalidStateError: Session is not OPEN
        ValidationError: Unknown type or non-positive amount, or notes too long
    """
    if transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"Invalid POS transaction type: {transaction_type}")
    value = to_cash(amount)
    if value <= 0:
        raise ValidationError("amount must be positive")
    notes = to_text(notes)

    def _op() -> PosSessionTransaction:
        session = _load_session(tenant_id, session_id, lock=True)
        if session.status != SESSION_STATUS_OPEN:
            raise InvalidStateError(
                f"Cannot record transactions on a {session.status} session",
                session_id=session_id,
                status=session.status,
            )

        txn = PosSessionTransaction(
            tenant_id=tenant_id,
            pos_session_id=session.id,
            transaction_type=transaction_type,
            amount=value,
            related_order_id=related_order_id,
            notes=notes,
            user_id=user_id,
            occurred_at=utcnow(),
        )
        db.session.add(txn)
        db.session.flush()
        return txn

    return run_in_transaction(_op, commit=commit)


def record_cash_sale(*, tenant_id: int, session_id: int, amount, related_order_id: int | None = None,
                     user_id: int | None = None, commit: bool = True) -> PosSessionTransaction:
    return record_transaction(
        tenant_id=tenant_id, session_id=session_id, transaction_type="CASH_SALE", amount=amount,
        user_id=user_id, related_order_id=related_order_id, commit=commit,
    )


def record_card_sale(*, tenant_id: int, session_id: int, amount, related_order_id: int | None = None,
                     user_id: int | None = None, commit: bool = True) -> PosSessionTransaction:
    return record_transaction(
        tenant_id=tenant_id, session_id=session_id, transaction_type="CARD_SALE", amount=amount,
        user_id=user_id, related_order_id=related_order_id, commit=commit,
    )


def record_refund(*, tenant_id: int, session_id: int, amount, cash: bool = True,
                  related_order_id: int | None = None, user_id: int | None = None,
                  notes: str | None = None, commit: bool = True) -> PosSessionTransaction:
    """Refund to the customer; cash refunds leave the drawer, card refunds do not."""
    return record_transaction(
        tenant_id=tenant_id, session_id=session_id,
        transaction_type="CASH_REFUND" if cash else "CARD_REFUND",
        amount=amount, user_id=user_id, related_order_id=related_order_id, notes=notes, commit=commit,
    )


def pay_in(*, tenant_id: int, session_id: int, amount, user_id: int | None = None,
           notes: str | None = None, commit: bool = True) -> PosSessionTransaction:
    return record_transaction(
        tenant_id=tenant_id, session_id=session_id, transaction_type="PAY_IN", amount=amount,
        user_id=user_id, notes=notes, commit=commit,
    )


def pay_out(*, tenant_id: int, session_id: int, amount, user_id: int | None = None,
            notes: str | None = None, commit: bool = True) -> PosSessionTransaction:
    return record_transaction(
        tenant_id=tenant_id, session_id=session_id, transaction_type="PAY_OUT", amount=amount,
        user_id=user_id, notes=notes, commit=commit,
    )


# =============================================================================
# QUERIES
# =============================================================================

def calculate_cash(session_id: int, *, tenant_id: int | None = None) -> Decimal:
    """starting + CASH_SALE + PAY_IN - CASH_REFUND - PAY_OUT, always recomputed."""
    query = db.session.query(PosSession).filter_by(id=session_id)
    if tenant_id is not None:
        query = query.filter_by(tenant_id=tenant_id)
    session = query.first()
    if not session:
        raise NotFoundError("POS session not found", session_id=session_id)

    totals = _totals_by_type(session.id)
    cash_in = sum((totals[t] for t in CASH_IN_TYPES), ZERO)
    cash_out = sum((totals[t] for t in CASH_OUT_TYPES), ZERO)
    return (Decimal(session.starting_cash) + cash_in - cash_out).quantize(CASH_QUANT)


def get_current_session(tenant_id: int, location_id: int, terminal_id: str) -> PosSession | None:
    return db.session.query(PosSession).filter_by(
        tenant_id=tenant_id,
        location_id=location_id,
        terminal_id=str(terminal_id),
        status=SESSION_STATUS_OPEN,
    ).first()


def get_session(tenant_id: int, session_id: int) -> PosSession:
    return _load_session(tenant_id, session_id)


def get_session_summary(tenant_id: int, session_id: int) -> dict:
    """
    Per-type totals plus derived figures.

    Net sales are sales minus refunds within this session, cash and card
    together; pay-ins and pay-outs are drawer movements, not sales.
    """
    session = _load_session(tenant_id, session_id)
    totals = _totals_by_type(session.id)

    gross_sales = sum((totals[t] for t in SALE_TYPES), ZERO)
    refunds = sum((totals[t] for t in REFUND_TYPES), ZERO)
    transaction_count = (
        db.session.query(func.count(PosSessionTransaction.id))
        .filter(PosSessionTransaction.pos_session_id == session.id)
        .scalar()
    )

    return {
        "session": session.to_dict(),
        "totals_by_type": {t: format_decimal(v) for t, v in totals.items()},
        "transaction_count": int(transaction_count or 0),
        "gross_sales": format_decimal(gross_sales),
        "refunds": format_decimal(refunds),
        "net_sales": format_decimal(gross_sales - refunds),
        "calculated_cash": format_decimal(calculate_cash(session.id, tenant_id=tenant_id)),
        "difference": format_decimal(session.difference),
    }


def list_sessions(
    tenant_id: int,
    location_id: int | None = None,
    status: str | None = None,
    terminal_id: str | None = None,
) -> list[PosSession]:
    q = db.session.query(PosSession).filter(PosSession.tenant_id == tenant_id)
    if location_id is not None:
        q = q.filter(PosSession.location_id == location_id)
    if status:
        q = q.filter(PosSession.status == status)
    if terminal_id is not None:
        q = q.filter(PosSession.terminal_id == str(terminal_id))
    return q.order_by(PosSession.id.desc()).all()
