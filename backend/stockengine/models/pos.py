from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import format_decimal

# Cash is kept to the cent
Cash = db.Numeric(12, 2)

CASH_IN_TYPES = ("CASH_SALE", "PAY_IN")
CASH_OUT_TYPES = ("CASH_REFUND", "PAY_OUT")


class PosSession(db.Model):
    """
    Cash-drawer session for one POS terminal.

    LIFECYCLE:
    - OPEN: accepting cash and card transactions
    - CLOSED: drawer counted, calculated cash and difference frozen
    - RECONCILED: a manager signed off the difference

    Parallel bookkeeping only: nothing here touches inventory counters.
    At most one OPEN session per (tenant, location, terminal).
    """
    __tablename__ = "pos_sessions"
    __table_args__ = (
        db.Index(
            "uq_pos_sessions_open_terminal",
            "tenant_id",
            "location_id",
            "terminal_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        db.Index("ix_pos_sessions_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    terminal_id = db.Column(db.String(64), nullable=False)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)

    starting_cash = db.Column(Cash, nullable=False, default=Decimal("0"))
    ending_cash = db.Column(Cash, nullable=True)
    calculated_cash = db.Column(Cash, nullable=True)
    difference = db.Column(Cash, nullable=True)  # ending - calculated

    notes = db.Column(db.Text, nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_user_id = db.Column(db.Integer, nullable=True)
    reconciled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reconciled_by_user_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    transactions = db.relationship(
        "PosSessionTransaction",
        backref="session",
        lazy=True,
        order_by="PosSessionTransaction.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PosSession id={self.id} terminal={self.terminal_id!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "location_id": self.location_id,
            "terminal_id": self.terminal_id,
            "user_id": self.user_id,
            "status": self.status,
            "starting_cash": format_decimal(self.starting_cash),
            "ending_cash": format_decimal(self.ending_cash),
            "calculated_cash": format_decimal(self.calculated_cash),
            "difference": format_decimal(self.difference),
            "notes": self.notes,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "closed_by_user_id": self.closed_by_user_id,
            "reconciled_at": to_utc_z(self.reconciled_at),
            "reconciled_by_user_id": self.reconciled_by_user_id,
            "version_id": self.version_id,
        }


class PosSessionTransaction(db.Model):
    """
    One money movement in a POS session. Amount is always positive; the
    transaction_type decides the direction and whether cash is involved.
    """
    __tablename__ = "pos_session_transactions"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_pos_txn_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    pos_session_id = db.Column(db.Integer, db.ForeignKey("pos_sessions.id"), nullable=False, index=True)

    # CASH_SALE, CARD_SALE, CASH_REFUND, CARD_REFUND, PAY_IN, PAY_OUT
    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    amount = db.Column(Cash, nullable=False)

    related_order_id = db.Column(db.Integer, nullable=True, index=True)
    notes = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def cash_effect(self) -> Decimal:
        if self.transaction_type in CASH_IN_TYPES:
            return Decimal(self.amount)
        if self.transaction_type in CASH_OUT_TYPES:
            return -Decimal(self.amount)
        return Decimal("0")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pos_session_id": self.pos_session_id,
            "transaction_type": self.transaction_type,
            "amount": format_decimal(self.amount),
            "cash_effect": format_decimal(self.cash_effect),
            "related_order_id": self.related_order_id,
            "notes": self.notes,
            "user_id": self.user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
