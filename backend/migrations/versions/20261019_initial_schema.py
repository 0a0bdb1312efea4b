"""Initial stock engine schema

Revision ID: 20261019_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


QTY = sa.Numeric(18, 4)
CASH = sa.Numeric(12, 2)
NOW = sa.text("CURRENT_TIMESTAMP")


def _ts(name, nullable=False, default=True):
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=NOW if default else None,
        nullable=nullable,
    )


def upgrade():
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_tenants_code", "tenants", ["code"], unique=True)
    op.create_index("ix_tenants_is_active", "tenants", ["is_active"], unique=False)

    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=True),
        sa.Column("location_type", sa.String(length=16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _ts("created_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "name", name="uq_locations_tenant_name"),
        sa.UniqueConstraint("tenant_id", "code", name="uq_locations_tenant_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_locations_tenant_id", "locations", ["tenant_id"], unique=False)
    op.create_index("ix_locations_is_active", "locations", ["is_active"], unique=False)

    op.create_table(
        "tenant_inventory_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("schema_version", sa.Integer(), nullable=False),
        sa.Column("allow_negative_stock", sa.Boolean(), nullable=False),
        sa.Column("enforce_available_on_sale", sa.Boolean(), nullable=False),
        sa.Column("low_stock_alerts_enabled", sa.Boolean(), nullable=False),
        sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
        _ts("updated_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index(
        "ix_tenant_inventory_settings_tenant_id", "tenant_inventory_settings", ["tenant_id"], unique=True
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_stock_tracked", sa.Boolean(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_tenant_id", "products", ["tenant_id"], unique=False)
    op.create_index("ix_products_tenant_active", "products", ["tenant_id", "is_active"], unique=False)

    op.create_table(
        "units_of_measure",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("conversion_factor", QTY, nullable=False),
        sa.CheckConstraint("conversion_factor > 0", name="ck_uom_factor_positive"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "code", name="uq_uom_product_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_units_of_measure_tenant_id", "units_of_measure", ["tenant_id"], unique=False)
    op.create_index("ix_units_of_measure_product_id", "units_of_measure", ["product_id"], unique=False)

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("quantity_on_hand", QTY, nullable=False),
        sa.Column("quantity_allocated", QTY, nullable=False),
        sa.Column("quantity_incoming", QTY, nullable=False),
        sa.Column("average_cost", QTY, nullable=True),
        sa.Column("reorder_point", QTY, nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "product_id", "location_id", name="uq_inventory_items_key"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_inventory_items_tenant_id", "inventory_items", ["tenant_id"], unique=False)
    op.create_index("ix_inventory_items_product_id", "inventory_items", ["product_id"], unique=False)
    op.create_index("ix_inventory_items_location_id", "inventory_items", ["location_id"], unique=False)
    op.create_index(
        "ix_inventory_items_tenant_location", "inventory_items", ["tenant_id", "location_id"], unique=False
    )

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(length=32), nullable=False),
        sa.Column("quantity_change", QTY, nullable=False),
        sa.Column("unit_cost", QTY, nullable=True),
        sa.Column("related_document_type", sa.String(length=32), nullable=False),
        sa.Column("related_document_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        _ts("occurred_at"),
        _ts("created_at"),
        sa.CheckConstraint("quantity_change <> 0", name="ck_invtx_nonzero"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_inventory_transactions_tenant_id", "inventory_transactions", ["tenant_id"], unique=False)
    op.create_index("ix_inventory_transactions_product_id", "inventory_transactions", ["product_id"], unique=False)
    op.create_index("ix_inventory_transactions_location_id", "inventory_transactions", ["location_id"], unique=False)
    op.create_index(
        "ix_inventory_transactions_transaction_type", "inventory_transactions", ["transaction_type"], unique=False
    )
    op.create_index("ix_inventory_transactions_user_id", "inventory_transactions", ["user_id"], unique=False)
    op.create_index("ix_inventory_transactions_occurred_at", "inventory_transactions", ["occurred_at"], unique=False)
    op.create_index(
        "ix_invtx_key_occurred",
        "inventory_transactions",
        ["tenant_id", "product_id", "location_id", "occurred_at"],
        unique=False,
    )
    op.create_index(
        "ix_invtx_related", "inventory_transactions", ["related_document_type", "related_document_id"], unique=False
    )
    op.create_index(
        "ix_invtx_tenant_idempotency", "inventory_transactions", ["tenant_id", "idempotency_key"], unique=False
    )

    op.create_table(
        "inventory_adjustments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("document_number", sa.String(length=64), nullable=False),
        sa.Column("reason_code", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        _ts("created_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "document_number", name="uq_adjustments_tenant_docnum"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_inventory_adjustments_tenant_id", "inventory_adjustments", ["tenant_id"], unique=False)
    op.create_index(
        "ix_adjustments_tenant_location", "inventory_adjustments", ["tenant_id", "location_id"], unique=False
    )

    op.create_table(
        "inventory_adjustment_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("adjustment_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity_change", QTY, nullable=False),
        sa.Column("unit_cost", QTY, nullable=True),
        sa.Column("inventory_transaction_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["adjustment_id"], ["inventory_adjustments.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["inventory_transaction_id"], ["inventory_transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index(
        "ix_inventory_adjustment_items_tenant_id", "inventory_adjustment_items", ["tenant_id"], unique=False
    )
    op.create_index(
        "ix_inventory_adjustment_items_adjustment_id", "inventory_adjustment_items", ["adjustment_id"], unique=False
    )

    op.create_table(
        "inventory_transfers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("source_location_id", sa.Integer(), nullable=False),
        sa.Column("destination_location_id", sa.Integer(), nullable=False),
        sa.Column("document_number", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False),
        sa.Column("tracking_number", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        sa.Column("shipped_by_user_id", sa.Integer(), nullable=True),
        sa.Column("received_by_user_id", sa.Integer(), nullable=True),
        sa.Column("cancelled_by_user_id", sa.Integer(), nullable=True),
        _ts("created_at"),
        _ts("shipped_at", nullable=True, default=False),
        _ts("received_at", nullable=True, default=False),
        _ts("cancelled_at", nullable=True, default=False),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.CheckConstraint(
            "source_location_id <> destination_location_id", name="ck_transfers_distinct_locations"
        ),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["source_location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["destination_location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "document_number", name="uq_transfers_tenant_docnum"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_inventory_transfers_tenant_id", "inventory_transfers", ["tenant_id"], unique=False)
    op.create_index(
        "ix_inventory_transfers_source_location_id", "inventory_transfers", ["source_location_id"], unique=False
    )
    op.create_index(
        "ix_inventory_transfers_destination_location_id",
        "inventory_transfers",
        ["destination_location_id"],
        unique=False,
    )
    op.create_index("ix_inventory_transfers_status", "inventory_transfers", ["status"], unique=False)
    op.create_index("ix_transfers_tenant_status", "inventory_transfers", ["tenant_id", "status"], unique=False)

    op.create_table(
        "inventory_transfer_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("transfer_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("uom_id", sa.Integer(), nullable=True),
        sa.Column("quantity_requested", QTY, nullable=False),
        sa.Column("conversion_factor", QTY, nullable=False),
        sa.Column("quantity_shipped_base", QTY, nullable=False),
        sa.Column("quantity_received_base", QTY, nullable=False),
        sa.Column("unit_cost", QTY, nullable=True),
        sa.CheckConstraint("conversion_factor > 0", name="ck_transfer_items_factor_positive"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["transfer_id"], ["inventory_transfers.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["uom_id"], ["units_of_measure.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transfer_id", "product_id", name="uq_transfer_items_transfer_product"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_inventory_transfer_items_tenant_id", "inventory_transfer_items", ["tenant_id"], unique=False)
    op.create_index(
        "ix_inventory_transfer_items_transfer_id", "inventory_transfer_items", ["transfer_id"], unique=False
    )

    op.create_table(
        "stock_counts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("count_number", sa.String(length=64), nullable=False),
        sa.Column("count_type", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("initiated_by_user_id", sa.Integer(), nullable=False),
        sa.Column("reviewed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("completed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("cancelled_by_user_id", sa.Integer(), nullable=True),
        _ts("initiated_at"),
        _ts("reviewed_at", nullable=True, default=False),
        _ts("completed_at", nullable=True, default=False),
        _ts("cancelled_at", nullable=True, default=False),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "count_number", name="uq_stock_counts_tenant_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stock_counts_tenant_id", "stock_counts", ["tenant_id"], unique=False)
    op.create_index("ix_stock_counts_location_id", "stock_counts", ["location_id"], unique=False)
    op.create_index("ix_stock_counts_status", "stock_counts", ["status"], unique=False)
    op.create_index("ix_stock_counts_tenant_status", "stock_counts", ["tenant_id", "status"], unique=False)

    op.create_table(
        "stock_count_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("stock_count_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("snapshot_quantity", QTY, nullable=False),
        sa.Column("unit_cost_at_snapshot", QTY, nullable=True),
        sa.Column("counted_quantity", QTY, nullable=True),
        sa.Column("variance", QTY, nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.Column("review_notes", sa.String(length=255), nullable=True),
        sa.Column("counted_by_user_id", sa.Integer(), nullable=True),
        _ts("counted_at", nullable=True, default=False),
        sa.Column("inventory_transaction_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["stock_count_id"], ["stock_counts.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["inventory_transaction_id"], ["inventory_transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stock_count_id", "product_id", name="uq_stock_count_items_count_product"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stock_count_items_tenant_id", "stock_count_items", ["tenant_id"], unique=False)
    op.create_index("ix_stock_count_items_stock_count_id", "stock_count_items", ["stock_count_id"], unique=False)

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("location_id", sa.Integer(), nullable=True),
        _ts("occurred_at"),
        _ts("created_at"),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_audit_events_tenant_id", "audit_events", ["tenant_id"], unique=False)
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"], unique=False)
    op.create_index("ix_audit_events_tenant_occurred", "audit_events", ["tenant_id", "occurred_at"], unique=False)
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(length=32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False),
        _ts("updated_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "document_type", name="uq_doc_sequences_tenant_type"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_document_sequences_tenant_id", "document_sequences", ["tenant_id"], unique=False)

    op.create_table(
        "idempotency_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("idempotency_key", sa.String(length=128), nullable=False),
        sa.Column("operation", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        _ts("created_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "idempotency_key", name="uq_idempotency_tenant_key"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_idempotency_records_tenant_id", "idempotency_records", ["tenant_id"], unique=False)

    op.create_table(
        "pos_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("terminal_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("starting_cash", CASH, nullable=False),
        sa.Column("ending_cash", CASH, nullable=True),
        sa.Column("calculated_cash", CASH, nullable=True),
        sa.Column("difference", CASH, nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("opened_at"),
        _ts("closed_at", nullable=True, default=False),
        sa.Column("closed_by_user_id", sa.Integer(), nullable=True),
        _ts("reconciled_at", nullable=True, default=False),
        sa.Column("reconciled_by_user_id", sa.Integer(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_sessions_tenant_id", "pos_sessions", ["tenant_id"], unique=False)
    op.create_index("ix_pos_sessions_location_id", "pos_sessions", ["location_id"], unique=False)
    op.create_index("ix_pos_sessions_user_id", "pos_sessions", ["user_id"], unique=False)
    op.create_index("ix_pos_sessions_status", "pos_sessions", ["status"], unique=False)
    op.create_index("ix_pos_sessions_tenant_status", "pos_sessions", ["tenant_id", "status"], unique=False)
    op.create_index(
        "uq_pos_sessions_open_terminal",
        "pos_sessions",
        ["tenant_id", "location_id", "terminal_id"],
        unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    op.create_table(
        "pos_session_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("pos_session_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(length=16), nullable=False),
        sa.Column("amount", CASH, nullable=False),
        sa.Column("related_order_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        _ts("occurred_at"),
        sa.CheckConstraint("amount > 0", name="ck_pos_txn_amount_positive"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["pos_session_id"], ["pos_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_session_transactions_tenant_id", "pos_session_transactions", ["tenant_id"], unique=False)
    op.create_index(
        "ix_pos_session_transactions_pos_session_id", "pos_session_transactions", ["pos_session_id"], unique=False
    )
    op.create_index(
        "ix_pos_session_transactions_transaction_type",
        "pos_session_transactions",
        ["transaction_type"],
        unique=False,
    )
    op.create_index(
        "ix_pos_session_transactions_related_order_id",
        "pos_session_transactions",
        ["related_order_id"],
        unique=False,
    )


def downgrade():
    for table in (
        "pos_session_transactions",
        "pos_sessions",
        "idempotency_records",
        "document_sequences",
        "audit_events",
        "stock_count_items",
        "stock_counts",
        "inventory_transfer_items",
        "inventory_transfers",
        "inventory_adjustment_items",
        "inventory_adjustments",
        "inventory_transactions",
        "inventory_items",
        "units_of_measure",
        "products",
        "tenant_inventory_settings",
        "locations",
        "tenants",
    ):
        op.drop_table(table)
