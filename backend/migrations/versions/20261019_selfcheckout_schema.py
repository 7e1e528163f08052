"""Self-checkout schema: stations, inventory, purchases, receipts, payments, purchase events

Revision ID: 20261019_selfcheckout
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_selfcheckout"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "stations",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "inventory",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("product_id_primary", sa.String(length=128), nullable=True),
        sa.Column("product_id_secondary", sa.String(length=128), nullable=True),
        sa.Column("product_ref", sa.String(length=160), nullable=True),
        sa.Column("product_ref_field", sa.String(length=32), nullable=True),
        sa.Column("stock_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("stock_level >= 0", name="ck_inventory_stock_non_negative"),
    )
    op.create_index("ix_inventory_product_id_primary", "inventory", ["product_id_primary"])
    op.create_index("ix_inventory_product_id_secondary", "inventory", ["product_id_secondary"])
    op.create_index("ix_inventory_product_ref", "inventory", ["product_ref"])

    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("station_id", sa.String(length=64), sa.ForeignKey("stations.id"), nullable=False),
        sa.Column("customer_ref", sa.String(length=128), nullable=False, server_default="Guest"),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(length=32), nullable=False),
        sa.Column("payment_status", sa.String(length=64), nullable=False),
        sa.Column("payment_status_raw", sa.String(length=64), nullable=True),
        sa.Column("payment_details", sa.JSON(), nullable=True),
        sa.Column("receipt_token", sa.String(length=64), nullable=True, unique=True),
        sa.Column("inventory_decremented", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("inventory_decrement_source", sa.String(length=64), nullable=True),
        sa.Column("inventory_decremented_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("inventory_decrement_result", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_purchases_station_id", "purchases", ["station_id"])
    op.create_index("ix_purchases_payment_method", "purchases", ["payment_method"])
    op.create_index("ix_purchases_inventory_decremented", "purchases", ["inventory_decremented"])
    op.create_index("ix_purchases_station_created", "purchases", ["station_id", "created_at"])

    op.create_table(
        "public_receipts",
        sa.Column("token", sa.String(length=64), primary_key=True),
        sa.Column("purchase_id", sa.Integer(), sa.ForeignKey("purchases.id"), nullable=False, unique=True),
        sa.Column("station_id", sa.String(length=64), nullable=False),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("payment_status", sa.String(length=64), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "payment_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("provider_ref", sa.String(length=128), nullable=False),
        sa.Column("station_id", sa.String(length=64), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("checkout_url", sa.String(length=512), nullable=True),
        sa.Column("paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("provider_state", sa.String(length=64), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("callback_received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_callback", sa.JSON(), nullable=True),
        sa.Column("linked_purchase_id", sa.Integer(), sa.ForeignKey("purchases.id"), nullable=True, unique=True),
        sa.Column("receipt_token", sa.String(length=64), nullable=True),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint("provider", "provider_ref", name="uq_payment_records_provider_ref"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_payment_records_provider", "payment_records", ["provider"])
    op.create_index("ix_payment_records_station_id", "payment_records", ["station_id"])

    op.create_table(
        "payment_callbacks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("provider_ref", sa.String(length=128), nullable=True),
        sa.Column("paid", sa.String(length=16), nullable=True),
        sa.Column("paid_at", sa.String(length=64), nullable=True),
        sa.Column("signature", sa.String(length=255), nullable=True),
        sa.Column("body", sa.JSON(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_payment_callbacks_provider", "payment_callbacks", ["provider"])
    op.create_index("ix_payment_callbacks_provider_ref", "payment_callbacks", ["provider_ref"])
    op.create_index("ix_payment_callbacks_received_at", "payment_callbacks", ["received_at"])

    op.create_table(
        "purchase_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("topic", sa.String(length=64), nullable=False),
        sa.Column("purchase_id", sa.Integer(), sa.ForeignKey("purchases.id"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint("topic", "purchase_id", name="uq_purchase_events_topic_purchase"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_purchase_events_purchase_id", "purchase_events", ["purchase_id"])
    op.create_index("ix_purchase_events_status_retry", "purchase_events", ["status", "next_retry_at"])


def downgrade():
    op.drop_table("purchase_events")
    op.drop_table("payment_callbacks")
    op.drop_table("payment_records")
    op.drop_table("public_receipts")
    op.drop_table("purchases")
    op.drop_table("inventory")
    op.drop_table("stations")
