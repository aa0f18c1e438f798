"""Billing core tables: accounts, charging infrastructure, sessions, invoices and settlement runs.

Revision ID: 20261016_01
Revises: 
Create Date: 2026-10-16
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261016_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

invoice_status = sa.Enum(
    "draft",
    "open",
    "paid",
    "uncollectible",
    "void",
    "deleted",
    name="billing_invoice_status_enum",
)


def upgrade() -> None:
    status_check = sa.CheckConstraint(
        "status IN ('active','pending','blocked','inactive')", name="ck_users_status_valid"
    )

    op.create_table(
        "users",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("locale", sa.String(length=16), nullable=False, server_default="en_US"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("free_access", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("billing_customer_id", sa.String(), nullable=True),
        sa.Column("billing_live_mode", sa.Boolean(), nullable=True),
        sa.Column("billing_last_changed_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        status_check,
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_billing_customer_id", "users", ["billing_customer_id"])

    op.create_table(
        "site_areas",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("access_control", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "charging_stations",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("site_area_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("vendor", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["site_area_id"], ["site_areas.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_charging_stations_site_area_id", "charging_stations", ["site_area_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("charging_station_id", sa.String(), nullable=True),
        sa.Column("site_area_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("stop_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_consumption_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_consumption_wh", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("billing_data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["charging_station_id"], ["charging_stations.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["site_area_id"], ["site_areas.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])

    op.create_table(
        "billing_invoices",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("invoice_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("number", sa.String(), nullable=True),
        sa.Column("status", invoice_status, nullable=False, server_default="draft"),
        sa.Column("live_mode", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="EUR"),
        sa.Column("pay_invoice_url", sa.String(), nullable=True),
        sa.Column("download_url", sa.String(), nullable=True),
        sa.Column("sessions", sa.JSON(), nullable=True),
        sa.Column("created_on", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_billing_invoices_invoice_id", "billing_invoices", ["invoice_id"], unique=True)
    op.create_index("ix_billing_invoices_user_id", "billing_invoices", ["user_id"])
    op.create_index("ix_billing_invoices_status", "billing_invoices", ["status"])
    op.create_index("ix_billing_invoices_created_on", "billing_invoices", ["created_on"])

    op.create_table(
        "billing_settlement_runs",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="running"),
        sa.Column("forced", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("triggered_by", sa.String(), nullable=True),
        sa.Column("succeeded_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("compensated_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("billing_settlement_runs")
    op.drop_index("ix_billing_invoices_created_on", table_name="billing_invoices")
    op.drop_index("ix_billing_invoices_status", table_name="billing_invoices")
    op.drop_index("ix_billing_invoices_user_id", table_name="billing_invoices")
    op.drop_index("ix_billing_invoices_invoice_id", table_name="billing_invoices")
    op.drop_table("billing_invoices")
    invoice_status.drop(op.get_bind(), checkfirst=True)
    op.drop_index("ix_transactions_user_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_charging_stations_site_area_id", table_name="charging_stations")
    op.drop_table("charging_stations")
    op.drop_table("site_areas")
    op.drop_index("ix_users_billing_customer_id", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
