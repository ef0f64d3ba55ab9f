"""quotation schema baseline

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Users, teams and memberships, the product / supplier catalog, quotations
with their items, the approved price ledger and kitchen demand.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255)),
        sa.Column("status", sa.String(20)),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime()),
    )
    op.create_table(
        "teams",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("team_code", sa.String(50), unique=True),
        sa.Column("region", sa.String(100)),
        sa.Column("address", sa.Text()),
        sa.Column("manager_id", sa.Integer(), sa.ForeignKey("users.id")),
        sa.Column("team_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20)),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime()),
    )
    op.create_index("ix_teams_region", "teams", ["region"])
    op.create_index("ix_teams_type", "teams", ["team_type"])

    op.create_table(
        "team_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("joined_at", sa.DateTime()),
        sa.Column("left_at", sa.DateTime()),
        sa.UniqueConstraint("user_id", "team_id", name="uq_team_members_user_team"),
    )
    op.create_index("ix_team_members_user", "team_members", ["user_id"])
    op.create_index("ix_team_members_team", "team_members", ["team_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_code", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("specification", sa.Text()),
        sa.Column("unit", sa.String(50), nullable=False),
        sa.Column("category", sa.String(100)),
        sa.Column("base_price", sa.Numeric(15, 2)),
        sa.Column("base_quantity", sa.Numeric(12, 3)),
        sa.Column("status", sa.String(20)),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime()),
    )
    op.create_index("ix_products_category", "products", ["category"])
    op.create_index("ix_products_status", "products", ["status"])

    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("supplier_code", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("tax_id", sa.String(50)),
        sa.Column("address", sa.Text()),
        sa.Column("contact_person", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("email", sa.String(255)),
        sa.Column("status", sa.String(20)),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime()),
    )
    op.create_index("ix_suppliers_status", "suppliers", ["status"])

    op.create_table(
        "supplier_service_scopes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime()),
        sa.UniqueConstraint("supplier_id", "team_id", name="uq_supplier_scope"),
    )
    op.create_index("ix_supplier_scope_team", "supplier_service_scopes", ["team_id", "is_active"])

    op.create_table(
        "quotations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("quotation_code", sa.String(50), nullable=False, unique=True),
        sa.Column("period", sa.String(10), nullable=False),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("region", sa.String(100), nullable=False),
        sa.Column("quote_date", sa.DateTime()),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id")),
        *_timestamps(),
        sa.UniqueConstraint("supplier_id", "period", "region", name="uq_quotations_supplier_period_region"),
    )
    op.create_index("ix_quotations_period_region", "quotations", ["period", "region"])
    op.create_index("ix_quotations_status", "quotations", ["status"])

    op.create_table(
        "quote_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("quotation_id", sa.Integer(), sa.ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 3)),
        sa.Column("initial_price", sa.Numeric(15, 2)),
        sa.Column("negotiated_price", sa.Numeric(15, 2)),
        sa.Column("approved_price", sa.Numeric(15, 2)),
        sa.Column("vat_percentage", sa.Numeric(5, 2), server_default="0"),
        sa.Column("currency", sa.String(3)),
        sa.Column("price_per_unit", sa.Numeric(15, 2)),
        sa.Column("negotiation_rounds", sa.Integer()),
        sa.Column("last_negotiated_at", sa.DateTime()),
        sa.Column("approved_at", sa.DateTime()),
        sa.Column("approved_by", sa.Integer(), sa.ForeignKey("users.id")),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.UniqueConstraint("quotation_id", "product_id", name="uq_quote_items_quotation_product"),
        sa.CheckConstraint("vat_percentage >= 0 AND vat_percentage <= 100", name="ck_quote_items_vat"),
    )
    op.create_index("ix_quote_items_product", "quote_items", ["product_id"])

    op.create_table(
        "price_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id")),
        sa.Column("period", sa.String(10), nullable=False),
        sa.Column("price", sa.Numeric(15, 2), nullable=False),
        sa.Column("price_type", sa.String(20), nullable=False),
        sa.Column("region", sa.String(100), nullable=False),
        sa.Column("recorded_at", sa.DateTime()),
        sa.UniqueConstraint(
            "product_id", "supplier_id", "period", "price_type", "region", name="uq_price_history_entry"
        ),
    )
    op.create_index("ix_price_history_lookup", "price_history", ["region", "price_type", "period"])

    op.create_table(
        "kitchen_period_demands",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("period", sa.String(10), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 3), nullable=False),
        sa.Column("unit", sa.String(50), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("status", sa.String(20)),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id")),
        *_timestamps(),
        sa.UniqueConstraint("team_id", "product_id", "period", name="uq_kitchen_demand"),
    )
    op.create_index("ix_kitchen_demand_period", "kitchen_period_demands", ["period", "status"])

    op.create_table(
        "activity_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("activity_type", sa.String(40), nullable=False),
        sa.Column("channel", sa.String(20), nullable=False),
        sa.Column("quotation_id", sa.Integer(), sa.ForeignKey("quotations.id", ondelete="SET NULL")),
        sa.Column("subject", sa.String(500)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime()),
    )
    op.create_index("ix_activity_quotation", "activity_log", ["quotation_id", "created_at"])


def downgrade() -> None:
    """Drop every table. Destroys the price ledger; dev/test only."""
    for table in (
        "activity_log",
        "kitchen_period_demands",
        "price_history",
        "quote_items",
        "quotations",
        "supplier_service_scopes",
        "suppliers",
        "products",
        "team_members",
        "teams",
        "users",
    ):
        op.drop_table(table)
