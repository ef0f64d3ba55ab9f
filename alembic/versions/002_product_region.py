"""Add products.region, drop activity_log.channel

Revision ID: 002_product_region
Revises: 001_initial
Create Date: 2026-10-19

Products can be tied to one region; NULL keeps a product visible in every
region. The activity log only records quotation workflow changes, so the
channel column is gone.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "002_product_region"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("products", sa.Column("region", sa.String(100)))
    op.create_index("ix_products_region", "products", ["region"])
    with op.batch_alter_table("activity_log") as batch:
        batch.drop_column("channel")


def downgrade() -> None:
    with op.batch_alter_table("activity_log") as batch:
        batch.add_column(sa.Column("channel", sa.String(20), nullable=False, server_default="system"))
    op.drop_index("ix_products_region", table_name="products")
    op.drop_column("products", "region")
