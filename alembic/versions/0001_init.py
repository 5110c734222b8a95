"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("card_code", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False, server_default="0"),
    )

    op.create_table(
        "shops",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("reputation", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_sales", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_earned_sats", sa.BigInteger(), nullable=False, server_default="0"),
        sa.CheckConstraint("reputation BETWEEN -1000 AND 1000", name="ck_shops_reputation_range"),
        sa.CheckConstraint("total_sales >= 0", name="ck_shops_total_sales"),
        sa.CheckConstraint("total_earned_sats >= 0", name="ck_shops_total_earned"),
    )

    op.create_table(
        "items",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("name_key", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("original_filename", sa.String(length=256), nullable=False, server_default=""),
        sa.Column("price_sats", sa.BigInteger(), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reserved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("file", sa.LargeBinary(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False, server_default="0"),
        sa.CheckConstraint("amount >= 0", name="ck_items_amount"),
        sa.CheckConstraint("reserved >= 0", name="ck_items_reserved"),
        sa.CheckConstraint("price_sats > 0", name="ck_items_price"),
    )
    op.create_index("ix_items_owner_created", "items", ["owner_id", "created_at"])
    op.create_index("ix_items_owner_name_key", "items", ["owner_id", "name_key"])

    op.create_table(
        "purchases",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("buyer_id", sa.String(length=64), nullable=False),
        sa.Column("seller_id", sa.String(length=64), nullable=False),
        sa.Column("item_id", sa.String(length=64), nullable=False),
        sa.Column("item_name", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("price_sats", sa.BigInteger(), nullable=False),
        sa.Column("tx_id", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False, server_default="0"),
    )
    op.create_index("ix_purchases_buyer_seller", "purchases", ["buyer_id", "seller_id", "created_at"])

    op.create_table(
        "votes",
        sa.Column("purchase_id", sa.String(length=64), primary_key=True),
        sa.Column("voter_id", sa.String(length=64), nullable=False),
        sa.Column("vote", sa.Integer(), nullable=False),
        sa.CheckConstraint("vote IN (-5, 5)", name="ck_votes_value"),
    )

    op.create_table(
        "cooldowns",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("panel_ts", sa.BigInteger(), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    op.drop_table("cooldowns")
    op.drop_table("votes")

    op.drop_index("ix_purchases_buyer_seller", table_name="purchases")
    op.drop_table("purchases")

    op.drop_index("ix_items_owner_name_key", table_name="items")
    op.drop_index("ix_items_owner_created", table_name="items")
    op.drop_table("items")

    op.drop_table("shops")
    op.drop_table("users")
