from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Index,
    Integer,
    LargeBinary,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from file_market.db.base import Base


# =========================================================
# Users / shops
# =========================================================
class User(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    card_code: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class Shop(Base):
    """
    One shop per user.
    reputation is clamped to [-1000, 1000] by the UPDATE itself.
    """
    __tablename__ = "shops"
    __table_args__ = (
        CheckConstraint("reputation BETWEEN -1000 AND 1000", name="ck_shops_reputation_range"),
        CheckConstraint("total_sales >= 0", name="ck_shops_total_sales"),
        CheckConstraint("total_earned_sats >= 0", name="ck_shops_total_earned"),
    )

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    reputation: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_sales: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_earned_sats: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")


# =========================================================
# Catalog
# =========================================================
class Item(Base):
    """
    amount:   units still for sale
    reserved: units taken out of stock while their payment is in flight
    Row is deleted after a sale once both reach 0.
    """
    __tablename__ = "items"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_items_amount"),
        CheckConstraint("reserved >= 0", name="ck_items_reserved"),
        CheckConstraint("price_sats > 0", name="ck_items_price"),
        Index("ix_items_owner_created", "owner_id", "created_at"),
        Index("ix_items_owner_name_key", "owner_id", "name_key"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    name_key: Mapped[str] = mapped_column(String(128), nullable=False, default="", server_default="")  # casefolded name
    original_filename: Mapped[str] = mapped_column(String(256), nullable=False, default="")

    price_sats: Mapped[int] = mapped_column(BigInteger, nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    file: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


# =========================================================
# Sales / votes
# =========================================================
class Purchase(Base):
    """
    Immutable snapshot of one sale. item_id is a weak reference:
    the item row may be gone already.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        Index("ix_purchases_buyer_seller", "buyer_id", "seller_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    seller_id: Mapped[str] = mapped_column(String(64), nullable=False)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    item_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")

    price_sats: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tx_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        CheckConstraint("vote IN (-5, 5)", name="ck_votes_value"),
    )

    purchase_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    voter_id: Mapped[str] = mapped_column(String(64), nullable=False)
    vote: Mapped[int] = mapped_column(Integer, nullable=False)


class Cooldown(Base):
    __tablename__ = "cooldowns"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    panel_ts: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
