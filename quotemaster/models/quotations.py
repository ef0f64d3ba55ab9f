"""Quotation, quote item, price history and kitchen demand models."""

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base

QUOTATION_STATUSES = ("pending", "negotiation", "approved", "cancelled")


class Quotation(Base):
    """One supplier's price sheet for a (period, region)."""

    __tablename__ = "quotations"
    id = Column(Integer, primary_key=True)
    quotation_code = Column(String(50), unique=True, nullable=False)
    period = Column(String(10), nullable=False)  # YYYY-MM-XX
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False)
    region = Column(String(100), nullable=False)
    quote_date = Column(UTCDateTime)
    status = Column(String(20), nullable=False, default="pending")
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    supplier = relationship("Supplier")
    items = relationship(
        "QuoteItem", back_populates="quotation", cascade="all, delete-orphan", order_by="QuoteItem.id"
    )

    __table_args__ = (
        UniqueConstraint("supplier_id", "period", "region", name="uq_quotations_supplier_period_region"),
        Index("ix_quotations_period_region", "period", "region"),
        Index("ix_quotations_status", "status"),
    )


class QuoteItem(Base):
    __tablename__ = "quote_items"
    id = Column(Integer, primary_key=True)
    quotation_id = Column(Integer, ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Numeric(12, 3))
    initial_price = Column(Numeric(15, 2))
    negotiated_price = Column(Numeric(15, 2))
    approved_price = Column(Numeric(15, 2))
    vat_percentage = Column(Numeric(5, 2), default=0)
    currency = Column(String(3), default="VND")
    price_per_unit = Column(Numeric(15, 2))
    negotiation_rounds = Column(Integer, default=0)
    last_negotiated_at = Column(UTCDateTime)
    approved_at = Column(UTCDateTime)
    approved_by = Column(Integer, ForeignKey("users.id"))
    notes = Column(Text)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    quotation = relationship("Quotation", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        UniqueConstraint("quotation_id", "product_id", name="uq_quote_items_quotation_product"),
        CheckConstraint("vat_percentage >= 0 AND vat_percentage <= 100", name="ck_quote_items_vat"),
        Index("ix_quote_items_product", "product_id"),
    )


class PriceHistory(Base):
    """Append-only ledger of recorded prices (approved prices on approval)."""

    __tablename__ = "price_history"
    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id"))
    period = Column(String(10), nullable=False)
    price = Column(Numeric(15, 2), nullable=False)
    price_type = Column(String(20), nullable=False)  # initial | negotiated | approved
    region = Column(String(100), nullable=False)
    recorded_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint(
            "product_id", "supplier_id", "period", "price_type", "region",
            name="uq_price_history_entry",
        ),
        Index("ix_price_history_lookup", "region", "price_type", "period"),
    )


class KitchenPeriodDemand(Base):
    """Quantity a kitchen expects to order for a product in a period."""

    __tablename__ = "kitchen_period_demands"
    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    period = Column(String(10), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit = Column(String(50), nullable=False)
    notes = Column(Text)
    status = Column(String(20), default="active")
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("team_id", "product_id", "period", name="uq_kitchen_demand"),
        Index("ix_kitchen_demand_period", "period", "status"),
    )
