"""Product catalog and supplier models."""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
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


class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True)
    product_code = Column(String(50), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    specification = Column(Text)
    unit = Column(String(50), nullable=False)
    category = Column(String(100))
    region = Column(String(100))  # NULL = available in every region
    base_price = Column(Numeric(15, 2))  # catalog reference price
    base_quantity = Column(Numeric(12, 3))  # fallback quantity when no kitchen demand
    status = Column(String(20), default="active")
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    deleted_at = Column(UTCDateTime)

    __table_args__ = (
        Index("ix_products_category", "category"),
        Index("ix_products_status", "status"),
        Index("ix_products_region", "region"),
    )


class Supplier(Base):
    __tablename__ = "suppliers"
    id = Column(Integer, primary_key=True)
    supplier_code = Column(String(50), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    tax_id = Column(String(50))
    address = Column(Text)
    contact_person = Column(String(255))
    phone = Column(String(50))
    email = Column(String(255))
    status = Column(String(20), default="active")  # active | inactive
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    deleted_at = Column(UTCDateTime)

    __table_args__ = (Index("ix_suppliers_status", "status"),)


class SupplierServiceScope(Base):
    """Which suppliers may serve which team."""

    __tablename__ = "supplier_service_scopes"
    id = Column(Integer, primary_key=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    supplier = relationship("Supplier")
    team = relationship("Team")

    __table_args__ = (
        UniqueConstraint("supplier_id", "team_id", name="uq_supplier_scope"),
        Index("ix_supplier_scope_team", "team_id", "is_active"),
    )
