"""Database models — re-exports all models.

Import from here:  from quotemaster.models import User, Quotation, ...
Or from submodules: from quotemaster.models.quotations import Quotation
"""

from .base import Base  # noqa: F401

# Auth & Membership
from .auth import TeamMember, User  # noqa: F401

# Teams (kitchens / offices)
from .teams import Team  # noqa: F401

# Catalog & Suppliers
from .catalog import Product, Supplier, SupplierServiceScope  # noqa: F401

# Quotations, Price History, Demand
from .quotations import (  # noqa: F401
    QUOTATION_STATUSES,
    KitchenPeriodDemand,
    PriceHistory,
    Quotation,
    QuoteItem,
)

# Audit
from .activity import ActivityLog  # noqa: F401
