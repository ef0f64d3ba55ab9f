"""
pricing.py — Quantity Resolver, Price Metric Calculator, Best-Price Selector

Pure functions over typed quote lines. No database access; callers load the
records through services/storage.py.

Business Rules:
- Effective price = approved ?? negotiated ?? initial (a 0 price is present)
- No effective price → has_price False and every total is zero
- totalPrice = price × quantity; VAT = totalPrice × rate / 100
- VAT rate outside [0, 100] or a negative price is rejected when the record
  is built, never clamped
- Quantity = kitchen demand for (team, product, period), else the product's
  base quantity, else absent (product cannot be compared)
- Best price = strict minimum VAT-inclusive total over lines with a price
  and a positive total; ties go to the lowest supplier code, then lowest id

Called by: services/comparison_service.py, services/price_list_service.py,
           services/quotation_service.py
Depends on: services/variance.py (safe_percentage), utils
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from ..utils import money, safe_decimal
from .variance import safe_percentage

ZERO = Decimal("0")
HUNDRED = Decimal("100")

QUANTITY_SOURCE_DEMAND = "kitchen_demand"
QUANTITY_SOURCE_BASE = "base_quantity"


# ── Records ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class QuoteLine:
    """One supplier's price for one product in one quotation."""

    item_id: int
    quotation_id: int
    product_id: int
    supplier_id: int
    supplier_code: str
    initial_price: Decimal | None = None
    negotiated_price: Decimal | None = None
    approved_price: Decimal | None = None
    vat_rate: Decimal = ZERO
    supplier_name: str = ""
    quotation_status: str = "pending"
    region: str | None = None
    period: str | None = None
    currency: str = "VND"
    quotation_updated_at: datetime | None = None

    def __post_init__(self):
        for name in ("initial_price", "negotiated_price", "approved_price"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be >= 0, got {value}")
        if self.vat_rate is None or not (ZERO <= self.vat_rate <= HUNDRED):
            raise ValueError(f"vat_rate must be within [0, 100], got {self.vat_rate}")


@dataclass(frozen=True)
class ProductRecord:
    id: int
    product_code: str
    name: str
    unit: str
    category: str | None = None
    specification: str | None = None
    base_price: Decimal | None = None
    base_quantity: Decimal | None = None
    region: str | None = None  # None = every region


@dataclass(frozen=True)
class Demand:
    team_id: int
    product_id: int
    period: str
    quantity: Decimal

    def __post_init__(self):
        if self.quantity is None or self.quantity <= 0:
            raise ValueError(f"demand quantity must be > 0, got {self.quantity}")


@dataclass(frozen=True)
class QuantityResolution:
    quantity: Decimal
    source: str  # kitchen_demand | base_quantity

    def to_dict(self) -> dict:
        return {"quantity": float(self.quantity), "source": self.source}


@dataclass(frozen=True)
class LineMetrics:
    price_per_unit: Decimal
    total_price: Decimal
    vat_amount: Decimal
    total_price_with_vat: Decimal
    has_price: bool

    def to_dict(self) -> dict:
        return {
            "price_per_unit": money(self.price_per_unit),
            "total_price": money(self.total_price),
            "vat_amount": money(self.vat_amount),
            "total_price_with_vat": money(self.total_price_with_vat),
            "has_price": self.has_price,
        }


NO_PRICE = LineMetrics(ZERO, ZERO, ZERO, ZERO, False)


@dataclass(frozen=True)
class Candidate:
    supplier_id: int
    supplier_code: str
    metrics: LineMetrics


@dataclass(frozen=True)
class BestPrice:
    best_supplier_id: int | None = None
    best_price: Decimal | None = None

    @property
    def found(self) -> bool:
        return self.best_supplier_id is not None

    def to_dict(self) -> dict:
        return {
            "best_supplier_id": self.best_supplier_id,
            "best_price": money(self.best_price) if self.best_price is not None else None,
        }


# ── Quantity Resolver ────────────────────────────────────────────────


def _positive(value) -> Decimal | None:
    d = safe_decimal(value)
    if d is None or d <= 0:
        return None
    return d


def resolve_quantity(product_id, team_id, period, demands, base_quantities) -> QuantityResolution | None:
    """Kitchen demand for (team, product, period), else base quantity, else None.

    ``base_quantities`` maps product id → base quantity (may be None).
    """
    if team_id is not None:
        for d in demands:
            if d.team_id == team_id and d.product_id == product_id and d.period == period:
                return QuantityResolution(d.quantity, QUANTITY_SOURCE_DEMAND)
    base = _positive(base_quantities.get(product_id))
    if base is not None:
        return QuantityResolution(base, QUANTITY_SOURCE_BASE)
    return None


def build_quantity_lookup(product_ids, demands, base_quantities, team_id=None, period=None):
    """Batch form of resolve_quantity → {product_id: QuantityResolution}.

    Products without a resolvable quantity are left out of the result.
    """
    by_product = {}
    if team_id is not None:
        for d in demands:
            if d.team_id == team_id and (period is None or d.period == period):
                by_product[d.product_id] = d.quantity
    lookup = {}
    for pid in product_ids:
        if pid in by_product:
            lookup[pid] = QuantityResolution(by_product[pid], QUANTITY_SOURCE_DEMAND)
            continue
        base = _positive(base_quantities.get(pid))
        if base is not None:
            lookup[pid] = QuantityResolution(base, QUANTITY_SOURCE_BASE)
    return lookup


# ── Price Metric Calculator ──────────────────────────────────────────


def effective_price(line: QuoteLine) -> Decimal | None:
    if line.approved_price is not None:
        return line.approved_price
    if line.negotiated_price is not None:
        return line.negotiated_price
    return line.initial_price


def compute_metrics(line: QuoteLine, quantity) -> LineMetrics:
    price = effective_price(line)
    if price is None:
        return NO_PRICE
    qty = safe_decimal(quantity) or ZERO
    total = price * qty
    vat = total * line.vat_rate / HUNDRED
    return LineMetrics(price, total, vat, total + vat, True)


def unit_price_with_vat(price, vat_rate) -> Decimal:
    price = safe_decimal(price) or ZERO
    rate = safe_decimal(vat_rate) or ZERO
    return price * (1 + rate / HUNDRED)


# ── Best-Price Selector ──────────────────────────────────────────────


def select_best(candidates) -> BestPrice:
    eligible = [
        c for c in candidates
        if c.metrics.has_price and c.metrics.total_price_with_vat > 0
    ]
    if not eligible:
        return BestPrice()
    winner = min(
        eligible,
        key=lambda c: (c.metrics.total_price_with_vat, c.supplier_code or "", c.supplier_id),
    )
    return BestPrice(winner.supplier_id, winner.metrics.total_price_with_vat)


# ── Cost helpers ─────────────────────────────────────────────────────


def calculate_savings(current, baseline) -> dict:
    """Savings of ``current`` against ``baseline`` (positive = cheaper)."""
    current = safe_decimal(current) or ZERO
    baseline = safe_decimal(baseline) or ZERO
    amount = baseline - current
    return {"amount": money(amount), "percentage": safe_percentage(amount, baseline)}


def calculate_total_cost(items) -> dict:
    """Sum (price, quantity, vat_rate) tuples into subtotal / VAT / total."""
    subtotal = ZERO
    vat = ZERO
    for price, quantity, vat_rate in items:
        line_total = (safe_decimal(price) or ZERO) * (safe_decimal(quantity) or ZERO)
        subtotal += line_total
        vat += line_total * (safe_decimal(vat_rate) or ZERO) / HUNDRED
    return {"subtotal": money(subtotal), "vat_amount": money(vat), "total": money(subtotal + vat)}
