"""
variance.py — Variance Engine

Difference / percentage of a current value against a baseline, and the
per-supplier aggregates built on top of it.

Business Rules:
- variance = {difference: current - baseline,
              percentage: difference / baseline × 100 if baseline > 0 else 0}
- Percentages are never NaN or Infinity, whatever the input
- Supplier aggregate baselines within a (region, category) slice:
    base     = Σ qty × cheapest opening (initial) bid across all suppliers
    previous = Σ qty × this supplier's approved price in the latest prior
               approved period; None when no product has one
    initial  = Σ qty × this supplier's own initial price
    catalog  = Σ qty × product catalog base price; None when none is set
- Previous-period variance compares only the products that have a
  previous price, so missing history never looks like a price drop
- Trend: up / down beyond ±0.5 %, otherwise stable

Called by: services/comparison_service.py, services/dashboard_service.py,
           services/pricing.py
Depends on: utils (safe_decimal, money)
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal

from ..utils import money, safe_decimal

STABLE_BAND_PCT = 0.5

_ZERO = Decimal("0")


def safe_percentage(difference, baseline) -> float:
    """difference / baseline × 100, rounded to 2 decimals; 0 when undefined."""
    diff = safe_decimal(difference)
    base = safe_decimal(baseline)
    if diff is None or base is None or base <= 0:
        return 0.0
    pct = float(diff / base * 100)
    if not math.isfinite(pct):
        return 0.0
    return round(pct, 2)


@dataclass(frozen=True)
class Variance:
    difference: Decimal
    percentage: float

    def to_dict(self) -> dict:
        return {"difference": money(self.difference), "percentage": self.percentage}


def compute_variance(current, baseline) -> Variance:
    current = safe_decimal(current) or _ZERO
    baseline = safe_decimal(baseline) or _ZERO
    diff = current - baseline
    return Variance(diff, safe_percentage(diff, baseline))


def variance_trend(percentage, band: float = STABLE_BAND_PCT) -> str:
    if percentage is None:
        return "stable"
    if percentage > band:
        return "up"
    if percentage < -band:
        return "down"
    return "stable"


# ── Supplier aggregates ─────────────────────────────────────────────


@dataclass
class SupplierAggregate:
    """Rollup of one supplier's lines inside a (region, category) slice."""

    supplier_id: int
    supplier_code: str
    supplier_name: str = ""
    quotation_id: int | None = None
    quotation_status: str | None = None
    product_count: int = 0
    total_base_value: Decimal = _ZERO
    total_initial_value: Decimal = _ZERO
    total_current_value: Decimal = _ZERO
    total_previous_value: Decimal | None = None
    current_value_with_previous: Decimal = _ZERO
    total_catalog_value: Decimal | None = None
    current_value_with_catalog: Decimal = _ZERO
    product_ids: list = field(default_factory=list)

    def add_line(self, product_id, quantity, current_price, initial_price, cheapest_initial,
                 previous_price=None, catalog_price=None):
        qty = safe_decimal(quantity) or _ZERO
        current_value = (safe_decimal(current_price) or _ZERO) * qty
        self.product_count += 1
        self.product_ids.append(product_id)
        self.total_current_value += current_value
        self.total_initial_value += (safe_decimal(initial_price) or _ZERO) * qty
        self.total_base_value += (safe_decimal(cheapest_initial) or _ZERO) * qty
        previous = safe_decimal(previous_price)
        if previous is not None:
            self.total_previous_value = (self.total_previous_value or _ZERO) + previous * qty
            self.current_value_with_previous += current_value
        catalog = safe_decimal(catalog_price)
        if catalog is not None:
            self.total_catalog_value = (self.total_catalog_value or _ZERO) + catalog * qty
            self.current_value_with_catalog += current_value

    @property
    def has_previous_data(self) -> bool:
        return self.total_previous_value is not None

    @property
    def variance_vs_base(self) -> Variance:
        return compute_variance(self.total_current_value, self.total_base_value)

    @property
    def variance_vs_initial(self) -> Variance:
        return compute_variance(self.total_current_value, self.total_initial_value)

    @property
    def variance_vs_previous(self) -> Variance | None:
        if self.total_previous_value is None:
            return None
        return compute_variance(self.current_value_with_previous, self.total_previous_value)

    @property
    def variance_vs_catalog(self) -> Variance | None:
        if self.total_catalog_value is None:
            return None
        return compute_variance(self.current_value_with_catalog, self.total_catalog_value)

    def to_dict(self) -> dict:
        vs_prev = self.variance_vs_previous
        vs_catalog = self.variance_vs_catalog
        return {
            "supplier_id": self.supplier_id,
            "supplier_code": self.supplier_code,
            "supplier_name": self.supplier_name,
            "quotation_id": self.quotation_id,
            "quotation_status": self.quotation_status,
            "product_count": self.product_count,
            "total_base_value": money(self.total_base_value),
            "total_previous_value": money(self.total_previous_value) if self.has_previous_data else None,
            "total_initial_value": money(self.total_initial_value),
            "total_current_value": money(self.total_current_value),
            "total_catalog_value": money(self.total_catalog_value) if vs_catalog is not None else None,
            "variance_vs_base": self.variance_vs_base.to_dict(),
            "variance_vs_previous": vs_prev.to_dict() if vs_prev is not None else None,
            "variance_vs_initial": self.variance_vs_initial.to_dict(),
            "variance_vs_catalog": vs_catalog.to_dict() if vs_catalog is not None else None,
            "has_previous_data": self.has_previous_data,
        }


def comparison_block(current, baseline, flag: str | None = None, has_data: bool = True) -> dict:
    """KPI comparison payload; ``flag`` names the has-data key when given."""
    if not has_data:
        block = {"difference": 0.0, "percentage": 0.0}
    else:
        block = compute_variance(current, baseline).to_dict()
    if flag:
        block[flag] = has_data
    return block
