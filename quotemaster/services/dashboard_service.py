"""
dashboard_service.py — Home dashboard KPIs and price trends.

Business Rules:
- Entity counts (kitchens, active products, active suppliers) are global
- Quotation count requires can_view_quotes and follows the region rule
  (restricted actors count their own region only)
- Price trends compare the two most recent approved periods in the
  ledger, best (lowest) approved price per product per period
- Region for trends uses the same rule as the comparison matrix
- Trend direction uses the ±0.5 % stable band

Called by: routers/dashboard.py
Depends on: services/storage.py, services/access_scope.py, services/variance.py
"""

import logging

from ..config import settings
from ..roles import PermissionSet
from ..utils import money
from .access_scope import AccessScope, resolve_region
from .variance import compute_variance, variance_trend

log = logging.getLogger("quotemaster.dashboard")


def get_dashboard_stats(repo, permissions: PermissionSet, scope: AccessScope) -> dict:
    stats = repo.count_dashboard_entities()
    stats["total_quotations"] = 0
    if permissions.can_view_quotes:
        decision = resolve_region(scope, None)
        if not decision.denied:
            stats["total_quotations"] = repo.count_quotations(decision.region)
    return stats


def get_price_trends(repo, permissions: PermissionSet, scope: AccessScope,
                     region: str | None = None, limit: int | None = None) -> dict:
    limit = limit or settings.price_trend_limit
    empty = {"region": region, "current_period": None, "previous_period": None,
             "price_increases": [], "price_decreases": []}
    if not permissions.can_view_analytics:
        return empty
    decision = resolve_region(scope, region)
    if decision.denied:
        return empty

    periods = repo.fetch_latest_approved_periods(decision.region, limit=2)
    if len(periods) < 2:
        return {**empty, "region": decision.region, "current_period": periods[0] if periods else None}
    current_period, previous_period = periods[0], periods[1]
    current = repo.fetch_best_approved_prices(current_period, decision.region)
    previous = repo.fetch_best_approved_prices(previous_period, decision.region)
    products = {p.id: p for p in repo.fetch_products_by_ids(set(current) & set(previous))}

    increases, decreases = [], []
    for pid, (price, supplier_id, supplier_code) in current.items():
        if pid not in previous or pid not in products:
            continue
        prev_price = previous[pid][0]
        variance = compute_variance(price, prev_price)
        trend = variance_trend(variance.percentage, settings.variance_stable_band_pct)
        if trend == "stable":
            continue
        entry = {
            "product_id": pid,
            "product_code": products[pid].product_code,
            "product_name": products[pid].name,
            "current_price": money(price),
            "previous_price": money(prev_price),
            "price_change": money(variance.difference),
            "price_change_percentage": variance.percentage,
            "supplier_id": supplier_id,
            "supplier_code": supplier_code,
            "period": current_period,
        }
        (increases if trend == "up" else decreases).append(entry)

    increases.sort(key=lambda e: (-e["price_change_percentage"], e["product_code"]))
    decreases.sort(key=lambda e: (e["price_change_percentage"], e["product_code"]))
    return {
        "region": decision.region,
        "current_period": current_period,
        "previous_period": previous_period,
        "price_increases": increases[:limit],
        "price_decreases": decreases[:limit],
    }
