"""
comparison_service.py — Comparison Matrix Assembler

Builds the product × supplier grid for a (period, region, categories)
selection, the region → category → supplier rollup, headline KPIs and the
per-supplier coverage / lifecycle summary.

Business Rules:
- Every active product in the selected categories appears, including
  products nobody quoted (coverage 0 %)
- Products with no resolvable quantity go to excluded_products
  (reason "missing_quantity") instead of being priced at 0 or 1
- Quantity comes from the kitchen named in the request (a restricted
  actor always uses its own kitchen); no kitchen → base quantity only
- Best price per product via pricing.select_best (one winner, deterministic)
- Coverage = products quoted at a positive price / selected products × 100,
  2 decimals (a 0 price is missing data, as in select_best)
- Only active suppliers and products of the selected region (or global
  products) take part
- Suppliers carry quotation id, status and last update so approved or
  cancelled sheets can be locked in the UI
- Restricted actor asking for another region → empty matrix, no error
- Output is sorted: products and suppliers by code, categories by name
- Build is read-only and can be aborted between products (should_cancel)

Called by: routers/comparison.py
Depends on: services/storage.py, services/pricing.py, services/variance.py,
            services/access_scope.py
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal

from ..config import settings
from ..utils import money
from .access_scope import AccessScope, resolve_region
from .pricing import (
    Candidate,
    build_quantity_lookup,
    compute_metrics,
    effective_price,
    select_best,
)
from .variance import SupplierAggregate, comparison_block, safe_percentage, variance_trend

log = logging.getLogger("quotemaster.comparison")

UNCATEGORIZED = "Uncategorized"
EXCLUDED_MISSING_QUANTITY = "missing_quantity"
LOCKED_STATUSES = ("approved", "cancelled")

_ZERO = Decimal("0")


class ComparisonCancelled(Exception):
    """Raised when the caller aborts a matrix build."""


@dataclass(frozen=True)
class ComparisonFilters:
    period: str
    region: str
    categories: tuple = field(default_factory=tuple)
    team_id: int | None = None


def _iso(dt):
    return dt.isoformat() if dt is not None else None


def _price(value):
    return money(value) if value is not None else None


def _price_source(line) -> str | None:
    if line.approved_price is not None:
        return "approved"
    if line.negotiated_price is not None:
        return "negotiated"
    if line.initial_price is not None:
        return "initial"
    return None


def empty_matrix(filters: ComparisonFilters, denied: bool = False) -> dict:
    return {
        "period": filters.period,
        "region": filters.region,
        "categories": list(filters.categories),
        "products": [],
        "suppliers": [],
        "available_suppliers": [],
        "excluded_products": [],
        "grouped_overview": {"regions": []},
        "overview_kpis": {**_kpis([], {}), "excluded_products": 0, "total_suppliers": 0, "average_coverage": 0.0},
        "last_updated": None,
        "scope_denied": denied,
    }


# ── Supplier lifecycle ───────────────────────────────────────────────


def _lifecycle(headers) -> dict:
    """supplier_id → lifecycle metadata from the quotation headers."""
    by_supplier = defaultdict(list)
    for h in headers:
        by_supplier[h.supplier_id].append(h)
    meta = {}
    for sid, hs in by_supplier.items():
        live = [h for h in hs if h.status != "cancelled"] or hs
        current = max(live, key=lambda h: (h.updated_at is not None, h.updated_at, h.id))
        counts = defaultdict(int)
        for h in hs:
            counts[h.status] += 1
        meta[sid] = {
            "supplier_id": sid,
            "supplier_code": current.supplier_code,
            "supplier_name": current.supplier_name,
            "quotation_id": current.id,
            "quotation_code": current.quotation_code,
            "quotation_status": current.status,
            "quotation_last_updated": _iso(current.updated_at),
            "is_locked": current.status in LOCKED_STATUSES,
            "total_quotations": len(hs),
            "pending_quotations": counts["pending"],
            "negotiation_quotations": counts["negotiation"],
            "approved_quotations": counts["approved"],
            "cancelled_quotations": counts["cancelled"],
        }
    return meta


# ── KPIs ─────────────────────────────────────────────────────────────


def _kpis(product_rows, winners) -> dict:
    """Headline figures over the best-priced line of each compared product.

    ``winners`` maps product_id → (line, quantity, previous_best, catalog_price).
    """
    current = initial = _ZERO
    prev_current = prev_total = _ZERO
    base_current = base_total = _ZERO
    has_previous = has_base = False
    for line, qty, previous_best, catalog_price in winners.values():
        value = (effective_price(line) or _ZERO) * qty
        current += value
        initial += (line.initial_price or _ZERO) * qty
        if previous_best is not None:
            has_previous = True
            prev_current += value
            prev_total += previous_best * qty
        if catalog_price is not None:
            has_base = True
            base_current += value
            base_total += catalog_price * qty
    quoted = sum(1 for r in product_rows if r["best_supplier_id"] is not None)
    return {
        "total_products": len(product_rows),
        "quoted_products": quoted,
        "unquoted_products": len(product_rows) - quoted,
        "total_current_value": money(current),
        "total_initial_value": money(initial),
        "comparison_vs_initial": comparison_block(current, initial),
        "comparison_vs_previous": comparison_block(
            prev_current, prev_total, flag="has_previous_data", has_data=has_previous
        ),
        "comparison_vs_base": comparison_block(
            base_current, base_total, flag="has_base_data", has_data=has_base
        ),
    }


# ── Assembly ─────────────────────────────────────────────────────────


def assemble_comparison_matrix(
    products,
    lines,
    quantities,
    previous,
    headers,
    filters: ComparisonFilters,
    should_cancel=None,
) -> dict:
    """Pure assembly from already-loaded records.

    ``quantities``: product_id → QuantityResolution (missing = excluded).
    ``previous``: storage.PreviousPrices for the prior approved period.
    """
    lines_by_product = defaultdict(list)
    for line in lines:
        lines_by_product[line.product_id].append(line)

    lifecycle = _lifecycle(headers)
    for line in lines:
        lifecycle.setdefault(line.supplier_id, {
            "supplier_id": line.supplier_id,
            "supplier_code": line.supplier_code,
            "supplier_name": line.supplier_name,
            "quotation_id": line.quotation_id,
            "quotation_code": None,
            "quotation_status": line.quotation_status,
            "quotation_last_updated": _iso(line.quotation_updated_at),
            "is_locked": line.quotation_status in LOCKED_STATUSES,
            "total_quotations": 1,
            "pending_quotations": int(line.quotation_status == "pending"),
            "negotiation_quotations": int(line.quotation_status == "negotiation"),
            "approved_quotations": int(line.quotation_status == "approved"),
            "cancelled_quotations": 0,
        })

    product_rows = []
    excluded = []
    winners = {}
    quoted_by_supplier = defaultdict(set)
    won_by_supplier = defaultdict(int)
    value_by_supplier = defaultdict(lambda: _ZERO)
    # (category, supplier_id) → SupplierAggregate
    aggregates = {}

    for product in sorted(products, key=lambda p: p.product_code):
        if should_cancel is not None and should_cancel():
            log.info("Comparison matrix build cancelled at product %s", product.product_code)
            raise ComparisonCancelled()

        plines = sorted(lines_by_product.get(product.id, []), key=lambda ln: (ln.supplier_code, ln.supplier_id))
        for line in plines:
            price = effective_price(line)
            if price is not None and price > 0:
                quoted_by_supplier[line.supplier_id].add(product.id)

        resolution = quantities.get(product.id)
        if resolution is None:
            excluded.append({
                "product_id": product.id,
                "product_code": product.product_code,
                "product_name": product.name,
                "category": product.category,
                "reason": EXCLUDED_MISSING_QUANTITY,
                "quote_count": len(plines),
            })
            continue

        qty = resolution.quantity
        initials = [ln.initial_price for ln in plines if ln.initial_price is not None and ln.initial_price > 0]
        cheapest_initial = min(initials) if initials else None
        previous_best = previous.best_by_product.get(product.id)

        cells = []
        candidates = []
        for line in plines:
            metrics = compute_metrics(line, qty)
            price = effective_price(line)
            line_variance = None
            trend = None
            if previous_best is not None and price is not None:
                line_variance = safe_percentage(price - previous_best, previous_best)
                trend = variance_trend(line_variance, settings.variance_stable_band_pct)
            cell = {
                "supplier_id": line.supplier_id,
                "supplier_code": line.supplier_code,
                "supplier_name": line.supplier_name,
                "quotation_id": line.quotation_id,
                "quote_item_id": line.item_id,
                "quotation_status": line.quotation_status,
                "initial_price": _price(line.initial_price),
                "negotiated_price": _price(line.negotiated_price),
                "approved_price": _price(line.approved_price),
                "price_source": _price_source(line),
                "vat_rate": float(line.vat_rate),
                "currency": line.currency,
                "previous_price": _price(previous.by_pair.get((product.id, line.supplier_id))),
                "variance_percentage": line_variance,
                "variance_trend": trend,
                "is_best": False,
            }
            cell.update(metrics.to_dict())
            cells.append(cell)
            candidates.append(Candidate(line.supplier_id, line.supplier_code, metrics))

            if metrics.has_price:
                value_by_supplier[line.supplier_id] += metrics.total_price_with_vat
                key = (product.category or UNCATEGORIZED, line.supplier_id)
                agg = aggregates.get(key)
                if agg is None:
                    meta = lifecycle.get(line.supplier_id, {})
                    agg = aggregates[key] = SupplierAggregate(
                        supplier_id=line.supplier_id,
                        supplier_code=line.supplier_code,
                        supplier_name=line.supplier_name,
                        quotation_id=meta.get("quotation_id", line.quotation_id),
                        quotation_status=meta.get("quotation_status", line.quotation_status),
                    )
                agg.add_line(
                    product.id,
                    qty,
                    price,
                    line.initial_price,
                    cheapest_initial,
                    previous_price=previous.by_pair.get((product.id, line.supplier_id)),
                    catalog_price=product.base_price,
                )

        best = select_best(candidates)
        if best.found:
            won_by_supplier[best.best_supplier_id] += 1
            for cell, line in zip(cells, plines):
                if line.supplier_id == best.best_supplier_id:
                    cell["is_best"] = True
                    winners[product.id] = (line, qty, previous_best, product.base_price)
                    break

        product_rows.append({
            "product_id": product.id,
            "product_code": product.product_code,
            "product_name": product.name,
            "specification": product.specification,
            "unit": product.unit,
            "category": product.category,
            "region": product.region,
            "quantity": float(qty),
            "quantity_source": resolution.source,
            "base_price": _price(product.base_price),
            "cheapest_initial_price": _price(cheapest_initial),
            "previous_best_price": _price(previous_best),
            "best_supplier_id": best.best_supplier_id,
            "best_price": _price(best.best_price),
            "has_quotes": bool(plines),
            "quote_count": len(plines),
            "suppliers": cells,
        })

    total_products = len(products)
    suppliers = []
    for sid, meta in sorted(lifecycle.items(), key=lambda kv: (kv[1]["supplier_code"], kv[0])):
        quoted = len(quoted_by_supplier.get(sid, ()))
        suppliers.append({
            "supplier_id": sid,
            "supplier_code": meta["supplier_code"],
            "supplier_name": meta["supplier_name"],
            "quoted_products": quoted,
            "total_products": total_products,
            "coverage_percentage": safe_percentage(quoted, total_products),
            "best_price_count": won_by_supplier.get(sid, 0),
            "total_value": money(value_by_supplier.get(sid, _ZERO)),
            "quotation_id": meta["quotation_id"],
            "quotation_status": meta["quotation_status"],
            "quotation_last_updated": meta["quotation_last_updated"],
            "is_locked": meta["is_locked"],
        })

    categories = defaultdict(list)
    for (category, _sid), agg in aggregates.items():
        categories[category].append(agg)
    grouped = {"regions": []}
    if categories:
        grouped["regions"].append({
            "region": filters.region,
            "categories": [
                {
                    "category": category,
                    "supplier_performances": [
                        a.to_dict() for a in sorted(aggs, key=lambda a: (a.supplier_code, a.supplier_id))
                    ],
                }
                for category, aggs in sorted(categories.items())
            ],
        })

    kpis = _kpis(product_rows, winners)
    kpis["excluded_products"] = len(excluded)
    kpis["total_suppliers"] = len(suppliers)
    kpis["average_coverage"] = (
        round(sum(s["coverage_percentage"] for s in suppliers) / len(suppliers), 2) if suppliers else 0.0
    )

    updated = [h.updated_at for h in headers if h.updated_at is not None]
    return {
        "period": filters.period,
        "region": filters.region,
        "categories": list(filters.categories),
        "products": product_rows,
        "suppliers": suppliers,
        "available_suppliers": [
            lifecycle[s["supplier_id"]] for s in suppliers
        ],
        "excluded_products": excluded,
        "grouped_overview": grouped,
        "overview_kpis": kpis,
        "last_updated": _iso(max(updated)) if updated else None,
        "scope_denied": False,
    }


def get_comparison_matrix(repo, filters: ComparisonFilters, scope: AccessScope, should_cancel=None) -> dict:
    decision = resolve_region(scope, filters.region)
    if decision.denied:
        return empty_matrix(filters, denied=True)
    region = decision.region
    # restricted actors price with their own kitchen's demand
    team_id = scope.team_id if scope.restricted else filters.team_id
    categories = list(filters.categories) or None

    products = repo.fetch_products(categories, region)
    product_ids = [p.id for p in products]
    lines = repo.fetch_quote_items(filters.period, region, categories)
    headers = repo.fetch_quotation_headers(filters.period, region)
    demands = repo.fetch_kitchen_demands(filters.period, team_id) if team_id is not None else []
    base_quantities = repo.fetch_product_base_quantities(product_ids)
    quantities = build_quantity_lookup(product_ids, demands, base_quantities, team_id=team_id, period=filters.period)
    previous = repo.fetch_previous_approved_prices(filters.period, region, product_ids)

    log.info(
        "Building comparison matrix period=%s region=%s products=%d lines=%d",
        filters.period, region, len(products), len(lines),
    )
    return assemble_comparison_matrix(
        products, lines, quantities, previous, headers, filters, should_cancel=should_cancel
    )


# ── Filters & summary ────────────────────────────────────────────────


def empty_summary(period: str, region: str | None = None) -> dict:
    return {
        "period": period,
        "region": region,
        "total_quotations": 0,
        "pending": 0,
        "negotiation": 0,
        "approved": 0,
        "cancelled": 0,
        "total_suppliers": 0,
        "regions": [],
    }


def get_quotation_summary(repo, period: str, scope: AccessScope, region: str | None = None) -> dict:
    """Quotation counts per status for a period, region-scoped."""
    summary = empty_summary(period, region)
    decision = resolve_region(scope, region)
    if decision.denied:
        return summary
    headers = repo.fetch_quotation_headers(period, decision.region)
    summary["region"] = decision.region
    summary["total_quotations"] = len(headers)
    for h in headers:
        if h.status in ("pending", "negotiation", "approved", "cancelled"):
            summary[h.status] += 1
    summary["total_suppliers"] = len({h.supplier_id for h in headers})
    summary["regions"] = sorted({h.region for h in headers if h.region})
    return summary


def get_regions_for_period(repo, period: str, scope: AccessScope) -> list[str]:
    decision = resolve_region(scope, None)
    if decision.denied:
        return []
    regions = repo.fetch_regions_for_period(period)
    if decision.region is not None:
        return [r for r in regions if r == decision.region]
    return regions


def get_categories_for_period_and_region(repo, period: str, region: str | None, scope: AccessScope) -> list[str]:
    decision = resolve_region(scope, region)
    if decision.denied:
        return []
    return repo.fetch_categories_for_period(period, decision.region)


def get_available_categories(repo) -> list[str]:
    return repo.fetch_categories()
