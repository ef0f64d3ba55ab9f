"""
price_list_service.py — Approved Price List per Kitchen

Read-only matrix of approved prices a kitchen may order at for one period.
Downstream consumers use this instead of the comparison matrix so they
never see pending or negotiated prices.

Business Rules:
- Only approved quotations in the team's region and the requested period
- Only items with approved price > 0
- Only active suppliers with an active service scope for the team
- Unit price incl. VAT = approved price × (1 + VAT / 100)
- Best price per product uses the same selector and tie-break as the
  comparison matrix (lowest VAT-inclusive unit price, then supplier code)
- Team without a region → empty list
- Team-restricted actors may only read their own teams
- Product drill-down: approved prices of one product for the team, with the
  min / max VAT-inclusive unit price and their spread (0 % when undefined)

Called by: routers/price_list.py
Depends on: services/storage.py, services/pricing.py, services/permissions.py
"""

import logging
from collections import defaultdict

from ..roles import PermissionSet
from ..utils import money
from .permissions import can_access_team
from .pricing import Candidate, compute_metrics, select_best
from .variance import safe_percentage

log = logging.getLogger("quotemaster.price_list")


def _empty(team, period: str, denied: bool = False) -> dict:
    return {
        "team": team,
        "period": period,
        "products": [],
        "suppliers": [],
        "summary": {
            "total_products": 0,
            "quoted_products": 0,
            "missing_products": 0,
            "total_suppliers": 0,
            "average_coverage": 0.0,
        },
        "scope_denied": denied,
    }


def _team_dict(team) -> dict:
    return {"id": team.id, "name": team.name, "region": team.region, "team_code": team.team_code}


def get_price_list_matrix(repo, team, period: str, permissions: PermissionSet, member_team_ids) -> dict:
    """``team`` is a storage.TeamRecord already resolved by the caller."""
    info = _team_dict(team)
    if not permissions.can_view_quotes or not can_access_team(permissions, team.id, member_team_ids):
        return _empty(info, period, denied=True)
    if not team.region:
        log.info("Team %s has no region; price list is empty", team.id)
        return _empty(info, period)

    lines = repo.fetch_approved_lines_for_team(team.id, team.region, period)
    if not lines:
        return _empty(info, period)
    products = repo.fetch_products_by_ids({ln.product_id for ln in lines})

    lines_by_product = defaultdict(list)
    supplier_meta = {}
    for line in lines:
        lines_by_product[line.product_id].append(line)
        supplier_meta.setdefault(line.supplier_id, (line.supplier_code, line.supplier_name, line.quotation_id))

    rows = []
    products_by_supplier = defaultdict(int)
    for product in products:
        cells = []
        candidates = []
        for line in sorted(lines_by_product[product.id], key=lambda ln: (ln.supplier_code, ln.supplier_id)):
            # unit price: quantity 1
            metrics = compute_metrics(line, 1)
            candidates.append(Candidate(line.supplier_id, line.supplier_code, metrics))
            products_by_supplier[line.supplier_id] += 1
            cells.append({
                "supplier_id": line.supplier_id,
                "supplier_code": line.supplier_code,
                "quotation_id": line.quotation_id,
                "approved_price": money(line.approved_price),
                "vat_rate": float(line.vat_rate),
                "price_with_vat": money(metrics.total_price_with_vat),
                "currency": line.currency,
                "is_best": False,
            })
        best = select_best(candidates)
        for cell in cells:
            cell["is_best"] = cell["supplier_id"] == best.best_supplier_id
        rows.append({
            "product_id": product.id,
            "product_code": product.product_code,
            "product_name": product.name,
            "specification": product.specification,
            "unit": product.unit,
            "category": product.category,
            "best_supplier_id": best.best_supplier_id,
            "best_price": money(best.best_price) if best.found else None,
            "suppliers": cells,
        })

    total = len(rows)
    suppliers = []
    for sid, (code, name, quotation_id) in sorted(supplier_meta.items(), key=lambda kv: (kv[1][0], kv[0])):
        count = products_by_supplier[sid]
        suppliers.append({
            "supplier_id": sid,
            "supplier_code": code,
            "supplier_name": name,
            "quotation_id": quotation_id,
            "product_count": count,
            "coverage_percentage": safe_percentage(count, total),
        })
    quoted = sum(1 for r in rows if r["best_supplier_id"] is not None)
    return {
        "team": info,
        "period": period,
        "products": rows,
        "suppliers": suppliers,
        "summary": {
            "total_products": total,
            "quoted_products": quoted,
            "missing_products": total - quoted,
            "total_suppliers": len(suppliers),
            "average_coverage": (
                round(sum(s["coverage_percentage"] for s in suppliers) / len(suppliers), 2) if suppliers else 0.0
            ),
        },
        "scope_denied": False,
    }


def get_available_periods_for_team(repo, team, permissions: PermissionSet, member_team_ids) -> list[dict]:
    if not permissions.can_view_quotes or not can_access_team(permissions, team.id, member_team_ids):
        return []
    if not team.region:
        return []
    periods = repo.fetch_approved_periods_for_team(team.id, team.region)
    for p in periods:
        if p["last_updated"] is not None:
            p["last_updated"] = p["last_updated"].isoformat()
    return periods


def _product_dict(product) -> dict:
    return {
        "id": product.id,
        "product_code": product.product_code,
        "name": product.name,
        "specification": product.specification,
        "unit": product.unit,
        "category": product.category,
    }


def get_product_price_comparison(
    repo, team, product, period: str, permissions: PermissionSet, member_team_ids
) -> dict:
    """Approved prices of one product across the suppliers serving a team.

    ``product`` is a pricing.ProductRecord. The price range runs over the
    VAT-inclusive unit prices; no approved price → empty suppliers and no range.
    """
    result = {
        "team": _team_dict(team),
        "period": period,
        "product": _product_dict(product),
        "suppliers": [],
        "best_supplier_id": None,
        "best_price": None,
        "price_range": None,
        "scope_denied": False,
    }
    if not permissions.can_view_quotes or not can_access_team(permissions, team.id, member_team_ids):
        result["scope_denied"] = True
        return result
    if not team.region:
        return result

    lines = repo.fetch_approved_lines_for_team(team.id, team.region, period, product_id=product.id)
    candidates = []
    for line in sorted(lines, key=lambda ln: (ln.supplier_code, ln.supplier_id)):
        metrics = compute_metrics(line, 1)
        candidates.append(Candidate(line.supplier_id, line.supplier_code, metrics))
        result["suppliers"].append({
            "supplier_id": line.supplier_id,
            "supplier_code": line.supplier_code,
            "supplier_name": line.supplier_name,
            "quotation_id": line.quotation_id,
            "approved_price": money(line.approved_price),
            "vat_rate": float(line.vat_rate),
            "price_with_vat": money(metrics.total_price_with_vat),
            "is_best": False,
        })
    best = select_best(candidates)
    if not best.found:
        return result

    for cell in result["suppliers"]:
        cell["is_best"] = cell["supplier_id"] == best.best_supplier_id
    totals = [c.metrics.total_price_with_vat for c in candidates if c.metrics.total_price_with_vat > 0]
    low, high = min(totals), max(totals)
    result["best_supplier_id"] = best.best_supplier_id
    result["best_price"] = money(best.best_price)
    result["price_range"] = {
        "min": money(low),
        "max": money(high),
        "difference": money(high - low),
        "percentage_difference": safe_percentage(high - low, low),
    }
    return result


def get_team_supplier_scopes(repo, team, permissions: PermissionSet, member_team_ids) -> list[dict]:
    """Suppliers assigned to serve a team, including paused assignments."""
    if not (permissions.can_view_quotes or permissions.can_manage_suppliers):
        return []
    if not can_access_team(permissions, team.id, member_team_ids):
        return []
    scopes = repo.fetch_team_supplier_scopes(team.id)
    for s in scopes:
        if s["created_at"] is not None:
            s["created_at"] = s["created_at"].isoformat()
    return scopes
