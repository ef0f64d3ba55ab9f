"""
quotation_service.py — Quotation Status State Machine

Moves quotations through pending → negotiation → approved | cancelled and
records the audit trail for every change.

Business Rules:
- Legal transitions: pending → negotiation, negotiation → negotiation
  (another round), pending|negotiation → approved, pending|negotiation →
  cancelled. approved and cancelled are terminal
- Negotiate requires can_negotiate_quotes; approve and cancel require
  can_approve_quotes
- Restricted actors may only touch quotations of their own region
- Approval price per item = override ?? approved ?? negotiated ?? initial;
  every item must end up with a positive price or nothing is written
- Approval is one atomic command per quotation; a status that changed
  under us is a retryable conflict, never a partial approval
- Batch operations run each quotation on its own; one failure never
  affects another
- Outcomes are returned as TransitionResult, not raised
- Reads (list, detail) need can_view_quotes and follow the same region lock

Called by: routers/quotations.py
Depends on: services/storage.py, services/pricing.py, models (ActivityLog)
"""

import logging
import math
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError

from ..models import ActivityLog
from ..roles import PermissionSet
from ..utils import money, safe_decimal
from .access_scope import UNRESTRICTED, AccessScope, resolve_region
from .pricing import effective_price, unit_price_with_vat
from .storage import OPEN_STATUSES, WRITE_CONFLICT, StorageRowError

log = logging.getLogger("quotemaster.quotations")

ALLOWED_TRANSITIONS = {
    "pending": frozenset({"negotiation", "approved", "cancelled"}),
    "negotiation": frozenset({"negotiation", "approved", "cancelled"}),
    "approved": frozenset(),
    "cancelled": frozenset(),
}

OK = "ok"
NOT_FOUND = "not_found"
INVALID = "invalid"
CONFLICT = "conflict"
DENIED = "denied"


@dataclass(frozen=True)
class TransitionResult:
    outcome: str
    quotation_id: int | None = None
    status: str | None = None
    message: str = ""
    errors: list = field(default_factory=list)  # [{field, message}]

    @property
    def ok(self) -> bool:
        return self.outcome == OK

    @property
    def retryable(self) -> bool:
        return self.outcome == CONFLICT

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome,
            "quotation_id": self.quotation_id,
            "status": self.status,
            "message": self.message,
            "errors": list(self.errors),
            "retryable": self.retryable,
        }


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


# ── Audit Trail ─────────────────────────────────────────────────────────


def log_quotation_activity(db, user_id: int, quotation_id: int, activity_type: str, status: str, detail: str = ""):
    """Create an ActivityLog entry for a quotation state change."""
    db.add(
        ActivityLog(
            user_id=user_id,
            activity_type=activity_type,
            quotation_id=quotation_id,
            subject=f"Quotation #{quotation_id}: {detail}" if detail else f"Quotation #{quotation_id}",
            notes=f"quotation_id={quotation_id} status={status}",
        )
    )


# ── Guards ──────────────────────────────────────────────────────────────


def _load(repo, quotation_id: int, scope: AccessScope):
    """Header for a quotation the actor may see, or a failed TransitionResult."""
    found = repo.get_quotation(quotation_id)
    if not found:
        return None, TransitionResult(NOT_FOUND, quotation_id, message="Quotation not found")
    header = found.value
    if scope.restricted and (scope.force_empty or header.region != scope.region):
        return None, TransitionResult(DENIED, quotation_id, message="Quotation is outside your region")
    return header, None


def _illegal(header, to_status: str) -> TransitionResult:
    return TransitionResult(
        INVALID,
        header.id,
        header.status,
        message=f"Cannot move quotation from {header.status} to {to_status}",
    )


def resolve_approval_prices(lines, overrides=None):
    """Price to freeze per item → (prices, errors).

    ``overrides`` maps quote item id → price and wins over the effective price.
    """
    overrides = overrides or {}
    errors = []
    prices = {}
    item_ids = {line.item_id for line in lines}
    for item_id in overrides:
        if item_id not in item_ids:
            errors.append({"field": f"approved_prices.{item_id}", "message": "Item is not part of this quotation"})
    if not lines:
        errors.append({"field": "items", "message": "Quotation has no items"})
    for line in lines:
        if line.item_id in overrides:
            price = safe_decimal(overrides[line.item_id])
        else:
            price = effective_price(line)
        if price is None or price <= 0:
            errors.append({"field": f"items.{line.item_id}", "message": "No positive price to approve"})
            continue
        prices[line.item_id] = price
    return prices, errors


# ── Negotiation ─────────────────────────────────────────────────────────


def negotiate_quotation(repo, quotation_id: int, permissions: PermissionSet, user_id: int,
                        scope: AccessScope = UNRESTRICTED) -> TransitionResult:
    if not permissions.can_negotiate_quotes:
        return TransitionResult(DENIED, quotation_id, message="Negotiation permission required")
    header, failed = _load(repo, quotation_id, scope)
    if failed:
        return failed
    if not can_transition(header.status, "negotiation"):
        return _illegal(header, "negotiation")
    if not repo.transition_status(quotation_id, OPEN_STATUSES, "negotiation"):
        repo.db.rollback()
        return TransitionResult(CONFLICT, quotation_id, message="Quotation changed, reload and retry")
    log_quotation_activity(repo.db, user_id, quotation_id, "quotation_negotiation", "negotiation", "moved to negotiation")
    repo.db.commit()
    log.info("Quotation %s moved to negotiation by user %s", quotation_id, user_id)
    return TransitionResult(OK, quotation_id, "negotiation")


def negotiate_quotations(repo, quotation_ids, permissions: PermissionSet, user_id: int,
                         scope: AccessScope = UNRESTRICTED) -> dict:
    """Batch move to negotiation; illegal ones are reported, not fatal."""
    results = [negotiate_quotation(repo, qid, permissions, user_id, scope) for qid in quotation_ids]
    return _batch_summary(results)


def record_negotiated_prices(repo, quotation_id: int, prices: dict, permissions: PermissionSet,
                             user_id: int, scope: AccessScope = UNRESTRICTED) -> TransitionResult:
    """Store a negotiation round's prices and put the quotation in negotiation."""
    if not permissions.can_negotiate_quotes:
        return TransitionResult(DENIED, quotation_id, message="Negotiation permission required")
    header, failed = _load(repo, quotation_id, scope)
    if failed:
        return failed
    if not can_transition(header.status, "negotiation"):
        return _illegal(header, "negotiation")
    clean = {}
    errors = []
    for item_id, price in prices.items():
        value = safe_decimal(price)
        if value is None or value < 0:
            errors.append({"field": f"prices.{item_id}", "message": "Price must be a number >= 0"})
        else:
            clean[item_id] = value
    if errors or not clean:
        return TransitionResult(INVALID, quotation_id, header.status,
                                message="No valid prices given", errors=errors)
    try:
        repo.record_negotiated_prices(quotation_id, clean)
    except StorageRowError as e:
        repo.db.rollback()
        return TransitionResult(INVALID, quotation_id, header.status, message=str(e))
    if not repo.transition_status(quotation_id, OPEN_STATUSES, "negotiation"):
        repo.db.rollback()
        return TransitionResult(CONFLICT, quotation_id, message="Quotation changed, reload and retry")
    log_quotation_activity(
        repo.db, user_id, quotation_id, "quotation_negotiated", "negotiation",
        f"negotiated prices for {len(clean)} item(s)",
    )
    repo.db.commit()
    return TransitionResult(OK, quotation_id, "negotiation")


# ── Approval ────────────────────────────────────────────────────────────


def approve_quotation(repo, quotation_id: int, permissions: PermissionSet, user_id: int,
                      approved_prices: dict | None = None,
                      scope: AccessScope = UNRESTRICTED) -> TransitionResult:
    if not permissions.can_approve_quotes:
        return TransitionResult(DENIED, quotation_id, message="Approval permission required")
    header, failed = _load(repo, quotation_id, scope)
    if failed:
        return failed
    if not can_transition(header.status, "approved"):
        return _illegal(header, "approved")

    try:
        lines = repo.fetch_quotation_lines(quotation_id)
    except StorageRowError as e:
        return TransitionResult(INVALID, quotation_id, header.status, message=str(e))
    prices, errors = resolve_approval_prices(lines, approved_prices)
    if errors:
        return TransitionResult(INVALID, quotation_id, header.status,
                                message="Quotation cannot be approved", errors=errors)

    try:
        outcome = repo.approve_quotation_batch(quotation_id, prices, user_id)
        if outcome == WRITE_CONFLICT:
            return TransitionResult(CONFLICT, quotation_id, message="Quotation changed, reload and retry")
        log_quotation_activity(
            repo.db, user_id, quotation_id, "quotation_approved", "approved",
            f"approved {len(prices)} item(s)",
        )
        repo.db.commit()
    except StorageRowError as e:
        log.warning("Approval of quotation %s rolled back: %s", quotation_id, e)
        return TransitionResult(INVALID, quotation_id, header.status, message=str(e))
    except IntegrityError as e:
        repo.db.rollback()
        log.warning("Approval of quotation %s hit a concurrent write: %s", quotation_id, e.orig)
        return TransitionResult(CONFLICT, quotation_id, message="Quotation changed, reload and retry")

    log.info("Quotation %s approved by user %s (%d items)", quotation_id, user_id, len(prices))
    return TransitionResult(OK, quotation_id, "approved")


def approve_quotations(repo, quotation_ids, permissions: PermissionSet, user_id: int,
                       scope: AccessScope = UNRESTRICTED) -> dict:
    """Approve several suppliers' quotations, each atomically and independently."""
    results = [approve_quotation(repo, qid, permissions, user_id, scope=scope) for qid in quotation_ids]
    return _batch_summary(results)


# ── Cancellation & generic entry point ──────────────────────────────────


def cancel_quotation(repo, quotation_id: int, permissions: PermissionSet, user_id: int,
                     reason: str = "", scope: AccessScope = UNRESTRICTED) -> TransitionResult:
    if not permissions.can_approve_quotes:
        return TransitionResult(DENIED, quotation_id, message="Approval permission required to cancel")
    header, failed = _load(repo, quotation_id, scope)
    if failed:
        return failed
    if not can_transition(header.status, "cancelled"):
        return _illegal(header, "cancelled")
    if not repo.transition_status(quotation_id, OPEN_STATUSES, "cancelled"):
        repo.db.rollback()
        return TransitionResult(CONFLICT, quotation_id, message="Quotation changed, reload and retry")
    log_quotation_activity(repo.db, user_id, quotation_id, "quotation_cancelled", "cancelled", reason or "cancelled")
    repo.db.commit()
    log.info("Quotation %s cancelled by user %s", quotation_id, user_id)
    return TransitionResult(OK, quotation_id, "cancelled")


def update_quotation_status(repo, quotation_id: int, status: str, permissions: PermissionSet,
                            user_id: int, scope: AccessScope = UNRESTRICTED) -> TransitionResult:
    if status == "approved":
        return approve_quotation(repo, quotation_id, permissions, user_id, scope=scope)
    if status == "negotiation":
        return negotiate_quotation(repo, quotation_id, permissions, user_id, scope)
    if status == "cancelled":
        return cancel_quotation(repo, quotation_id, permissions, user_id, scope=scope)
    return TransitionResult(
        INVALID, quotation_id,
        message=f"Cannot move a quotation to {status}",
        errors=[{"field": "status", "message": f"Unsupported target status: {status}"}],
    )


# ── Reads ───────────────────────────────────────────────────────────────


def _iso(dt):
    return dt.isoformat() if dt is not None else None


def _amount(value):
    return money(value) if value is not None else None


def list_quotations(repo, permissions: PermissionSet, scope: AccessScope = UNRESTRICTED, *,
                    period: str | None = None, region: str | None = None,
                    supplier_id: int | None = None, status: str | None = None,
                    page: int = 1, limit: int = 20) -> dict:
    """One page of quotations, region-locked for restricted actors."""
    empty = {"data": [], "pagination": {"page": page, "limit": limit, "total": 0, "total_pages": 0}}
    if not permissions.can_view_quotes:
        return empty
    decision = resolve_region(scope, region)
    if decision.denied:
        return empty
    rows, total = repo.list_quotations(
        period=period, region=decision.region, supplier_id=supplier_id, status=status, page=page, limit=limit,
    )
    for row in rows:
        for key in ("quote_date", "created_at", "updated_at"):
            row[key] = _iso(row[key])
    return {
        "data": rows,
        "pagination": {"page": page, "limit": limit, "total": total, "total_pages": math.ceil(total / limit)},
    }


def get_quotation_details(repo, quotation_id: int, permissions: PermissionSet,
                          scope: AccessScope = UNRESTRICTED) -> tuple[str, dict | None]:
    """(outcome, detail) for one quotation with every item and its product."""
    if not permissions.can_view_quotes:
        return DENIED, None
    header, failed = _load(repo, quotation_id, scope)
    if failed:
        return failed.outcome, None
    lines = repo.fetch_quotation_lines(quotation_id)
    products = {p.id: p for p in repo.fetch_products_by_ids({ln.product_id for ln in lines})}
    items = []
    for line in lines:
        product = products.get(line.product_id)
        price = effective_price(line)
        items.append({
            "id": line.item_id,
            "product": {
                "id": line.product_id,
                "product_code": product.product_code if product else None,
                "name": product.name if product else None,
                "specification": product.specification if product else None,
                "unit": product.unit if product else None,
                "category": product.category if product else None,
            },
            "initial_price": _amount(line.initial_price),
            "negotiated_price": _amount(line.negotiated_price),
            "approved_price": _amount(line.approved_price),
            "effective_price": _amount(price),
            "vat_rate": float(line.vat_rate),
            "price_with_vat": _amount(unit_price_with_vat(price, line.vat_rate)) if price is not None else None,
            "currency": line.currency,
        })
    items.sort(key=lambda i: (i["product"]["product_code"] or "", i["id"]))
    return OK, {
        "id": header.id,
        "quotation_code": header.quotation_code,
        "period": header.period,
        "region": header.region,
        "status": header.status,
        "updated_at": _iso(header.updated_at),
        "is_locked": header.status in ("approved", "cancelled"),
        "supplier": {"id": header.supplier_id, "supplier_code": header.supplier_code, "name": header.supplier_name},
        "item_count": len(items),
        "items": items,
    }


def _batch_summary(results) -> dict:
    return {
        "results": [r.to_dict() for r in results],
        "succeeded": sum(1 for r in results if r.ok),
        "failed": sum(1 for r in results if not r.ok),
    }

