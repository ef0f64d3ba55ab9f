"""
routers/quotations.py — Quotation Workflow Routes

Listing, detail, negotiation, approval (single and multi-supplier) and
cancellation.

Business Rules:
- negotiate / negotiated-prices need can_negotiate_quotes (403 otherwise)
- approve / cancel need can_approve_quotes (403 otherwise)
- Single-quotation outcomes map to HTTP: not_found 404, denied 403,
  invalid 422, conflict 409 (retryable)
- Batch endpoints always answer 200 with one result per quotation
- List / detail need can_view_quotes; restricted actors only see their region

Called by: main.py (router mount)
Depends on: services/quotation_service.py, dependencies
"""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import Actor, get_actor, get_repository, require_capability
from ..schemas.quotations import (
    ApproveRequest,
    CancelRequest,
    NegotiatedPricesRequest,
    QuotationIdsRequest,
    StatusUpdate,
)
from ..services import quotation_service
from ..services.storage import QuotationRepository
from ..utils.periods import PERIOD_RE

router = APIRouter(tags=["quotations"])

_STATUS_CODES = {
    quotation_service.NOT_FOUND: 404,
    quotation_service.DENIED: 403,
    quotation_service.INVALID: 422,
    quotation_service.CONFLICT: 409,
}


def _respond(result: quotation_service.TransitionResult) -> dict:
    if result.ok:
        return result.to_dict()
    raise HTTPException(
        _STATUS_CODES[result.outcome],
        detail={"message": result.message, "errors": result.errors, "retryable": result.retryable},
    )


@router.get("/api/quotations")
async def list_quotations(
    period: str | None = Query(None, pattern=PERIOD_RE.pattern),
    region: str | None = None,
    supplier_id: int | None = Query(None, ge=1),
    status: Literal["pending", "negotiation", "approved", "cancelled"] | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(require_capability("can_view_quotes")),
    repo: QuotationRepository = Depends(get_repository),
):
    return quotation_service.list_quotations(
        repo, actor.permissions, actor.scope,
        period=period, region=region, supplier_id=supplier_id, status=status, page=page, limit=limit,
    )


@router.get("/api/quotations/{quotation_id}")
async def quotation_details(
    quotation_id: int,
    actor: Actor = Depends(require_capability("can_view_quotes")),
    repo: QuotationRepository = Depends(get_repository),
):
    outcome, detail = quotation_service.get_quotation_details(repo, quotation_id, actor.permissions, actor.scope)
    if detail is None:
        message = "Quotation not found" if outcome == quotation_service.NOT_FOUND else "Quotation is outside your region"
        raise HTTPException(_STATUS_CODES[outcome], message)
    return detail


@router.post("/api/quotations/negotiate")
async def negotiate_quotations(
    body: QuotationIdsRequest,
    actor: Actor = Depends(require_capability("can_negotiate_quotes")),
    repo: QuotationRepository = Depends(get_repository),
):
    """Move pending / negotiation quotations into (another) negotiation round."""
    return quotation_service.negotiate_quotations(
        repo, body.quotation_ids, actor.permissions, actor.user.id, actor.scope
    )


@router.put("/api/quotations/{quotation_id}/negotiated-prices")
async def set_negotiated_prices(
    quotation_id: int,
    body: NegotiatedPricesRequest,
    actor: Actor = Depends(require_capability("can_negotiate_quotes")),
    repo: QuotationRepository = Depends(get_repository),
):
    result = quotation_service.record_negotiated_prices(
        repo, quotation_id, body.prices, actor.permissions, actor.user.id, actor.scope
    )
    return _respond(result)


@router.put("/api/quotations/{quotation_id}/approve")
async def approve_quotation(
    quotation_id: int,
    body: ApproveRequest | None = None,
    actor: Actor = Depends(require_capability("can_approve_quotes")),
    repo: QuotationRepository = Depends(get_repository),
):
    """Freeze every item's price and record it in the price history."""
    overrides = body.approved_prices if body else None
    result = quotation_service.approve_quotation(
        repo, quotation_id, actor.permissions, actor.user.id, overrides, scope=actor.scope
    )
    return _respond(result)


@router.post("/api/quotations/approve")
async def approve_quotations(
    body: QuotationIdsRequest,
    actor: Actor = Depends(require_capability("can_approve_quotes")),
    repo: QuotationRepository = Depends(get_repository),
):
    """Approve several suppliers' quotations; each one commits on its own."""
    return quotation_service.approve_quotations(
        repo, body.quotation_ids, actor.permissions, actor.user.id, actor.scope
    )


@router.put("/api/quotations/{quotation_id}/cancel")
async def cancel_quotation(
    quotation_id: int,
    body: CancelRequest | None = None,
    actor: Actor = Depends(require_capability("can_approve_quotes")),
    repo: QuotationRepository = Depends(get_repository),
):
    reason = (body.reason or "").strip() if body else ""
    result = quotation_service.cancel_quotation(
        repo, quotation_id, actor.permissions, actor.user.id, reason, scope=actor.scope
    )
    return _respond(result)


@router.put("/api/quotations/{quotation_id}/status")
async def update_status(
    quotation_id: int,
    body: StatusUpdate,
    actor: Actor = Depends(get_actor),
    repo: QuotationRepository = Depends(get_repository),
):
    result = quotation_service.update_quotation_status(
        repo, quotation_id, body.status, actor.permissions, actor.user.id, actor.scope
    )
    return _respond(result)
