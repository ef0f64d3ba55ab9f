"""
routers/price_list.py — Kitchen Price List Routes

Approved-only prices for one kitchen and period.

Business Rules:
- Unknown team or product → 404
- Team-restricted actors reading another team get an empty list
- Period must match YYYY-MM-XX (422 otherwise)

Called by: main.py (router mount)
Depends on: services/price_list_service.py, dependencies
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import Actor, get_actor, get_repository
from ..services.price_list_service import (
    get_available_periods_for_team,
    get_price_list_matrix,
    get_product_price_comparison,
    get_team_supplier_scopes,
)
from ..services.storage import QuotationRepository
from ..utils.periods import PERIOD_RE

router = APIRouter(tags=["price-list"])


def _team_or_404(repo: QuotationRepository, team_id: int):
    found = repo.get_team(team_id)
    if not found:
        raise HTTPException(404, "Team not found")
    return found.value


@router.get("/api/price-list/{team_id}/periods")
async def price_list_periods(
    team_id: int,
    actor: Actor = Depends(get_actor),
    repo: QuotationRepository = Depends(get_repository),
):
    team = _team_or_404(repo, team_id)
    periods = get_available_periods_for_team(repo, team, actor.permissions, actor.member_team_ids)
    return {"team_id": team_id, "periods": periods}


@router.get("/api/price-list/{team_id}")
async def price_list(
    team_id: int,
    period: str = Query(..., pattern=PERIOD_RE.pattern),
    actor: Actor = Depends(get_actor),
    repo: QuotationRepository = Depends(get_repository),
):
    team = _team_or_404(repo, team_id)
    return get_price_list_matrix(repo, team, period, actor.permissions, actor.member_team_ids)


@router.get("/api/price-list/{team_id}/suppliers")
async def price_list_suppliers(
    team_id: int,
    actor: Actor = Depends(get_actor),
    repo: QuotationRepository = Depends(get_repository),
):
    team = _team_or_404(repo, team_id)
    scopes = get_team_supplier_scopes(repo, team, actor.permissions, actor.member_team_ids)
    return {"team_id": team_id, "suppliers": scopes}


@router.get("/api/price-list/{team_id}/products/{product_id}")
async def product_price_comparison(
    team_id: int,
    product_id: int,
    period: str = Query(..., pattern=PERIOD_RE.pattern),
    actor: Actor = Depends(get_actor),
    repo: QuotationRepository = Depends(get_repository),
):
    """One product's approved prices across the suppliers serving the kitchen."""
    team = _team_or_404(repo, team_id)
    found = repo.get_product(product_id)
    if not found:
        raise HTTPException(404, "Product not found")
    return get_product_price_comparison(
        repo, team, found.value, period, actor.permissions, actor.member_team_ids
    )
