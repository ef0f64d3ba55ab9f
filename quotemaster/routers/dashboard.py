"""
routers/dashboard.py — Home Dashboard & Current Actor Routes

Business Rules:
- Stats are visible to every signed-in actor; quotation counts follow the
  actor's permissions and region
- Price trends need can_view_analytics (empty otherwise)
- /api/me/permissions echoes the merged permission set and access scope

Called by: main.py (router mount)
Depends on: services/dashboard_service.py, dependencies
"""

from fastapi import APIRouter, Depends, Query

from ..dependencies import Actor, get_actor, get_repository
from ..services.dashboard_service import get_dashboard_stats, get_price_trends
from ..services.storage import QuotationRepository

router = APIRouter(tags=["dashboard"])


@router.get("/api/dashboard/stats")
async def dashboard_stats(
    actor: Actor = Depends(get_actor),
    repo: QuotationRepository = Depends(get_repository),
):
    return get_dashboard_stats(repo, actor.permissions, actor.scope)


@router.get("/api/dashboard/price-trends")
async def dashboard_price_trends(
    region: str | None = None,
    limit: int | None = Query(None, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    repo: QuotationRepository = Depends(get_repository),
):
    return get_price_trends(repo, actor.permissions, actor.scope, region=region, limit=limit)


@router.get("/api/me/permissions")
async def my_permissions(actor: Actor = Depends(get_actor)):
    return {
        "user_id": actor.user.id,
        "permissions": actor.permissions.to_dict(),
        "scope": {
            "restricted": actor.scope.restricted,
            "region": actor.scope.region,
            "team_id": actor.scope.team_id,
            "force_empty": actor.scope.force_empty,
        },
        "memberships": [
            {"team_id": m.team_id, "team_name": m.team_name, "role": m.role, "region": m.team_region}
            for m in actor.memberships
        ],
    }
