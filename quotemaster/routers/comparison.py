"""
routers/comparison.py — Comparison Matrix Routes

Product × supplier price comparison for a period/region slice, plus the
summary and filter lookups the comparison screen needs.

Business Rules:
- Actors without can_view_quotes get empty payloads, not errors
- Region scoping is decided in services/access_scope.py
- A matrix build stops when the client disconnects (HTTP 499)

Called by: main.py (router mount)
Depends on: services/comparison_service.py, dependencies
"""

import asyncio
import threading

from fastapi import APIRouter, Depends, Query, Request, Response
from loguru import logger
from starlette.concurrency import run_in_threadpool

from ..dependencies import Actor, get_actor, get_repository
from ..schemas.comparison import ComparisonMatrixRequest
from ..services.comparison_service import (
    ComparisonCancelled,
    ComparisonFilters,
    empty_matrix,
    empty_summary,
    get_categories_for_period_and_region,
    get_comparison_matrix,
    get_quotation_summary,
    get_regions_for_period,
)
from ..services.storage import QuotationRepository
from ..utils.periods import PERIOD_RE

router = APIRouter(tags=["comparison"])

PERIOD_PATTERN = PERIOD_RE.pattern
CLIENT_CLOSED_REQUEST = 499


async def _watch_disconnect(request: Request, cancelled: threading.Event):
    while not cancelled.is_set():
        if await request.is_disconnected():
            cancelled.set()
            return
        await asyncio.sleep(0.5)


@router.post("/api/comparison/matrix")
async def comparison_matrix(
    body: ComparisonMatrixRequest,
    request: Request,
    actor: Actor = Depends(get_actor),
    repo: QuotationRepository = Depends(get_repository),
):
    """Full comparison matrix for one period / region / category selection."""
    filters = ComparisonFilters(
        period=body.period,
        region=body.region,
        categories=tuple(body.categories),
        team_id=body.team_id,
    )
    if not actor.permissions.can_view_quotes:
        return empty_matrix(filters, denied=True)

    cancelled = threading.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancelled))
    try:
        return await run_in_threadpool(
            get_comparison_matrix, repo, filters, actor.scope, cancelled.is_set
        )
    except ComparisonCancelled:
        logger.info("Comparison matrix aborted by client (user {})", actor.user.id)
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    finally:
        watcher.cancel()


@router.get("/api/comparison/summary")
async def comparison_summary(
    period: str = Query(..., pattern=PERIOD_PATTERN),
    region: str | None = None,
    actor: Actor = Depends(get_actor),
    repo: QuotationRepository = Depends(get_repository),
):
    """Quotation counts per status for the period."""
    if not actor.permissions.can_view_quotes:
        return empty_summary(period, region)
    return get_quotation_summary(repo, period, actor.scope, region)


@router.get("/api/comparison/regions")
async def comparison_regions(
    period: str = Query(..., pattern=PERIOD_PATTERN),
    actor: Actor = Depends(get_actor),
    repo: QuotationRepository = Depends(get_repository),
):
    if not actor.permissions.can_view_quotes:
        return {"period": period, "regions": []}
    return {"period": period, "regions": get_regions_for_period(repo, period, actor.scope)}


@router.get("/api/comparison/categories")
async def comparison_categories(
    period: str = Query(..., pattern=PERIOD_PATTERN),
    region: str | None = None,
    actor: Actor = Depends(get_actor),
    repo: QuotationRepository = Depends(get_repository),
):
    if not actor.permissions.can_view_quotes:
        return {"period": period, "region": region, "categories": []}
    categories = get_categories_for_period_and_region(repo, period, region, actor.scope)
    return {"period": period, "region": region, "categories": categories}
