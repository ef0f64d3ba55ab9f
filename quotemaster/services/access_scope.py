"""
access_scope.py — Access-Scoping Filter

Derives the region predicate every region-scoped query must carry, and the
single rule for combining it with a region the caller asked for.

Business Rules:
- Unrestricted actors: no predicate; an explicitly requested region applies
- Restricted actors: locked to the primary team's region
- Restricted actor whose primary team has no region (or who has no team)
  → result forced empty
- Restricted actor requesting another region → empty result, never an error
  and never the other region's data
- Restricted actor with no requested region → own region

Called by: services/comparison_service.py, services/dashboard_service.py,
           dependencies.py
Depends on: roles.py (PermissionSet)
"""

import logging
from dataclasses import dataclass

from ..roles import PermissionSet

log = logging.getLogger("quotemaster.access")


@dataclass(frozen=True)
class AccessScope:
    restricted: bool
    region: str | None = None
    team_id: int | None = None
    force_empty: bool = False


UNRESTRICTED = AccessScope(restricted=False)


@dataclass(frozen=True)
class RegionDecision:
    """Outcome of the region rule.

    ``denied`` → return an empty result. Otherwise ``region`` is the equality
    predicate to apply, or None for no predicate.
    """

    region: str | None = None
    denied: bool = False


def _norm(region):
    if region is None:
        return None
    region = region.strip()
    return region or None


def build_access_scope(permissions: PermissionSet, primary=None) -> AccessScope:
    """``primary`` is the actor's first Membership (or None)."""
    if not permissions.team_restricted:
        return AccessScope(restricted=False, team_id=getattr(primary, "team_id", None))
    if primary is None:
        return AccessScope(restricted=True, force_empty=True)
    region = _norm(primary.team_region)
    return AccessScope(
        restricted=True,
        region=region,
        team_id=primary.team_id,
        force_empty=region is None,
    )


def resolve_region(scope: AccessScope, requested_region: str | None = None) -> RegionDecision:
    requested = _norm(requested_region)
    if not scope.restricted:
        return RegionDecision(region=requested)
    if scope.force_empty:
        return RegionDecision(denied=True)
    if requested is not None and requested != scope.region:
        log.info("Restricted actor requested region %r outside own region %r", requested, scope.region)
        return RegionDecision(denied=True)
    return RegionDecision(region=scope.region)

