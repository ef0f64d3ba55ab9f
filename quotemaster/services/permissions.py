"""
permissions.py — Role/Permission Resolver

Turns an actor's team memberships into one effective PermissionSet.

Business Rules:
- Capabilities merge with OR across memberships (any role granting wins)
- team_restricted merges with AND (unrestricted if any role is unrestricted)
- No memberships → every capability False, restricted
- Unknown or malformed role codes never raise; they count as the most
  restrictive set and are logged as a warning
- Team-restricted actors may only act on teams they belong to

Called by: dependencies.py, services/access_scope.py, routers
Depends on: roles.py, services/storage.py (memberships)
"""

import logging
from dataclasses import dataclass

from ..roles import DEFAULT_ROLE_TABLE, NO_PERMISSIONS, PermissionSet, RoleTable

log = logging.getLogger("quotemaster.permissions")


@dataclass(frozen=True)
class Membership:
    team_id: int
    role: str
    team_region: str | None = None
    team_name: str | None = None


def resolve_role(role, role_table: RoleTable = DEFAULT_ROLE_TABLE) -> PermissionSet:
    perms = role_table.lookup(role)
    if perms is None:
        log.warning("Unknown role %r resolved to no permissions", role)
        return NO_PERMISSIONS
    return perms


def merge_permissions(sets) -> PermissionSet:
    """OR every capability, AND the restriction. Empty input → NO_PERMISSIONS."""
    sets = list(sets)
    if not sets:
        return NO_PERMISSIONS
    merged = {name: any(getattr(s, name) for s in sets) for name in PermissionSet.capability_names()}
    merged["team_restricted"] = all(s.team_restricted for s in sets)
    return PermissionSet(**merged)


def resolve_permissions(memberships, role_table: RoleTable = DEFAULT_ROLE_TABLE) -> PermissionSet:
    return merge_permissions(resolve_role(m.role, role_table) for m in memberships)


def get_user_permissions(repo, user_id: int, role_table: RoleTable = DEFAULT_ROLE_TABLE) -> PermissionSet:
    return resolve_permissions(repo.get_user_team_memberships(user_id), role_table)


def can_access_team(permissions: PermissionSet, team_id: int | None, member_team_ids) -> bool:
    if not permissions.team_restricted or team_id is None:
        return True
    return team_id in set(member_team_ids)


def check_permission(
    permissions: PermissionSet,
    action: str,
    team_id: int | None = None,
    member_team_ids=(),
) -> bool:
    """True when ``action`` (a ``can_*`` name) is granted for ``team_id``."""
    if action not in PermissionSet.capability_names():
        raise ValueError(f"Unknown permission: {action}")
    if not getattr(permissions, action):
        return False
    return can_access_team(permissions, team_id, member_team_ids)
