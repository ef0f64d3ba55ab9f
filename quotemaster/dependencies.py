"""
dependencies.py — Shared FastAPI Dependencies

Authentication, the resolved actor context (permissions + access scope),
and capability guards. All routers import from here instead of defining
their own auth logic.

Business Rules:
- Sessions are issued elsewhere; the session only carries user_id
- get_user returns None if not logged in (non-throwing)
- require_user raises 401 if not logged in, 403 if deactivated
- get_actor resolves memberships → PermissionSet → AccessScope once per
  request; the first membership is the primary team
- require_capability(name) raises 403 when the capability is missing

Called by: all routers
Depends on: models, database, services/storage.py, services/permissions.py,
            services/access_scope.py
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .database import get_db
from .models import User
from .roles import PermissionSet
from .services.access_scope import AccessScope, build_access_scope
from .services.permissions import resolve_permissions
from .services.storage import QuotationRepository

log = logging.getLogger(__name__)


# ── Authentication ────────────────────────────────────────────────────


def get_user(request: Request, db: Session) -> User | None:
    """Return current user from session, or None if not logged in."""
    uid = request.session.get("user_id")
    if not uid:
        return None
    try:
        return db.get(User, uid)
    except SQLAlchemyError:
        log.warning("Session user %s could not be loaded; clearing session", uid)
        request.session.clear()
        return None


def require_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Dependency: raises 401 if no authenticated user, 403 if deactivated."""
    user = get_user(request, db)
    if not user:
        raise HTTPException(401, "Not authenticated")
    if not user.is_active:
        request.session.clear()
        raise HTTPException(403, "Account deactivated, contact an administrator")
    return user


# ── Actor context ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Actor:
    user: User
    memberships: tuple
    permissions: PermissionSet
    scope: AccessScope

    @property
    def member_team_ids(self) -> set[int]:
        return {m.team_id for m in self.memberships}


def get_repository(db: Session = Depends(get_db)) -> QuotationRepository:
    return QuotationRepository(db)


def get_actor(
    user: User = Depends(require_user),
    repo: QuotationRepository = Depends(get_repository),
) -> Actor:
    memberships = tuple(repo.get_user_team_memberships(user.id))
    permissions = resolve_permissions(memberships)
    primary = memberships[0] if memberships else None
    return Actor(user, memberships, permissions, build_access_scope(permissions, primary))


def require_capability(name: str):
    """Dependency factory: 403 unless the actor holds capability ``name``."""
    if name not in PermissionSet.capability_names():
        raise ValueError(f"Unknown capability: {name}")

    def _guard(actor: Actor = Depends(get_actor)) -> Actor:
        if not getattr(actor.permissions, name):
            raise HTTPException(403, f"Permission required: {name}")
        return actor

    return _guard
