"""
roles.py — Role Catalogue and Capability Table

Static mapping from a role code to its capability set. Role codes are either
DEPARTMENT_LEVEL (e.g. ``PROCUREMENT_MANAGER``) or one of the two template
roles ``owner`` / ``member``.

Business Rules:
- The table is built once at import and is read-only (MappingProxyType)
- PROCUREMENT and ADMIN roles run the quotation workflow
- KITCHEN roles may view (and at manager level export) but are region-locked
- HR, PRODUCTION, GENERAL_AFFAIRS, LOGISTICS and BUSINESS_DEVELOPMENT have
  no quotation access at all
- Unknown role codes are not in the table; callers decide how to degrade

Called by: services/permissions.py, dependencies.py
Depends on: nothing (pure data)
"""

from dataclasses import asdict, dataclass, fields
from enum import Enum
from types import MappingProxyType


class Department(str, Enum):
    ADMIN = "ADMIN"
    PROCUREMENT = "PROCUREMENT"
    ACCOUNTING = "ACCOUNTING"
    HR = "HR"
    PRODUCTION = "PRODUCTION"
    GENERAL_AFFAIRS = "GENERAL_AFFAIRS"
    LOGISTICS = "LOGISTICS"
    BUSINESS_DEVELOPMENT = "BUSINESS_DEVELOPMENT"
    KITCHEN = "KITCHEN"
    OPERATIONS = "OPERATIONS"


class Level(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"
    VIEWER = "VIEWER"


# Highest first
LEVEL_ORDER = (Level.SUPER_ADMIN, Level.MANAGER, Level.STAFF, Level.VIEWER)
TEMPLATE_ROLES = ("owner", "member")


@dataclass(frozen=True)
class PermissionSet:
    """Capabilities granted to an actor.

    ``team_restricted`` is a restriction, not a capability: when True the
    actor only sees data for its primary team's region.
    """

    can_view_quotes: bool = False
    can_create_quotes: bool = False
    can_approve_quotes: bool = False
    can_negotiate_quotes: bool = False
    can_manage_products: bool = False
    can_manage_suppliers: bool = False
    can_manage_kitchens: bool = False
    can_manage_staff: bool = False
    can_view_analytics: bool = False
    can_export_data: bool = False
    team_restricted: bool = True

    @classmethod
    def capability_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls) if f.name.startswith("can_"))

    def to_dict(self) -> dict:
        return asdict(self)


NO_PERMISSIONS = PermissionSet()


def _p(view, create, approve, negotiate, products, suppliers, kitchens, staff, analytics, export, restricted):
    return PermissionSet(
        can_view_quotes=view,
        can_create_quotes=create,
        can_approve_quotes=approve,
        can_negotiate_quotes=negotiate,
        can_manage_products=products,
        can_manage_suppliers=suppliers,
        can_manage_kitchens=kitchens,
        can_manage_staff=staff,
        can_view_analytics=analytics,
        can_export_data=export,
        team_restricted=restricted,
    )


T, F = True, False

_FULL = _p(T, T, T, T, T, T, T, T, T, T, F)
_PROCUREMENT_LEAD = _p(T, T, T, T, T, T, F, F, T, T, F)
_CREATOR = _p(T, T, F, F, F, F, F, F, T, T, F)
_GLOBAL_VIEWER = _p(T, F, F, F, F, F, F, F, T, F, F)
_GLOBAL_REPORTER = _p(T, F, F, F, F, F, F, F, T, T, F)
_LOCAL_REPORTER = _p(T, F, F, F, F, F, F, F, T, T, T)
_LOCAL_VIEWER = _p(T, F, F, F, F, F, F, F, F, F, T)
_MEMBER = _p(T, F, F, F, F, F, F, F, T, F, T)

_NO_QUOTE_ACCESS_DEPARTMENTS = (
    Department.HR,
    Department.PRODUCTION,
    Department.GENERAL_AFFAIRS,
    Department.LOGISTICS,
    Department.BUSINESS_DEVELOPMENT,
)


def _build_table() -> dict[str, PermissionSet]:
    table = {
        "owner": _FULL,
        "member": _MEMBER,
        "ADMIN_SUPER_ADMIN": _FULL,
        "ADMIN_MANAGER": _FULL,
        "ADMIN_STAFF": _CREATOR,
        "ADMIN_VIEWER": _GLOBAL_VIEWER,
        "PROCUREMENT_SUPER_ADMIN": _PROCUREMENT_LEAD,
        "PROCUREMENT_MANAGER": _PROCUREMENT_LEAD,
        "PROCUREMENT_STAFF": _CREATOR,
        "PROCUREMENT_VIEWER": _GLOBAL_VIEWER,
        "KITCHEN_SUPER_ADMIN": _LOCAL_REPORTER,
        "KITCHEN_MANAGER": _LOCAL_REPORTER,
        "KITCHEN_STAFF": _LOCAL_VIEWER,
        "KITCHEN_VIEWER": _LOCAL_VIEWER,
    }
    for dept in (Department.ACCOUNTING, Department.OPERATIONS):
        table[f"{dept.value}_SUPER_ADMIN"] = _GLOBAL_REPORTER
        table[f"{dept.value}_MANAGER"] = _GLOBAL_REPORTER
        table[f"{dept.value}_STAFF"] = _LOCAL_VIEWER
        table[f"{dept.value}_VIEWER"] = _LOCAL_VIEWER
    for dept in _NO_QUOTE_ACCESS_DEPARTMENTS:
        for level in Level:
            table[f"{dept.value}_{level.value}"] = NO_PERMISSIONS
    return table


ROLE_PERMISSIONS = MappingProxyType(_build_table())


class RoleTable:
    """Read-only role → PermissionSet lookup.

    Wraps ROLE_PERMISSIONS by default; tests pass their own mapping.
    """

    def __init__(self, table=None):
        self._table = MappingProxyType(dict(table)) if table is not None else ROLE_PERMISSIONS

    def lookup(self, role) -> PermissionSet | None:
        if not isinstance(role, str):
            return None
        return self._table.get(role.strip())

    def __contains__(self, role) -> bool:
        return self.lookup(role) is not None

    def roles(self) -> list[str]:
        return sorted(self._table)


DEFAULT_ROLE_TABLE = RoleTable()


# ── Role code helpers ───────────────────────────────────────────────────


def parse_role(role) -> tuple[Department, Level] | None:
    """Split ``DEPARTMENT_LEVEL`` into its parts. Template roles return None."""
    if not isinstance(role, str):
        return None
    role = role.strip()
    for level in LEVEL_ORDER:
        suffix = "_" + level.value
        if role.endswith(suffix):
            try:
                return Department(role[: -len(suffix)]), level
            except ValueError:
                return None
    return None


def is_valid_role(role) -> bool:
    if isinstance(role, str) and role.strip() in TEMPLATE_ROLES:
        return True
    return parse_role(role) is not None


def is_admin_role(role) -> bool:
    parsed = parse_role(role)
    return role == "owner" or (parsed is not None and parsed[0] == Department.ADMIN)


def roles_for_department(department: Department) -> list[str]:
    return [f"{department.value}_{level.value}" for level in LEVEL_ORDER]


def highest_level_in_department(roles, department: Department) -> Level | None:
    """Highest level held in ``department`` across ``roles``, or None."""
    held = set()
    for role in roles:
        parsed = parse_role(role)
        if parsed and parsed[0] == department:
            held.add(parsed[1])
    for level in LEVEL_ORDER:
        if level in held:
            return level
    return None


def has_procurement_access(roles) -> bool:
    """True when any role belongs to PROCUREMENT or ADMIN (or is owner)."""
    for role in roles:
        if role == "owner":
            return True
        parsed = parse_role(role)
        if parsed and parsed[0] in (Department.PROCUREMENT, Department.ADMIN):
            return True
    return False
