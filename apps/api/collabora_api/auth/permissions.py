"""Role permission tables.

Permissions are dot-namespaced strings (``files.delete``, ``tenants.switch``).
``*`` grants everything and ``prefix.*`` grants every ``prefix.<name>``.
The tables are static; a user/tenant association may add permissions on top
of its role, but never ``*``.
"""

from enum import Enum
from typing import Iterable, Optional

WILDCARD = "*"


class Role(str, Enum):
    ADMIN = "admin"
    SPECIAL_USER = "special_user"
    STANDARD_USER = "standard_user"


ROLE_PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.ADMIN: frozenset({WILDCARD}),
    Role.SPECIAL_USER: frozenset(
        {
            "files.*",
            "folders.*",
            "calendar.*",
            "tasks.*",
            "chat.*",
            "users.view",
            "tenants.view",
            "tenants.switch",
        }
    ),
    Role.STANDARD_USER: frozenset(
        {
            "files.own",
            "folders.own",
            "calendar.view",
            "tasks.view",
            "chat.use",
            "profile.edit",
        }
    ),
}


def parse_role(value: Optional[str]) -> Optional[Role]:
    """Map a stored role string to Role; unknown values yield None."""
    try:
        return Role(value)
    except ValueError:
        return None


def grants(granted: Iterable[str], permission: str) -> bool:
    """True if any entry of ``granted`` covers ``permission``."""
    for entry in granted:
        if entry == WILDCARD or entry == permission:
            return True
        if entry.endswith(".*"):
            prefix = entry[:-1]
            if permission.startswith(prefix) and len(permission) > len(prefix):
                return True
    return False


def permissions_for(role: Optional[str], overrides: Optional[Iterable[str]] = None) -> frozenset[str]:
    """Effective permission set for a role plus association overrides.

    Unknown roles get nothing. ``*`` in overrides is dropped.
    """
    parsed = parse_role(role)
    base = ROLE_PERMISSIONS.get(parsed, frozenset()) if parsed else frozenset()
    if not overrides:
        return base
    extra = {
        entry
        for entry in overrides
        if isinstance(entry, str) and entry and entry != WILDCARD
    }
    return base | extra


def can_switch_tenant(role: Optional[str]) -> bool:
    return parse_role(role) in (Role.ADMIN, Role.SPECIAL_USER)
