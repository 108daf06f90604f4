"""
Role Classifier — coarse role labels derived from the numeric privilege level.

The privilege level is canonical and totally ordered (lower = more authority):

    0 SuperAdmin < 1 TenantAdmin < 2 Agent < 3 Member < 4 Guest < 5 Visitor

Role labels are a derived display convenience. A principal may also carry
additional coarse labels (an Agent who is also a Member), but never one that
outranks its own privilege level.

The SuperAdmin bypass lives here and only here: a classification at level 0
satisfies every role and privilege check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from brokerdesk.auth.principal import Principal

logger = logging.getLogger(__name__)


class RoleLabel(str, Enum):
    SUPER_ADMIN = "SuperAdmin"
    TENANT_ADMIN = "TenantAdmin"
    AGENT = "Agent"
    MEMBER = "Member"
    GUEST = "Guest"
    VISITOR = "Visitor"

    @classmethod
    def parse(cls, value: RoleLabel | str) -> RoleLabel:
        """Parse a label, accepting the legacy aliases. Raises ValueError."""
        if isinstance(value, RoleLabel):
            return value
        alias = _ROLE_ALIASES.get(value)
        if alias is not None:
            return alias
        return cls(value)


_ROLE_ALIASES: dict[str, RoleLabel] = {
    "Admin": RoleLabel.TENANT_ADMIN,
    "LandlordAdmin": RoleLabel.TENANT_ADMIN,
}

SUPER_ADMIN_LEVEL = 0
LOWEST_PRIVILEGE_LEVEL = 5

PRIVILEGE_LEVELS: dict[RoleLabel, int] = {
    RoleLabel.SUPER_ADMIN: 0,
    RoleLabel.TENANT_ADMIN: 1,
    RoleLabel.AGENT: 2,
    RoleLabel.MEMBER: 3,
    RoleLabel.GUEST: 4,
    RoleLabel.VISITOR: 5,
}

_LABEL_BY_LEVEL: dict[int, RoleLabel] = {level: role for role, level in PRIVILEGE_LEVELS.items()}


def privilege_level_for_role(role: RoleLabel | str) -> int:
    """Privilege level for a label; unknown labels get the least authority."""
    try:
        return PRIVILEGE_LEVELS[RoleLabel.parse(role)]
    except ValueError:
        return LOWEST_PRIVILEGE_LEVEL


def role_for_privilege_level(level: int) -> RoleLabel:
    if level <= SUPER_ADMIN_LEVEL:
        return RoleLabel.SUPER_ADMIN
    return _LABEL_BY_LEVEL.get(level, RoleLabel.VISITOR)


def coerce_roles(roles: Iterable[RoleLabel | str]) -> frozenset[RoleLabel]:
    """Parse a requirement's labels, dropping (and logging) unknown ones."""
    parsed: set[RoleLabel] = set()
    for role in roles:
        try:
            parsed.add(RoleLabel.parse(role))
        except ValueError:
            logger.warning("Ignoring unknown role label %r", role)
    return frozenset(parsed)


@dataclass(frozen=True)
class Classification:
    role_label: RoleLabel
    privilege_level: int
    role_labels: frozenset[RoleLabel]

    @property
    def is_super_admin(self) -> bool:
        return self.privilege_level == SUPER_ADMIN_LEVEL

    def has_any_role(self, roles: Iterable[RoleLabel | str]) -> bool:
        """True if any held label is required, or the holder is SuperAdmin."""
        if self.is_super_admin:
            return True
        return not self.role_labels.isdisjoint(coerce_roles(roles))

    def has_role(self, role: RoleLabel | str) -> bool:
        return self.has_any_role((role,))

    def has_minimum_privilege_level(self, level: int) -> bool:
        """Lower numbers mean more authority, so this is `privilege_level <= level`."""
        return self.privilege_level <= level


def classify(principal: Principal) -> Classification:
    """Derive the coarse role labels of a principal. Pure, no I/O."""
    level = principal.privilege_level
    primary = role_for_privilege_level(level)
    # Extra labels may widen role membership but never outrank the level.
    extra = {
        role for role in principal.additional_roles
        if PRIVILEGE_LEVELS[role] >= PRIVILEGE_LEVELS[primary]
    }
    return Classification(
        role_label=primary,
        privilege_level=level,
        role_labels=frozenset({primary, *extra}),
    )
