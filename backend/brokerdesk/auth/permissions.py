"""
Capability Gate — coarse permissions derived from the privilege level.

Each capability has a privilege threshold. Grants are monotonic over the total
order of privilege levels: a principal holding a capability at level N holds
every capability available at levels > N as well.

    manage_system  <= 0   (SuperAdmin)
    delete         <= 1   (TenantAdmin+)
    write          <= 2   (Agent+)
    read           <= 5   (any authenticated principal)

Member-level principals additionally get self-service access to their *own*
rows on a few resources (see SELF_SERVICE); that allowance is row-level only
and never widens the coarse capability set.
"""

from enum import Enum

from brokerdesk.auth.roles import LOWEST_PRIVILEGE_LEVEL, Classification, RoleLabel


class Capability(str, Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    MANAGE_SYSTEM = "manage_system"


CAPABILITY_THRESHOLDS: dict[Capability, int] = {
    Capability.MANAGE_SYSTEM: 0,
    Capability.DELETE: 1,
    Capability.WRITE: 2,
    Capability.READ: LOWEST_PRIVILEGE_LEVEL,
}


# ── Resources ──
POLICIES = "policies"
APPLICATIONS = "applications"
DEPENDENTS = "dependents"
POINTS = "points"
USERS = "users"
REWARDS = "rewards"
REFERRALS = "referrals"
ACHIEVEMENTS = "achievements"

# Own-row allowances for principals below the coarse threshold
SELF_SERVICE: dict[Capability, frozenset[str]] = {
    Capability.READ: frozenset({POLICIES, APPLICATIONS, POINTS, DEPENDENTS}),
    Capability.WRITE: frozenset({POLICIES, APPLICATIONS, POINTS, DEPENDENTS}),
    Capability.DELETE: frozenset({APPLICATIONS, DEPENDENTS}),
}


def has_permission(classification: Classification | None, capability: Capability) -> bool:
    """Pure function of the privilege level; unauthenticated holds nothing."""
    if classification is None:
        return False
    return classification.privilege_level <= CAPABILITY_THRESHOLDS[capability]


def capabilities_for(classification: Classification | None) -> frozenset[Capability]:
    return frozenset(c for c in Capability if has_permission(classification, c))


def can_act(
    classification: Classification | None,
    capability: Capability,
    resource: str,
    *,
    is_own: bool = False,
) -> bool:
    """Coarse capability, or a Member's self-service allowance on their own rows."""
    if has_permission(classification, capability):
        return True
    if classification is None or not is_own:
        return False
    if RoleLabel.MEMBER not in classification.role_labels:
        return False
    return resource in SELF_SERVICE.get(capability, frozenset())
