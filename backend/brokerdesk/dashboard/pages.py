"""
Dashboard page registry.

Each page declares the roles allowed through its shell, its sections (each
optionally behind a guard), the actions offered inside those sections, and the
read queries those sections need. Queries are declared by resource path only;
organization scope is attached from the principal when the page is composed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from brokerdesk.auth.permissions import Capability
from brokerdesk.auth.principal import Principal
from brokerdesk.auth.roles import RoleLabel
from brokerdesk.dashboard.guards import CapabilityGuard, Guard, PrivilegeGuard, RoleGuard
from brokerdesk.dashboard.layout import DashboardLayout
from brokerdesk.scoping import QueryKey, scoped_query_key

SUPER_ADMIN = RoleLabel.SUPER_ADMIN
TENANT_ADMIN = RoleLabel.TENANT_ADMIN
AGENT = RoleLabel.AGENT
MEMBER = RoleLabel.MEMBER
GUEST = RoleLabel.GUEST


@dataclass(frozen=True)
class QuerySpec:
    id: str
    path: str
    params: tuple[tuple[str, Any], ...] = ()
    scoped: bool = True

    def key_for(self, principal: Principal) -> QueryKey:
        if self.scoped:
            return scoped_query_key(self.path, principal, **dict(self.params))
        return QueryKey.build(self.path, dict(self.params))


@dataclass(frozen=True)
class ActionSpec:
    id: str
    label: str
    method: str
    path: str
    guard: Guard | None = None
    invalidates: tuple[str, ...] = ()  # query ids refetched after success


@dataclass(frozen=True)
class SectionSpec:
    id: str
    title: str
    queries: tuple[str, ...] = ()
    actions: tuple[ActionSpec, ...] = ()
    guard: Guard | None = None


@dataclass(frozen=True)
class PageSpec:
    slug: str
    title: str
    path: str
    required_roles: frozenset[RoleLabel]
    sections: tuple[SectionSpec, ...]
    queries: tuple[QuerySpec, ...] = ()
    nav_label: str | None = None

    @property
    def layout(self) -> DashboardLayout:
        return DashboardLayout(self.required_roles, self.title)

    def query(self, query_id: str) -> QuerySpec:
        for q in self.queries:
            if q.id == query_id:
                return q
        raise KeyError(query_id)


# ── Queries ──────────────────────────────────────────────────────────────────

POLICIES_Q = QuerySpec("policies", "/api/policies")
APPLICATIONS_Q = QuerySpec("applications", "/api/applications")
DEPENDENTS_Q = QuerySpec("dependents", "/api/dependents")
POINTS_SUMMARY_Q = QuerySpec("points-summary", "/api/points/summary")
POINTS_TRANSACTIONS_Q = QuerySpec("points-transactions", "/api/points/transactions")
AGENTS_Q = QuerySpec("agents", "/api/agents")
MEMBERS_Q = QuerySpec("members", "/api/users", params=(("role", MEMBER.value),))
USERS_Q = QuerySpec("users", "/api/users")
ASSIGNMENTS_Q = QuerySpec("client-assignments", "/api/client-assignments")
ACCESS_REQUESTS_Q = QuerySpec("access-requests", "/api/access-requests", params=(("status", "pending"),))
ORGANIZATIONS_Q = QuerySpec("organizations", "/api/organizations")
REWARDS_Q = QuerySpec("rewards", "/api/rewards")
ALL_REWARDS_Q = QuerySpec("all-rewards", "/api/rewards/all")
REDEMPTIONS_Q = QuerySpec("redemptions", "/api/rewards/redemptions")
ACHIEVEMENTS_Q = QuerySpec("achievements", "/api/achievements", scoped=False)
REFERRAL_STATS_Q = QuerySpec("referral-stats", "/api/referrals/stats", scoped=False)
LEADERBOARD_Q = QuerySpec("leaderboard", "/api/points/leaderboard")

_CAN_WRITE = CapabilityGuard(Capability.WRITE)
_CAN_DELETE = CapabilityGuard(Capability.DELETE)
_CAN_MANAGE = CapabilityGuard(Capability.MANAGE_SYSTEM)
_STAFF = PrivilegeGuard(2)
_ADMINS = PrivilegeGuard(1)


# ── Pages ────────────────────────────────────────────────────────────────────

PAGES: tuple[PageSpec, ...] = (
    PageSpec(
        slug="overview",
        title="Dashboard",
        path="/dashboard",
        nav_label="Dashboard",
        required_roles=frozenset({TENANT_ADMIN, AGENT, MEMBER, GUEST}),
        queries=(POLICIES_Q, POINTS_SUMMARY_Q, AGENTS_Q, ACCESS_REQUESTS_Q),
        sections=(
            SectionSpec("my-policies", "Policies", queries=("policies",)),
            SectionSpec("points-summary", "Rewards", queries=("points-summary",),
                        guard=RoleGuard({MEMBER, AGENT, TENANT_ADMIN})),
            SectionSpec("team", "Team", queries=("agents",), guard=_STAFF),
            SectionSpec("pending-access-requests", "Pending access requests",
                        queries=("access-requests",), guard=_ADMINS),
        ),
    ),
    PageSpec(
        slug="members",
        title="Members",
        path="/dashboard/members",
        nav_label="Members",
        required_roles=frozenset({TENANT_ADMIN, AGENT}),
        queries=(MEMBERS_Q,),
        sections=(
            SectionSpec("member-list", "Members", queries=("members",), actions=(
                ActionSpec("edit-member", "Edit", "PUT", "/api/users/{id}",
                           guard=_CAN_WRITE, invalidates=("members",)),
                ActionSpec("deactivate-member", "Deactivate", "DELETE", "/api/users/{id}",
                           guard=_CAN_DELETE, invalidates=("members",)),
            )),
        ),
    ),
    PageSpec(
        slug="applications",
        title="Applications",
        path="/dashboard/applications",
        nav_label="Applications",
        required_roles=frozenset({TENANT_ADMIN, AGENT, MEMBER}),
        queries=(APPLICATIONS_Q,),
        sections=(
            SectionSpec("application-list", "Applications", queries=("applications",), actions=(
                ActionSpec("new-application", "New application", "POST", "/api/applications",
                           invalidates=("applications",)),
                ActionSpec("review-application", "Review", "PUT", "/api/applications/{id}/status",
                           guard=_CAN_WRITE, invalidates=("applications",)),
                ActionSpec("delete-application", "Delete", "DELETE", "/api/applications/{id}",
                           invalidates=("applications",)),
            )),
        ),
    ),
    PageSpec(
        slug="policies",
        title="Insurance Policies",
        path="/dashboard/policies",
        nav_label="Insurance Policies",
        required_roles=frozenset({TENANT_ADMIN, AGENT, MEMBER}),
        queries=(POLICIES_Q,),
        sections=(
            SectionSpec("policy-list", "Policies", queries=("policies",), actions=(
                ActionSpec("new-policy", "New policy", "POST", "/api/policies",
                           guard=_CAN_WRITE, invalidates=("policies",)),
                ActionSpec("edit-policy", "Edit", "PUT", "/api/policies/{id}",
                           guard=_CAN_WRITE, invalidates=("policies",)),
                ActionSpec("delete-policy", "Delete", "DELETE", "/api/policies/{id}",
                           guard=_CAN_DELETE, invalidates=("policies",)),
            )),
        ),
    ),
    PageSpec(
        slug="dependents",
        title="Dependents",
        path="/dashboard/dependents",
        nav_label="Dependents",
        required_roles=frozenset({TENANT_ADMIN, AGENT, MEMBER}),
        queries=(DEPENDENTS_Q,),
        sections=(
            SectionSpec("dependent-list", "Dependents", queries=("dependents",), actions=(
                ActionSpec("add-dependent", "Add dependent", "POST", "/api/dependents",
                           invalidates=("dependents",)),
                ActionSpec("remove-dependent", "Remove", "DELETE", "/api/dependents/{id}",
                           invalidates=("dependents",)),
            )),
        ),
    ),
    PageSpec(
        slug="points",
        title="Points System",
        path="/dashboard/points",
        nav_label="Points System",
        required_roles=frozenset({TENANT_ADMIN, AGENT, MEMBER}),
        queries=(POINTS_SUMMARY_Q, POINTS_TRANSACTIONS_Q, MEMBERS_Q),
        sections=(
            SectionSpec("points-summary", "Balance", queries=("points-summary",)),
            SectionSpec("points-history", "History", queries=("points-transactions",)),
            SectionSpec("award-points", "Award points", queries=("members",), guard=_STAFF, actions=(
                ActionSpec("award-points", "Award", "POST", "/api/points/award",
                           guard=_CAN_WRITE, invalidates=("points-transactions", "points-summary")),
            )),
        ),
    ),
    PageSpec(
        slug="rewards",
        title="Rewards",
        path="/dashboard/rewards",
        nav_label="Rewards",
        required_roles=frozenset({TENANT_ADMIN, AGENT, MEMBER}),
        queries=(REWARDS_Q, POINTS_SUMMARY_Q, REDEMPTIONS_Q),
        sections=(
            SectionSpec("reward-catalog", "Catalog", queries=("rewards", "points-summary"), actions=(
                ActionSpec("redeem-reward", "Redeem", "POST", "/api/rewards/{id}/redeem",
                           invalidates=("points-summary", "redemptions", "rewards")),
            )),
            SectionSpec("redemption-history", "My redemptions", queries=("redemptions",), actions=(
                ActionSpec("fulfill-redemption", "Mark fulfilled", "PUT", "/api/rewards/redemptions/{id}/fulfill",
                           guard=_CAN_WRITE, invalidates=("redemptions",)),
            )),
        ),
    ),
    PageSpec(
        slug="achievements",
        title="Achievements",
        path="/dashboard/achievements",
        nav_label="Achievements",
        required_roles=frozenset({TENANT_ADMIN, AGENT, MEMBER, GUEST}),
        queries=(ACHIEVEMENTS_Q, LEADERBOARD_Q),
        sections=(
            SectionSpec("achievement-list", "Achievements", queries=("achievements",), actions=(
                ActionSpec("check-achievements", "Check progress", "POST", "/api/achievements/check",
                           invalidates=("achievements",)),
            )),
            SectionSpec("leaderboard", "Leaderboard", queries=("leaderboard",)),
        ),
    ),
    PageSpec(
        slug="referrals",
        title="Referrals",
        path="/dashboard/referrals",
        nav_label="Referrals",
        required_roles=frozenset({TENANT_ADMIN, AGENT, MEMBER, GUEST}),
        queries=(REFERRAL_STATS_Q,),
        sections=(
            SectionSpec("referral-code", "Your referral code", queries=("referral-stats",), actions=(
                ActionSpec("generate-referral-code", "Get code", "POST", "/api/referrals/code",
                           invalidates=("referral-stats",)),
                ActionSpec("complete-referral", "Enter a code", "POST", "/api/referrals/complete",
                           invalidates=("referral-stats",)),
            )),
        ),
    ),
    PageSpec(
        slug="agents",
        title="Agents",
        path="/dashboard/agents",
        nav_label="Agents",
        required_roles=frozenset({TENANT_ADMIN, AGENT}),
        queries=(AGENTS_Q,),
        sections=(
            SectionSpec("agent-directory", "Agent directory", queries=("agents",), actions=(
                ActionSpec("edit-agent-profile", "Edit profile", "PUT", "/api/agents/{id}/profile",
                           guard=_CAN_WRITE, invalidates=("agents",)),
            )),
        ),
    ),
    PageSpec(
        slug="client-assignments",
        title="Client Assignments",
        path="/dashboard/client-assignments",
        nav_label="Client Assignments",
        required_roles=frozenset({TENANT_ADMIN}),
        queries=(ASSIGNMENTS_Q, AGENTS_Q, MEMBERS_Q),
        sections=(
            SectionSpec("assignment-list", "Assignments", queries=("client-assignments",), actions=(
                ActionSpec("transfer-assignment", "Transfer", "PUT", "/api/client-assignments/{id}/transfer",
                           guard=_ADMINS, invalidates=("client-assignments",)),
                ActionSpec("remove-assignment", "Unassign", "DELETE", "/api/client-assignments/{id}",
                           guard=_CAN_DELETE, invalidates=("client-assignments",)),
            )),
            SectionSpec("assign-client", "Assign client", queries=("agents", "members"), guard=_ADMINS, actions=(
                ActionSpec("assign-client", "Assign", "POST", "/api/client-assignments",
                           invalidates=("client-assignments",)),
            )),
        ),
    ),
    PageSpec(
        slug="access-requests",
        title="Access Requests",
        path="/dashboard/access-requests",
        nav_label="Access Requests",
        required_roles=frozenset({TENANT_ADMIN}),
        queries=(ACCESS_REQUESTS_Q,),
        sections=(
            SectionSpec("request-queue", "Pending requests", queries=("access-requests",), actions=(
                ActionSpec("approve-request", "Approve", "POST", "/api/access-requests/{id}/approve",
                           guard=_ADMINS, invalidates=("access-requests",)),
                ActionSpec("reject-request", "Reject", "POST", "/api/access-requests/{id}/reject",
                           guard=_ADMINS, invalidates=("access-requests",)),
            )),
        ),
    ),
    PageSpec(
        slug="user-management",
        title="User Management",
        path="/dashboard/user-management",
        nav_label="User Management",
        required_roles=frozenset({TENANT_ADMIN}),
        queries=(USERS_Q,),
        sections=(
            SectionSpec("user-list", "Users", queries=("users",), actions=(
                ActionSpec("create-user", "Create user", "POST", "/api/users",
                           guard=_ADMINS, invalidates=("users",)),
                ActionSpec("update-user", "Edit", "PUT", "/api/users/{id}",
                           guard=_ADMINS, invalidates=("users",)),
                ActionSpec("deactivate-user", "Deactivate", "DELETE", "/api/users/{id}",
                           guard=_CAN_DELETE, invalidates=("users",)),
            )),
        ),
    ),
    PageSpec(
        slug="organizations",
        title="Organizations",
        path="/dashboard/organizations",
        nav_label="Organizations",
        required_roles=frozenset({SUPER_ADMIN}),
        queries=(ORGANIZATIONS_Q,),
        sections=(
            SectionSpec("organization-list", "Organizations", queries=("organizations",), actions=(
                ActionSpec("create-organization", "New organization", "POST", "/api/organizations",
                           guard=_CAN_MANAGE, invalidates=("organizations",)),
                ActionSpec("delete-organization", "Delete", "DELETE", "/api/organizations/{id}",
                           guard=_CAN_MANAGE, invalidates=("organizations",)),
            )),
        ),
    ),
    PageSpec(
        slug="rewards-management",
        title="Rewards Management",
        path="/dashboard/rewards-management",
        nav_label="Rewards Management",
        required_roles=frozenset({SUPER_ADMIN}),
        queries=(ALL_REWARDS_Q, REDEMPTIONS_Q),
        sections=(
            SectionSpec("reward-admin", "Catalog", queries=("all-rewards",), guard=_CAN_MANAGE, actions=(
                ActionSpec("create-reward", "New reward", "POST", "/api/rewards",
                           guard=_CAN_MANAGE, invalidates=("all-rewards",)),
                ActionSpec("update-reward", "Edit", "PUT", "/api/rewards/{id}",
                           guard=_CAN_MANAGE, invalidates=("all-rewards",)),
                ActionSpec("deactivate-reward", "Deactivate", "DELETE", "/api/rewards/{id}",
                           guard=_CAN_MANAGE, invalidates=("all-rewards",)),
            )),
            SectionSpec("redemption-queue", "Redemptions", queries=("redemptions",), actions=(
                ActionSpec("fulfill-redemption", "Mark fulfilled", "PUT", "/api/rewards/redemptions/{id}/fulfill",
                           guard=_CAN_WRITE, invalidates=("redemptions",)),
            )),
        ),
    ),
)

PAGES_BY_SLUG: dict[str, PageSpec] = {p.slug: p for p in PAGES}


def get_page(slug: str) -> PageSpec | None:
    return PAGES_BY_SLUG.get(slug)
