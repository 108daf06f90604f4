"""
Dashboard shell — the page-level access precondition plus consistent chrome.

    LOADING     identity resolution still pending; renders a placeholder
    DENIED      resolved, but no principal or the principal fails the
                page's role requirement; renders a fixed "Access restricted"
                panel with no retry action
    AUTHORIZED  renders header, navigation and the page body

DENIED and AUTHORIZED are terminal for a given identity state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from brokerdesk.auth.principal import IdentityState
from brokerdesk.auth.roles import RoleLabel, coerce_roles
from brokerdesk.dashboard.guards import RoleGuard
from brokerdesk.middleware.metrics import access_decisions_total

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_ROLES = frozenset({
    RoleLabel.MEMBER,
    RoleLabel.AGENT,
    RoleLabel.TENANT_ADMIN,
    RoleLabel.GUEST,
})

ACCESS_RESTRICTED = "Access restricted"
AUTHENTICATION_REQUIRED = "Please sign in to access the dashboard."
LOADING_MESSAGE = "Loading..."


class ShellState(str, Enum):
    LOADING = "loading"
    DENIED = "denied"
    AUTHORIZED = "authorized"


@dataclass(frozen=True)
class Header:
    title: str
    user_name: str
    role_label: str
    organization_id: int | None = None


@dataclass(frozen=True)
class ShellView:
    state: ShellState
    title: str
    message: str | None = None
    detail: str | None = None
    header: Header | None = None
    navigation: tuple = ()
    body: Any = None

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"state": self.state.value, "title": self.title}
        if self.state is not ShellState.AUTHORIZED:
            out["message"] = self.message
            out["detail"] = self.detail
            return out
        out["header"] = {
            "title": self.header.title,
            "user_name": self.header.user_name,
            "role": self.header.role_label,
            "organization_id": self.header.organization_id,
        }
        out["navigation"] = [item.to_dict() for item in self.navigation]
        return out


@dataclass(frozen=True)
class DashboardLayout:
    required_roles: frozenset[RoleLabel] = DEFAULT_REQUIRED_ROLES
    title: str = "Dashboard"
    _guard: RoleGuard = field(init=False, repr=False, compare=False)

    def __init__(self, required_roles: Iterable[RoleLabel | str] | None = None, title: str = "Dashboard"):
        roles = DEFAULT_REQUIRED_ROLES if required_roles is None else coerce_roles(required_roles)
        object.__setattr__(self, "required_roles", roles)
        object.__setattr__(self, "title", title)
        object.__setattr__(self, "_guard", RoleGuard(roles))

    def evaluate(self, identity: IdentityState) -> ShellState:
        if identity.is_loading:
            return ShellState.LOADING
        if self._guard.evaluate(identity):
            return ShellState.AUTHORIZED
        return ShellState.DENIED

    def render(self, identity: IdentityState, body: Any = None, *, navigation: Iterable = ()) -> ShellView:
        state = self.evaluate(identity)

        if state is ShellState.LOADING:
            return ShellView(state=state, title=self.title, message=LOADING_MESSAGE)

        access_decisions_total.labels(kind="page", outcome=state.value).inc()

        if state is ShellState.DENIED:
            return self._denied(identity)

        principal = identity.principal
        return ShellView(
            state=state,
            title=self.title,
            header=Header(
                title=self.title,
                user_name=principal.display_name,
                role_label=principal.role_label.value,
                organization_id=principal.organization_id,
            ),
            navigation=tuple(navigation),
            body=body,
        )

    def _denied(self, identity: IdentityState) -> ShellView:
        if not identity.is_authenticated:
            logger.info("Dashboard '%s' denied: not authenticated", self.title)
            return ShellView(
                state=ShellState.DENIED,
                title=self.title,
                message=ACCESS_RESTRICTED,
                detail=AUTHENTICATION_REQUIRED,
            )

        role = identity.principal.role_label.value
        logger.info(
            "Dashboard '%s' denied for %s:%s (requires %s)",
            self.title, role, identity.principal.id,
            sorted(r.value for r in self.required_roles),
        )
        return ShellView(
            state=ShellState.DENIED,
            title=self.title,
            message=ACCESS_RESTRICTED,
            detail=f"Your role ({role}) doesn't have permission to access this page.",
        )
