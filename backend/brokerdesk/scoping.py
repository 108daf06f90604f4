"""
Scoped Data Fetchers — organization (and owner) scoping derived from the principal.

Every organization-scoped query, on the server and in the dashboard client,
derives its scope from the resolved Principal and never from client-editable
state:

- SuperAdmin (privilege 0) may query all organizations, or narrow to one.
- Everyone else is pinned to their own organization. Asking for another
  organization is a ScopeViolation. A principal without an organization is
  pinned to unaffiliated rows (`organization_id IS NULL`).
- Principals without the write capability (Member and below) are further
  pinned to rows they own.

Query keys double as request paths: `/api/agents?organizationId=7` for a
tenant principal, plain `/api/agents` for the SuperAdmin "all" mode.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from brokerdesk.auth.permissions import Capability, has_permission
from brokerdesk.auth.principal import Principal

ORGANIZATION_PARAM = "organizationId"
NO_ORGANIZATION = "none"


class ScopeViolation(Exception):
    """A principal asked for rows outside its organization."""

    def __init__(self, principal_id: int, requested: Any, allowed: int | None):
        self.principal_id = principal_id
        self.requested = requested
        self.allowed = allowed
        super().__init__(
            f"Principal {principal_id} may not access organization {requested!r}"
        )


def parse_organization_param(value: str | int) -> int | None:
    """`"7"` -> 7, `"none"` -> None (unaffiliated). Raises ValueError otherwise."""
    if isinstance(value, int):
        return value
    value = value.strip()
    if value.lower() == NO_ORGANIZATION:
        return None
    return int(value)


@dataclass(frozen=True)
class OrganizationScope:
    organization_id: int | None = None
    all_organizations: bool = False

    @classmethod
    def for_principal(cls, principal: Principal, requested: str | int | None = None) -> OrganizationScope:
        """
        Resolve the scope for a principal. `requested` is the raw
        `organizationId` parameter, or None when absent.
        """
        if principal.classification.is_super_admin:
            if requested is None:
                return cls(all_organizations=True)
            return cls(parse_organization_param(requested))

        own = principal.organization_id
        if requested is not None and parse_organization_param(requested) != own:
            raise ScopeViolation(principal.id, requested, own)
        return cls(own)

    @property
    def param_value(self) -> str | None:
        if self.all_organizations:
            return None
        if self.organization_id is None:
            return NO_ORGANIZATION
        return str(self.organization_id)

    def as_params(self) -> dict[str, str]:
        value = self.param_value
        return {} if value is None else {ORGANIZATION_PARAM: value}

    def includes(self, organization_id: int | None) -> bool:
        if self.all_organizations:
            return True
        return organization_id == self.organization_id

    def apply(self, statement, model, column: str = "organization_id"):
        if self.all_organizations:
            return statement
        col = getattr(model, column)
        if self.organization_id is None:
            return statement.where(col.is_(None))
        return statement.where(col == self.organization_id)


@dataclass(frozen=True)
class OwnerScope:
    user_id: int | None = None  # None = not restricted to own rows

    @classmethod
    def for_principal(cls, principal: Principal) -> OwnerScope:
        if has_permission(principal.classification, Capability.WRITE):
            return cls()
        return cls(principal.id)

    @property
    def restricted(self) -> bool:
        return self.user_id is not None

    def includes(self, user_id: int | None) -> bool:
        return not self.restricted or user_id == self.user_id

    def apply(self, statement, model, column: str = "user_id"):
        if not self.restricted:
            return statement
        return statement.where(getattr(model, column) == self.user_id)


@dataclass(frozen=True)
class RowScope:
    """Organization scope plus owner scope, as applied to list endpoints."""

    organization: OrganizationScope
    owner: OwnerScope

    @classmethod
    def for_principal(cls, principal: Principal, requested: str | int | None = None) -> RowScope:
        return cls(
            OrganizationScope.for_principal(principal, requested),
            OwnerScope.for_principal(principal),
        )

    def includes(self, organization_id: int | None, user_id: int | None) -> bool:
        return self.organization.includes(organization_id) and self.owner.includes(user_id)

    def apply(self, statement, model, *, owner_column: str | None = "user_id"):
        statement = self.organization.apply(statement, model)
        if owner_column is not None:
            statement = self.owner.apply(statement, model, owner_column)
        return statement


@dataclass(frozen=True, order=True)
class QueryKey:
    """Cache key and request path of a read query."""

    path: str
    params: tuple[tuple[str, str], ...] = ()

    @classmethod
    def build(cls, path: str, params: dict[str, Any] | None = None) -> QueryKey:
        items = tuple(sorted(
            (k, str(v)) for k, v in (params or {}).items() if v is not None
        ))
        return cls(path, items)

    @property
    def query_params(self) -> dict[str, str]:
        return dict(self.params)

    def matches(self, prefix: str) -> bool:
        """True if this key is `prefix` or lives under it (`/api/policies/3`)."""
        return self.path == prefix or self.path.startswith(prefix.rstrip("/") + "/")

    def __str__(self) -> str:
        if not self.params:
            return self.path
        return f"{self.path}?{urlencode(self.params)}"


def scoped_query_key(path: str, principal: Principal, **params: Any) -> QueryKey:
    """Query key for an organization-scoped resource, derived from the principal."""
    scope = OrganizationScope.for_principal(principal)
    return QueryKey.build(path, {**params, **scope.as_params()})
