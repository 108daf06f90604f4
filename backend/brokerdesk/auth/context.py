"""
RequestContext — who is asking, what they may do, and which rows they see.

Every authenticated API request gets a RequestContext built from the resolved
Principal. Permission checks go through the Role Classifier and the Capability
Gate; row scoping goes through brokerdesk.scoping. Nothing here reads
client-supplied scope except to validate it against the principal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from fastapi import HTTPException

from brokerdesk.auth.permissions import Capability, can_act, capabilities_for, has_permission
from brokerdesk.auth.principal import Principal
from brokerdesk.auth.roles import Classification, RoleLabel, coerce_roles
from brokerdesk.middleware.metrics import access_decisions_total
from brokerdesk.scoping import OrganizationScope, OwnerScope, RowScope


@dataclass(frozen=True)
class RequestContext:
    principal: Principal

    @property
    def classification(self) -> Classification:
        return self.principal.classification

    @property
    def user_id(self) -> int:
        return self.principal.id

    @property
    def organization_id(self) -> int | None:
        return self.principal.organization_id

    @property
    def is_super_admin(self) -> bool:
        return self.classification.is_super_admin

    @property
    def capabilities(self) -> frozenset[Capability]:
        return capabilities_for(self.classification)

    def has_permission(self, capability: Capability) -> bool:
        return has_permission(self.classification, capability)

    def require_permission(self, capability: Capability) -> None:
        """Raise 403 if the caller lacks the given capability."""
        if not self.has_permission(capability):
            access_decisions_total.labels(kind="capability", outcome="denied").inc()
            raise HTTPException(
                status_code=403,
                detail=f"Insufficient permissions: requires {capability.value}",
            )

    def require_any_role(self, roles: Iterable[RoleLabel | str]) -> None:
        roles = list(roles)
        if not self.classification.has_any_role(roles):
            needed = ", ".join(sorted(r.value for r in coerce_roles(roles)))
            raise HTTPException(
                status_code=403,
                detail=f"Insufficient permissions: requires one of [{needed}]",
            )

    def require_privilege_level(self, level: int) -> None:
        if not self.classification.has_minimum_privilege_level(level):
            raise HTTPException(
                status_code=403,
                detail=f"Insufficient privileges: requires privilege level {level} or better",
            )

    def can_act(self, capability: Capability, resource: str, *, owner_id: int | None = None) -> bool:
        return can_act(
            self.classification, capability, resource,
            is_own=owner_id is not None and owner_id == self.user_id,
        )

    def require_can_act(self, capability: Capability, resource: str, *, owner_id: int | None = None) -> None:
        if not self.can_act(capability, resource, owner_id=owner_id):
            raise HTTPException(
                status_code=403,
                detail=f"Insufficient permissions: cannot {capability.value} {resource}",
            )

    def organization_scope(self, requested: str | int | None = None) -> OrganizationScope:
        """Raises ScopeViolation when `requested` is outside the caller's reach."""
        return OrganizationScope.for_principal(self.principal, requested)

    def row_scope(self, requested: str | int | None = None) -> RowScope:
        return RowScope.for_principal(self.principal, requested)

    @property
    def owner_scope(self) -> OwnerScope:
        return OwnerScope.for_principal(self.principal)

    def require_in_scope(self, organization_id: int | None, user_id: int | None = None, *, what: str = "Resource") -> None:
        """404 for rows outside the caller's scope, so their existence is not leaked."""
        scope = self.row_scope()
        in_scope = (
            scope.organization.includes(organization_id)
            if user_id is None else scope.includes(organization_id, user_id)
        )
        if not in_scope:
            raise HTTPException(status_code=404, detail=f"{what} not found")

    @property
    def actor(self) -> str:
        """Identity string for logging."""
        return f"{self.classification.role_label.value}:{self.user_id}"
