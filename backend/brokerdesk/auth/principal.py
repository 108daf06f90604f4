"""
Principal — the authenticated actor, validated once at the identity boundary.

Payloads from the auth endpoint arrive as JSON objects (snake_case, with the
camelCase names of older clients also accepted);
`Principal.model_validate` turns them into a frozen, typed structure so that
no downstream component has to re-check shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator

from brokerdesk.auth.roles import (
    LOWEST_PRIVILEGE_LEVEL,
    Classification,
    RoleLabel,
    classify,
)


class Principal(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: int
    email: EmailStr
    organization_id: int | None = Field(
        default=None,
        validation_alias=AliasChoices("organization_id", "organizationId"),
    )
    privilege_level: int = Field(
        ge=0,
        le=LOWEST_PRIVILEGE_LEVEL,
        validation_alias=AliasChoices("privilege_level", "privilegeLevel"),
    )
    additional_roles: frozenset[RoleLabel] = Field(
        default_factory=frozenset,
        validation_alias=AliasChoices("additional_roles", "additionalRoles"),
    )
    first_name: str | None = Field(
        default=None, validation_alias=AliasChoices("first_name", "firstName"),
    )
    last_name: str | None = Field(
        default=None, validation_alias=AliasChoices("last_name", "lastName"),
    )

    @field_validator("additional_roles", mode="before")
    @classmethod
    def _parse_roles(cls, value):
        if value is None:
            return frozenset()
        return frozenset(RoleLabel.parse(v) for v in value)

    @property
    def classification(self) -> Classification:
        return classify(self)

    @property
    def role_label(self) -> RoleLabel:
        return self.classification.role_label

    @property
    def display_name(self) -> str:
        name = " ".join(p for p in (self.first_name, self.last_name) if p)
        return name or self.email

    def to_payload(self) -> dict:
        """Wire representation returned by GET /api/auth/user."""
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "organization_id": self.organization_id,
            "privilege_level": self.privilege_level,
            "role": self.role_label.value,
            "additional_roles": sorted(r.value for r in self.additional_roles),
        }


class IdentityStatus(str, Enum):
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class IdentityState:
    """What the guards see: resolution status plus the principal, if any."""

    status: IdentityStatus
    principal: Principal | None = None

    @classmethod
    def loading(cls) -> IdentityState:
        return cls(IdentityStatus.LOADING)

    @classmethod
    def unauthenticated(cls) -> IdentityState:
        return cls(IdentityStatus.UNAUTHENTICATED)

    @classmethod
    def authenticated(cls, principal: Principal) -> IdentityState:
        return cls(IdentityStatus.AUTHENTICATED, principal)

    @classmethod
    def from_principal(cls, principal: Principal | None) -> IdentityState:
        if principal is None:
            return cls.unauthenticated()
        return cls.authenticated(principal)

    @property
    def is_loading(self) -> bool:
        return self.status is IdentityStatus.LOADING

    @property
    def is_authenticated(self) -> bool:
        return self.status is IdentityStatus.AUTHENTICATED

    @property
    def classification(self) -> Classification | None:
        if self.principal is None:
            return None
        return self.principal.classification
