"""
Conditional render guards.

A guard is a pure decision over the current IdentityState: `evaluate` says
whether the guarded content may be shown, `render` returns the children or the
fallback (nothing by default). Guards never raise; while identity is still
loading, or when nobody is signed in, role/privilege/capability guards render
their fallback instead of speculatively showing privileged content.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable

from brokerdesk.auth.permissions import Capability, has_permission
from brokerdesk.auth.principal import IdentityState
from brokerdesk.auth.roles import RoleLabel, coerce_roles


class Guard(ABC):
    fallback: Any = None

    @abstractmethod
    def evaluate(self, identity: IdentityState) -> bool:
        """Whether the guarded content may be shown for this identity."""

    def render(self, identity: IdentityState, children: Any) -> Any:
        return children if self.evaluate(identity) else self.fallback


@dataclass(frozen=True)
class RoleGuard(Guard):
    required_roles: frozenset[RoleLabel]
    fallback: Any = field(default=None, compare=False)

    def __init__(self, required_roles: Iterable[RoleLabel | str], fallback: Any = None):
        object.__setattr__(self, "required_roles", coerce_roles(required_roles))
        object.__setattr__(self, "fallback", fallback)

    def evaluate(self, identity: IdentityState) -> bool:
        classification = identity.classification
        if not identity.is_authenticated or classification is None:
            return False
        return classification.has_any_role(self.required_roles)


@dataclass(frozen=True)
class PrivilegeGuard(Guard):
    min_privilege_level: int
    fallback: Any = field(default=None, compare=False)

    def evaluate(self, identity: IdentityState) -> bool:
        classification = identity.classification
        if not identity.is_authenticated or classification is None:
            return False
        return classification.has_minimum_privilege_level(self.min_privilege_level)


@dataclass(frozen=True)
class CapabilityGuard(Guard):
    capability: Capability
    fallback: Any = field(default=None, compare=False)

    def evaluate(self, identity: IdentityState) -> bool:
        if not identity.is_authenticated:
            return False
        return has_permission(identity.classification, self.capability)


@dataclass(frozen=True)
class ConditionalRender(Guard):
    """Plain boolean gate (feature flags, ownership); no role semantics."""

    condition: bool
    fallback: Any = field(default=None, compare=False)

    def evaluate(self, identity: IdentityState) -> bool:
        return bool(self.condition)


@dataclass(frozen=True)
class AllOf(Guard):
    guards: tuple[Guard, ...]
    fallback: Any = field(default=None, compare=False)

    def __init__(self, *guards: Guard, fallback: Any = None):
        object.__setattr__(self, "guards", tuple(guards))
        object.__setattr__(self, "fallback", fallback)

    def evaluate(self, identity: IdentityState) -> bool:
        return all(g.evaluate(identity) for g in self.guards)
