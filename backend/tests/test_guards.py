"""Tests for conditional render guards."""

import pytest

from brokerdesk.auth.permissions import Capability
from brokerdesk.auth.principal import IdentityState, Principal
from brokerdesk.auth.roles import RoleLabel
from brokerdesk.dashboard.guards import AllOf, CapabilityGuard, ConditionalRender, Guard, PrivilegeGuard, RoleGuard


def identity(level: int, org: int | None = 7) -> IdentityState:
    return IdentityState.authenticated(Principal.model_validate({
        "id": 10 + level, "email": "pat@brokerdesk.com", "organization_id": org, "privilege_level": level,
    }))


ROLE_AND_PRIVILEGE_GUARDS = [
    RoleGuard(["Member", "Agent", "TenantAdmin", "Guest", "Visitor"]),
    PrivilegeGuard(5),
    CapabilityGuard(Capability.READ),
]


class TestRoleGuard:
    def test_renders_children_for_matching_role(self):
        guard = RoleGuard([RoleLabel.AGENT])
        assert guard.render(identity(2), "edit button") == "edit button"

    def test_renders_fallback_otherwise(self):
        guard = RoleGuard([RoleLabel.AGENT], fallback="read only")
        assert guard.render(identity(3), "edit button") == "read only"

    def test_default_fallback_is_nothing(self):
        assert RoleGuard(["Admin"]).render(identity(3), "secret") is None

    def test_super_admin_bypass(self):
        assert RoleGuard(["TenantAdmin"]).evaluate(identity(0, org=None))

    def test_aliases_in_requirements(self):
        assert RoleGuard(["Admin"]).evaluate(identity(1))
        assert RoleGuard(["LandlordAdmin"]) == RoleGuard([RoleLabel.TENANT_ADMIN])

    def test_idempotent(self):
        guard = RoleGuard(["Agent"])
        state = identity(2)
        assert guard.render(state, "x") == guard.render(state, "x")
        assert guard.evaluate(identity(3)) == guard.evaluate(identity(3))


class TestPrivilegeGuard:
    @pytest.mark.parametrize("level,visible", [(0, True), (1, True), (2, True), (3, False), (5, False)])
    def test_threshold(self, level, visible):
        assert PrivilegeGuard(2).evaluate(identity(level)) is visible


class TestCapabilityGuard:
    def test_write_capability(self):
        assert CapabilityGuard(Capability.WRITE).evaluate(identity(2))
        assert not CapabilityGuard(Capability.WRITE).evaluate(identity(3))

    def test_manage_system_is_super_admin_only(self):
        assert CapabilityGuard(Capability.MANAGE_SYSTEM).evaluate(identity(0, org=None))
        assert not CapabilityGuard(Capability.MANAGE_SYSTEM).evaluate(identity(1))


class TestUnresolvedIdentity:
    @pytest.mark.parametrize("state", [IdentityState.loading(), IdentityState.unauthenticated()])
    @pytest.mark.parametrize("guard", ROLE_AND_PRIVILEGE_GUARDS)
    def test_renders_fallback(self, state, guard):
        assert guard.render(state, "privileged") is None


class TestComposition:
    def test_conditional_render(self):
        assert ConditionalRender(True).render(identity(3), "x") == "x"
        assert ConditionalRender(False, fallback="-").render(identity(0), "x") == "-"

    def test_all_of(self):
        guard = AllOf(RoleGuard(["Agent", "TenantAdmin"]), ConditionalRender(True))
        assert guard.evaluate(identity(2))
        assert not guard.evaluate(identity(3))
        assert not AllOf(PrivilegeGuard(2), ConditionalRender(False)).evaluate(identity(0, org=None))


class TestGuardBase:
    def test_guard_without_evaluate_cannot_be_built(self):
        class Incomplete(Guard):
            pass

        with pytest.raises(TypeError):
            Incomplete()

    def test_custom_guard_renders_through_base(self):
        class OwnOrganization(Guard):
            def evaluate(self, identity):
                return identity.is_authenticated and identity.principal.organization_id == 7

        assert OwnOrganization().render(identity(3), "card") == "card"
        assert OwnOrganization().render(identity(3, org=8), "card") is None
