"""Tests for the Capability Gate."""

import pytest

from brokerdesk.auth.permissions import (
    APPLICATIONS,
    DEPENDENTS,
    POLICIES,
    USERS,
    Capability,
    can_act,
    capabilities_for,
    has_permission,
)
from brokerdesk.auth.principal import Principal


def classification(level: int, roles=()):
    return Principal.model_validate({
        "id": 1, "email": "pat@brokerdesk.com", "organization_id": 7,
        "privilege_level": level, "additional_roles": list(roles),
    }).classification


class TestHasPermission:
    @pytest.mark.parametrize("level,expected", [
        (0, {"read", "write", "delete", "manage_system"}),
        (1, {"read", "write", "delete"}),
        (2, {"read", "write"}),
        (3, {"read"}),
        (4, {"read"}),
        (5, {"read"}),
    ])
    def test_thresholds(self, level, expected):
        assert {c.value for c in capabilities_for(classification(level))} == expected

    def test_unauthenticated_holds_nothing(self):
        assert capabilities_for(None) == frozenset()
        assert not has_permission(None, Capability.READ)

    @pytest.mark.parametrize("level", range(6))
    def test_capability_superset_monotonicity(self, level):
        c = classification(level)
        if has_permission(c, Capability.DELETE):
            assert has_permission(c, Capability.WRITE)
            assert has_permission(c, Capability.READ)
        if has_permission(c, Capability.WRITE):
            assert has_permission(c, Capability.READ)

    def test_higher_authority_holds_a_superset(self):
        for level in range(1, 6):
            assert capabilities_for(classification(level)) <= capabilities_for(classification(level - 1))


class TestCanAct:
    def test_member_writes_own_policy_only(self):
        member = classification(3)
        assert can_act(member, Capability.WRITE, POLICIES, is_own=True)
        assert not can_act(member, Capability.WRITE, POLICIES, is_own=False)

    def test_member_deletes_own_applications_and_dependents(self):
        member = classification(3)
        assert can_act(member, Capability.DELETE, APPLICATIONS, is_own=True)
        assert can_act(member, Capability.DELETE, DEPENDENTS, is_own=True)
        assert not can_act(member, Capability.DELETE, POLICIES, is_own=True)

    def test_users_are_never_self_service(self):
        assert not can_act(classification(3), Capability.DELETE, USERS, is_own=True)
        assert not can_act(classification(3), Capability.MANAGE_SYSTEM, POLICIES, is_own=True)

    def test_guest_gets_no_self_service(self):
        assert not can_act(classification(4), Capability.WRITE, APPLICATIONS, is_own=True)

    def test_agent_with_member_role_keeps_coarse_grants(self):
        agent = classification(2, roles=["Member"])
        assert can_act(agent, Capability.WRITE, POLICIES)
        assert not can_act(agent, Capability.DELETE, POLICIES)
        assert can_act(agent, Capability.DELETE, DEPENDENTS, is_own=True)

    def test_self_service_does_not_widen_capabilities(self):
        member = classification(3)
        can_act(member, Capability.WRITE, POLICIES, is_own=True)
        assert capabilities_for(member) == {Capability.READ}

    def test_unauthenticated_cannot_act(self):
        assert not can_act(None, Capability.READ, POLICIES, is_own=True)
