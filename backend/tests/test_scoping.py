"""Tests for organization / owner scoping and query keys."""

import pytest
from sqlalchemy import select

from brokerdesk.auth.principal import Principal
from brokerdesk.models import Policy
from brokerdesk.scoping import (
    OrganizationScope,
    OwnerScope,
    QueryKey,
    RowScope,
    ScopeViolation,
    parse_organization_param,
    scoped_query_key,
)


def principal(level: int, org: int | None = 7, id: int = 21) -> Principal:
    return Principal.model_validate({
        "id": id, "email": "pat@brokerdesk.com", "organization_id": org, "privilege_level": level,
    })


def sql(statement) -> str:
    return str(statement.compile(compile_kwargs={"literal_binds": True}))


class TestOrganizationScope:
    def test_tenant_principal_pinned_to_own_organization(self):
        scope = OrganizationScope.for_principal(principal(1))
        assert scope == OrganizationScope(7)
        assert not scope.all_organizations
        assert scope.as_params() == {"organizationId": "7"}

    def test_matching_request_is_allowed(self):
        assert OrganizationScope.for_principal(principal(2), "7") == OrganizationScope(7)

    @pytest.mark.parametrize("requested", ["8", 8, "none"])
    def test_other_organization_is_a_violation(self, requested):
        with pytest.raises(ScopeViolation) as exc:
            OrganizationScope.for_principal(principal(1), requested)
        assert exc.value.allowed == 7

    def test_super_admin_all_or_requested(self):
        assert OrganizationScope.for_principal(principal(0, org=None)).all_organizations
        assert OrganizationScope.for_principal(principal(0, org=None), "9") == OrganizationScope(9)

    def test_orgless_principal_gets_unaffiliated_rows(self):
        scope = OrganizationScope.for_principal(principal(3, org=None))
        assert scope.param_value == "none"
        assert scope.includes(None)
        assert not scope.includes(7)
        with pytest.raises(ScopeViolation):
            OrganizationScope.for_principal(principal(3, org=None), "7")

    def test_malformed_request_raises(self):
        with pytest.raises(ValueError):
            parse_organization_param("seven")

    def test_apply_filters_statement(self):
        assert "policies.organization_id = 7" in sql(OrganizationScope(7).apply(select(Policy), Policy))
        assert "policies.organization_id IS NULL" in sql(OrganizationScope(None).apply(select(Policy), Policy))
        assert "WHERE" not in sql(OrganizationScope(all_organizations=True).apply(select(Policy), Policy))


class TestOwnerScope:
    def test_members_restricted_to_own_rows(self):
        scope = OwnerScope.for_principal(principal(3, id=5))
        assert scope.restricted
        assert scope.includes(5) and not scope.includes(6)
        assert "policies.user_id = 5" in sql(scope.apply(select(Policy), Policy))

    def test_staff_unrestricted(self):
        assert not OwnerScope.for_principal(principal(2)).restricted

    def test_row_scope_combines_both(self):
        scope = RowScope.for_principal(principal(3, id=5))
        assert scope.includes(7, 5)
        assert not scope.includes(7, 6)
        assert not scope.includes(8, 5)
        compiled = sql(scope.apply(select(Policy), Policy))
        assert "policies.organization_id = 7" in compiled
        assert "policies.user_id = 5" in compiled


class TestQueryKey:
    def test_tenant_admin_agents_key_includes_organization(self):
        key = scoped_query_key("/api/agents", principal(1))
        assert str(key) == "/api/agents?organizationId=7"
        assert key.query_params == {"organizationId": "7"}

    def test_super_admin_agents_key_is_unscoped(self):
        key = scoped_query_key("/api/agents", principal(0, org=None))
        assert str(key) == "/api/agents"
        assert "organizationId" not in key.query_params

    def test_params_sorted_and_hashable(self):
        a = QueryKey.build("/api/users", {"role": "Member", "organizationId": 7})
        b = QueryKey.build("/api/users", {"organizationId": "7", "role": "Member"})
        assert a == b and hash(a) == hash(b)
        assert str(a) == "/api/users?organizationId=7&role=Member"

    def test_none_params_dropped(self):
        assert str(QueryKey.build("/api/policies", {"status": None})) == "/api/policies"

    def test_prefix_matching(self):
        key = QueryKey.build("/api/policies/3")
        assert key.matches("/api/policies")
        assert not QueryKey.build("/api/policies-archive").matches("/api/policies")
