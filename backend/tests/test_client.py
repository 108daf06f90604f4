"""Tests for the async dashboard client."""

import asyncio

import httpx
import pytest

from brokerdesk.client import (
    ApiClient,
    ApiError,
    DashboardClient,
    IdentityResolver,
    MutationRunner,
    Notifier,
    QueryCache,
    SessionClosed,
    Variant,
)
from brokerdesk.auth.principal import IdentityStatus
from brokerdesk.dashboard.layout import ShellState
from brokerdesk.scoping import QueryKey

MEMBER_PAYLOAD = {
    "id": 3, "email": "member@harborhealth.com", "organization_id": 7,
    "privilege_level": 3, "role": "Member", "additional_roles": [],
}
ADMIN_PAYLOAD = {**MEMBER_PAYLOAD, "id": 1, "email": "admin@harborhealth.com", "privilege_level": 1}


class FakeApi:
    """Routes requests to canned responses and records every path requested."""

    def __init__(self, routes: dict[str, object] | None = None, *, delay: float = 0.0):
        self.routes = routes or {}
        self.delay = delay
        self.requests: list[httpx.Request] = []

    @property
    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        route = self.routes.get(f"{request.method} {request.url.path}")
        if route is None:
            return httpx.Response(404, json={"detail": "Not found"})
        if callable(route):
            route = await route(request)
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)


def make_api(fake: FakeApi, token: str | None = "token") -> ApiClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake), base_url="http://test")
    return ApiClient(http, token=token)


@pytest.mark.asyncio
class TestApiClient:
    async def test_non_2xx_raises_api_error(self):
        fake = FakeApi({"GET /api/policies": httpx.Response(403, json={"detail": "Nope"})})
        with pytest.raises(ApiError) as exc:
            await make_api(fake).get("/api/policies")
        assert exc.value.status_code == 403
        assert exc.value.message == "Nope"

    async def test_bearer_token_attached(self):
        fake = FakeApi({"GET /api/policies": []})
        await make_api(fake, token="abc").get("/api/policies")
        assert fake.requests[0].headers["Authorization"] == "Bearer abc"

    async def test_fetch_uses_query_key_params(self):
        fake = FakeApi({"GET /api/agents": []})
        await make_api(fake).fetch(QueryKey.build("/api/agents", {"organizationId": 7}))
        assert fake.requests[0].url.params["organizationId"] == "7"


@pytest.mark.asyncio
class TestIdentityResolver:
    async def test_loading_until_resolved(self):
        fake = FakeApi({"GET /api/auth/user": MEMBER_PAYLOAD})
        resolver = IdentityResolver(make_api(fake))
        assert resolver.state.status is IdentityStatus.LOADING

        principal = await resolver.get_current_principal()
        assert principal.id == 3
        assert resolver.state.status is IdentityStatus.AUTHENTICATED

    async def test_concurrent_callers_share_one_request(self):
        fake = FakeApi({"GET /api/auth/user": MEMBER_PAYLOAD}, delay=0.01)
        resolver = IdentityResolver(make_api(fake))
        states = await asyncio.gather(*(resolver.resolve() for _ in range(5)))
        assert len(fake.requests) == 1
        assert {s.principal.id for s in states} == {3}

        await resolver.resolve()
        assert len(fake.requests) == 1

    async def test_401_resolves_to_unauthenticated(self):
        fake = FakeApi({"GET /api/auth/user": httpx.Response(401, json={"detail": "Not authenticated"})})
        resolver = IdentityResolver(make_api(fake))
        assert await resolver.get_current_principal() is None
        assert resolver.state.status is IdentityStatus.UNAUTHENTICATED
        await resolver.resolve()
        assert len(fake.requests) == 1

    async def test_server_error_propagates(self):
        fake = FakeApi({"GET /api/auth/user": httpx.Response(500, json={"detail": "boom"})})
        resolver = IdentityResolver(make_api(fake))
        with pytest.raises(ApiError):
            await resolver.resolve()
        assert resolver.state.is_loading

    async def test_no_token_means_no_request(self):
        fake = FakeApi()
        resolver = IdentityResolver(make_api(fake, token=None))
        assert await resolver.get_current_principal() is None
        assert fake.requests == []

    async def test_malformed_payload_is_unauthenticated(self):
        fake = FakeApi({"GET /api/auth/user": {"id": "x"}})
        resolver = IdentityResolver(make_api(fake))
        assert await resolver.get_current_principal() is None

    async def test_invalidate_and_401_elsewhere(self):
        fake = FakeApi({
            "GET /api/auth/user": MEMBER_PAYLOAD,
            "GET /api/policies": httpx.Response(401, json={"detail": "expired"}),
        })
        api = make_api(fake)
        resolver = IdentityResolver(api)
        await resolver.resolve()

        with pytest.raises(ApiError):
            await api.get("/api/policies")
        assert resolver.state.is_loading

        await resolver.resolve()
        assert fake.paths.count("/api/auth/user") == 2


@pytest.mark.asyncio
class TestMutationRunner:
    async def test_transport_failure_is_reported_not_raised(self):
        async def refused(request):
            raise httpx.ConnectError("Connection refused", request=request)

        fake = FakeApi({"POST /api/dependents": refused})
        cache, notifier = QueryCache(), Notifier()
        key = QueryKey.build("/api/dependents", {"organizationId": 7})
        cache.set(key, [{"id": 1}])

        result = await MutationRunner(make_api(fake), cache, notifier).run(
            "POST", "/api/dependents", {}, invalidates=[key],
        )
        assert not result.ok
        assert result.error.status_code == 0
        assert cache.get(key) == [{"id": 1}]
        assert [n.variant for n in notifier.notifications] == [Variant.DESTRUCTIVE]

    async def test_failure_leaves_cache_and_notifies_once(self):
        fake = FakeApi({"POST /api/policies": httpx.Response(403, json={"detail": "Insufficient permissions"})})
        cache, notifier = QueryCache(), Notifier()
        key = QueryKey.build("/api/policies", {"organizationId": 7})
        cache.set(key, [{"id": 1}])

        result = await MutationRunner(make_api(fake), cache, notifier).run(
            "POST", "/api/policies", {"insurance_type": "life"}, invalidates=["/api/policies"],
        )
        assert not result.ok
        assert result.error.status_code == 403
        assert cache.get(key) == [{"id": 1}]
        assert len(notifier.notifications) == 1
        assert notifier.notifications[0].variant is Variant.DESTRUCTIVE
        assert notifier.notifications[0].description == "Insufficient permissions"

    async def test_success_invalidates_before_returning(self):
        fake = FakeApi({"POST /api/dependents": httpx.Response(201, json={"id": 9})})
        cache, notifier = QueryCache(), Notifier()
        deps = QueryKey.build("/api/dependents", {"organizationId": 7})
        policies = QueryKey.build("/api/policies", {"organizationId": 7})
        cache.set(deps, [])
        cache.set(policies, [])

        result = await MutationRunner(make_api(fake), cache, notifier).run(
            "POST", "/api/dependents", {}, invalidates=[deps], success_message="Dependent added",
        )
        assert result.ok and result.data == {"id": 9}
        assert result.invalidated == (deps,)
        assert deps not in cache and policies in cache
        assert [n.variant for n in notifier.notifications] == [Variant.SUCCESS]


def dashboard(fake: FakeApi, token: str | None = "token") -> DashboardClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake), base_url="http://test")
    return DashboardClient(http, token=token)


@pytest.mark.asyncio
class TestDashboardSession:
    async def test_unauthenticated_issues_no_privileged_requests(self):
        fake = FakeApi({"GET /api/auth/user": httpx.Response(401, json={"detail": "Not authenticated"})})
        client = dashboard(fake)
        session = await client.open_page("overview")
        assert session.state is ShellState.DENIED
        assert fake.paths == ["/api/auth/user"]
        assert len(client.cache) == 0

    async def test_denied_role_issues_no_page_queries(self):
        fake = FakeApi({"GET /api/auth/user": MEMBER_PAYLOAD})
        session = await dashboard(fake).open_page("user-management")
        assert session.state is ShellState.DENIED
        assert fake.paths == ["/api/auth/user"]

    async def test_authorized_page_loads_scoped_queries(self):
        fake = FakeApi({
            "GET /api/auth/user": ADMIN_PAYLOAD,
            "GET /api/client-assignments": [{"id": 1}],
            "GET /api/agents": [{"id": 2}],
            "GET /api/users": [{"id": 3}],
        })
        client = dashboard(fake)
        async with client.session("client-assignments") as session:
            assert session.state is ShellState.AUTHORIZED
            assert session.data("client-assignments") == [{"id": 1}]
            assert session.data("members") == [{"id": 3}]
        for request in fake.requests[1:]:
            assert request.url.params["organizationId"] == "7"

    async def test_close_cancels_in_flight_fetches(self):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow(request):
            started.set()
            await release.wait()
            return httpx.Response(200, json=[{"id": 1}])

        fake = FakeApi({"GET /api/auth/user": MEMBER_PAYLOAD, "GET /api/policies": slow})
        client = dashboard(fake)
        session = client.session("policies")
        opening = asyncio.create_task(session.open())
        await started.wait()

        await session.close()
        release.set()
        await opening

        assert session.closed
        assert len(client.cache) == 0
        with pytest.raises(SessionClosed):
            await session.refresh()

    async def test_perform_survives_transport_failure(self):
        async def timeout(request):
            raise httpx.ReadTimeout("timed out", request=request)

        fake = FakeApi({
            "GET /api/auth/user": MEMBER_PAYLOAD,
            "GET /api/dependents": [{"id": 1}],
            "POST /api/dependents": timeout,
        })
        client = dashboard(fake)
        session = await client.open_page("dependents")
        result = await session.perform("add-dependent", {"first_name": "Ivy"})

        assert not result.ok
        assert session.data("dependents") == [{"id": 1}]
        assert len(client.notifier.notifications) == 1
        assert fake.paths.count("/api/dependents") == 2

    async def test_failed_query_is_recorded(self):
        fake = FakeApi({
            "GET /api/auth/user": MEMBER_PAYLOAD,
            "GET /api/policies": httpx.Response(500, json={"detail": "db down"}),
        })
        session = await dashboard(fake).open_page("policies")
        assert [e.status_code for e in session.errors.values()] == [500]
        assert session.data("policies") is None


@pytest.mark.asyncio
class TestEndToEnd:
    async def test_member_session_against_app(self, client_for, users):
        client = DashboardClient(client_for())
        state = await client.login("member@harborhealth.com", "Member123!")
        assert state.principal.role_label.value == "Member"

        overview = await client.open_page("overview")
        assert overview.state is ShellState.AUTHORIZED
        assert [p["policy_number"] for p in overview.data("policies")] == [
            f"POL-{users['member@harborhealth.com'].organization_id:03d}-0001",
        ]
        assert overview.data("points-summary")["balance"] == 750
        await overview.close()

        dependents = await client.open_page("dependents")
        assert len(dependents.data("dependents")) == 1
        result = await dependents.perform("add-dependent", {
            "first_name": "Ivy", "last_name": "Lopez", "relationship": "spouse",
        })
        assert result.ok
        assert len(dependents.data("dependents")) == 2

        await client.logout()
        assert client.identity.state.is_loading
        assert await client.identity.get_current_principal() is None

    async def test_member_denied_admin_page_against_app(self, client_for, users):
        client = DashboardClient(client_for())
        await client.login("member@harborhealth.com", "Member123!")
        session = await client.open_page("access-requests")
        assert session.state is ShellState.DENIED
        assert len(client.cache) == 0

    async def test_member_redeems_reward_against_app(self, client_for, users):
        client = DashboardClient(client_for())
        await client.login("member@harborhealth.com", "Member123!")

        rewards = await client.open_page("rewards")
        assert rewards.state is ShellState.AUTHORIZED
        catalog = rewards.data("rewards")
        assert [r["name"] for r in catalog] == ["$25 Gift Card", "Premium Discount 5%"]

        result = await rewards.perform("redeem-reward", id=catalog[0]["id"])
        assert result.ok
        assert rewards.data("points-summary")["balance"] == 250
        assert len(rewards.data("redemptions")) == 1

        result = await rewards.perform("redeem-reward", id=catalog[1]["id"])
        assert not result.ok
        assert result.error.status_code == 400
        assert rewards.data("points-summary")["balance"] == 250
        await rewards.close()

        management = await client.open_page("rewards-management")
        assert management.state is ShellState.DENIED
