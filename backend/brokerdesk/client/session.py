"""
Dashboard page sessions.

A `DashboardSession` drives one page: it resolves identity, evaluates the
shell, and only when the shell is AUTHORIZED issues the page's scoped read
queries, in parallel, into the shared cache. `close()` cancels in-flight
fetches; results arriving after close are discarded.

`DashboardClient` bundles the pieces one signed-in user needs: request
helper, identity resolver, query cache, notifier and mutation runner.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from brokerdesk.auth.principal import IdentityState
from brokerdesk.client.cache import QueryCache
from brokerdesk.client.http import ApiClient, ApiError
from brokerdesk.client.identity import IdentityResolver
from brokerdesk.client.mutations import MutationResult, MutationRunner
from brokerdesk.client.notifications import Notifier
from brokerdesk.dashboard.composer import ActionView, PageView, compose_page
from brokerdesk.dashboard.layout import ShellState
from brokerdesk.dashboard.pages import PageSpec, get_page
from brokerdesk.scoping import QueryKey

logger = logging.getLogger(__name__)


class SessionClosed(Exception):
    """The page session was closed."""


class DashboardSession:
    def __init__(
        self,
        page: PageSpec,
        *,
        api: ApiClient,
        identity: IdentityResolver,
        cache: QueryCache,
        mutations: MutationRunner,
    ):
        self.page = page
        self._api = api
        self._identity = identity
        self._cache = cache
        self._mutations = mutations
        self._tasks: set[asyncio.Task] = set()
        self._closed = False
        self.errors: dict[QueryKey, ApiError] = {}
        self.view: PageView = compose_page(page, identity.state)

    @property
    def state(self) -> ShellState:
        return self.view.state

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> PageView:
        """Resolve identity, compose the page, and load its queries if authorized."""
        identity = await self._identity.resolve()
        self._check_open()
        self.view = compose_page(self.page, identity)
        if self.view.state is ShellState.AUTHORIZED:
            await self.refresh()
        return self.view

    async def refresh(self, keys: list[QueryKey] | None = None) -> None:
        """Fetch the given keys (default: every query of the page) in parallel."""
        self._check_open()
        if self.view.state is not ShellState.AUTHORIZED:
            return
        targets = list(self.view.queries.values()) if keys is None else keys
        tasks = [asyncio.create_task(self._fetch(key)) for key in targets]
        self._tasks.update(tasks)
        try:
            results = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            self._tasks.difference_update(tasks)
        if self._closed:
            return
        for result in results:
            if isinstance(result, Exception):
                raise result

    async def _fetch(self, key: QueryKey) -> None:
        try:
            data = await self._api.fetch(key)
        except ApiError as e:
            if not self._closed:
                self.errors[key] = e
            return
        if self._closed:
            return
        self.errors.pop(key, None)
        self._cache.set(key, data)

    def data(self, query_id: str, default: Any = None) -> Any:
        key = self.view.queries.get(query_id)
        if key is None:
            return default
        return self._cache.get(key, default)

    def action(self, action_id: str) -> ActionView | None:
        for section in self.view.sections:
            for action in section.actions:
                if action.id == action_id:
                    return action
        return None

    async def perform(
        self,
        action_id: str,
        body: Any = None,
        *,
        success_message: str | None = None,
        **path_params: Any,
    ) -> MutationResult:
        """Run a visible action of the page, then refetch the queries it invalidated."""
        self._check_open()
        action = self.action(action_id)
        if action is None:
            raise KeyError(f"Action {action_id!r} is not available on this page")

        result = await self._mutations.run(
            action.method,
            action.path.format(**path_params),
            body,
            invalidates=action.invalidates,
            success_message=success_message,
        )
        if result.ok and not self._closed:
            await self.refresh([k for k in action.invalidates if k in self.view.queries.values()])
        return result

    async def close(self) -> None:
        self._closed = True
        pending = [t for t in self._tasks if not t.done()]
        if pending:
            logger.debug("Cancelling %d in-flight fetches for page %s", len(pending), self.page.slug)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()

    def _check_open(self) -> None:
        if self._closed:
            raise SessionClosed(f"Session for page {self.page.slug!r} is closed")

    async def __aenter__(self) -> DashboardSession:
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class DashboardClient:
    def __init__(self, http: httpx.AsyncClient, *, token: str | None = None):
        self.api = ApiClient(http, token=token)
        self.identity = IdentityResolver(self.api)
        self.cache = QueryCache()
        self.notifier = Notifier()
        self.mutations = MutationRunner(self.api, self.cache, self.notifier)
        self.refresh_token: str | None = None

    async def login(self, email: str, password: str, organization_id: int | None = None) -> IdentityState:
        body = {"email": email, "password": password, "organization_id": organization_id}
        tokens = await self.api.request("POST", "/api/auth/login", json=body, notify_unauthorized=False)
        self._reset(tokens["access_token"])
        self.refresh_token = tokens.get("refresh_token")
        return await self.identity.resolve()

    async def logout(self) -> None:
        try:
            if self.refresh_token:
                await self.api.request("POST", "/api/auth/logout", json={"refresh_token": self.refresh_token})
        finally:
            self.refresh_token = None
            self._reset(None)

    def _reset(self, token: str | None) -> None:
        self.api.token = token
        self.identity.invalidate()
        self.cache.clear()

    def session(self, slug: str) -> DashboardSession:
        page = get_page(slug)
        if page is None:
            raise KeyError(f"Unknown page {slug!r}")
        return DashboardSession(
            page,
            api=self.api,
            identity=self.identity,
            cache=self.cache,
            mutations=self.mutations,
        )

    async def open_page(self, slug: str) -> DashboardSession:
        session = self.session(slug)
        await session.open()
        return session
