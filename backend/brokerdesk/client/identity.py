"""
Client-side Identity Resolver.

Resolves the current principal once per session from `GET /api/auth/user` and
caches it. Until the first resolution completes the state is LOADING; 401 and
403 resolve to UNAUTHENTICATED (cached, never raised). Concurrent callers
during an in-flight resolution share a single request.

`invalidate()` drops the cached principal (logout, or a 401 seen by any
request); the next access lazily resolves again.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import ValidationError

from brokerdesk.auth.principal import IdentityState, Principal
from brokerdesk.client.http import ApiClient, ApiError

logger = logging.getLogger(__name__)

USER_PATH = "/api/auth/user"


class IdentityResolver:
    def __init__(self, api: ApiClient):
        self._api = api
        self._state = IdentityState.loading()
        self._inflight: asyncio.Future | None = None
        self._generation = 0
        api.add_unauthorized_listener(self.invalidate)

    @property
    def state(self) -> IdentityState:
        return self._state

    async def resolve(self) -> IdentityState:
        if not self._state.is_loading:
            return self._state
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._fetch(self._generation))
        # A cancelled caller must not cancel the shared resolution.
        return await asyncio.shield(self._inflight)

    async def get_current_principal(self) -> Principal | None:
        return (await self.resolve()).principal

    def invalidate(self) -> None:
        if self._state.is_authenticated:
            logger.info("Identity invalidated for principal %s", self._state.principal.id)
        self._generation += 1
        self._inflight = None
        self._state = IdentityState.loading()

    async def _fetch(self, generation: int) -> IdentityState:
        try:
            state = await self._load()
        finally:
            if generation == self._generation:
                self._inflight = None
        if generation == self._generation:
            self._state = state
        return state

    async def _load(self) -> IdentityState:
        if not self._api.has_token:
            return IdentityState.unauthenticated()
        try:
            payload = await self._api.request("GET", USER_PATH, notify_unauthorized=False)
        except ApiError as e:
            if e.is_auth_error:
                return IdentityState.unauthenticated()
            raise
        try:
            principal = Principal.model_validate(payload)
        except ValidationError as e:
            logger.warning("Malformed principal payload: %s", e.errors())
            return IdentityState.unauthenticated()
        return IdentityState.authenticated(principal)
