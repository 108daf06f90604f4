"""
Mutations — writes issued from the dashboard.

On success the listed read queries are invalidated before `run` returns, so
the next read refetches. On failure exactly one destructive notification is
emitted, the cache is left untouched, and a failed result is returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from brokerdesk.client.cache import QueryCache
from brokerdesk.client.http import ApiClient, ApiError
from brokerdesk.client.notifications import Notifier, Variant
from brokerdesk.scoping import QueryKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MutationResult:
    ok: bool
    data: Any = None
    error: ApiError | None = None
    invalidated: tuple[QueryKey, ...] = ()


class MutationRunner:
    def __init__(self, api: ApiClient, cache: QueryCache, notifier: Notifier):
        self._api = api
        self._cache = cache
        self._notifier = notifier

    async def run(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        invalidates: Iterable[QueryKey | str] = (),
        success_message: str | None = None,
    ) -> MutationResult:
        try:
            data = await self._api.request(method, path, json=body)
        except ApiError as e:
            logger.warning("Mutation %s %s failed: %s", method, path, e)
            self._notifier.notify("Error", e.message, Variant.DESTRUCTIVE)
            return MutationResult(ok=False, error=e)

        invalidated: list[QueryKey] = []
        for target in invalidates:
            invalidated.extend(self._cache.invalidate(target))

        if success_message:
            self._notifier.notify(success_message, variant=Variant.SUCCESS)
        return MutationResult(ok=True, data=data, invalidated=tuple(invalidated))
