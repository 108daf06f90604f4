"""Query cache keyed by QueryKey (path plus scope parameters)."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from brokerdesk.scoping import QueryKey


@dataclass
class CacheEntry:
    value: Any
    fetched_at: float = field(default_factory=time.monotonic)


class QueryCache:
    def __init__(self):
        self._entries: dict[QueryKey, CacheEntry] = {}

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[QueryKey]:
        return list(self._entries)

    def get(self, key: QueryKey, default: Any = None) -> Any:
        entry = self._entries.get(key)
        return default if entry is None else entry.value

    def set(self, key: QueryKey, value: Any) -> None:
        self._entries[key] = CacheEntry(value)

    def invalidate(self, target: QueryKey | str) -> list[QueryKey]:
        """
        Drop one entry (a QueryKey) or every entry under a path prefix (a str,
        e.g. "/api/policies" also drops "/api/policies?organizationId=7" and
        "/api/policies/3"). Returns the dropped keys.
        """
        if isinstance(target, QueryKey):
            dropped = [target] if target in self._entries else []
        else:
            dropped = [k for k in self._entries if k.matches(target)]
        for key in dropped:
            del self._entries[key]
        return dropped

    def clear(self) -> None:
        self._entries.clear()
