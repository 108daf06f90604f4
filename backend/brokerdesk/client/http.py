"""
Uniform request helper for the dashboard client.

Every call goes through `ApiClient.request`: the bearer token is attached,
non-2xx responses and transport failures (status 0) become `ApiError`, and a
401 from any endpoint notifies the registered listeners (the identity resolver
drops its cached principal).
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import httpx

from brokerdesk.scoping import QueryKey

logger = logging.getLogger(__name__)

# Status reported for transport failures (no HTTP response)
NETWORK_ERROR = 0


class ApiError(Exception):
    """A failed API call: a non-2xx response, or a transport failure (status 0)."""

    def __init__(self, status_code: int, message: str, payload: Any = None):
        self.status_code = status_code
        self.message = message
        self.payload = payload
        super().__init__(f"{status_code}: {message}")

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)


def _error_message(response: httpx.Response) -> tuple[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase, None
    if isinstance(payload, dict) and "detail" in payload:
        detail = payload["detail"]
        return (detail if isinstance(detail, str) else str(detail)), payload
    return response.reason_phrase, payload


class ApiClient:
    def __init__(self, http: httpx.AsyncClient, *, token: str | None = None):
        self._http = http
        self.token = token
        self._unauthorized_listeners: list[Callable[[], None]] = []

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    def add_unauthorized_listener(self, listener: Callable[[], None]) -> None:
        self._unauthorized_listeners.append(listener)

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        notify_unauthorized: bool = True,
    ) -> Any:
        try:
            response = await self._http.request(
                method, path, json=json, params=params, headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise ApiError(NETWORK_ERROR, "Unable to reach the server") from e

        if response.is_success:
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        message, payload = _error_message(response)
        logger.info("%s %s -> %d: %s", method, path, response.status_code, message)
        if response.status_code == 401 and notify_unauthorized:
            for listener in self._unauthorized_listeners:
                listener()
        raise ApiError(response.status_code, message, payload)

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def fetch(self, key: QueryKey) -> Any:
        """Run the read query a QueryKey describes."""
        return await self.request("GET", key.path, params=key.query_params or None)
