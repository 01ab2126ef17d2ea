from __future__ import annotations

from typing import Any, Callable

import httpx
import structlog

from ..errors import NetworkError, RemoteError, SessionExpired, Unauthenticated
from .envelopes import error_message

log = structlog.get_logger()


class BackendClient:
    """Thin async wrapper over httpx for the dashboard backend.

    Every transport or status failure leaves this class as a ``VisorError``
    subclass. Authenticated calls read the bearer token from ``token_provider``
    at send time and fail closed with ``Unauthenticated`` when it is empty.
    A 401 on an authenticated call runs ``on_unauthorized`` before raising
    ``SessionExpired``.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str | None] | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider or (lambda: None)
        self.on_unauthorized: Callable[[], None] | None = None
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    def _headers(self, token: str | None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json_body: dict | None = None,
        auth: bool = True,
        fallback: str = "Request failed",
    ) -> Any:
        token = None
        if auth:
            token = self.token_provider()
            if not token:
                raise Unauthenticated()
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        url = f"{self.base_url}{path}"
        try:
            r = await self._client.request(
                method,
                url,
                params=params or None,
                json=json_body,
                headers=self._headers(token),
            )
        except httpx.HTTPError as exc:
            log.warning("backend_request_failed", method=method, path=path, err=type(exc).__name__)
            raise NetworkError() from exc

        if auth and r.status_code == 401:
            log.info("session_expired", method=method, path=path)
            if self.on_unauthorized:
                self.on_unauthorized()
            raise SessionExpired(status=401)

        payload = None
        if r.content:
            try:
                payload = r.json()
            except ValueError:
                payload = None

        if not r.is_success:
            log.warning("backend_request_rejected", method=method, path=path, status=r.status_code)
            raise RemoteError(error_message(payload) or fallback, status=r.status_code)
        if payload is None and r.content:
            raise RemoteError("Invalid response from server", status=r.status_code)
        if isinstance(payload, dict) and payload.get("success") is False:
            raise RemoteError(error_message(payload) or fallback, status=r.status_code)
        return payload

    async def get(self, path: str, params: dict | None = None, **kwargs) -> Any:
        return await self.request("GET", path, params=params, **kwargs)

    async def post(self, path: str, json_body: dict | None = None, **kwargs) -> Any:
        return await self.request("POST", path, json_body=json_body, **kwargs)

    async def patch(self, path: str, json_body: dict | None = None, **kwargs) -> Any:
        return await self.request("PATCH", path, json_body=json_body, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def aclose(self):
        await self._client.aclose()
