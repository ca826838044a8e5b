"""HTTP transport implementation using httpx."""

from __future__ import annotations

from collections.abc import Generator

import httpx

from httpaccessory.core.errors import TransportRequestError, TransportTimeoutError
from httpaccessory.core.model import AuthConfig, HttpResponse


class ChallengeBasicAuth(httpx.Auth):
    """Basic auth that only sends credentials after a 401 challenge."""

    def __init__(self, username: str, password: str) -> None:
        self._basic = httpx.BasicAuth(username, password)

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        response = yield request
        if response.status_code == 401:
            yield from self._basic.auth_flow(request)


def build_auth(auth: AuthConfig | None) -> httpx.Auth | None:
    if auth is None or not (auth.username or auth.password):
        return None
    if auth.immediately:
        return httpx.BasicAuth(auth.username, auth.password)
    return ChallengeBasicAuth(auth.username, auth.password)


class HttpxTransport:
    def __init__(
        self,
        *,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout_s = timeout_s
        self._transport = transport

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        body: str = "",
        auth: AuthConfig | None = None,
    ) -> HttpResponse:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_s,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.request(
                    method.upper(),
                    url,
                    content=body.encode("utf-8") if body else None,
                    auth=build_auth(auth),
                )
        except httpx.TimeoutException as exc:
            raise TransportTimeoutError(f"{method.upper()} {url} timed out after {self.timeout_s}s") from exc
        except httpx.InvalidURL as exc:
            raise TransportRequestError(f"Invalid URL {url!r}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportRequestError(f"{method.upper()} {url} failed: {exc}") from exc

        return HttpResponse(status=response.status_code, text=response.text)
