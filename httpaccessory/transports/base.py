"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol

from httpaccessory.core.model import AuthConfig, HttpResponse


class Transport(Protocol):
    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        body: str = "",
        auth: AuthConfig | None = None,
    ) -> HttpResponse:
        """Perform one HTTP exchange; raise TransportError on failure."""
