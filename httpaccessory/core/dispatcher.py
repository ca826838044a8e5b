"""Action dispatch: one HTTP exchange plus mapper chain per action."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from httpaccessory.core.errors import TemplateError, TransportError
from httpaccessory.core.mappers import to_text
from httpaccessory.core.model import Action, AuthConfig, Mapper, ReadResult, TemplateContext, WriteResult
from httpaccessory.core.templating import render_with_context
from httpaccessory.transports.base import Transport

INCONCLUSIVE = "inconclusive"
LOGGER = logging.getLogger(__name__)


class Dispatcher:
    def __init__(
        self,
        transport: Transport,
        *,
        auth: AuthConfig | None = None,
        debug: bool = False,
        accessory_name: str = "",
    ) -> None:
        self.transport = transport
        self.auth = auth or AuthConfig()
        self.debug = debug
        self.accessory_name = accessory_name

    def _trace(self, message: str, *args: Any) -> None:
        LOGGER.log(logging.INFO if self.debug else logging.DEBUG, message, *args)

    def apply_mappers(self, mappers: Sequence[Mapper], value: str) -> str:
        if not mappers:
            return value

        self._trace("Applying mappers on %s", value)
        for index, mapper in enumerate(mappers):
            mapped = mapper.map(value)
            self._trace("Mapper %d mapped %s to %s", index, value, mapped)
            value = mapped
        self._trace("Mapping result is %s", value)
        return value

    async def resolve_read(self, action: Action | None) -> ReadResult:
        if action is None:
            return ReadResult()

        if action.url is None:
            return ReadResult(value=self.apply_mappers(action.mappers, action.body))

        try:
            response = await self.transport.request(
                action.url,
                method=action.method,
                body=action.body,
                auth=self.auth,
            )
        except TransportError as exc:
            LOGGER.warning("Get characteristic value failed: %s", exc)
            return ReadResult(error=exc)

        self._trace("%s %s -> HTTP %d", action.method, action.url, response.status)
        state = self.apply_mappers(action.mappers, response.text)
        if state == INCONCLUSIVE and action.inconclusive is not None:
            self._trace("%s was inconclusive, resolving fallback action", action.url)
            return await self.resolve_read(action.inconclusive)
        return ReadResult(value=state)

    async def resolve_write(
        self,
        action: Action | None,
        value: Any,
        *,
        attribute: str = "",
        service: str = "",
    ) -> WriteResult:
        if action is None or action.url is None:
            return WriteResult(ok=True, value=value)

        raw = to_text(value)
        mapped = self.apply_mappers(action.mappers, raw)
        context = TemplateContext(
            value=mapped,
            raw=raw,
            attribute=attribute,
            service=service,
            accessory=self.accessory_name,
        )
        try:
            url = render_with_context(action.url, context)
            body = render_with_context(action.body, context) if action.body else ""
        except TemplateError as exc:
            LOGGER.error("Set characteristic value failed: %s", exc)
            return WriteResult(ok=False, error=exc)

        self._trace("setDispatch %s %s body=%r", action.method, url, body)
        try:
            await self.transport.request(url, method=action.method, body=body, auth=self.auth)
        except TransportError as exc:
            LOGGER.warning("Set characteristic value failed: %s", exc)
            return WriteResult(ok=False, error=exc)

        return WriteResult(ok=True, value=value)
