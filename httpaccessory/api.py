"""Synchronous entry point for scripts that drive configured accessories.

``Client`` loads accessory files once and exposes read, write, identify and
watch by accessory and attribute name. Errors and result types are re-exported
here, so most callers never import from ``httpaccessory.core``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Sequence
from pathlib import Path
from typing import Any, TypeVar

from httpaccessory.catalog import Catalog
from httpaccessory.core.accessory import Accessory
from httpaccessory.core.config_loader import build_action, parse_accessory
from httpaccessory.core.errors import (
    AccessoryError,
    AttributeValueError,
    AttributeWriteError,
    ConfigLoadError,
    ConfigValidationError,
    TargetSelectionError,
    TemplateError,
    TransportError,
    TransportRequestError,
    TransportTimeoutError,
)
from httpaccessory.core.model import (
    AccessorySpec,
    Action,
    AttributeEvent,
    AttributeReading,
    AuthConfig,
    ReadResult,
    ServiceSpec,
    WriteResult,
)
from httpaccessory.core.service import AccessoryService, EventCallback
from httpaccessory.transports.base import Transport

__all__ = [
    "AccessoryError",
    "AttributeValueError",
    "AttributeWriteError",
    "ConfigLoadError",
    "ConfigValidationError",
    "TargetSelectionError",
    "TemplateError",
    "TransportError",
    "TransportRequestError",
    "TransportTimeoutError",
    "AccessorySpec",
    "Action",
    "AttributeEvent",
    "AttributeReading",
    "AuthConfig",
    "ReadResult",
    "ServiceSpec",
    "WriteResult",
    "build_action",
    "parse_accessory",
    "Client",
]

T = TypeVar("T")


class Client:
    """Public client for reading, writing, and watching configured accessories.

    Each call runs on its own event loop and cancels every poll loop it
    started before returning, so a ``Client`` can be used from plain
    synchronous code.
    """

    def __init__(
        self,
        *,
        config_paths: Sequence[Path] | None = None,
        transport: Transport | None = None,
        catalog: Catalog | None = None,
    ) -> None:
        self._service = AccessoryService(config_paths=config_paths, transport=transport, catalog=catalog)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    def list_accessories(self) -> list[Accessory]:
        return self._service.list_accessories()

    def read(self, attribute: str, *, accessory: str | None = None) -> AttributeReading:
        return self._run(self._service.read(accessory, attribute))

    def write(self, attribute: str, value: Any, *, accessory: str | None = None) -> AttributeReading:
        return self._run(self._service.write(accessory, attribute, value))

    def identify(self, *, accessory: str | None = None) -> ReadResult:
        return self._run(self._service.identify(accessory))

    def watch(
        self,
        on_event: EventCallback,
        *,
        accessory: str | None = None,
        duration_s: float | None = None,
    ) -> int:
        return self._run(self._service.watch(accessory, on_event, duration_s=duration_s))

    def _run(self, call: Awaitable[T]) -> T:
        async def _main() -> T:
            try:
                return await call
            finally:
                await self._service.shutdown()

        return asyncio.run(_main())
