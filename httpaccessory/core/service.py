"""Accessory lookup and read/write/watch operations shared by the CLI and ``api.Client``."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from httpaccessory.catalog import Attribute, Catalog, Service, load_catalog
from httpaccessory.core.accessory import Accessory, build_accessory
from httpaccessory.core.binding import SleepFn
from httpaccessory.core.config_loader import load_accessories
from httpaccessory.core.errors import AttributeWriteError, TargetSelectionError
from httpaccessory.core.model import AttributeEvent, AttributeReading, ReadResult
from httpaccessory.core.name_match import best_matches
from httpaccessory.transports.base import Transport
from httpaccessory.transports.http import HttpxTransport

EventCallback = Callable[[AttributeEvent], None]


class AccessoryService:
    def __init__(
        self,
        *,
        config_paths: Sequence[Path] | None = None,
        transport: Transport | None = None,
        catalog: Catalog | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        loaded = load_accessories(config_paths)
        self.load_warnings = loaded.warnings
        self.catalog = catalog or load_catalog()
        self.accessories: dict[str, Accessory] = {}
        for name, spec in loaded.accessories.items():
            self.accessories[name] = build_accessory(
                spec,
                self.catalog,
                transport or HttpxTransport(timeout_s=spec.timeout_s),
                sleep=sleep,
            )

    def list_accessories(self) -> list[Accessory]:
        return sorted(self.accessories.values(), key=lambda a: a.name)

    def resolve_accessory(self, hint: str | None) -> Accessory:
        if not self.accessories:
            raise TargetSelectionError("No accessories configured. Use --config to point at a configuration file.")

        if hint is None:
            if len(self.accessories) > 1:
                names = ", ".join(sorted(self.accessories))
                raise TargetSelectionError(f"Multiple accessories configured: {names}. Name one explicitly.")
            return next(iter(self.accessories.values()))

        matches = best_matches(hint, self.accessories)
        if not matches:
            raise TargetSelectionError(f"No accessory found matching '{hint}'")
        if len(matches) > 1:
            names = ", ".join(sorted(a.name for a in matches))
            raise TargetSelectionError(f"Multiple accessories match '{hint}': {names}")
        return matches[0]

    def resolve_attribute(self, accessory: Accessory, hint: str) -> tuple[Service, Attribute]:
        service_hint, _, attribute_hint = hint.rpartition(".")
        services = accessory.services
        if service_hint:
            services = best_matches(service_hint, {s.name: s for s in accessory.services})
            if not services:
                raise TargetSelectionError(f"Accessory '{accessory.name}' has no service matching '{service_hint}'")

        candidates: list[tuple[Service, Attribute]] = []
        for service in services:
            candidates.extend(
                best_matches(attribute_hint, {a.display_name: (service, a) for a in service.attributes})
            )

        if len(candidates) > 1:
            with_actions = [(s, a) for s, a in candidates if _has_actions(accessory, a)]
            if with_actions:
                candidates = with_actions
        if not candidates:
            raise TargetSelectionError(f"Accessory '{accessory.name}' has no attribute matching '{hint}'")
        if len(candidates) > 1:
            found = ", ".join(f"{s.name}.{a.display_name}" for s, a in candidates)
            raise TargetSelectionError(
                f"Multiple attributes match '{hint}': {found}. Use SERVICE.ATTRIBUTE to choose one."
            )
        return candidates[0]

    async def read(self, accessory_hint: str | None, attribute_hint: str) -> AttributeReading:
        accessory = self.resolve_accessory(accessory_hint)
        service, attribute = self.resolve_attribute(accessory, attribute_hint)
        binding = accessory.binding_for(attribute)
        fresh = await binding.read() if binding is not None else None
        return AttributeReading(
            accessory=accessory.name,
            service=service.name,
            attribute=attribute.display_name,
            value=attribute.value,
            fresh=fresh is not None,
        )

    async def write(self, accessory_hint: str | None, attribute_hint: str, value: Any) -> AttributeReading:
        accessory = self.resolve_accessory(accessory_hint)
        service, attribute = self.resolve_attribute(accessory, attribute_hint)
        if not attribute.descriptor.writable:
            raise AttributeWriteError(f"{service.name}.{attribute.display_name} is read-only")
        await attribute.set_value(value)
        return AttributeReading(
            accessory=accessory.name,
            service=service.name,
            attribute=attribute.display_name,
            value=attribute.value,
            fresh=True,
        )

    async def identify(self, accessory_hint: str | None) -> ReadResult:
        return await self.resolve_accessory(accessory_hint).identify()

    async def watch(
        self,
        accessory_hint: str | None,
        on_event: EventCallback,
        *,
        duration_s: float | None = None,
    ) -> int:
        """Run every poll loop of one accessory and report each applied value."""
        accessory = self.resolve_accessory(accessory_hint)

        def _listener(service: Service) -> Callable[[Attribute, Any, Any], None]:
            def _emit(attribute: Attribute, old: Any, new: Any) -> None:
                on_event(AttributeEvent(accessory.name, service.name, attribute.display_name, old, new))

            return _emit

        unsubscribers = [attribute.subscribe(_listener(service)) for service, attribute in accessory.iter_attributes()]
        started = accessory.start()
        try:
            if duration_s is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration_s)
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()
            await accessory.shutdown()
        return started

    async def shutdown(self) -> None:
        await asyncio.gather(*(accessory.shutdown() for accessory in self.accessories.values()))


def _has_actions(accessory: Accessory, attribute: Attribute) -> bool:
    binding = accessory.binding_for(attribute)
    return binding is not None and (binding.get_action is not None or binding.set_action is not None)
