"""Accessory assembly: services and attribute bindings from a parsed spec."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator

from httpaccessory.catalog import Attribute, Catalog, Service, compact
from httpaccessory.core.binding import AttributeBinding, SleepFn
from httpaccessory.core.dispatcher import Dispatcher
from httpaccessory.core.model import AccessorySpec, ReadResult, ServiceSpec
from httpaccessory.transports.base import Transport

INFORMATION_TYPE = "AccessoryInformation"
DEFAULT_INFORMATION = {
    "Manufacturer": "Custom Manufacturer",
    "Model": "HTTP Accessory Model",
    "Serial Number": "HTTP Accessory Serial Number",
    "Firmware Revision": "1.0",
}
LOGGER = logging.getLogger(__name__)


class Accessory:
    def __init__(
        self,
        spec: AccessorySpec,
        dispatcher: Dispatcher,
        services: list[Service],
        bindings: dict[int, AttributeBinding],
    ) -> None:
        self.spec = spec
        self.dispatcher = dispatcher
        self.services = services
        self._bindings = bindings

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def bindings(self) -> list[AttributeBinding]:
        return list(self._bindings.values())

    def iter_attributes(self) -> Iterator[tuple[Service, Attribute]]:
        for service in self.services:
            for attribute in service.attributes:
                yield service, attribute

    def binding_for(self, attribute: Attribute) -> AttributeBinding | None:
        return self._bindings.get(id(attribute))

    async def identify(self) -> ReadResult:
        LOGGER.info("Identify requested for %s", self.name)
        result = await self.dispatcher.resolve_read(self.spec.identify)
        LOGGER.info("Identify result for %s: %r", self.name, result.value)
        return result

    def start(self) -> int:
        """Arm every polling binding; returns how many pollers were started."""
        started = 0
        for binding in self._bindings.values():
            if binding.polling:
                binding.arm_poller()
                started += 1
        return started

    async def shutdown(self) -> None:
        await asyncio.gather(*(binding.shutdown() for binding in self._bindings.values()))


def _bind_service(
    service: Service,
    service_spec: ServiceSpec,
    dispatcher: Dispatcher,
    default_interval_s: float,
    sleep: SleepFn,
) -> list[AttributeBinding]:
    for optional in service_spec.optional_attributes:
        if service.add_optional(optional) is None:
            LOGGER.warning("%s has no optional attribute '%s'; ignoring it", service_spec.type, optional)

    known = {compact(attribute.display_name) for attribute in service.attributes}
    for key in service_spec.initial_values:
        if key not in known:
            LOGGER.warning("%s '%s' has no attribute '%s' for its initial value", service_spec.type, service.name, key)

    # 0 or unset inherits the accessory default
    interval = service_spec.refresh_interval_s or default_interval_s

    bindings: list[AttributeBinding] = []
    for attribute in service.attributes:
        compact_name = compact(attribute.display_name)
        if compact_name in service_spec.initial_values:
            attribute.set_initial(service_spec.initial_values[compact_name])

        get_action = service_spec.actions.get(f"get{compact_name}")
        binding = AttributeBinding(
            attribute,
            dispatcher,
            get_action=get_action,
            set_action=service_spec.actions.get(f"set{compact_name}"),
            refresh_interval_s=interval if get_action is not None else 0.0,
            service_name=service.name,
            sleep=sleep,
        )
        binding.attach()
        bindings.append(binding)
    return bindings


def _default_information(catalog: Catalog, spec: AccessorySpec) -> Service | None:
    service = catalog.create_service(INFORMATION_TYPE, spec.name)
    if service is None:
        return None
    for attribute_name, value in DEFAULT_INFORMATION.items():
        service.set_attribute(attribute_name, value)
    return service


def build_accessory(
    spec: AccessorySpec,
    catalog: Catalog,
    transport: Transport,
    *,
    sleep: SleepFn = asyncio.sleep,
) -> Accessory:
    dispatcher = Dispatcher(transport, auth=spec.auth, debug=spec.debug, accessory_name=spec.name)
    services: list[Service] = []
    bindings: dict[int, AttributeBinding] = {}

    for service_spec in spec.services:
        service = catalog.create_service(service_spec.type, service_spec.name)
        if service is None:
            LOGGER.warning("Unknown service type '%s' in %s; skipping it", service_spec.type, spec.name)
            continue
        for binding in _bind_service(service, service_spec, dispatcher, spec.refresh_interval_s, sleep):
            bindings[id(binding.attribute)] = binding
        services.append(service)

    if not any(service.type.name == INFORMATION_TYPE for service in services):
        information = _default_information(catalog, spec)
        if information is not None:
            services.insert(0, information)

    return Accessory(spec, dispatcher, services, bindings)
