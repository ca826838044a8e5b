"""In-process attribute catalog: capability types, attributes, and services.

The packaged ``catalogs/hap.yaml`` lists which attributes each capability type
exposes and how their values are typed. ``Attribute`` is the object an
``AttributeBinding`` drives: it holds the current value, runs the registered
get/set handlers, and notifies subscribers on every applied value.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from httpaccessory.core.binding import GetHandler, SetHandler
from httpaccessory.core.config_loader import UniqueKeyLoader
from httpaccessory.core.errors import AttributeValueError, AttributeWriteError, ConfigLoadError
from httpaccessory.core.mappers import to_text

LOGGER = logging.getLogger(__name__)

_TRUE_TEXT = frozenset({"1", "true", "on", "yes"})
_FALSE_TEXT = frozenset({"0", "false", "off", "no"})
_DEFAULTS: dict[str, Any] = {"bool": False, "int": 0, "float": 0.0, "string": ""}

ChangeListener = Callable[["Attribute", Any, Any], None]


@dataclass(frozen=True)
class AttributeDescriptor:
    name: str
    format: str
    min_value: float | None = None
    max_value: float | None = None
    perms: tuple[str, ...] = ("pr", "pw", "ev")

    @property
    def compact_name(self) -> str:
        return compact(self.name)

    @property
    def writable(self) -> bool:
        return "pw" in self.perms


@dataclass(frozen=True)
class ServiceType:
    name: str
    mandatory: tuple[AttributeDescriptor, ...]
    optional: tuple[AttributeDescriptor, ...]


def compact(name: str) -> str:
    return "".join(name.split())


class Attribute:
    def __init__(self, descriptor: AttributeDescriptor) -> None:
        self.descriptor = descriptor
        self.display_name = descriptor.name
        self.value: Any = _DEFAULTS[descriptor.format]
        self._get_handler: GetHandler | None = None
        self._set_handler: SetHandler | None = None
        self._listeners: list[ChangeListener] = []

    def __repr__(self) -> str:
        return f"Attribute({self.display_name!r}, value={self.value!r})"

    @property
    def bound(self) -> bool:
        return self._get_handler is not None or self._set_handler is not None

    def on_get(self, handler: GetHandler) -> None:
        self._get_handler = handler

    def on_set(self, handler: SetHandler) -> None:
        self._set_handler = handler

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def coerce(self, value: Any) -> Any:
        fmt = self.descriptor.format
        if fmt == "string":
            return to_text(value)
        if fmt == "bool":
            return self._coerce_bool(value)

        try:
            number = float(value.strip()) if isinstance(value, str) else float(value)
        except (TypeError, ValueError) as exc:
            raise AttributeValueError(f"{self.display_name} expects a number, got {value!r}") from exc
        if self.descriptor.min_value is not None:
            number = max(number, self.descriptor.min_value)
        if self.descriptor.max_value is not None:
            number = min(number, self.descriptor.max_value)
        return int(round(number)) if fmt == "int" else number

    def _coerce_bool(self, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        lowered = to_text(value).strip().lower()
        if lowered in _TRUE_TEXT:
            return True
        if lowered in _FALSE_TEXT:
            return False
        raise AttributeValueError(f"{self.display_name} expects a boolean, got {value!r}")

    def set_initial(self, value: Any) -> None:
        self.value = self.coerce(value)

    async def get_value(self) -> Any:
        if self._get_handler is not None:
            await self._get_handler()
        return self.value

    async def set_value(self, value: Any) -> None:
        coerced = self.coerce(value)
        if self._set_handler is not None:
            result = await self._set_handler(coerced)
            if not result.ok:
                raise AttributeWriteError(f"Write of {coerced!r} to {self.display_name} failed: {result.error}")

        previous, self.value = self.value, coerced
        for listener in list(self._listeners):
            listener(self, previous, coerced)


class Service:
    def __init__(self, service_type: ServiceType, name: str) -> None:
        self.type = service_type
        self.name = name
        self.attributes: list[Attribute] = [Attribute(d) for d in service_type.mandatory]
        name_attr = self.get_attribute("Name")
        if name_attr is not None:
            name_attr.set_initial(name)

    def __repr__(self) -> str:
        return f"Service({self.type.name!r}, name={self.name!r})"

    def get_attribute(self, name: str) -> Attribute | None:
        wanted = compact(name).lower()
        for attribute in self.attributes:
            if compact(attribute.display_name).lower() == wanted:
                return attribute
        return None

    def add_optional(self, name: str) -> Attribute | None:
        existing = self.get_attribute(name)
        if existing is not None:
            return existing
        wanted = compact(name).lower()
        for descriptor in self.type.optional:
            if descriptor.compact_name.lower() == wanted:
                attribute = Attribute(descriptor)
                self.attributes.append(attribute)
                return attribute
        return None

    def set_attribute(self, name: str, value: Any) -> Service:
        attribute = self.get_attribute(name) or self.add_optional(name)
        if attribute is None:
            raise AttributeValueError(f"{self.type.name} has no attribute '{name}'")
        attribute.set_initial(value)
        return self


class Catalog:
    def __init__(self, service_types: dict[str, ServiceType]) -> None:
        self.service_types = service_types

    def get(self, type_name: str) -> ServiceType | None:
        return self.service_types.get(type_name)

    def create_service(self, type_name: str, name: str) -> Service | None:
        service_type = self.get(type_name)
        if service_type is None:
            return None
        return Service(service_type, name)


def _descriptor(name: str, raw: dict[str, Any]) -> AttributeDescriptor:
    fmt = raw.get("format", "string")
    if fmt not in _DEFAULTS:
        raise ConfigLoadError(f"Attribute '{name}' has unsupported format '{fmt}'")
    return AttributeDescriptor(
        name=name,
        format=fmt,
        min_value=raw.get("minValue"),
        max_value=raw.get("maxValue"),
        perms=tuple(raw.get("perms", ("pr", "pw", "ev"))),
    )


def parse_catalog(doc: dict[str, Any]) -> Catalog:
    descriptors = {name: _descriptor(name, raw or {}) for name, raw in doc.get("attributes", {}).items()}

    def _lookup(service: str, names: list[str]) -> tuple[AttributeDescriptor, ...]:
        missing = [n for n in names if n not in descriptors]
        if missing:
            raise ConfigLoadError(f"Service '{service}' references unknown attributes: {', '.join(missing)}")
        return tuple(descriptors[n] for n in names)

    service_types: dict[str, ServiceType] = {}
    for name, raw in doc.get("services", {}).items():
        service_types[name] = ServiceType(
            name=name,
            mandatory=_lookup(name, raw.get("mandatory", [])),
            optional=_lookup(name, raw.get("optional", [])),
        )
    return Catalog(service_types)


def load_catalog(path: Path | None = None) -> Catalog:
    try:
        if path is None:
            text = resources.files("httpaccessory.catalogs").joinpath("hap.yaml").read_text(encoding="utf-8")
        else:
            text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read catalog {path}: {exc}") from exc

    try:
        doc = yaml.load(text, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Invalid catalog YAML: {exc}") from exc
    if not isinstance(doc, dict):
        raise ConfigLoadError("Catalog must contain a mapping at root")
    catalog = parse_catalog(doc)
    LOGGER.debug("Loaded catalog with %d service types", len(catalog.service_types))
    return catalog
