"""Core data models used across loader, dispatcher, bindings, and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


class Mapper(Protocol):
    def map(self, value: str) -> str:
        """Transform one text value; never raises for malformed input."""


@dataclass(frozen=True)
class Action:
    url: str | None = None
    method: str = "GET"
    body: str = ""
    mappers: tuple[Mapper, ...] = ()
    inconclusive: Action | None = None


@dataclass(frozen=True)
class AuthConfig:
    username: str = ""
    password: str = ""
    immediately: bool = True


@dataclass(frozen=True)
class ServiceSpec:
    type: str
    name: str
    actions: dict[str, Action]
    initial_values: dict[str, Any]
    optional_attributes: tuple[str, ...] = ()
    refresh_interval_s: float | None = None


@dataclass(frozen=True)
class AccessorySpec:
    name: str
    auth: AuthConfig
    services: tuple[ServiceSpec, ...]
    identify: Action | None = None
    debug: bool = False
    refresh_interval_s: float = 0.0
    timeout_s: float = 10.0
    source: str = ""


@dataclass(frozen=True)
class HttpResponse:
    status: int
    text: str


@dataclass(frozen=True)
class ReadResult:
    value: str | None = None
    error: Exception | None = None

    @property
    def has_value(self) -> bool:
        return self.value is not None


@dataclass(frozen=True)
class WriteResult:
    ok: bool
    value: Any = None
    error: Exception | None = None


@dataclass(frozen=True)
class TemplateContext:
    """Fixed variable set available to write templates."""

    value: str
    raw: str
    attribute: str = ""
    service: str = ""
    accessory: str = ""


@dataclass(frozen=True)
class AttributeReading:
    accessory: str
    service: str
    attribute: str
    value: Any
    fresh: bool


@dataclass(frozen=True)
class AttributeEvent:
    accessory: str
    service: str
    attribute: str
    old_value: Any
    new_value: Any
