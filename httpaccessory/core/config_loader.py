"""Accessory configuration loading and validation for YAML/JSON files."""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from httpaccessory.core.errors import ConfigLoadError, ConfigValidationError
from httpaccessory.core.mappers import build_mapper
from httpaccessory.core.model import AccessorySpec, Action, AuthConfig, Mapper, ServiceSpec

_ACTION_KEY_RE = re.compile(r"^(get|set)[A-Z]")
_CONFIG_SUFFIXES = {".yml", ".yaml", ".json"}
MAX_INCONCLUSIVE_DEPTH = 16
DEFAULT_TIMEOUT_S = 10.0
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """Safe YAML loader for accessory and catalog files.

    Only ``true``/``false`` resolve to booleans, so keys and values such as
    ``on``, ``off``, ``yes`` or ``no`` stay text. A mapping that repeats a key
    is rejected with the line of the repeated key.
    """

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[Any, Any]:
        own = sum(1 for key_node, _ in node.value if key_node.tag != "tag:yaml.org,2002:merge")
        self.flatten_mapping(node)
        # flatten_mapping puts merged ("<<") pairs first; own keys may override them
        merged = len(node.value) - own
        mapping: dict[Any, Any] = {}
        seen: set[Any] = set()
        for index, (key_node, value_node) in enumerate(node.value):
            key = self.construct_object(key_node, deep=deep)
            if index >= merged:
                if key in seen:
                    raise ConfigValidationError(
                        f"Duplicate key '{key}' at line {key_node.start_mark.line + 1}"
                    )
                seen.add(key)
            mapping[key] = self.construct_object(value_node, deep=deep)
        return mapping


UniqueKeyLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:bool"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
UniqueKeyLoader.add_implicit_resolver(
    "tag:yaml.org,2002:bool",
    re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"),
    list("tTfF"),
)


@dataclass(frozen=True)
class LoadedAccessories:
    accessories: dict[str, AccessorySpec]
    warnings: tuple[str, ...]


@lru_cache(maxsize=1)
def _schema_validator() -> Any:
    schema = json.loads(
        resources.files("httpaccessory.schemas").joinpath("accessory.schema.json").read_text(encoding="utf-8")
    )
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


# Empty variables count as unset.
_XDG_BASES = (("XDG_CONFIG_HOME", ".config"), ("XDG_DATA_HOME", ".local/share"))


def _config_dirs() -> tuple[Path, ...]:
    return tuple(
        Path(os.environ.get(variable) or Path.home() / fallback) / "httpaccessory" / "accessories"
        for variable, fallback in _XDG_BASES
    )


def _read_document(path: Path) -> Any:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read accessory file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Accessory file {path} must contain a mapping at root")
    return loaded


def _check_acyclic(node: Any, where: str, ancestors: tuple[int, ...] = ()) -> None:
    if not isinstance(node, (dict, list)):
        return
    if id(node) in ancestors:
        raise ConfigValidationError(f"{where} refers back to itself")
    ancestors = (*ancestors, id(node))
    items = node.items() if isinstance(node, dict) else enumerate(node)
    for key, child in items:
        _check_acyclic(child, f"{where}.{key}", ancestors)


def build_action(
    description: Any,
    *,
    context: str = "action",
    _ancestors: tuple[int, ...] = (),
) -> Action:
    """Build an Action from a bare URL string or an action mapping."""
    if not isinstance(description, Mapping):
        return Action(url=str(description) if description else None)

    if id(description) in _ancestors:
        raise ConfigValidationError(f"{context}: inconclusive chain refers back to itself")
    if len(_ancestors) >= MAX_INCONCLUSIVE_DEPTH:
        raise ConfigValidationError(
            f"{context}: inconclusive chain is deeper than {MAX_INCONCLUSIVE_DEPTH} levels"
        )

    mappers: list[Mapper] = []
    for index, mapper_description in enumerate(description.get("mappers") or []):
        if not isinstance(mapper_description, Mapping):
            raise ConfigValidationError(f"{context}.mappers.{index} must be a mapping")
        mapper = build_mapper(mapper_description, context=f"{context}.mappers.{index}")
        if mapper is not None:
            mappers.append(mapper)

    inconclusive = None
    if description.get("inconclusive"):
        inconclusive = build_action(
            description["inconclusive"],
            context=f"{context}.inconclusive",
            _ancestors=(*_ancestors, id(description)),
        )

    url = description.get("url")
    return Action(
        url=str(url) if url else None,
        method=str(description.get("httpMethod") or "GET").upper(),
        body=str(description.get("body") or ""),
        mappers=tuple(mappers),
        inconclusive=inconclusive,
    )


def _build_service(doc: Mapping[str, Any], *, context: str) -> ServiceSpec:
    actions: dict[str, Action] = {}
    initial_values: dict[str, Any] = {}
    for key, value in (doc.get("characteristic") or {}).items():
        if _ACTION_KEY_RE.match(key):
            actions[key] = build_action(value, context=f"{context}.characteristic.{key}")
        else:
            initial_values[key] = value

    refresh = doc.get("forceRefreshDelay")
    return ServiceSpec(
        type=doc["type"],
        name=doc.get("name") or doc["type"],
        actions=actions,
        initial_values=initial_values,
        optional_attributes=tuple(doc.get("optionCharacteristic") or ()),
        refresh_interval_s=float(refresh) if refresh is not None else None,
    )


def parse_accessory(doc: Mapping[str, Any], source: str = "<memory>") -> AccessorySpec:
    """Validate one accessory document and build its action model."""
    _check_acyclic(doc, source)
    validator = _schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.absolute_path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    name = doc["name"]
    services = tuple(
        _build_service(service, context=f"{name}.services.{index}")
        for index, service in enumerate(doc.get("services") or [])
    )
    identify = build_action(doc["identify"], context=f"{name}.identify") if "identify" in doc else None

    return AccessorySpec(
        name=name,
        auth=AuthConfig(
            username=doc.get("username", ""),
            password=doc.get("password", ""),
            immediately=doc.get("immediately", True),
        ),
        services=services,
        identify=identify,
        debug=bool(doc.get("debug", False)),
        refresh_interval_s=float(doc.get("forceRefreshDelay") or 0),
        timeout_s=float(doc.get("timeout", DEFAULT_TIMEOUT_S)),
        source=source,
    )


def _documents(loaded: dict[str, Any], path: Path) -> list[Any]:
    if "accessories" not in loaded:
        return [loaded]
    if set(loaded) != {"accessories"} or not isinstance(loaded["accessories"], list):
        raise ConfigValidationError(f"{path}: 'accessories' must be the only key and hold a list")
    return loaded["accessories"]


def _iter_config_paths(paths: Sequence[Path] | None) -> list[Path]:
    if paths is None:
        candidates: Iterable[Path] = _config_dirs()
        explicit = False
    else:
        candidates = paths
        explicit = True

    found: list[Path] = []
    for candidate in candidates:
        if candidate.is_dir():
            found.extend(sorted(p for p in candidate.iterdir() if p.suffix in _CONFIG_SUFFIXES))
        elif candidate.is_file():
            found.append(candidate)
        elif explicit:
            raise ConfigLoadError(f"Configuration path {candidate} does not exist")
    return found


def load_accessories(paths: Sequence[Path] | None = None) -> LoadedAccessories:
    accessories: dict[str, AccessorySpec] = {}
    warnings: list[str] = []

    for path in _iter_config_paths(paths):
        for index, doc in enumerate(_documents(_read_document(path), path)):
            if not isinstance(doc, dict):
                raise ConfigValidationError(f"{path}: accessory {index} must be a mapping")
            spec = parse_accessory(doc, source=str(path))
            if spec.name in accessories:
                warning = f"Accessory '{spec.name}' from {path} overrides {accessories[spec.name].source}"
                LOGGER.warning(warning)
                warnings.append(warning)
            accessories[spec.name] = spec

    return LoadedAccessories(accessories=accessories, warnings=tuple(warnings))
