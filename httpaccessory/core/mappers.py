"""Value mappers applied to response bodies and written values.

Every mapper is total over text input: anything it cannot interpret is passed
through unchanged. Configuration problems (a pattern or path that does not
compile) surface when the mapper is built, never when it runs.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError
from jsonpath_ng.ext import parse as parse_jsonpath
from lxml import etree

from httpaccessory.core.errors import ConfigValidationError
from httpaccessory.core.model import Mapper

LOGGER = logging.getLogger(__name__)

_XML_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


def to_text(value: Any) -> str:
    """Render a value the way the host displays it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _json_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    if isinstance(value, (bool, int, float)):
        return to_text(value)
    return json.dumps(value)


@dataclass(frozen=True)
class StaticMapper:
    mapping: Mapping[str, str]

    def map(self, value: str) -> str:
        return self.mapping.get(value, value)


@dataclass(frozen=True)
class RegexMapper:
    pattern: re.Pattern[str]
    capture: int | str = 1

    def map(self, value: str) -> str:
        match = self.pattern.search(value)
        if match is None:
            return value
        try:
            captured = match.group(self.capture)
        except IndexError:
            return value
        return value if captured is None else captured


@dataclass(frozen=True)
class XPathMapper:
    expression: str
    compiled: etree.XPath
    index: int = 0

    def map(self, value: str) -> str:
        try:
            document = etree.fromstring(value.encode("utf-8"), parser=_XML_PARSER)
            result = self.compiled(document)
        except (etree.XMLSyntaxError, etree.XPathEvalError, ValueError):
            return value

        if isinstance(result, bool):
            return to_text(result)
        if isinstance(result, (str, float)):
            return to_text(result)
        if isinstance(result, list) and len(result) > self.index:
            item = result[self.index]
            if etree.iselement(item):
                return "".join(item.itertext())
            return str(item)
        return value


@dataclass(frozen=True)
class JSONPathMapper:
    expression: str
    compiled: Any
    index: int = 0

    def map(self, value: str) -> str:
        try:
            document = json.loads(value)
        except (TypeError, ValueError, RecursionError):
            return value

        try:
            matches = self.compiled.find(document)
        except Exception:  # jsonpath-ng filters can raise on unexpected node types
            LOGGER.debug("JSONPath %s failed on %r", self.expression, value, exc_info=True)
            return value

        if len(matches) <= self.index:
            return value
        try:
            return _json_text(matches[self.index].value)
        except RecursionError:
            return value


def _require_str(parameters: Mapping[str, Any], key: str, *, context: str) -> str:
    raw = parameters.get(key)
    if not isinstance(raw, str) or not raw:
        raise ConfigValidationError(f"{context}: parameter '{key}' must be a non-empty string")
    return raw


def _index(parameters: Mapping[str, Any], *, context: str) -> int:
    raw = parameters.get("index", 0)
    try:
        index = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigValidationError(f"{context}: parameter 'index' must be an integer") from exc
    if index < 0:
        raise ConfigValidationError(f"{context}: parameter 'index' must not be negative")
    return index


def _build_static(parameters: Mapping[str, Any], context: str) -> Mapper:
    mapping = parameters.get("mapping")
    if not isinstance(mapping, Mapping):
        raise ConfigValidationError(f"{context}: parameter 'mapping' must be a mapping")
    return StaticMapper(mapping={to_text(k): to_text(v) for k, v in mapping.items()})


def _build_regex(parameters: Mapping[str, Any], context: str) -> Mapper:
    source = _require_str(parameters, "regexp", context=context)
    try:
        pattern = re.compile(source)
    except re.error as exc:
        raise ConfigValidationError(f"{context}: invalid regexp {source!r}: {exc}") from exc

    capture: int | str = to_text(parameters.get("capture", "1"))
    if capture.isdigit():
        capture = int(capture)
    return RegexMapper(pattern=pattern, capture=capture)


def _build_xpath(parameters: Mapping[str, Any], context: str) -> Mapper:
    expression = _require_str(parameters, "xpath", context=context)
    try:
        compiled = etree.XPath(expression)
    except etree.XPathSyntaxError as exc:
        raise ConfigValidationError(f"{context}: invalid xpath {expression!r}: {exc}") from exc
    return XPathMapper(expression=expression, compiled=compiled, index=_index(parameters, context=context))


def _build_jpath(parameters: Mapping[str, Any], context: str) -> Mapper:
    expression = _require_str(parameters, "jpath", context=context)
    try:
        compiled = parse_jsonpath(expression)
    except (JsonPathLexerError, JsonPathParserError) as exc:
        raise ConfigValidationError(f"{context}: invalid jpath {expression!r}: {exc}") from exc
    return JSONPathMapper(expression=expression, compiled=compiled, index=_index(parameters, context=context))


MAPPER_TYPES: dict[str, Callable[[Mapping[str, Any], str], Mapper]] = {
    "static": _build_static,
    "regex": _build_regex,
    "xpath": _build_xpath,
    "jpath": _build_jpath,
}


def build_mapper(description: Mapping[str, Any], *, context: str = "mapper") -> Mapper | None:
    """Build one mapper, or return None for an unknown ``type``."""
    mapper_type = description.get("type")
    builder = MAPPER_TYPES.get(mapper_type) if isinstance(mapper_type, str) else None
    if builder is None:
        LOGGER.debug("%s: ignoring mapper of unknown type %r", context, mapper_type)
        return None
    parameters = description.get("parameters") or {}
    if not isinstance(parameters, Mapping):
        raise ConfigValidationError(f"{context}: 'parameters' must be a mapping")
    return builder(parameters, context)
