"""Placeholder substitution for write URLs and bodies.

Grammar:

* ``{name}`` where *name* is an identifier: a named variable, matched
  case-insensitively (``{value}``, ``{VALUE}``, ``{raw}``, ...).
* ``{N}`` where *N* is a non-negative integer: a positional variable
  (``{0}`` is the mapped value, ``{1}`` the raw value).
* ``{{`` and ``}}``: literal braces.

Braces around anything else (``{"on": true}``) are copied verbatim, so JSON
bodies need no escaping. Nothing in a template is ever evaluated.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

from httpaccessory.core.errors import TemplateError
from httpaccessory.core.model import TemplateContext

_TOKEN_RE = re.compile(r"\{\{|\}\}|\{([A-Za-z_][A-Za-z0-9_]*|[0-9]+)\}")


def render(template: str, positional: Sequence[str], named: Mapping[str, str]) -> str:
    lowered = {key.lower(): value for key, value in named.items()}

    def _substitute(match: re.Match[str]) -> str:
        token = match.group(0)
        if token == "{{":
            return "{"
        if token == "}}":
            return "}"
        name = match.group(1)
        if name.isdigit():
            index = int(name)
            if index >= len(positional):
                raise TemplateError(f"Template placeholder {token} has no positional value")
            return positional[index]
        try:
            return lowered[name.lower()]
        except KeyError:
            available = ", ".join(sorted(lowered))
            raise TemplateError(
                f"Template placeholder {token} is not defined. Available: {available}"
            ) from None

    return _TOKEN_RE.sub(_substitute, template)


def render_with_context(template: str, context: TemplateContext) -> str:
    named = {
        "value": context.value,
        "raw": context.raw,
        "attribute": context.attribute,
        "service": context.service,
        "accessory": context.accessory,
    }
    return render(template, (context.value, context.raw), named)
