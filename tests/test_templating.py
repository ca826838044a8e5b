from __future__ import annotations

import pytest

from httpaccessory.core.errors import TemplateError
from httpaccessory.core.model import TemplateContext
from httpaccessory.core.templating import render, render_with_context


def _context(value: str = "75", raw: str = "75") -> TemplateContext:
    return TemplateContext(value=value, raw=raw, attribute="Brightness", service="Desk Lamp", accessory="Office")


def test_value_placeholder_is_case_insensitive() -> None:
    rendered = render_with_context("http://lamp/set?a={value}&b={VALUE}&c={Value}", _context())
    assert rendered == "http://lamp/set?a=75&b=75&c=75"


def test_positional_placeholders() -> None:
    rendered = render_with_context("mapped={0} raw={1}", _context(value="on", raw="true"))
    assert rendered == "mapped=on raw=true"


def test_named_context_variables() -> None:
    rendered = render_with_context("/{accessory}/{service}/{attribute}/{raw}", _context())
    assert rendered == "/Office/Desk Lamp/Brightness/75"


def test_json_bodies_need_no_escaping() -> None:
    rendered = render_with_context('{"on": {value}, "meta": {"source": "hap"}}', _context(value="true"))
    assert rendered == '{"on": true, "meta": {"source": "hap"}}'


def test_doubled_braces_are_literal() -> None:
    assert render("{{value}} is {value}", ("x",), {"value": "x"}) == "{value} is x"


def test_unknown_named_placeholder_fails() -> None:
    with pytest.raises(TemplateError) as exc:
        render_with_context("http://lamp/{level}", _context())
    assert "{level}" in str(exc.value)


def test_out_of_range_positional_placeholder_fails() -> None:
    with pytest.raises(TemplateError):
        render_with_context("http://lamp/{2}", _context())


def test_expressions_are_never_evaluated() -> None:
    template = "{value.__class__} ${1+1} {value[0]}"
    assert render_with_context(template, _context()) == template


def test_dollar_prefixed_placeholder_keeps_the_dollar() -> None:
    assert render_with_context("${value}", _context()) == "$75"
