from __future__ import annotations

import asyncio
import logging

import pytest

from httpaccessory.core.config_loader import build_action
from httpaccessory.core.dispatcher import Dispatcher
from httpaccessory.core.errors import TemplateError, TransportRequestError
from httpaccessory.core.mappers import StaticMapper
from httpaccessory.core.model import Action, AuthConfig, HttpResponse


class FakeTransport:
    def __init__(self, responses: dict[str, str] | None = None, failing: tuple[str, ...] = ()) -> None:
        self.responses = responses or {}
        self.failing = failing
        self.calls: list[tuple[str, str, str, AuthConfig | None]] = []

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        body: str = "",
        auth: AuthConfig | None = None,
    ) -> HttpResponse:
        self.calls.append((method, url, body, auth))
        if url in self.failing:
            raise TransportRequestError(f"{method} {url} failed: connection refused")
        return HttpResponse(status=200, text=self.responses.get(url, ""))


def test_degenerate_get_returns_no_data_without_calls() -> None:
    transport = FakeTransport()
    result = asyncio.run(Dispatcher(transport).resolve_read(None))
    assert result.value is None
    assert result.error is None
    assert not result.has_value
    assert transport.calls == []


def test_constant_action_resolves_to_mapped_body() -> None:
    transport = FakeTransport()
    action = Action(url=None, body="1", mappers=(StaticMapper({"1": "true"}),))
    result = asyncio.run(Dispatcher(transport).resolve_read(action))
    assert result.value == "true"
    assert transport.calls == []


def test_read_applies_mapper_chain_in_order() -> None:
    transport = FakeTransport({"http://dev/status": '{"power": "ON"}'})
    action = build_action(
        {
            "url": "http://dev/status",
            "mappers": [
                {"type": "jpath", "parameters": {"jpath": "$.power"}},
                {"type": "static", "parameters": {"mapping": {"ON": "1", "OFF": "0"}}},
            ],
        }
    )
    auth = AuthConfig(username="admin", password="secret")
    result = asyncio.run(Dispatcher(transport, auth=auth).resolve_read(action))
    assert result.value == "1"
    assert transport.calls == [("GET", "http://dev/status", "", auth)]


def test_read_transport_failure_is_reported_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    transport = FakeTransport(failing=("http://dev/status",))
    with caplog.at_level(logging.WARNING):
        result = asyncio.run(Dispatcher(transport).resolve_read(Action(url="http://dev/status")))
    assert result.value is None
    assert isinstance(result.error, TransportRequestError)
    assert "Get characteristic value failed" in caplog.text


def test_unmappable_nested_body_is_returned_unchanged() -> None:
    body = "[" * 100000 + "]" * 100000
    transport = FakeTransport({"http://dev/status": body})
    action = build_action(
        {"url": "http://dev/status", "mappers": [{"type": "jpath", "parameters": {"jpath": "$.a"}}]}
    )
    result = asyncio.run(Dispatcher(transport).resolve_read(action))
    assert result.value == body
    assert result.error is None


def test_inconclusive_result_resolves_fallback_once() -> None:
    transport = FakeTransport({"http://primary/state": "unknown", "http://backup/state": "42"})
    action = build_action(
        {
            "url": "http://primary/state",
            "mappers": [{"type": "static", "parameters": {"mapping": {"unknown": "inconclusive"}}}],
            "inconclusive": {"url": "http://backup/state"},
        }
    )
    result = asyncio.run(Dispatcher(transport).resolve_read(action))
    assert result.value == "42"
    assert [call[1] for call in transport.calls] == ["http://primary/state", "http://backup/state"]


def test_inconclusive_chain_follows_declared_order() -> None:
    transport = FakeTransport(
        {"http://a": "inconclusive", "http://b": "inconclusive", "http://c": "done"}
    )
    action = build_action(
        {"url": "http://a", "inconclusive": {"url": "http://b", "inconclusive": "http://c"}}
    )
    result = asyncio.run(Dispatcher(transport).resolve_read(action))
    assert result.value == "done"
    assert [call[1] for call in transport.calls] == ["http://a", "http://b", "http://c"]


def test_inconclusive_without_fallback_is_returned_verbatim() -> None:
    transport = FakeTransport({"http://a": "inconclusive"})
    result = asyncio.run(Dispatcher(transport).resolve_read(Action(url="http://a")))
    assert result.value == "inconclusive"


def test_inconclusive_fallback_can_be_constant() -> None:
    transport = FakeTransport({"http://a": "inconclusive"})
    action = build_action({"url": "http://a", "inconclusive": {"body": "0"}})
    result = asyncio.run(Dispatcher(transport).resolve_read(action))
    assert result.value == "0"
    assert len(transport.calls) == 1


def test_write_without_url_is_noop_success() -> None:
    transport = FakeTransport()
    dispatcher = Dispatcher(transport)
    assert asyncio.run(dispatcher.resolve_write(None, True)).ok
    assert asyncio.run(dispatcher.resolve_write(Action(url=None, body="x"), True)).ok
    assert transport.calls == []


def test_write_renders_mapped_value_and_returns_original() -> None:
    transport = FakeTransport()
    action = build_action(
        {
            "url": "http://dev/power?state={value}",
            "httpMethod": "post",
            "body": '{"power": "{VALUE}", "raw": {raw}}',
            "mappers": [{"type": "static", "parameters": {"mapping": {"true": "ON", "false": "OFF"}}}],
        }
    )
    result = asyncio.run(Dispatcher(transport).resolve_write(action, True))
    assert result.ok
    assert result.value is True
    method, url, body, _ = transport.calls[0]
    assert method == "POST"
    assert url == "http://dev/power?state=ON"
    assert body == '{"power": "ON", "raw": true}'


def test_write_template_error_fails_without_call() -> None:
    transport = FakeTransport()
    action = Action(url="http://dev/set?level={level}")
    result = asyncio.run(Dispatcher(transport).resolve_write(action, 10))
    assert not result.ok
    assert isinstance(result.error, TemplateError)
    assert transport.calls == []


def test_write_transport_failure_reports_failure() -> None:
    transport = FakeTransport(failing=("http://dev/set?v=1",))
    result = asyncio.run(Dispatcher(transport).resolve_write(Action(url="http://dev/set?v={value}"), 1))
    assert not result.ok
    assert result.value is None
    assert isinstance(result.error, TransportRequestError)


def test_debug_flag_promotes_mapper_trace(caplog: pytest.LogCaptureFixture) -> None:
    action = Action(url=None, body="1", mappers=(StaticMapper({"1": "on"}),))
    with caplog.at_level(logging.INFO, logger="httpaccessory.core.dispatcher"):
        asyncio.run(Dispatcher(FakeTransport()).resolve_read(action))
        assert "Mapper 0 mapped" not in caplog.text
        asyncio.run(Dispatcher(FakeTransport(), debug=True).resolve_read(action))
    assert "Mapper 0 mapped 1 to on" in caplog.text
