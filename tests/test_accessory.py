from __future__ import annotations

import asyncio
import logging

import pytest

from httpaccessory.catalog import load_catalog
from httpaccessory.core.accessory import build_accessory
from httpaccessory.core.config_loader import parse_accessory
from httpaccessory.core.errors import AttributeValueError
from httpaccessory.core.model import AuthConfig, HttpResponse


class FakeTransport:
    def __init__(self, responses: dict[str, str] | None = None) -> None:
        self.responses = responses or {}
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
        return HttpResponse(status=200, text=self.responses.get(url, ""))


LAMP = {
    "name": "Office Lamp",
    "username": "admin",
    "password": "secret",
    "identify": {"url": "http://lamp/identify"},
    "services": [
        {
            "type": "Lightbulb",
            "name": "Desk Lamp",
            "forceRefreshDelay": 0,
            "optionCharacteristic": ["Brightness"],
            "characteristic": {
                "getOn": {
                    "url": "http://lamp/state",
                    "mappers": [{"type": "jpath", "parameters": {"jpath": "$.on"}}],
                },
                "setOn": {"url": "http://lamp/set?on={value}"},
                "getBrightness": "http://lamp/brightness",
                "Brightness": 40,
            },
        },
        {
            "type": "TemperatureSensor",
            "name": "Room",
            "forceRefreshDelay": 30,
            "characteristic": {"getCurrentTemperature": "http://lamp/temp"},
        },
        {"type": "FluxCapacitor", "name": "Nope"},
    ],
}


def _build(transport: FakeTransport | None = None):
    return build_accessory(parse_accessory(LAMP), load_catalog(), transport or FakeTransport())


def test_assembly_builds_services_from_catalog(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        accessory = _build()

    assert [service.type.name for service in accessory.services] == [
        "AccessoryInformation",
        "Lightbulb",
        "TemperatureSensor",
    ]
    assert "Unknown service type 'FluxCapacitor'" in caplog.text

    lamp = accessory.services[1]
    assert [a.display_name for a in lamp.attributes] == ["On", "Brightness"]
    assert lamp.get_attribute("Brightness").value == 40


def test_default_information_service_is_prepended() -> None:
    information = _build().services[0]
    assert information.get_attribute("Manufacturer").value == "Custom Manufacturer"
    assert information.get_attribute("Model").value == "HTTP Accessory Model"
    assert information.get_attribute("Serial Number").value == "HTTP Accessory Serial Number"
    assert information.get_attribute("Firmware Revision").value == "1.0"
    assert information.get_attribute("Name").value == "Office Lamp"


def test_refresh_interval_resolution() -> None:
    accessory = _build()
    lamp, sensor = accessory.services[1], accessory.services[2]

    on_binding = accessory.binding_for(lamp.get_attribute("On"))
    assert on_binding is not None and not on_binding.polling

    temp_binding = accessory.binding_for(sensor.get_attribute("Current Temperature"))
    assert temp_binding is not None and temp_binding.refresh_interval_s == 30


def test_zero_service_interval_inherits_accessory_default() -> None:
    doc = {
        "name": "Plug",
        "forceRefreshDelay": 30,
        "services": [
            {"type": "Switch", "name": "Zero", "forceRefreshDelay": 0, "characteristic": {"getOn": "http://a"}},
            {"type": "Outlet", "name": "Unset", "characteristic": {"getOn": "http://b"}},
            {"type": "Fan", "name": "Fast", "forceRefreshDelay": 5, "characteristic": {"getOn": "http://c"}},
        ],
    }
    accessory = build_accessory(parse_accessory(doc), load_catalog(), FakeTransport())
    intervals = {
        binding.name: binding.refresh_interval_s for binding in accessory.bindings if binding.get_action is not None
    }
    assert intervals == {"Zero.On": 30, "Unset.On": 30, "Fast.On": 5}


def test_attributes_without_get_action_never_poll() -> None:
    accessory = _build()
    polling = [binding.name for binding in accessory.bindings if binding.polling]
    assert polling == ["Room.Current Temperature"]


def test_get_and_set_flow_through_attributes() -> None:
    transport = FakeTransport({"http://lamp/state": '{"on": true}'})
    accessory = _build(transport)
    on = accessory.services[1].get_attribute("On")

    assert asyncio.run(on.get_value()) is True
    asyncio.run(on.set_value(False))

    assert [call[1] for call in transport.calls] == ["http://lamp/state", "http://lamp/set?on=false"]
    assert transport.calls[0][3] == AuthConfig(username="admin", password="secret", immediately=True)
    assert on.value is False


def test_identify_runs_identify_action() -> None:
    transport = FakeTransport({"http://lamp/identify": "blinking"})
    result = asyncio.run(_build(transport).identify())
    assert result.value == "blinking"


def test_start_and_shutdown_manage_pollers() -> None:
    accessory = _build()

    async def scenario() -> None:
        assert accessory.start() == 1
        assert any(binding.poll_active for binding in accessory.bindings)
        await accessory.shutdown()
        assert not any(binding.poll_active for binding in accessory.bindings)

    asyncio.run(scenario())


def test_catalog_coerces_values() -> None:
    catalog = load_catalog()
    lamp = catalog.create_service("Lightbulb", "Lamp")
    assert lamp is not None
    brightness = lamp.add_optional("Brightness")
    assert brightness is not None

    brightness.set_initial("150")
    assert brightness.value == 100
    brightness.set_initial("42.4")
    assert brightness.value == 42

    on = lamp.get_attribute("On")
    on.set_initial("off")
    assert on.value is False
    with pytest.raises(AttributeValueError):
        on.set_initial("sometimes")
    with pytest.raises(AttributeValueError):
        lamp.set_attribute("Hold Position", True)


def test_unknown_optional_attribute_is_ignored(caplog: pytest.LogCaptureFixture) -> None:
    doc = {"name": "Plug", "services": [{"type": "Switch", "optionCharacteristic": ["Brightness"]}]}
    with caplog.at_level(logging.WARNING):
        accessory = build_accessory(parse_accessory(doc), load_catalog(), FakeTransport())
    assert [a.display_name for a in accessory.services[1].attributes] == ["On"]
    assert "no optional attribute 'Brightness'" in caplog.text
