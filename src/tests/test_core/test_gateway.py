import pytest
from unittest.mock import AsyncMock
from offering_gateway.core.config_manager import GatewayOptions
from offering_gateway.core.gateway import Gateway
from offering_gateway.utils.exceptions import DuplicateUri, MethodNotAllowed, RouteInvalid, RouteNotFound


@pytest.fixture
def gateway(clients):
    return Gateway(GatewayOptions(use_merge=True), clients=clients)


def test_add_and_get_route(gateway, make_thing):
    route = gateway.build_route([make_thing()], ["temperature"])
    gateway.add_route(route)

    assert gateway.get_route("Sensor-Read-temperature") is route
    with pytest.raises(DuplicateUri):
        gateway.add_route(gateway.build_route([make_thing()], ["temperature"]))


def test_invalid_route_rejected(gateway, make_thing):
    with pytest.raises(RouteInvalid):
        gateway.add_route(gateway.build_route([make_thing()], ["nope"]))
    assert gateway.routes == []


def test_remove_route(gateway, make_thing):
    gateway.add_route(gateway.build_route([make_thing()], ["temperature"]))
    gateway.remove_route("Sensor-Read-temperature")
    with pytest.raises(RouteNotFound):
        gateway.get_route("Sensor-Read-temperature")


def test_add_single_thing_builds_every_route(gateway, make_thing):
    routes = gateway.add_single_thing(make_thing())
    assert [route.uri for route in routes] == [
        "Sensor-Read-temperature",
        "Sensor-Read-position",
        "Sensor-Read-unit",
        "Sensor-Write-unit",
        "Sensor-reset",
        "Sensor-Read",
    ]


def test_merge_route_only_when_enabled(clients, make_thing):
    gateway = Gateway(GatewayOptions(use_merge=False), clients=clients)
    uris = [route.uri for route in gateway.add_single_thing(make_thing())]
    assert "Sensor-Read" not in uris


def test_add_aggregated_things_skips_duplicates(gateway, make_thing):
    things = [make_thing(base=f"http://s{i}.local") for i in range(2)]
    first = gateway.add_aggregated_things(things)
    second = gateway.add_aggregated_things(things)
    assert all(route.aggregated for route in first)
    assert second == []


@pytest.mark.asyncio
async def test_dispatch(gateway, make_thing, fake_client):
    fake_client.responses["http://sensor.local/temperature"] = "18"
    gateway.add_single_thing(make_thing())

    result = await gateway.dispatch("Sensor-Read-temperature", "get")
    assert result.records == [{"temperature": 18}]

    with pytest.raises(MethodNotAllowed):
        await gateway.dispatch("Sensor-Read-temperature", "POST")
    with pytest.raises(RouteNotFound):
        await gateway.dispatch("Unknown", "GET")


@pytest.mark.asyncio
async def test_dispatch_reads_history(gateway, make_thing, fake_client):
    gateway.add_single_thing(make_thing())
    store = AsyncMock()
    store.read.return_value = [{"temperature": 1, "date": "2024-01-01T00:00:00"}]
    gateway.attach_history("Sensor-Read-temperature", store)

    result = await gateway.dispatch("Sensor-Read-temperature", "GET", {"startTime": "2024-01-01T00:00:00"})

    assert result.records == store.read.return_value
    store.read.assert_awaited_once_with("2024-01-01T00:00:00", None)
    assert fake_client.calls == []

    await gateway.close()
    store.stop.assert_awaited_once()
