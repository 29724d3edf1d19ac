import pytest
from unittest.mock import AsyncMock, patch
from offering_gateway.core.config_manager import ApiConfig
from offering_gateway.core.gateway_route import GatewayRoute
from offering_gateway.core.metadata import LICENSE
from offering_gateway.core.offering_manager import OfferingManager
from offering_gateway.models.thing import Thing
from offering_gateway.utils.exceptions import ConfigurationError, MarketplaceError


@pytest.fixture
def provider():
    return AsyncMock()


@pytest.fixture
def manager(provider):
    return OfferingManager(ApiConfig(host="gateway.local", port=9000), provider)


@pytest.fixture
def no_backoff():
    with patch("offering_gateway.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


def test_offering_for_single_route(manager, make_thing, clients):
    thing = make_thing(extra={LICENSE: "OPEN_DATA_LICENSE"})
    route = GatewayRoute([thing], [], clients, action_name="reset")

    offering = manager.add_offering_for_route(route)

    assert offering.name == "Sensor-reset"
    assert offering.license == "OPEN_DATA_LICENSE"
    assert [f.name for f in offering.input_data] == ["reset_delay"]
    assert [f.name for f in offering.output_data] == ["reset_done"]
    endpoint = offering.endpoints[0]
    assert endpoint.uri == "http://gateway.local:9000/Sensor-reset"
    assert endpoint.endpoint_type == "HTTP_POST"
    assert endpoint.access_interface_type == "EXTERNAL"
    assert manager.to_register == [offering]


def test_offering_for_aggregated_merge_route(manager, make_thing, clients):
    things = [make_thing(base=f"http://s{i}.local") for i in range(2)]
    route = GatewayRoute(things, ["temperature", "unit"], clients, use_property_filters=True)

    offering = manager.add_offering_for_route(route)

    assert [f.name for f in offering.input_data] == [
        "id", "min_temperature", "max_temperature", "min_unit", "max_unit"
    ]
    assert [f.name for f in offering.output_data] == ["id", "temperature", "unit"]
    assert offering.endpoints[0].endpoint_type == "HTTP_GET"


def test_public_url_used_for_endpoints(make_thing, clients):
    manager = OfferingManager(ApiConfig(public_url="https://market.example.org/gw/"))
    route = GatewayRoute([make_thing()], ["temperature"], clients)
    offering = manager.add_offering_for_route(route)
    assert offering.endpoints[0].uri == "https://market.example.org/gw/Sensor-Read-temperature"


def test_direct_offerings_for_thing(manager):
    thing = Thing.model_validate({
        "name": "Parking",
        "properties": {
            "spots": {
                "type": "array",
                "writable": True,
                "items": {"type": "object", "properties": {
                    "free": {"type": "boolean", "@type": "http://example.org/free"},
                    "label": {"type": "string"}
                }},
                "forms": [
                    {"href": "http://parking.local/spots", "rel": "readProperty"},
                    {"href": "http://parking.local/spots", "rel": "writeProperty", "http:methodName": "POST"}
                ]
            }
        }
    })

    read, write = manager.add_offerings_for_thing(thing)

    assert read.name == "Parking-Read-spots"
    assert [(f.name, f.rdf_uri) for f in read.output_data] == [
        ("free", "http://example.org/free"), ("label", "https://schema.org/Text")
    ]
    assert read.endpoints[0].endpoint_type == "HTTP_GET"
    assert write.name == "Parking-Write-spots"
    assert write.endpoints[0].endpoint_type == "HTTP_POST"
    assert len(manager.to_register) == 2


@pytest.mark.asyncio
async def test_register_and_unregister(manager, provider, make_thing, clients):
    route = GatewayRoute([make_thing()], ["temperature"], clients)
    offering = manager.add_offering_for_route(route)

    await manager.initialize()
    registered = await manager.register_all_offerings()

    provider.authenticate.assert_awaited_once()
    provider.register.assert_awaited_once_with(offering)
    assert registered == [offering]
    assert manager.registered == [offering]
    assert manager.to_register == []
    assert route.registered

    await manager.unregister_offerings([offering.name])
    provider.delete.assert_awaited_once_with(offering)
    assert manager.registered == []
    assert manager.to_register == [offering]
    assert not route.registered


@pytest.mark.asyncio
async def test_register_retries_then_gives_up(manager, provider, make_thing, clients, no_backoff):
    good = manager.add_offering_for_route(GatewayRoute([make_thing()], ["temperature"], clients))
    bad = manager.add_offering_for_route(GatewayRoute([make_thing(name="Other")], ["temperature"], clients))

    async def register(offering):
        if offering.name == bad.name:
            raise MarketplaceError("rejected")

    provider.register.side_effect = register
    await manager.register_offerings([good.name, bad.name])

    assert manager.registered == [good]
    assert manager.to_register == [bad]
    # One attempt plus three retries for the rejected offering
    assert provider.register.await_count == 1 + 4


@pytest.mark.asyncio
async def test_register_recovers_after_transient_error(manager, provider, make_thing, clients, no_backoff):
    offering = manager.add_offering_for_route(GatewayRoute([make_thing()], ["temperature"], clients))
    provider.register.side_effect = [MarketplaceError("busy"), None]

    await manager.register_all_offerings()

    assert manager.registered == [offering]
    no_backoff.assert_awaited_once()


@pytest.mark.asyncio
async def test_registration_needs_provider(make_thing, clients):
    manager = OfferingManager(ApiConfig())
    manager.add_offering_for_route(GatewayRoute([make_thing()], ["temperature"], clients))
    with pytest.raises(ConfigurationError):
        await manager.register_all_offerings()
    with pytest.raises(ConfigurationError):
        await manager.initialize()
