import asyncio
import json
import pytest
from unittest.mock import AsyncMock
from offering_gateway.core.form_resolver import InteractionDescriptor, InteractionVerb, Protocol
from offering_gateway.core.thing_requester import ThingRequester
from offering_gateway.models.thing import Form
from offering_gateway.utils.exceptions import ThingUnreachable

POSITION = {
    "type": "object",
    "properties": {"lat": {"type": "number"}, "lng": {"type": "number"}}
}


def descriptor(verb, href="http://thing/position", input_schema=None, output_schema=None, name="position"):
    return InteractionDescriptor.build("Thing", name, verb, [Form(href=href)],
                                       input_schema=input_schema, output_schema=output_schema)


@pytest.mark.asyncio
async def test_read_flattens_output(clients, fake_client):
    fake_client.responses["http://thing/position"] = {"lat": 1.0, "lng": 2.0}
    requester = ThingRequester(descriptor(InteractionVerb.READ, output_schema=POSITION), clients)

    result = await requester.make_request({"ignored": 1})

    assert result == {"position_lat": 1.0, "position_lng": 2.0}
    # GET carries no body
    assert fake_client.calls == [("GET", "http://thing/position", None, "application/json")]


@pytest.mark.asyncio
async def test_write_rebuilds_nested_input(clients, fake_client):
    requester = ThingRequester(descriptor(InteractionVerb.WRITE, input_schema=POSITION), clients)

    result = await requester.make_request({"position_lat": 5, "position_lng": 6})

    method, url, payload, _ = fake_client.calls[0]
    assert method == "PUT"
    assert json.loads(payload) == {"lat": 5, "lng": 6}
    assert result == {}


@pytest.mark.asyncio
async def test_string_input_is_sent_as_is(clients, fake_client):
    requester = ThingRequester(
        descriptor(InteractionVerb.WRITE, href="http://thing/unit", input_schema={"type": "string"}, name="unit"),
        clients
    )
    await requester.make_request({"unit": "celsius"})
    assert fake_client.calls[0][2] == "celsius"


@pytest.mark.asyncio
async def test_malformed_body_becomes_empty_record(clients, fake_client):
    fake_client.responses["http://thing/position"] = "<html>oops</html>"
    requester = ThingRequester(descriptor(InteractionVerb.READ, output_schema=POSITION), clients)
    assert await requester.make_request() == {}


@pytest.mark.asyncio
async def test_empty_body_without_output_schema(clients, fake_client):
    requester = ThingRequester(descriptor(InteractionVerb.INVOKE, href="coap://thing/reset", name="reset"), clients)
    assert await requester.make_request() == {}
    assert fake_client.calls[0][0] == "POST"


@pytest.mark.asyncio
async def test_transport_error_propagates(clients, fake_client, unreachable):
    fake_client.responses["http://thing/position"] = unreachable
    requester = ThingRequester(descriptor(InteractionVerb.READ, output_schema=POSITION), clients)
    with pytest.raises(ThingUnreachable):
        await requester.make_request()


@pytest.mark.asyncio
async def test_timeout_raises_unreachable():
    async def slow(*args, **kwargs):
        await asyncio.sleep(1)
        return "{}"

    client = AsyncMock()
    client.request = slow
    requester = ThingRequester(descriptor(InteractionVerb.READ), {Protocol.HTTP: client}, timeout=0.01)
    with pytest.raises(ThingUnreachable):
        await requester.make_request()


def test_missing_protocol_client(fake_client):
    with pytest.raises(ValueError):
        ThingRequester(descriptor(InteractionVerb.READ, href="coap://thing/x"), {Protocol.HTTP: fake_client})
