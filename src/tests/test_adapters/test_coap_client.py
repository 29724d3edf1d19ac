import asyncio
import pytest
from unittest.mock import MagicMock
from aiocoap import Code, Message
from aiocoap.error import NetworkError
from offering_gateway.adapters.coap import CoapThingClient
from offering_gateway.utils.exceptions import ThingUnreachable


def context_answering(response=None, error=None):
    future = asyncio.get_running_loop().create_future()
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(response)
    request = MagicMock()
    request.response = future
    context = MagicMock()
    context.request.return_value = request
    return context


@pytest.mark.asyncio
async def test_get_decodes_payload():
    client = CoapThingClient()
    client.context = context_answering(Message(code=Code.CONTENT, payload=b'{"on": true}'))

    body = await client.request("GET", "coap://lamp.local/state")

    sent = client.context.request.call_args[0][0]
    assert sent.code == Code.GET
    assert sent.payload == b""
    assert body == '{"on": true}'


@pytest.mark.asyncio
async def test_put_carries_payload():
    client = CoapThingClient()
    client.context = context_answering(Message(code=Code.CHANGED))

    assert await client.request("PUT", "coap://lamp.local/state", '{"on": false}') == ""

    sent = client.context.request.call_args[0][0]
    assert sent.code == Code.PUT
    assert sent.payload == b'{"on": false}'


@pytest.mark.asyncio
async def test_error_code_is_unreachable():
    client = CoapThingClient()
    client.context = context_answering(Message(code=Code.NOT_FOUND))
    with pytest.raises(ThingUnreachable):
        await client.request("GET", "coap://lamp.local/missing")


@pytest.mark.asyncio
async def test_network_error_is_unreachable():
    client = CoapThingClient()
    client.context = context_answering(error=NetworkError("host unreachable"))
    with pytest.raises(ThingUnreachable):
        await client.request("POST", "coap://lamp.local/toggle", "{}")


@pytest.mark.asyncio
async def test_undecodable_payload_is_empty():
    client = CoapThingClient()
    client.context = context_answering(Message(code=Code.CONTENT, payload=b"\xff\xfe\x00"))
    assert await client.request("GET", "coap://lamp.local/state") == ""
