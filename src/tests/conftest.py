import json
import pytest
from offering_gateway.adapters.base import ThingClient
from offering_gateway.core.form_resolver import Protocol
from offering_gateway.models.thing import Thing
from offering_gateway.utils.exceptions import ThingUnreachable


class FakeThingClient(ThingClient):
    """Answers requests from a url -> body map and records every call"""
    def __init__(self):
        self.responses = {}
        self.calls = []

    async def connect(self):
        pass

    async def disconnect(self):
        pass

    async def request(self, method, url, payload=None, content_type="application/json"):
        self.calls.append((method, url, payload, content_type))
        response = self.responses.get(url, "")
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return response
        return json.dumps(response)


def sensor_description(name="Sensor", base="http://sensor.local", extra=None):
    td = {
        "@context": [
            "https://w3c.github.io/wot/w3c-wot-td-context.jsonld",
            {"schema": "https://schema.org/"}
        ],
        "name": name,
        "properties": {
            "temperature": {
                "type": "number",
                "forms": [{"href": f"{base}/temperature"}]
            },
            "position": {
                "type": "object",
                "properties": {
                    "lat": {"type": "number", "@type": "schema:latitude"},
                    "lng": {"type": "number"}
                },
                "forms": [{"href": f"{base}/position"}]
            },
            "unit": {
                "type": "string",
                "writable": True,
                "forms": [{"href": f"{base}/unit"}]
            }
        },
        "actions": {
            "reset": {
                "input": {"type": "object", "properties": {"delay": {"type": "integer"}}},
                "output": {"type": "object", "properties": {"done": {"type": "boolean"}}},
                "forms": [{"href": f"{base}/reset"}]
            }
        }
    }
    td.update(extra or {})
    return td


@pytest.fixture
def fake_client():
    return FakeThingClient()


@pytest.fixture
def clients(fake_client):
    return {Protocol.HTTP: fake_client, Protocol.COAP: fake_client}


@pytest.fixture
def make_thing():
    def _make(name="Sensor", base="http://sensor.local", extra=None):
        return Thing.model_validate(sensor_description(name, base, extra))
    return _make


@pytest.fixture
def unreachable():
    return ThingUnreachable("connection refused")
