import asyncio
import json
from typing import Any, Dict, Mapping, Optional
from .form_resolver import InteractionDescriptor, Method, Protocol
from .schema_translator import from_nested, to_nested
from ..adapters.base import ThingClient
from ..utils.exceptions import MalformedResponse, ThingUnreachable
from ..utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0

class ThingRequester:
    """
    Performs one interaction against one backing Thing.

    Flat Offering-shaped input is rebuilt into the Thing's nested input
    before sending, and the Thing's nested output is flattened back.
    """
    def __init__(self, descriptor: InteractionDescriptor, clients: Mapping[Protocol, ThingClient],
                 timeout: float = DEFAULT_TIMEOUT):
        if descriptor.protocol not in clients:
            raise ValueError(f"No client configured for protocol {descriptor.protocol.value}")
        self.descriptor = descriptor
        self.client = clients[descriptor.protocol]
        self.timeout = timeout

    @staticmethod
    def encode_payload(value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, str):
            return value
        return json.dumps(value)

    def parse_body(self, body: str) -> Any:
        """Parse a Thing response. Empty bodies and non-JSON bodies both become an empty object."""
        if body is None or body.strip() == "":
            return {}
        try:
            return json.loads(body)
        except ValueError:
            error = MalformedResponse(
                f"{self.descriptor.thing_name}/{self.descriptor.interaction_name} "
                f"returned a body that is not JSON: {body[:200]!r}"
            )
            logger.error(str(error))
            return {}

    async def make_request(self, flat_input: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        descriptor = self.descriptor
        payload = None
        if descriptor.method != Method.GET:
            nested_input = to_nested(descriptor.input_schema, flat_input, descriptor.interaction_name)
            payload = self.encode_payload(nested_input)

        try:
            body = await asyncio.wait_for(
                self.client.request(descriptor.method.value, descriptor.url, payload, descriptor.content_type),
                timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Request to {descriptor.url} timed out after {self.timeout}s")
            raise ThingUnreachable(f"Request to {descriptor.url} timed out after {self.timeout}s") from e

        return from_nested(descriptor.output_schema, self.parse_body(body), descriptor.interaction_name)

    def __repr__(self) -> str:
        d = self.descriptor
        return f"ThingRequester({d.protocol.value} {d.method.value} {d.url})"
