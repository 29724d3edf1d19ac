# adapters/coap.py
import asyncio
from typing import Optional
from aiocoap import Context, Message, Code
from aiocoap.error import Error as CoapError
from .base import ThingClient, decode_body
from ..utils.exceptions import ThingUnreachable
from ..utils.logging import get_logger

logger = get_logger(__name__)

class CoapThingClient(ThingClient):
    """CoAP client for backing Things, built on a single aiocoap client context"""

    _CODES = {
        "GET": Code.GET,
        "POST": Code.POST,
        "PUT": Code.PUT,
    }

    def __init__(self):
        self.context: Optional[Context] = None

    async def connect(self) -> None:
        if self.context is None:
            self.context = await Context.create_client_context()
            logger.info("Created CoAP client context for Thing requests")

    async def disconnect(self) -> None:
        if self.context is not None:
            await self.context.shutdown()
            self.context = None
            logger.info("Closed CoAP client context")

    async def request(self, method: str, url: str, payload: Optional[str] = None,
                      content_type: str = "application/json") -> str:
        if self.context is None:
            await self.connect()

        message = Message(code=self._CODES.get(method, Code.GET), uri=url)
        # Payload is only written for POST/PUT
        if payload is not None and method in ("POST", "PUT"):
            message.payload = payload.encode("utf-8")

        try:
            response = await self.context.request(message).response
        except CoapError as e:
            logger.warning(f"Failed CoAP {method} {url}: {e}")
            raise ThingUnreachable(f"Failed CoAP {method} {url}: {e}") from e
        except asyncio.TimeoutError as e:
            raise ThingUnreachable(f"Timed out on CoAP {method} {url}") from e

        if not response.code.is_successful():
            logger.warning(f"CoAP {method} {url} answered with {response.code}")
            raise ThingUnreachable(f"CoAP {method} {url} answered with {response.code}")
        return decode_body(response.payload, method, url)
