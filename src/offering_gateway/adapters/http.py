# adapters/http.py
import aiohttp
import asyncio
from typing import Optional
from .base import ThingClient, decode_body
from ..utils.exceptions import ThingUnreachable
from ..utils.logging import get_logger

logger = get_logger(__name__)

SUCCESS_STATUSES = (200, 204)

class HttpThingClient(ThingClient):
    """
    HTTP client for backing Things.
    One aiohttp session is shared by every request the gateway sends over HTTP.
    """
    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None
        self.is_connected = False

    async def connect(self) -> None:
        if self.is_connected:
            return
        self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        self.is_connected = True
        logger.info("Created HTTP session for Thing requests")

    async def disconnect(self) -> None:
        if self.session:
            try:
                await self.session.close()
                self.is_connected = False
                logger.info("Closed HTTP session for Thing requests")
            except Exception as e:
                logger.error(f"Error closing HTTP session: {e}")
                raise

    async def request(self, method: str, url: str, payload: Optional[str] = None,
                      content_type: str = "application/json") -> str:
        if not self.is_connected:
            await self.connect()

        headers = {"content-type": content_type}
        data = payload if method != "GET" else None
        try:
            async with self.session.request(method, url, data=data, headers=headers) as response:
                body = decode_body(await response.read(), method, url)
                if response.status not in SUCCESS_STATUSES:
                    logger.warning(f"{method} {url} answered with status {response.status}")
                    raise ThingUnreachable(f"{method} {url} answered with status {response.status}")
                return body
        except aiohttp.ClientError as e:
            logger.warning(f"Failed to {method} {url}: {e}")
            raise ThingUnreachable(f"Failed to {method} {url}: {e}") from e
        except asyncio.TimeoutError as e:
            logger.warning(f"Timed out on {method} {url}")
            raise ThingUnreachable(f"Timed out on {method} {url}") from e
