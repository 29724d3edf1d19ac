# Abstract base classes for the transports the gateway talks through
# Each Thing protocol (http.py, coap.py) implements ThingClient
# The marketplace client is an external collaborator implementing MarketplaceProvider

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from ..models.offering import Offering
from ..utils.exceptions import MalformedResponse
from ..utils.logging import get_logger

logger = get_logger(__name__)


def decode_body(raw: Optional[bytes], method: str, url: str) -> str:
    """Decode a Thing response as UTF-8. Undecodable bodies become empty, which parses as {}"""
    if not raw:
        return ""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        logger.error(str(MalformedResponse(f"{method} {url} returned a body that is not UTF-8: {e}")))
        return ""


class ThingClient(ABC):
    """Protocol client used by ThingRequesters to reach backing Things"""

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def request(self, method: str, url: str, payload: Optional[str] = None,
                      content_type: str = "application/json") -> str:
        """
        Send one request and return the raw response body.
        Must raise ThingUnreachable on transport errors and non-success statuses.
        """
        pass


class MarketplaceProvider(ABC):
    """Provider-side marketplace client"""

    @abstractmethod
    async def authenticate(self) -> None:
        pass

    @abstractmethod
    async def register(self, offering: Offering) -> None:
        pass

    @abstractmethod
    async def delete(self, offering: Offering) -> None:
        pass

    @abstractmethod
    async def get(self, offering_id: str) -> Dict[str, Any]:
        pass
