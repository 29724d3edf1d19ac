# Route lifecycle management and request dispatch
from typing import Any, Dict, List, Mapping, Optional, Sequence, TYPE_CHECKING
from .config_manager import GatewayOptions
from .form_resolver import Method, Protocol
from .gateway_route import AccessResult, GatewayRoute
from ..adapters.base import ThingClient
from ..adapters.coap import CoapThingClient
from ..adapters.http import HttpThingClient
from ..models.thing import Thing
from ..utils.exceptions import DuplicateUri, MethodNotAllowed, RouteInvalid, RouteNotFound
from ..utils.logging import get_logger

if TYPE_CHECKING:
    from ..storage.history_store import HistoryStore

logger = get_logger(__name__)

START_TIME_PARAM = "startTime"
END_TIME_PARAM = "endTime"


class Gateway:
    """
    Owns every GatewayRoute by URI and dispatches proxied requests to them.

    Routes are added by the registration workflow one batch at a time;
    dispatch only reads the route map.
    """
    def __init__(self, options: Optional[GatewayOptions] = None,
                 clients: Optional[Mapping[Protocol, ThingClient]] = None):
        self.options = options or GatewayOptions()
        if clients is None:
            clients = {
                Protocol.HTTP: HttpThingClient(timeout=self.options.request_timeout),
                Protocol.COAP: CoapThingClient(),
            }
        self.clients: Dict[Protocol, ThingClient] = dict(clients)
        self._routes: Dict[str, GatewayRoute] = {}
        self._history: Dict[str, "HistoryStore"] = {}

    async def start(self) -> None:
        logger.info("Starting gateway protocol clients")
        for client in self.clients.values():
            await client.connect()

    async def close(self) -> None:
        logger.info("Closing gateway protocol clients")
        for store in self._history.values():
            await store.stop()
        for client in self.clients.values():
            try:
                await client.disconnect()
            except Exception as e:
                logger.error(f"Error closing protocol client: {e}")

    @property
    def routes(self) -> List[GatewayRoute]:
        return list(self._routes.values())

    def build_route(self, things: Sequence[Thing], property_names: Sequence[str], write: bool = False,
                    action_name: Optional[str] = None, use_property_filters: bool = False) -> GatewayRoute:
        return GatewayRoute(
            things,
            property_names,
            self.clients,
            write=write,
            action_name=action_name,
            use_property_filters=use_property_filters,
            timeout=self.options.request_timeout,
        )

    def add_route(self, route: GatewayRoute) -> None:
        if not route.valid:
            raise RouteInvalid(f"Route {route.uri or '<unnamed>'} is invalid and cannot be added")
        if route.uri in self._routes:
            raise DuplicateUri(f"A route is already registered under {route.uri}")
        self._routes[route.uri] = route
        logger.info(f"Added route /{route.uri} ({route.method.value}, {len(route.things)} Thing(s))")

    def remove_route(self, uri: str) -> GatewayRoute:
        route = self.get_route(uri)
        del self._routes[uri]
        self._history.pop(uri, None)
        logger.info(f"Removed route /{uri}")
        return route

    def get_route(self, uri: str) -> GatewayRoute:
        route = self._routes.get(uri)
        if route is None:
            raise RouteNotFound(f"No route registered under {uri}")
        return route

    def attach_history(self, uri: str, store: "HistoryStore") -> None:
        """Serve a route from its history store instead of live Thing data"""
        self.get_route(uri)
        self._history[uri] = store

    async def dispatch(self, uri: str, method: str, params: Optional[Mapping[str, Any]] = None,
                       id: Optional[int] = None, filters: Optional[Mapping[str, Any]] = None) -> AccessResult:
        route = self.get_route(uri)
        requested = method.value if isinstance(method, Method) else str(method).upper()
        if route.method.value != requested:
            raise MethodNotAllowed(f"Route {uri} expects {route.method.value}, got {requested}")

        params = dict(params or {})
        store = self._history.get(uri)
        if store is not None:
            records = await store.read(params.get(START_TIME_PARAM), params.get(END_TIME_PARAM))
            return AccessResult(records=records)

        logger.debug(f"Dispatching {requested} /{uri} (id={id})")
        return await route.access_detailed(params, id, filters)

    def _try_add(self, route: GatewayRoute, added: List[GatewayRoute]) -> None:
        # One bad route must not abort the batch
        if not route.valid:
            logger.warning(f"Skipping invalid route for {[t.display_name for t in route.things]}")
            return
        try:
            self.add_route(route)
            added.append(route)
        except DuplicateUri as e:
            logger.warning(f"Skipping route: {e}")

    def add_single_thing(self, thing: Thing) -> List[GatewayRoute]:
        return self.add_aggregated_things([thing])

    def add_aggregated_things(self, things: Sequence[Thing]) -> List[GatewayRoute]:
        """
        Build and add every route for a group of identical Things: a read
        route per property, a write route per writable property, a route per
        action and, when merging is enabled, one merged read route.
        """
        if not things:
            return []
        reference = things[0]
        added: List[GatewayRoute] = []

        for property_name, prop in reference.properties.items():
            self._try_add(self.build_route(things, [property_name]), added)
            if prop.is_writable:
                self._try_add(self.build_route(things, [property_name], write=True), added)

        for action_name in reference.actions:
            self._try_add(self.build_route(things, [], action_name=action_name), added)

        if self.options.use_merge and len(reference.properties) > 1:
            self._try_add(
                self.build_route(things, list(reference.properties),
                                 use_property_filters=self.options.use_property_filters),
                added
            )

        if reference.events:
            logger.warning(f"Events of {reference.display_name} are not supported and were skipped")
        logger.info(f"Added {len(added)} route(s) for {reference.display_name} ({len(things)} Thing(s))")
        return added
