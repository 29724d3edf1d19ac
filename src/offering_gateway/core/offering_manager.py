import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence
from .config_manager import ApiConfig
from .form_resolver import InteractionVerb, infer_protocol_and_method, resolve_form
from .gateway_route import GatewayRoute
from .metadata import ACCESS_INTERFACE_TYPE, MetadataManager
from .schema_translator import primitive_uri, semantic_types
from ..adapters.base import MarketplaceProvider
from ..models.offering import DataField, Endpoint, Offering
from ..models.thing import Form, Thing
from ..utils.exceptions import ConfigurationError, MarketplaceError, NoCompatibleForm
from ..utils.helpers import sanitize_uri
from ..utils.logging import get_logger
from ..utils.retry import async_retry_with_backoff

logger = get_logger(__name__)

ACCESS_TYPE = "EXTERNAL"
ENDPOINT_TYPE_PREFIX = "HTTP_"


def _field_uri(name: str, schema: Mapping[str, Any]) -> str:
    types = semantic_types(schema)
    return types[0] if types else primitive_uri(schema.get("type"), name)


def convert_input_schema(schema: Optional[Mapping[str, Any]]) -> List[DataField]:
    """Direct conversion of a flat object schema, assumed compatible"""
    if not schema:
        return []
    return [DataField(name=name, rdf_uri=_field_uri(name, field))
            for name, field in (schema.get("properties") or {}).items()]


def convert_output_schema(schema: Optional[Mapping[str, Any]]) -> List[DataField]:
    """Direct conversion of an array-of-objects schema, assumed compatible"""
    if not schema:
        return []
    return convert_input_schema(schema.get("items"))


def convert_form(forms: Sequence[Form], verb: InteractionVerb) -> List[Endpoint]:
    form = resolve_form(forms, verb)
    if form is None:
        return []
    try:
        _, method = infer_protocol_and_method(form, verb)
    except NoCompatibleForm:
        return []
    extras = form.model_extra or {}
    return [Endpoint(
        uri=form.href,
        endpoint_type=ENDPOINT_TYPE_PREFIX + method.value,
        access_interface_type=extras.get(ACCESS_INTERFACE_TYPE, ACCESS_TYPE),
    )]


class OfferingManager:
    """
    Builds Offerings for gateway routes (or directly compatible Things) and
    keeps them in two lists: offerings waiting for registration and offerings
    registered on the marketplace.
    """
    def __init__(self, api_config: Optional[ApiConfig] = None,
                 provider: Optional[MarketplaceProvider] = None):
        self.base_uri = (api_config or ApiConfig()).base_uri
        self.provider = provider
        self._to_register: List[Offering] = []
        self._registered: List[Offering] = []
        self._routes: Dict[str, GatewayRoute] = {}
        self._authenticated = False

    @property
    def to_register(self) -> List[Offering]:
        return list(self._to_register)

    @property
    def registered(self) -> List[Offering]:
        return list(self._registered)

    async def initialize(self) -> None:
        """Authenticate the provider on the marketplace"""
        if self._authenticated:
            return
        provider = self._require_provider()
        await provider.authenticate()
        self._authenticated = True
        logger.info("Provider authenticated on the marketplace")

    def _require_provider(self) -> MarketplaceProvider:
        if self.provider is None:
            raise ConfigurationError("No marketplace provider configured")
        return self.provider

    def add_offering_for_route(self, route: GatewayRoute, things: Optional[Sequence[Thing]] = None,
                               property_names: Optional[Sequence[str]] = None, write: Optional[bool] = None,
                               action_name: Optional[str] = None) -> Offering:
        things = list(things if things is not None else route.things)
        property_names = list(property_names if property_names is not None else route.property_names)
        action_name = action_name if action_name is not None else route.action_name
        reference = things[0]

        if len(things) > 1:
            category = MetadataManager.guess_aggregated_category(things, property_names, action_name)
            license = MetadataManager.guess_aggregated_license(things, property_names, action_name)
            price = MetadataManager.guess_aggregated_price(things, property_names, action_name)
            extent = MetadataManager.guess_aggregated_spatial_extent(things, property_names, action_name)
        elif action_name is not None and not property_names:
            action = reference.actions[action_name]
            category = MetadataManager.guess_category(reference, action)
            license = MetadataManager.guess_license(reference, action)
            price = MetadataManager.guess_price(reference, action)
            extent = MetadataManager.guess_spatial_extent(reference, action)
        elif len(property_names) == 1:
            prop = reference.properties[property_names[0]]
            category = MetadataManager.guess_category(reference, prop)
            license = MetadataManager.guess_license(reference, prop)
            price = MetadataManager.guess_price(reference, prop)
            extent = MetadataManager.guess_spatial_extent(reference, prop)
        else:
            category = MetadataManager.guess_merged_category(reference)
            license = MetadataManager.guess_merged_license(reference)
            price = MetadataManager.guess_merged_price(reference)
            extent = MetadataManager.guess_merged_spatial_extent(reference)

        offering = Offering(
            name=route.uri,
            category=category,
            license=license,
            price=price,
            spatial_extent=extent,
            input_data=route.converted_input_schema + route.property_filters_schema,
            output_data=route.converted_output_schema,
            endpoints=[Endpoint(
                uri=f"{self.base_uri}/{route.uri}",
                endpoint_type=ENDPOINT_TYPE_PREFIX + route.method.value,
                access_interface_type=ACCESS_TYPE,
            )],
        )
        self._to_register.append(offering)
        self._routes[offering.name] = route
        return offering

    def add_offerings_for_thing(self, thing: Thing) -> List[Offering]:
        """Offerings pointing straight at the Thing's own endpoints, no gateway route involved"""
        name = thing.display_name
        offerings: List[Offering] = []
        for property_name, prop in thing.properties.items():
            common = dict(
                category=MetadataManager.guess_category(thing, prop),
                license=MetadataManager.guess_license(thing, prop),
                price=MetadataManager.guess_price(thing, prop),
                spatial_extent=MetadataManager.guess_spatial_extent(thing, prop),
            )
            read_name = f"{name}-Read-{property_name}" if prop.is_writable else f"{name}-{property_name}"
            offerings.append(Offering(
                name=sanitize_uri(read_name),
                output_data=convert_output_schema(prop.data_schema()),
                endpoints=convert_form(prop.forms, InteractionVerb.READ),
                **common
            ))
            if prop.is_writable:
                offerings.append(Offering(
                    name=sanitize_uri(f"{name}-Write-{property_name}"),
                    input_data=convert_input_schema(prop.data_schema()),
                    endpoints=convert_form(prop.forms, InteractionVerb.WRITE),
                    **common
                ))
        for action_name, action in thing.actions.items():
            offerings.append(Offering(
                name=sanitize_uri(f"{name}-{action_name}"),
                category=MetadataManager.guess_category(thing, action),
                license=MetadataManager.guess_license(thing, action),
                price=MetadataManager.guess_price(thing, action),
                spatial_extent=MetadataManager.guess_spatial_extent(thing, action),
                input_data=convert_input_schema(action.input),
                output_data=convert_output_schema(action.output),
                endpoints=convert_form(action.forms, InteractionVerb.INVOKE),
            ))
        self._to_register.extend(offerings)
        logger.info(f"Prepared {len(offerings)} direct offering(s) for {name}")
        return offerings

    @async_retry_with_backoff(max_retries=3, base_delay=1.0, exceptions=(MarketplaceError,))
    async def _register(self, offering: Offering) -> None:
        await self._require_provider().register(offering)

    @async_retry_with_backoff(max_retries=3, base_delay=1.0, exceptions=(MarketplaceError,))
    async def _delete(self, offering: Offering) -> None:
        await self._require_provider().delete(offering)

    async def _register_each(self, offerings: Sequence[Offering]) -> List[Offering]:
        results = await asyncio.gather(*(self._register(o) for o in offerings), return_exceptions=True)
        done: List[Offering] = []
        for offering, result in zip(offerings, results):
            if isinstance(result, MarketplaceError):
                logger.error(f"Failed to register offering {offering.name}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            logger.info(f"Successfully registered offering {offering.name}")
            done.append(offering)
            route = self._routes.get(offering.name)
            if route is not None:
                route.registered = True
        return done

    async def _unregister_each(self, offerings: Sequence[Offering]) -> List[Offering]:
        results = await asyncio.gather(*(self._delete(o) for o in offerings), return_exceptions=True)
        done: List[Offering] = []
        for offering, result in zip(offerings, results):
            if isinstance(result, MarketplaceError):
                logger.error(f"Failed to remove offering {offering.name}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            logger.info(f"Successfully removed offering {offering.name}")
            done.append(offering)
            route = self._routes.get(offering.name)
            if route is not None:
                route.registered = False
        return done

    async def register_offerings(self, names: Sequence[str]) -> List[Offering]:
        self._require_provider()
        wanted = set(names)
        selected = [offering for offering in self._to_register if offering.name in wanted]
        done = await self._register_each(selected)
        self._to_register = [offering for offering in self._to_register if offering not in done]
        self._registered.extend(done)
        return done

    async def register_all_offerings(self) -> List[Offering]:
        return await self.register_offerings([offering.name for offering in self._to_register])

    async def unregister_offerings(self, names: Sequence[str]) -> List[Offering]:
        self._require_provider()
        wanted = set(names)
        selected = [offering for offering in self._registered if offering.name in wanted]
        done = await self._unregister_each(selected)
        self._registered = [offering for offering in self._registered if offering not in done]
        self._to_register.extend(done)
        return done

    async def unregister_all_offerings(self) -> List[Offering]:
        return await self.unregister_offerings([offering.name for offering in self._registered])
