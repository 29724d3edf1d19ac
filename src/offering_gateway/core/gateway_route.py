import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence
from pydantic import BaseModel, ConfigDict, Field
from .form_resolver import InteractionDescriptor, InteractionVerb, Method, Protocol
from .schema_translator import flatten
from .thing_requester import DEFAULT_TIMEOUT, ThingRequester
from ..adapters.base import ThingClient
from ..models.offering import DataField
from ..models.thing import Thing
from ..utils.exceptions import (GatewayError, IdRequired, InvalidId,
                                RouteInvalid, ThingUnreachable)
from ..utils.helpers import sanitize_uri
from ..utils.logging import get_logger

logger = get_logger(__name__)

ID_FIELD_NAME = "id"
ID_FIELD = DataField(name=ID_FIELD_NAME, rdf_uri="http://schema.org/identifier")
MIN_PREFIX = "min_"
MAX_PREFIX = "max_"

Record = Dict[str, Any]


class AccessResult(BaseModel):
    """Records returned by a route access, plus the backing Things that failed during fan-out"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    records: List[Record] = Field(default_factory=list)
    failures: Dict[int, ThingUnreachable] = Field(default_factory=dict)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _with_id(index: int, record: Mapping[str, Any]) -> Record:
    """Prefix a record with its Thing id, matching the id-first output schema"""
    tagged: Record = {ID_FIELD_NAME: index}
    tagged.update((key, value) for key, value in record.items() if key != ID_FIELD_NAME)
    return tagged


def apply_range_filters(record: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
    """
    True when the record passes every min_/max_ bound.
    A missing or non-numeric field fails the bound on it.
    """
    if not filters:
        return True
    for key, bound in filters.items():
        if key.startswith(MIN_PREFIX):
            field, is_min = key[len(MIN_PREFIX):], True
        elif key.startswith(MAX_PREFIX):
            field, is_min = key[len(MAX_PREFIX):], False
        else:
            continue
        value = _as_number(record.get(field))
        limit = _as_number(bound)
        if value is None or limit is None:
            return False
        if is_min and value < limit:
            return False
        if not is_min and value > limit:
            return False
    return True


class GatewayRoute:
    """
    Synthesized proxy endpoint exposing one interaction (or a merge of
    several properties) of one or more identical Things.

    Construction never raises: any problem marks the route invalid, and
    an invalid route refuses to be accessed.
    """

    def __init__(
        self,
        things: Sequence[Thing],
        property_names: Sequence[str],
        clients: Mapping[Protocol, ThingClient],
        write: bool = False,
        action_name: Optional[str] = None,
        use_property_filters: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.things: List[Thing] = list(things)
        self.property_names: List[str] = list(property_names)
        self.action_name = action_name
        self.write = bool(write)
        self.use_property_filters = use_property_filters

        self.uri: str = ""
        self.method: Optional[Method] = None
        self.converted_input_schema: List[DataField] = []
        self.converted_output_schema: List[DataField] = []
        self.property_filters_schema: List[DataField] = []
        self.requests: List[List[ThingRequester]] = []
        self.valid = True
        self.registered = False

        try:
            if not self.things:
                raise RouteInvalid("A route needs at least one backing Thing")
            self._set_uri_and_method()
            self._build_requests(clients, timeout)
            self._build_schemas()
        except (GatewayError, KeyError, ValueError) as e:
            logger.error(f"Invalid interactions provided, no route can be created: {e}")
            self.valid = False
            self.requests = []

    @property
    def aggregated(self) -> bool:
        return len(self.things) > 1

    @property
    def is_action(self) -> bool:
        return self.action_name is not None and not self.property_names

    @property
    def is_merge(self) -> bool:
        return len(self.property_names) > 1

    @property
    def needs_id(self) -> bool:
        """Aggregated writes and actions cannot guess which Thing to target"""
        return self.aggregated and (self.is_action or self.write)

    @property
    def supports_filters(self) -> bool:
        return bool(self.property_filters_schema)

    def _set_uri_and_method(self) -> None:
        name = self.things[0].display_name
        if self.action_name is not None and self.property_names:
            raise RouteInvalid("A route exposes either an action or properties, not both")
        if self.action_name is not None:
            self.uri = sanitize_uri(f"{name}-{self.action_name}")
            self.method = Method.POST
        elif len(self.property_names) == 1:
            if self.write:
                # Should use PUT once the marketplace supports it
                self.uri = sanitize_uri(f"{name}-Write-{self.property_names[0]}")
                self.method = Method.POST
            else:
                self.uri = sanitize_uri(f"{name}-Read-{self.property_names[0]}")
                self.method = Method.GET
        elif self.is_merge:
            if self.write:
                raise RouteInvalid("Merged properties can only be read")
            self.uri = sanitize_uri(f"{name}-Read")
            self.method = Method.GET
        else:
            raise RouteInvalid("Neither an action nor properties were provided")
        if not self.uri:
            raise RouteInvalid(f"Cannot build a URI from Thing name '{name}'")

    def _build_requests(self, clients: Mapping[Protocol, ThingClient], timeout: float) -> None:
        for thing in self.things:
            thing_requests: List[ThingRequester] = []
            if self.is_action:
                action = thing.actions[self.action_name]
                descriptor = InteractionDescriptor.build(
                    thing.display_name, self.action_name, InteractionVerb.INVOKE, action.forms,
                    input_schema=action.input, output_schema=action.output
                )
                thing_requests.append(ThingRequester(descriptor, clients, timeout))
            else:
                verb = InteractionVerb.WRITE if self.write else InteractionVerb.READ
                for property_name in self.property_names:
                    prop = thing.properties[property_name]
                    schema = prop.data_schema()
                    descriptor = InteractionDescriptor.build(
                        thing.display_name, property_name, verb, prop.forms,
                        input_schema=schema if self.write else None,
                        output_schema=None if self.write else schema
                    )
                    thing_requests.append(ThingRequester(descriptor, clients, timeout))
            self.requests.append(thing_requests)

    def _build_schemas(self) -> None:
        # Schemas come from the representative (first) Thing
        reference = self.things[0]
        context = reference.prefixes()

        if self.is_action:
            action = reference.actions[self.action_name]
            inputs = flatten(action.input, self.action_name, context)
            outputs = flatten(action.output, self.action_name, context)
        else:
            inputs, outputs = [], []
            for property_name in self.property_names:
                fields = flatten(reference.properties[property_name].data_schema(), property_name, context)
                if self.write:
                    inputs.extend(fields)
                else:
                    outputs.extend(fields)

        if self.aggregated:
            inputs.append(ID_FIELD)
            if outputs:
                outputs.insert(0, ID_FIELD)

        if self.use_property_filters and self.aggregated and self.is_merge:
            for field in outputs:
                if field.name == ID_FIELD_NAME:
                    continue
                self.property_filters_schema.append(DataField(name=MIN_PREFIX + field.name, rdf_uri=field.rdf_uri))
                self.property_filters_schema.append(DataField(name=MAX_PREFIX + field.name, rdf_uri=field.rdf_uri))

        self.converted_input_schema = inputs
        self.converted_output_schema = outputs

    @property
    def has_output(self) -> bool:
        return any(field.name != ID_FIELD_NAME for field in self.converted_output_schema)

    async def _access_thing(self, index: int, params: Mapping[str, Any]) -> Record:
        """
        Run every interaction of one backing Thing concurrently and merge in
        interaction order. The first failure cancels the sibling requests.
        """
        tasks = [asyncio.ensure_future(requester.make_request(params)) for requester in self.requests[index]]
        try:
            outputs = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        merged: Record = {}
        for output in outputs:
            merged.update(output)
        return merged

    async def access(self, params: Optional[Mapping[str, Any]] = None, id: Optional[int] = None,
                     filters: Optional[Mapping[str, Any]] = None) -> List[Record]:
        result = await self.access_detailed(params, id, filters)
        return result.records

    async def access_detailed(self, params: Optional[Mapping[str, Any]] = None, id: Optional[int] = None,
                              filters: Optional[Mapping[str, Any]] = None) -> AccessResult:
        if not self.valid:
            raise RouteInvalid(f"Route {self.uri or '<unnamed>'} is invalid, cannot be used")
        params = dict(params or {})

        if id is not None and self.aggregated:
            if isinstance(id, bool) or not isinstance(id, int) or not 0 <= id < len(self.requests):
                raise InvalidId(f"Invalid id {id!r} for route {self.uri} ({len(self.requests)} Things)")
            record = await self._access_thing(id, params)
            if self.has_output:
                record = _with_id(id, record)
            return AccessResult(records=[record])

        if self.needs_id:
            raise IdRequired(f"Route {self.uri} aggregates {len(self.requests)} Things, an id is required")

        results = await asyncio.gather(
            *(self._access_thing(index, params) for index in range(len(self.requests))),
            return_exceptions=True
        )

        records: List[Record] = []
        failures: Dict[int, ThingUnreachable] = {}
        for index, result in enumerate(results):
            if isinstance(result, ThingUnreachable):
                logger.error(f"Thing {index} of route {self.uri} failed: {result}")
                failures[index] = result
                continue
            if isinstance(result, BaseException):
                raise result
            if self.aggregated:
                result = _with_id(index, result)
            if self.supports_filters and not apply_range_filters(result, filters):
                continue
            records.append(result)

        if failures and len(failures) == len(self.requests):
            raise ThingUnreachable(f"Every Thing behind route {self.uri} failed") from failures[0]
        return AccessResult(records=records, failures=failures)

    def __repr__(self) -> str:
        method = self.method.value if self.method else None
        return f"GatewayRoute(uri={self.uri!r}, method={method}, things={len(self.things)}, valid={self.valid})"
