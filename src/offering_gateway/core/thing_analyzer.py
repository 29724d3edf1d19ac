from typing import Any, Dict, List, Mapping, Optional, Sequence, Union
from .config_manager import GatewayOptions
from .form_resolver import InteractionVerb, Method, Protocol, infer_protocol_and_method
from ..models.thing import Form, Thing
from ..utils.exceptions import NoCompatibleForm
from ..utils.logging import get_logger

logger = get_logger(__name__)

_COMPLEX_TYPES = ("object", "array")


class ThingAnalyzer:
    """
    Shallow checks run on Things before they are exposed: whether a Thing
    fits the Offering model without a gateway, and which Things are
    identical enough to be aggregated behind one route.
    """
    def __init__(self, options: Optional[GatewayOptions] = None):
        self.options = options or GatewayOptions()

    def _log(self, message: str) -> None:
        if self.options.more_logs:
            logger.info(message)

    def is_thing_directly_compatible(self, thing: Thing) -> bool:
        self._log(f"Checking thing for direct compatibility: {thing.display_name}")
        for name, prop in thing.properties.items():
            if not self._forms_compatible(prop.forms):
                self._log(f"Property {name} not compatible: no valid form")
                return False
            schema = prop.data_schema()
            if not self.is_output_schema_compatible(schema):
                return False
            if prop.is_writable and not self.is_input_schema_compatible(schema):
                return False
        for name, action in thing.actions.items():
            if not self._forms_compatible(action.forms):
                self._log(f"Action {name} not compatible: no valid form")
                return False
            if not (self.is_input_schema_compatible(action.input)
                    and self.is_output_schema_compatible(action.output)):
                return False
        # Events are not supported by the Offering model
        return not thing.events

    def _forms_compatible(self, forms: Sequence[Form]) -> bool:
        return any(self.is_form_compatible(form) for form in forms)

    @staticmethod
    def is_form_compatible(form: Form) -> bool:
        """The marketplace only reaches HTTP endpoints, and not over PUT"""
        try:
            protocol, method = infer_protocol_and_method(form, InteractionVerb.READ)
        except NoCompatibleForm:
            return False
        return protocol == Protocol.HTTP and method != Method.PUT

    def is_output_schema_compatible(self, schema: Optional[Mapping[str, Any]]) -> bool:
        """Offering outputs are arrays of flat records"""
        if not schema:
            return True
        items = schema.get("items")
        if schema.get("type") != "array" or not isinstance(items, Mapping) or items.get("type") != "object":
            self._log("Output is not an array of objects: no direct compatibility")
            return False
        for name, field in (items.get("properties") or {}).items():
            if field.get("type") in _COMPLEX_TYPES:
                self._log(f"An output field has a complex type: no direct compatibility (field: {name})")
                return False
        return True

    def is_input_schema_compatible(self, schema: Optional[Mapping[str, Any]]) -> bool:
        """Offering inputs are flat named fields"""
        if not schema:
            return True
        if schema.get("type") != "object":
            self._log("Input is not an object: no direct compatibility")
            return False
        for name, field in (schema.get("properties") or {}).items():
            if field.get("type") in _COMPLEX_TYPES:
                self._log(f"An input field has a complex type: no direct compatibility (field: {name})")
                return False
        return True

    def are_things_identical(self, thing1: Thing, thing2: Thing) -> bool:
        return (thing1.display_name == thing2.display_name
                and self._interactions_identical(thing1.properties, thing2.properties)
                and self._interactions_identical(thing1.actions, thing2.actions)
                and self._semantic_types_identical(thing1.semantic_type, thing2.semantic_type))

    def _interactions_identical(self, interactions1: Mapping[str, Any], interactions2: Mapping[str, Any]) -> bool:
        if set(interactions1) != set(interactions2):
            return False
        for key, first in interactions1.items():
            second = interactions2[key]
            # Forms differ between identical Things (each has its own address)
            shape1 = first.model_dump(by_alias=True, exclude={"forms"}, exclude_none=True)
            shape2 = second.model_dump(by_alias=True, exclude={"forms"}, exclude_none=True)
            types1, types2 = shape1.pop("@type", None), shape2.pop("@type", None)
            if not self._semantic_types_identical(types1, types2):
                return False
            if self._shape(shape1) != self._shape(shape2):
                return False
        return True

    @staticmethod
    def _shape(dumped: Dict[str, Any]) -> Dict[str, Any]:
        keys = ("input", "output", "type", "properties", "items", "writable", "readOnly", "observable", "const")
        return {key: dumped.get(key) for key in keys}

    @staticmethod
    def _semantic_types_identical(types1: Union[str, List[str], None], types2: Union[str, List[str], None]) -> bool:
        if isinstance(types1, list) and isinstance(types2, list):
            return sorted(types1) == sorted(types2)
        return types1 == types2

    def group_identical_things(self, things: Sequence[Thing]) -> List[List[Thing]]:
        """Partition Things into groups of identical Things, keeping first-seen order"""
        groups: List[List[Thing]] = []
        for thing in things:
            for group in groups:
                if self.are_things_identical(group[0], thing):
                    group.append(thing)
                    break
            else:
                groups.append([thing])
        return groups
