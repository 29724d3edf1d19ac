from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

JSON = Dict[str, Any]

# Keys describing the interaction itself rather than the data it carries
_INTERACTION_KEYS = {
    "forms", "writable", "readOnly", "writeOnly", "observable",
    "title", "titles", "label", "description", "descriptions",
    "uriVariables", "security", "scopes",
}


class Form(BaseModel):
    """Protocol binding of one interaction: target URL plus method/content hints"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    href: str = ""
    rel: Optional[Union[str, List[str]]] = None
    op: Optional[Union[str, List[str]]] = None
    media_type: Optional[str] = Field(None, alias="mediaType")
    content_type: Optional[str] = Field(None, alias="contentType")
    http_method_name: Optional[str] = Field(None, alias="http:methodName")
    coap_method_code: Optional[Union[str, int]] = Field(None, alias="coap:methodCode")

    @property
    def relations(self) -> List[str]:
        """Verbs this form is explicitly tagged with, from `rel` or `op`"""
        tags: List[str] = []
        for value in (self.rel, self.op):
            if isinstance(value, str):
                tags.append(value)
            elif value:
                tags.extend(value)
        return tags


class InteractionAffordance(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    title: Optional[str] = None
    label: Optional[str] = None
    description: Optional[str] = None
    semantic_type: Optional[Union[str, List[str]]] = Field(None, alias="@type")
    forms: List[Form] = Field(default_factory=list)

    def metadata(self) -> JSON:
        """Every key of the affordance as found in the TD, forms included"""
        return self.model_dump(by_alias=True, exclude_none=True)


class PropertyAffordance(InteractionAffordance):
    """
    A Thing property. In a TD the property is its own data schema, so the
    JSON-Schema keys (type, properties, items, unit...) live in the extras.
    """
    writable: Optional[bool] = None
    read_only: Optional[bool] = Field(None, alias="readOnly")
    observable: Optional[bool] = None

    @property
    def is_writable(self) -> bool:
        if self.writable is not None:
            return self.writable
        if self.read_only is not None:
            return not self.read_only
        return False

    def data_schema(self) -> JSON:
        schema = self.model_dump(by_alias=True, exclude_none=True)
        return {key: value for key, value in schema.items() if key not in _INTERACTION_KEYS}


class ActionAffordance(InteractionAffordance):
    input: Optional[JSON] = None
    output: Optional[JSON] = None
    safe: Optional[bool] = None
    idempotent: Optional[bool] = None


class EventAffordance(InteractionAffordance):
    data: Optional[JSON] = None


class Thing(BaseModel):
    """A parsed Thing Description. Unknown top-level keys (metadata URIs) are kept as extras."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = ""
    title: Optional[str] = None
    id: Optional[str] = None
    context: Optional[Union[str, Dict[str, Any], List[Union[str, Dict[str, Any]]]]] = Field(None, alias="@context")
    semantic_type: Optional[Union[str, List[str]]] = Field(None, alias="@type")
    properties: Dict[str, PropertyAffordance] = Field(default_factory=dict)
    actions: Dict[str, ActionAffordance] = Field(default_factory=dict)
    events: Dict[str, EventAffordance] = Field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.name or self.title or self.id or ""

    def metadata(self) -> JSON:
        return self.model_dump(by_alias=True, exclude_none=True)

    def prefixes(self) -> List[Dict[str, str]]:
        """Prefix mappings declared in @context, in declaration order"""
        contexts = self.context
        if isinstance(contexts, dict):
            return [contexts]
        if not isinstance(contexts, list):
            return []
        return [entry for entry in contexts if isinstance(entry, dict)]
