# Conversion between nested Thing data schemas and flat Offering field lists
from typing import Any, Dict, List, Mapping, Optional, Sequence
from ..models.offering import DataField
from ..utils.logging import get_logger

logger = get_logger(__name__)

'''
Flattening example

schema = {"type": "object", "properties": {
    "latitude": {"type": "number", "@type": ["schema:latitude"]},
    "longitude": {"type": "number"}}}

flatten(schema, "position", [{"schema": "https://schema.org/"}])
-> [DataField(name="position_latitude", rdf_uri="https://schema.org/latitude"),
    DataField(name="position_longitude", rdf_uri="https://schema.org/Number")]

from_nested(schema, {"latitude": 53.5, "longitude": 9.9}, "position")
-> {"position_latitude": 53.5, "position_longitude": 9.9}

Known limitation: a property whose own name contains SEPARATOR can collide
with a nested compound name ("a_b" vs "a" -> "b"). No escaping is applied.
'''

SEPARATOR = "_"

DEFAULT_DATA_TYPE = "https://schema.org/DataType"
DATA_TYPE_CONVERSION = {
    "string": "https://schema.org/Text",
    "boolean": "https://schema.org/Boolean",
    "number": "https://schema.org/Number",
    "integer": "https://schema.org/Integer",
    "float": "https://schema.org/Float",
    "array": "https://schema.org/ItemList",
}

Context = Sequence[Mapping[str, str]]


def semantic_types(schema: Mapping[str, Any]) -> List[str]:
    """Semantic annotations (@type) of a schema node, always as a list"""
    annotation = schema.get("@type")
    if isinstance(annotation, str):
        return [annotation] if annotation else []
    if isinstance(annotation, list):
        return [value for value in annotation if value]
    return []


def _is_leaf(schema: Mapping[str, Any]) -> bool:
    # Annotated nodes are opaque even when they are objects
    return bool(semantic_types(schema)) or schema.get("type") != "object"


def replace_prefix(identifier: str, context: Optional[Context] = None) -> str:
    """
    Resolve a prefixed identifier ("prefix:local") against ordered prefix mappings.
    The first mapping holding the prefix wins. Unknown prefixes are returned unchanged.
    The local name is joined with "#" unless the base already ends in "/" or "#",
    so hash vocabularies like rdf-syntax-ns# do not get a doubled separator.
    """
    if not context or ":" not in identifier:
        return identifier
    prefix, local = identifier.split(":", 1)
    for mapping in context:
        base = mapping.get(prefix)
        if isinstance(base, str):
            if base.endswith("/") or base.endswith("#"):
                return base + local
            return base + "#" + local
    return identifier


def primitive_uri(data_type: Optional[str], name: str = "") -> str:
    if data_type in DATA_TYPE_CONVERSION:
        return DATA_TYPE_CONVERSION[data_type]
    logger.warning(f"Unknown data type '{data_type}' for field '{name}', using {DEFAULT_DATA_TYPE}")
    return DEFAULT_DATA_TYPE


def flatten(schema: Optional[Mapping[str, Any]], root_name: str,
            context: Optional[Context] = None) -> List[DataField]:
    """Flatten a nested data schema into an ordered list of named leaf fields"""
    if not schema:
        return []

    annotations = semantic_types(schema)
    if annotations:
        return [DataField(name=root_name, rdf_uri=replace_prefix(annotations[0], context))]

    if schema.get("type") == "object":
        fields: List[DataField] = []
        for property_name, property_schema in (schema.get("properties") or {}).items():
            fields.extend(flatten(property_schema, root_name + SEPARATOR + property_name, context))
        return fields

    return [DataField(name=root_name, rdf_uri=primitive_uri(schema.get("type"), root_name))]


def to_nested(schema: Optional[Mapping[str, Any]], flat_record: Optional[Mapping[str, Any]],
              root_name: str) -> Any:
    """
    Rebuild the nested value a Thing expects from a flat Offering record.
    The caller's record is left untouched: matching runs on a working copy
    of the remaining keys. Returns None when there is no schema.
    """
    if not schema:
        return None
    remaining = dict(flat_record or {})
    if _is_leaf(schema):
        return remaining.get(root_name)
    return _collect_object(schema, remaining, root_name)


def _collect_object(schema: Mapping[str, Any], remaining: Dict[str, Any], parent_name: str) -> Dict[str, Any]:
    nested: Dict[str, Any] = {}
    for property_name, property_schema in (schema.get("properties") or {}).items():
        compound = parent_name + SEPARATOR + property_name
        if _is_leaf(property_schema):
            if compound in remaining:
                nested[property_name] = remaining.pop(compound)
            continue

        # Claim every key under this prefix so siblings cannot match it again
        claimed = {
            key: remaining.pop(key)
            for key in list(remaining)
            if key == compound or key.startswith(compound + SEPARATOR)
        }
        if claimed:
            nested[property_name] = _collect_object(property_schema, claimed, compound)
    return nested


def from_nested(schema: Optional[Mapping[str, Any]], value: Any, root_name: str) -> Dict[str, Any]:
    """Flatten a nested value returned by a Thing into a flat Offering record"""
    if not schema:
        return {}
    if _is_leaf(schema):
        return {root_name: value}
    if not isinstance(value, Mapping):
        logger.warning(f"Expected an object for '{root_name}', got {type(value).__name__}")
        return {root_name: value}

    record: Dict[str, Any] = {}
    for property_name, property_schema in (schema.get("properties") or {}).items():
        if property_name in value:
            record.update(from_nested(property_schema, value[property_name],
                                      root_name + SEPARATOR + property_name))
    return record
