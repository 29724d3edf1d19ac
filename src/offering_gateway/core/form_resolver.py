from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple
from pydantic import BaseModel, ConfigDict
from ..models.thing import Form
from ..utils.exceptions import NoCompatibleForm
from ..utils.logging import get_logger

logger = get_logger(__name__)


class InteractionVerb(str, Enum):
    READ = "readProperty"
    WRITE = "writeProperty"
    INVOKE = "invokeAction"


class Protocol(str, Enum):
    HTTP = "HTTP"
    COAP = "COAP"


class Method(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"


DEFAULT_CONTENT_TYPE = "application/json"

_DEFAULT_METHODS = {
    InteractionVerb.INVOKE: Method.POST,
    InteractionVerb.WRITE: Method.PUT,
    InteractionVerb.READ: Method.GET,
}

# CoAP method codes (RFC 7252 section 12.1.1)
_COAP_CODES = {1: Method.GET, 2: Method.POST, 3: Method.PUT}

_SCHEMES: Tuple[Tuple[str, Protocol], ...] = (
    ("http://", Protocol.HTTP),
    ("https://", Protocol.HTTP),
    ("coap://", Protocol.COAP),
    ("coaps://", Protocol.COAP),
)


def resolve_form(forms: Sequence[Form], verb: InteractionVerb) -> Optional[Form]:
    """
    Pick the form to use for a verb.

    A lone form is always used. Otherwise every form is scanned: a form
    tagged with the verb wins and a later tagged form overrides an earlier
    one, while an untagged form is only taken as a default while nothing
    has been selected yet.
    """
    if not forms:
        return None
    if len(forms) == 1:
        return forms[0]

    selected: Optional[Form] = None
    for form in forms:
        relations = form.relations
        if verb.value in relations:
            selected = form
        elif not relations and selected is None:
            selected = form
    return selected


def _parse_method(hint: Any) -> Method:
    if isinstance(hint, int) and not isinstance(hint, bool):
        return _COAP_CODES.get(hint, Method.GET)
    if isinstance(hint, str):
        candidate = hint.strip().upper()
        if candidate.isdigit():
            return _COAP_CODES.get(int(candidate), Method.GET)
        if candidate in Method.__members__:
            return Method[candidate]
    return Method.GET


def infer_protocol_and_method(form: Form, verb: InteractionVerb) -> Tuple[Protocol, Method]:
    """Explicit protocol hints first, then the URL scheme. Raises NoCompatibleForm if neither works."""
    if not form.href:
        raise NoCompatibleForm("Form has no target URL")

    if form.http_method_name:
        return Protocol.HTTP, _parse_method(form.http_method_name)
    if form.coap_method_code is not None:
        return Protocol.COAP, _parse_method(form.coap_method_code)

    url = form.href.lower()
    for scheme, protocol in _SCHEMES:
        if url.startswith(scheme):
            return protocol, _DEFAULT_METHODS[verb]
    raise NoCompatibleForm(f"Cannot infer protocol for {form.href}")


class InteractionDescriptor(BaseModel):
    """Resolved binding of one Thing interaction. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    thing_name: str
    interaction_name: str
    verb: InteractionVerb
    protocol: Protocol
    method: Method
    url: str
    content_type: str = DEFAULT_CONTENT_TYPE
    input_schema: Optional[Dict[str, Any]] = None
    output_schema: Optional[Dict[str, Any]] = None

    @classmethod
    def build(
        cls,
        thing_name: str,
        interaction_name: str,
        verb: InteractionVerb,
        forms: List[Form],
        input_schema: Optional[Dict[str, Any]] = None,
        output_schema: Optional[Dict[str, Any]] = None,
    ) -> "InteractionDescriptor":
        form = resolve_form(forms, verb)
        if form is None:
            raise NoCompatibleForm(
                f"No form usable for {verb.value} on {thing_name}/{interaction_name}"
            )
        protocol, method = infer_protocol_and_method(form, verb)
        logger.debug(f"Resolved {thing_name}/{interaction_name} ({verb.value}) to {protocol.value} {method.value} {form.href}")
        return cls(
            thing_name=thing_name,
            interaction_name=interaction_name,
            verb=verb,
            protocol=protocol,
            method=method,
            url=form.href,
            content_type=form.content_type or form.media_type or DEFAULT_CONTENT_TYPE,
            input_schema=input_schema,
            output_schema=output_schema,
        )
