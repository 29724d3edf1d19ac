# src/offering_gateway/api/routes.py
import json
from typing import Any, Dict, Optional, Tuple
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from .dependencies import GatewayDependency
from ..core.gateway_route import ID_FIELD_NAME, GatewayRoute
from ..utils.exceptions import GatewayError
from ..utils.logging import get_logger

logger = get_logger(__name__)

FAILED_THINGS_HEADER = "X-Gateway-Failed-Things"

gateway_router = APIRouter()


def split_params(raw: Dict[str, Any], route: GatewayRoute) -> Tuple[Dict[str, Any], Optional[int], Dict[str, float]]:
    """
    Separate the Thing id and range filters from the interaction inputs.
    Only keys the route declares are taken out, so an input field named
    like a filter still reaches the Thing.
    """
    filter_names = {field.name for field in route.property_filters_schema}
    params: Dict[str, Any] = {}
    filters: Dict[str, float] = {}
    id: Optional[int] = None
    for key, value in raw.items():
        if key == ID_FIELD_NAME and route.aggregated:
            try:
                id = int(value)
            except (TypeError, ValueError):
                raise HTTPException(status_code=400, detail=f"id must be an integer, got {value!r}")
        elif key in filter_names:
            try:
                filters[key] = float(value)
            except (TypeError, ValueError):
                raise HTTPException(status_code=400, detail=f"{key} must be a number, got {value!r}")
        else:
            params[key] = value
    return params, id, filters


async def _read_body(request: Request) -> Dict[str, Any]:
    body = await request.body()
    if not body:
        return {}
    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return payload


async def _proxy(uri: str, request: Request, gateway) -> JSONResponse:
    raw: Dict[str, Any] = dict(request.query_params)
    if request.method == "POST":
        raw.update(await _read_body(request))
    try:
        params, id, filters = split_params(raw, gateway.get_route(uri))
        result = await gateway.dispatch(uri, request.method, params, id, filters)
    except GatewayError as e:
        if e.status_code >= 500:
            logger.error(f"Error proxying {request.method} /{uri}: {e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))

    headers = {}
    if result.failures:
        headers[FAILED_THINGS_HEADER] = ",".join(str(index) for index in sorted(result.failures))
    return JSONResponse(content=result.records, headers=headers)


@gateway_router.get("/{uri}")
async def read_route(uri: str, request: Request, gateway: GatewayDependency = None) -> JSONResponse:
    return await _proxy(uri, request, gateway)


@gateway_router.post("/{uri}")
async def invoke_route(uri: str, request: Request, gateway: GatewayDependency = None) -> JSONResponse:
    return await _proxy(uri, request, gateway)
