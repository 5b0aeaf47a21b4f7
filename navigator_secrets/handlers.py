"""HTTP handlers mapping vault operations to routes."""
import logging
from collections.abc import Mapping
from typing import Any

import orjson
from aiohttp import web

from .exceptions import InvalidParameter
from .responses import error_json, success_json
from .vault import SecretVault

logger = logging.getLogger("navigator.secrets")

VAULT_KEY = web.AppKey("secret_vault", SecretVault)

routes = web.RouteTableDef()


def _vault(request: web.Request) -> SecretVault:
    return request.app[VAULT_KEY]


def _allow(methods: str) -> web.Response:
    return web.Response(status=200, headers={"Allow": methods})


async def read_fields(request: web.Request) -> Mapping[str, Any]:
    """Read request fields from a JSON body or a form.

    Raises:
        InvalidParameter: If a JSON body is malformed or not an object.
    """
    if request.content_type == "application/json":
        try:
            data = orjson.loads(await request.read())
        except orjson.JSONDecodeError as err:
            raise InvalidParameter("body", "must be valid JSON") from err
        if not isinstance(data, dict):
            raise InvalidParameter("body", "must be a JSON object")
        return data
    return await request.post()


@routes.get("/heartbeat")
async def heartbeat(request: web.Request) -> web.Response:
    status = await _vault(request).heartbeat()
    if not status["redisOk"]:
        return error_json("Storage backend unavailable", 503, data=status)
    return success_json(status)


@routes.options("/heartbeat")
async def heartbeat_options(request: web.Request) -> web.Response:
    return _allow("HEAD,GET")


@routes.post("/api/v1/secrets")
async def create_secret(request: web.Request) -> web.Response:
    fields = await read_fields(request)
    created = await _vault(request).create(fields)
    return success_json(created.to_response(), status=201)


@routes.options("/api/v1/secrets")
async def secrets_options(request: web.Request) -> web.Response:
    return _allow("POST")


@routes.get("/api/v1/secrets/{id}")
async def consume_secret(request: web.Request) -> web.Response:
    payload = await _vault(request).consume(request.match_info["id"])
    return success_json(payload.to_response())


@routes.delete("/api/v1/secrets/{id}")
async def delete_secret(request: web.Request) -> web.Response:
    await _vault(request).delete(request.match_info["id"])
    return success_json()


@routes.options("/api/v1/secrets/{id}")
async def secret_options(request: web.Request) -> web.Response:
    return _allow("GET,DELETE")


@routes.post("/csp")
async def csp_report(request: web.Request) -> web.Response:
    """Log browser CSP violation reports. Malformed reports are ignored."""
    try:
        body = orjson.loads(await request.read())
    except orjson.JSONDecodeError:
        body = None
    report = body.get("csp-report") if isinstance(body, dict) else None
    if isinstance(report, dict):
        directive = str(report.get("violated-directive") or "").strip()
        logger.warning("CSP violation: directive=%s", directive or "unknown")
    return success_json()


@routes.options("/csp")
async def csp_options(request: web.Request) -> web.Response:
    return _allow("POST")
