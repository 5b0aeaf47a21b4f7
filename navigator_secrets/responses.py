"""JSend style response envelopes.

success: ``{"status": "success", "data": {...}}``
fail:    ``{"status": "fail", "code": 4xx, "message": "...", "data": {...}}``
error:   ``{"status": "error", "code": 5xx, "message": "..."}``
"""
from typing import Any, Optional

import orjson
from aiohttp import web

from .exceptions import VaultError


def _dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode("utf-8")


def success_json(data: Optional[dict] = None, status: int = 200) -> web.Response:
    return web.json_response(
        {"status": "success", "data": data}, status=status, dumps=_dumps,
    )


def error_json(
    message: str, status: int, data: Optional[dict] = None
) -> web.Response:
    body: dict[str, Any] = {
        "status": "fail" if status < 500 else "error",
        "code": status,
        "message": message,
    }
    if data is not None:
        body["data"] = data
    return web.json_response(body, status=status, dumps=_dumps)


def vault_error_json(err: VaultError) -> web.Response:
    """Render a vault error; server errors expose no details."""
    if err.status >= 500:
        return error_json(err.message, err.status)
    return error_json(err.message, err.status, data=err.to_dict())
