"""
Transport middlewares for the secret vault application.

- ``error_middleware`` turns every failure into a JSend envelope
- ``security_headers`` adds CSP, CORS and caching headers to every response
"""
import logging

from aiohttp import web

from .exceptions import InternalError, VaultError
from .responses import error_json, vault_error_json

logger = logging.getLogger("navigator.secrets")

API_PREFIX = "/api/"

CSP_DIRECTIVES = (
    "default-src 'none'",
    "script-src 'self'",
    "connect-src 'self'",
    "img-src 'self'",
    "style-src 'self' 'unsafe-inline'",
    "frame-ancestors 'none'",
    "form-action 'self'",
    "upgrade-insecure-requests",
    "block-all-mixed-content",
    "report-uri /csp",
)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "HEAD, GET, POST, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": (
        "Content-Type, Accept, Cache-Control, X-Requested-With"
    ),
    "Access-Control-Max-Age": "172800",  # 2 days
}


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except VaultError as err:
        logger.debug(
            "%s %s -> %d %s", request.method, request.path, err.status, err.code,
        )
        return vault_error_json(err)
    except web.HTTPException as exc:
        if exc.status < 400:
            raise
        return error_json(exc.reason, exc.status)
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return vault_error_json(InternalError())


def security_headers(csp_report_only: bool = False):
    """Build an ``on_response_prepare`` handler adding security headers."""
    csp_header = "Content-Security-Policy"
    if csp_report_only:
        csp_header += "-Report-Only"
    csp_value = "; ".join(CSP_DIRECTIVES)

    async def _on_prepare(request: web.Request, response: web.StreamResponse) -> None:
        response.headers[csp_header] = csp_value
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers.update(CORS_HEADERS)
        if request.path.startswith(API_PREFIX):
            # secrets must never land in a shared cache
            response.headers["Cache-Control"] = "no-store"
            response.headers["Pragma"] = "no-cache"

    return _on_prepare
