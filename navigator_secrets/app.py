"""aiohttp application factory for the secret vault."""
import logging
from typing import Optional

from aiohttp import web

from .handlers import VAULT_KEY, routes
from .middlewares import error_middleware, security_headers
from .vault import SecretStore, SecretVault, VaultConfig, create_store
from .vault.config import load_config

logger = logging.getLogger("navigator.secrets")


async def _close_vault(app: web.Application) -> None:
    await app[VAULT_KEY].close()
    logger.info("Secret vault stopped")


def create_app(
    config: Optional[VaultConfig] = None,
    store: Optional[SecretStore] = None,
) -> web.Application:
    """Build the web application.

    The backend connects lazily, so building the app performs no I/O.

    Args:
        config: Vault settings, read from the environment when omitted.
        store: Secret backend; built from ``config.redis_url`` when omitted.

    Returns:
        Configured aiohttp Application.
    """
    config = load_config(config)
    backend = store if store is not None else create_store(config)
    app = web.Application(middlewares=[error_middleware])
    app[VAULT_KEY] = SecretVault(backend, config=config)
    app.add_routes(routes)
    app.on_response_prepare.append(security_headers(config.csp_report_only))
    app.on_cleanup.append(_close_vault)
    logger.info(
        "Secret vault configured: ttl=%ds max_secret_bytes=%d",
        config.ttl, config.max_secret_bytes,
    )
    return app


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = VaultConfig.from_env()
    web.run_app(create_app(config), host=config.host, port=config.port)
