"""
Vault Configuration — Validated settings for the secret vault.

Reads settings from environment variables:
    VAULT_SECRETS_TTL = <seconds a secret lives unread>
    VAULT_MAX_SECRET_BYTES = <maximum ciphertext length>
    VAULT_PEPPER = <deployment-wide digest key>
    REDIS_URL = <backend address, redis://, rediss://, unix:// or memory://>

Security Note:
    The pepper is a domain separation key, not a capability secret.
    It is still never logged, only its presence.
"""
import os
import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("navigator.secrets")

DEFAULT_TTL = 86400  # 1 day
DEFAULT_MAX_SECRET_BYTES = 65536  # 2**16
DEFAULT_PEPPER = "navigator-secrets"
DEFAULT_REDIS_URL = "redis://127.0.0.1:6379/0"

# BLAKE2s accepts keys of at most 32 bytes
_MAX_PEPPER_BYTES = 32

_BACKEND_SCHEMES = ("redis://", "rediss://", "unix://", "memory://")


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    ttl: int = Field(default=DEFAULT_TTL, ge=1)
    max_secret_bytes: int = Field(default=DEFAULT_MAX_SECRET_BYTES, ge=1)
    pepper: str = Field(default=DEFAULT_PEPPER)
    redis_url: str = Field(default=DEFAULT_REDIS_URL)
    key_prefix: str = Field(default="secrets:")
    backend_timeout: float = Field(default=2.0, gt=0)
    backend_retries: int = Field(default=1, ge=0, le=5)
    backend_retry_backoff: float = Field(default=0.1, ge=0)
    verify_on_create: bool = True
    atomic_script: bool = False
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    csp_report_only: bool = False

    @field_validator("pepper")
    @classmethod
    def validate_pepper(cls, v: str) -> str:
        """Pepper must be usable as a BLAKE2s key."""
        if not v:
            raise ValueError("pepper cannot be empty")
        if len(v.encode("utf-8")) > _MAX_PEPPER_BYTES:
            raise ValueError(
                f"pepper cannot exceed {_MAX_PEPPER_BYTES} bytes"
            )
        return v

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str) -> str:
        """Validate backend address scheme is supported."""
        if not v.startswith(_BACKEND_SCHEMES):
            raise ValueError(f"Unsupported backend address: {v}")
        return v

    @property
    def use_memory_backend(self) -> bool:
        return self.redis_url.startswith("memory://")

    @classmethod
    def from_env(cls, **overrides) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Keyword arguments take precedence over the environment.

        Returns:
            Populated VaultConfig instance.
        """
        values: dict = {
            "ttl": os.environ.get("VAULT_SECRETS_TTL", DEFAULT_TTL),
            "max_secret_bytes": os.environ.get(
                "VAULT_MAX_SECRET_BYTES", DEFAULT_MAX_SECRET_BYTES
            ),
            "pepper": os.environ.get("VAULT_PEPPER", DEFAULT_PEPPER),
            "redis_url": os.environ.get("REDIS_URL", DEFAULT_REDIS_URL),
            "key_prefix": os.environ.get("VAULT_KEY_PREFIX", "secrets:"),
            "backend_timeout": os.environ.get("VAULT_BACKEND_TIMEOUT", 2.0),
            "backend_retries": os.environ.get("VAULT_BACKEND_RETRIES", 1),
            "backend_retry_backoff": os.environ.get(
                "VAULT_BACKEND_RETRY_BACKOFF", 0.1
            ),
            "verify_on_create": os.environ.get("VAULT_VERIFY_ON_CREATE", True),
            "atomic_script": os.environ.get("VAULT_ATOMIC_SCRIPT", False),
            "host": os.environ.get("VAULT_HOST", "0.0.0.0"),
            "port": os.environ.get("VAULT_PORT", 8080),
            "csp_report_only": os.environ.get("VAULT_CSP_REPORT_ONLY", False),
        }
        values.update(overrides)
        config = cls(**values)
        logger.debug(
            "Loaded vault config: ttl=%ds max_secret_bytes=%d backend=%s",
            config.ttl,
            config.max_secret_bytes,
            config.redis_url.split("://", 1)[0],
        )
        return config


def load_config(config: Optional[VaultConfig] = None) -> VaultConfig:
    """Return ``config`` or a fresh one built from the environment."""
    return config if config is not None else VaultConfig.from_env()
