"""Navigator Secrets.

One-time, self-destructing storage for client-encrypted secrets.
"""
from .version import __version__
from .app import create_app
from .vault import SecretVault, VaultConfig

__all__ = ["__version__", "create_app", "SecretVault", "VaultConfig"]
