"""Secret Vault — One-time storage of client-encrypted secrets.

Security Note (Threat Model):
    The server only ever holds ciphertext, nonce and salt. Keys and
    plaintext never leave the client. Knowledge of a secret identifier
    is the capability to read or delete it.
"""

from .secret_vault import SecretVault
from .config import VaultConfig
from .crypto import IntegrityVerifier
from .models import CreatedSecret, SecretPayload, SecretRecord
from .store import SecretStore, RedisSecretStore, MemorySecretStore, create_store
from .validation import RequestValidator

__all__ = [
    "SecretVault",
    "VaultConfig",
    "IntegrityVerifier",
    "RequestValidator",
    "CreatedSecret",
    "SecretPayload",
    "SecretRecord",
    "SecretStore",
    "RedisSecretStore",
    "MemorySecretStore",
    "create_store",
]
