"""
SecretVault — Lifecycle of one-time secrets.

Provides the public API of the vault:
- ``create(fields)`` — validate, verify and store a secret once
- ``consume(secret_id)`` — return a secret to exactly one caller and destroy it
- ``delete(secret_id)`` — destroy a secret, idempotent
- ``heartbeat()`` — backend liveness

Per identifier a secret is either Absent or Stored. Stored secrets become
Absent on consume, delete or TTL expiry, whichever comes first.

Security Note:
    Never log nonce, salt or ciphertext values. Only log identifiers,
    operations and outcomes.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import timedelta
from typing import Any, Optional, TypeVar

from ..exceptions import (
    BackendUnavailable,
    Conflict,
    IntegrityFailure,
    InvalidParameter,
    NotFound,
)
from .config import VaultConfig
from .crypto import IntegrityVerifier
from .models import CreatedSecret, SecretPayload, SecretRecord, isoformat, utcnow
from .store import SecretStore
from .validation import RequestValidator

logger = logging.getLogger("navigator.secrets")

T = TypeVar("T")


class SecretVault:
    """Orchestrates validation, integrity checks and storage of secrets.

    The store is injected; the vault itself keeps no mutable state, so a
    single instance is shared by all concurrent requests.
    """

    def __init__(
        self,
        store: SecretStore,
        config: Optional[VaultConfig] = None,
        verifier: Optional[IntegrityVerifier] = None,
        validator: Optional[RequestValidator] = None,
    ):
        self._config = config or VaultConfig()
        self._store = store
        self._verifier = verifier or IntegrityVerifier(self._config.pepper)
        self._validator = validator or RequestValidator(
            self._config.max_secret_bytes
        )

    @property
    def store(self) -> SecretStore:
        return self._store

    # ------------------------------------------------------------------
    # Backend helpers
    # ------------------------------------------------------------------

    async def _call(self, operation: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Run one backend call bounded by the configured timeout."""
        try:
            return await asyncio.wait_for(
                factory(), timeout=self._config.backend_timeout,
            )
        except asyncio.TimeoutError as err:
            logger.error("Backend timeout during %s", operation)
            raise BackendUnavailable() from err

    async def _call_idempotent(
        self, operation: str, factory: Callable[[], Awaitable[T]]
    ) -> T:
        """Like ``_call`` but retried on BackendUnavailable.

        Waits ``backend_retry_backoff`` seconds, doubled on every attempt,
        between tries.
        """
        retries = self._config.backend_retries
        attempt = 0
        while True:
            try:
                return await self._call(operation, factory)
            except BackendUnavailable:
                attempt += 1
                if attempt > retries:
                    raise
                logger.warning(
                    "Retrying %s after backend failure (%d/%d)",
                    operation, attempt, retries,
                )
                await asyncio.sleep(
                    self._config.backend_retry_backoff * 2 ** (attempt - 1)
                )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create(self, fields: Mapping[str, Any]) -> CreatedSecret:
        """Store a new secret.

        Never retried: an unknown outcome must not be masked as a conflict.

        Args:
            fields: Mapping with id, nonce, ciphertext and salt.

        Returns:
            CreatedSecret with id, created_at and expires_at.

        Raises:
            InvalidParameter: If a field is malformed, or the id is not the
                digest of the payload while ``verify_on_create`` is enabled.
            Conflict: If a secret already exists under the id.
            BackendUnavailable: If the backend fails or times out.
        """
        data = self._validator.validate_create(fields)
        secret_id = data["id"]
        if self._config.verify_on_create and not self._verifier.verify(
            secret_id, data["salt"], data["nonce"], data["ciphertext"],
        ):
            raise InvalidParameter(
                "id", "must contain valid hash of required params"
            )

        created_at = utcnow()
        expires_at = created_at + timedelta(seconds=self._config.ttl)
        record = SecretRecord(
            id=secret_id,
            nonce=data["nonce"],
            ciphertext=data["ciphertext"],
            salt=data["salt"],
            created_at=created_at,
            expires_at=expires_at,
        )
        created = await self._call(
            "create",
            lambda: self._store.create(secret_id, record, self._config.ttl),
        )
        if not created:
            logger.warning("Vault create conflict: id=%s", secret_id)
            raise Conflict()

        logger.info("Vault create: id=%s expires=%s", secret_id, isoformat(expires_at))
        return CreatedSecret(
            id=secret_id, created_at=created_at, expires_at=expires_at,
        )

    async def consume(self, secret_id: Any) -> SecretPayload:
        """Return a secret and destroy it.

        Under concurrent calls for the same id exactly one caller receives
        the payload; all others get NotFound.

        Args:
            secret_id: Secret identifier.

        Returns:
            The stored SecretPayload.

        Raises:
            InvalidParameter: If the id is malformed.
            NotFound: If nothing is stored under the id.
            IntegrityFailure: If the stored payload does not match its id.
            BackendUnavailable: If the backend fails or times out.
        """
        secret_id = self._validator.validate_identifier(secret_id)
        record = await self._call(
            "consume", lambda: self._store.read_and_delete(secret_id),
        )
        if record is None:
            logger.warning("Vault consume miss: id=%s", secret_id)
            raise NotFound()

        if not self._verifier.verify(
            secret_id, record.salt, record.nonce, record.ciphertext,
        ):
            logger.error("Vault consume integrity failure, discarded: id=%s", secret_id)
            raise IntegrityFailure()

        logger.info("Vault consume: id=%s", secret_id)
        return record.payload()

    async def delete(self, secret_id: Any) -> None:
        """Destroy a secret. Absent secrets are not an error.

        Raises:
            InvalidParameter: If the id is malformed.
            BackendUnavailable: If the backend keeps failing after retries.
        """
        secret_id = self._validator.validate_identifier(secret_id)
        await self._call_idempotent(
            "delete", lambda: self._store.delete(secret_id),
        )
        logger.info("Vault delete: id=%s", secret_id)

    async def heartbeat(self) -> dict:
        """Report backend liveness with a UTC timestamp."""
        try:
            backend_ok = await self._call_idempotent("ping", self._store.ping)
        except BackendUnavailable:
            backend_ok = False
        return {"redisOk": backend_ok, "timestamp": isoformat(utcnow())}

    async def close(self) -> None:
        await self._store.close()
