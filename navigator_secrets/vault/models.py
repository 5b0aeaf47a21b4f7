"""Secret vault data models."""
from datetime import datetime, timezone

import orjson
from pydantic import BaseModel, ConfigDict


def utcnow() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def isoformat(dt: datetime) -> str:
    """ISO-8601 UTC timestamp with a ``Z`` suffix."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class SecretPayload(BaseModel):
    """Opaque client-encrypted payload returned on consume."""

    model_config = ConfigDict(frozen=True)

    nonce: str
    ciphertext: str
    salt: str

    def to_response(self) -> dict:
        return {
            "nonce": self.nonce,
            "ciphertext": self.ciphertext,
            "salt": self.salt,
        }


class SecretRecord(SecretPayload):
    """A stored secret as held by the backend."""

    id: str
    created_at: datetime
    expires_at: datetime

    def payload(self) -> SecretPayload:
        return SecretPayload(
            nonce=self.nonce, ciphertext=self.ciphertext, salt=self.salt
        )

    def to_bytes(self) -> bytes:
        """Serialize for storage."""
        return orjson.dumps(self.model_dump(mode="json"))

    @classmethod
    def from_bytes(cls, data: bytes) -> "SecretRecord":
        """Deserialize a stored record.

        Raises:
            orjson.JSONDecodeError: If the bytes are not valid JSON.
            pydantic.ValidationError: If required fields are missing.
        """
        return cls.model_validate(orjson.loads(data))


class CreatedSecret(BaseModel):
    """Result of a successful create."""

    model_config = ConfigDict(frozen=True)

    id: str
    created_at: datetime
    expires_at: datetime

    def to_response(self) -> dict:
        return {
            "id": self.id,
            "createdAt": isoformat(self.created_at),
            "expiresAt": isoformat(self.expires_at),
        }
