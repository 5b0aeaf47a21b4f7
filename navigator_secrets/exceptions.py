"""
Vault Exceptions — Error taxonomy shared by the core and the transport layer.

Every error carries the HTTP ``status`` the transport should answer with and
a short machine readable ``code``. Messages are safe to return to clients:
they never contain stored payload values.
"""
from typing import Optional


class VaultError(Exception):
    """Base class for all secret vault errors."""

    status: int = 500
    code: str = "internal_error"
    message: str = "Server Error"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class InvalidParameter(VaultError):
    """A request field is missing or malformed. Raised before storage is touched."""

    status = 400
    code = "invalid_parameter"

    def __init__(self, field: str, reason: Optional[str] = None):
        self.field = field
        self.reason = reason or "is invalid"
        super().__init__(f"{field} {self.reason}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["field"] = self.field
        return data


class Conflict(VaultError):
    """A secret is already stored under the requested identifier."""

    status = 409
    code = "conflict"
    message = "Data conflict, secret with ID already exists"


class NotFound(VaultError):
    """No secret under this identifier: never stored, consumed or expired."""

    status = 404
    code = "not_found"
    message = "Not Found"


class IntegrityFailure(VaultError):
    """Stored payload no longer matches the identifier it was filed under."""

    status = 500
    code = "integrity_failure"
    message = "Server error, stored data does not match its hash, discarding"


class BackendUnavailable(VaultError):
    """Storage backend timed out or refused the connection."""

    status = 503
    code = "backend_unavailable"
    message = "Storage backend unavailable"


class InternalError(VaultError):
    """Catch-all for unexpected failures."""
