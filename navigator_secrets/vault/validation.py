"""
Request validation for secret fields.

Checks presence, type, length and alphabet of each field before anything
touches storage. Only the first failing field is reported.
"""
import re
from collections.abc import Mapping
from typing import Any, Optional

from ..exceptions import InvalidParameter
from .crypto import ID_LENGTH

HEX_REGEX = re.compile(r"^[a-f0-9]+$")
BASE64_REGEX = re.compile(r"^[a-zA-Z0-9+=/\-_]+$")

NONCE_MIN_LENGTH = 24
NONCE_MAX_LENGTH = 64
SALT_MIN_LENGTH = 24
SALT_MAX_LENGTH = 64


class FieldRule:
    """Constraints for a single request field."""

    __slots__ = ("name", "min_length", "max_length", "pattern")

    def __init__(
        self,
        name: str,
        min_length: int,
        max_length: int,
        pattern: re.Pattern,
    ):
        self.name = name
        self.min_length = min_length
        self.max_length = max_length
        self.pattern = pattern

    def check(self, value: Any) -> str:
        if value is None or value == "":
            raise InvalidParameter(self.name, "is required")
        if not isinstance(value, str):
            raise InvalidParameter(self.name, "must be a string")
        if not self.min_length <= len(value) <= self.max_length:
            if self.min_length == self.max_length:
                reason = f"must be exactly {self.min_length} characters"
            else:
                reason = (
                    f"must be between {self.min_length} and "
                    f"{self.max_length} characters"
                )
            raise InvalidParameter(self.name, reason)
        # fullmatch so a trailing newline is rejected
        if self.pattern.fullmatch(value) is None:
            raise InvalidParameter(self.name, "contains invalid characters")
        return value


class RequestValidator:
    """Validates identifiers and create payloads.

    Fields are checked in a fixed order: id, nonce, ciphertext, salt.
    """

    def __init__(self, max_secret_bytes: int):
        self._id = FieldRule("id", ID_LENGTH, ID_LENGTH, HEX_REGEX)
        self._rules = (
            self._id,
            FieldRule("nonce", NONCE_MIN_LENGTH, NONCE_MAX_LENGTH, BASE64_REGEX),
            FieldRule("ciphertext", 1, max_secret_bytes, BASE64_REGEX),
            FieldRule("salt", SALT_MIN_LENGTH, SALT_MAX_LENGTH, BASE64_REGEX),
        )

    def validate_identifier(self, value: Any) -> str:
        """Return ``value`` if it is a well formed identifier.

        Raises:
            InvalidParameter: If the identifier is missing or malformed.
        """
        return self._id.check(value)

    def validate_create(self, fields: Optional[Mapping[str, Any]]) -> dict[str, str]:
        """Validate a create request.

        Args:
            fields: Raw request fields (id, nonce, ciphertext, salt).

        Returns:
            Dict holding only the four validated fields.

        Raises:
            InvalidParameter: For the first missing or malformed field.
        """
        if fields is None:
            fields = {}
        return {rule.name: rule.check(fields.get(rule.name)) for rule in self._rules}
