"""
Typed encrypted-field wrapper.

A sensitive column (the OTP code) is stored as a JSON object carrying an
explicit ``is_encrypted`` tag next to its value::

    {"is_encrypted": true, "value": "<fernet token>"}

Readers branch on the tag, never on the shape of the value.  Encryption uses
``cryptography.fernet`` (AES-128-CBC with HMAC-SHA256).  When no key is
configured values are stored with ``is_encrypted: false``.
"""

from dataclasses import dataclass
from typing import Any

from cryptography.fernet import Fernet
from sqlalchemy import JSON
from sqlalchemy.types import TypeDecorator


@dataclass(frozen=True)
class EncryptedField:
    """A stored value together with whether it is ciphertext."""

    is_encrypted: bool
    value: str

    def to_json(self) -> dict[str, Any]:
        return {"is_encrypted": self.is_encrypted, "value": self.value}

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "EncryptedField":
        if set(data) != {"is_encrypted", "value"}:
            raise ValueError(f"Malformed encrypted field: keys {sorted(data)}")
        if not isinstance(data["is_encrypted"], bool):
            raise ValueError("Malformed encrypted field: is_encrypted must be a bool")
        return cls(is_encrypted=data["is_encrypted"], value=str(data["value"]))


class FieldCipher:
    """Seal and open ``EncryptedField`` values.

    ``key`` is a urlsafe base64 Fernet key; ``None`` stores plaintext tagged
    ``is_encrypted=False``.  Opening an encrypted field without a key raises.
    """

    def __init__(self, key: bytes | str | None = None):
        self._fernet = Fernet(key) if key else None

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("ascii")

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def seal(self, plaintext: str) -> EncryptedField:
        if self._fernet is None:
            return EncryptedField(is_encrypted=False, value=plaintext)
        token = self._fernet.encrypt(plaintext.encode("utf-8"))
        return EncryptedField(is_encrypted=True, value=token.decode("ascii"))

    def open(self, field: EncryptedField) -> str:
        """Return the plaintext.

        Raises:
            RuntimeError: If the field is encrypted and no key is configured.
            cryptography.fernet.InvalidToken: If the token was not produced
                with this key or was altered.
        """
        if not field.is_encrypted:
            return field.value
        if self._fernet is None:
            raise RuntimeError("Encrypted field found but no field key is configured")
        return self._fernet.decrypt(field.value.encode("ascii")).decode("utf-8")


class EncryptedFieldType(TypeDecorator):
    """JSON column that maps to and from ``EncryptedField``."""

    impl = JSON
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, EncryptedField):
            raise TypeError(
                f"EncryptedFieldType expects EncryptedField, got {type(value).__name__}"
            )
        return value.to_json()

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return EncryptedField.from_json(value)
