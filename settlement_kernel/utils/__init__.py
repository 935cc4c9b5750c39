"""Utility modules for the settlement kernel."""

from settlement_kernel.utils.encryption import EncryptedField, FieldCipher
from settlement_kernel.utils.hashing import canonicalize_json, hash_payload
from settlement_kernel.utils.ttl_cache import TTLCache

__all__ = [
    "EncryptedField",
    "FieldCipher",
    "TTLCache",
    "canonicalize_json",
    "hash_payload",
]
