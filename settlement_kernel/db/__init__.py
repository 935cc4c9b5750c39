"""Database layer - engine, base classes, types, locking and unit of work."""

from settlement_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from settlement_kernel.db.engine import create_tables, get_engine, get_session
from settlement_kernel.db.locking import lock_for_update
from settlement_kernel.db.types import Money, PayloadHash, ShortCode, UTCDateTime
from settlement_kernel.db.unit_of_work import UnitOfWork

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "PayloadHash",
    "ShortCode",
    "UTCDateTime",
    "UnitOfWork",
    "lock_for_update",
]
