"""Database layer - engine, base classes, types, and immutability."""

from bid_kernel.db.base import UUID, Base, UTCDateTime, UUIDString
from bid_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from bid_kernel.db.types import normalize_unit, parse_quantity

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "reset_engine",
    "Base",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "normalize_unit",
    "parse_quantity",
]
