"""Database layer - engine, base classes, column types, append-only listeners."""

from fieldwork_kernel.db.base import Base, TrackedBase, new_id
from fieldwork_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from fieldwork_kernel.db.types import Identifier, LongText, Money, Name, ShortCode, UTCDateTime

__all__ = [
    "Base",
    "Identifier",
    "LongText",
    "Money",
    "Name",
    "ShortCode",
    "TrackedBase",
    "UTCDateTime",
    "create_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "new_id",
    "reset_engine",
    "session_scope",
]
