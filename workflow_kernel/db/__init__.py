"""Database layer - engine, base classes, repositories."""

from workflow_kernel.db.base import UUID, Base, TimestampedBase, UTCDateTime, UUIDString
from workflow_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TimestampedBase",
    "UUIDString",
    "UTCDateTime",
    "UUID",
]
