"""Database layer - engine, base classes, types, and immutability."""

from stock_kernel.db.base import Base, TrackedBase
from stock_kernel.db.engine import (
    create_engine_from_url,
    create_tables,
    make_session_factory,
    session_scope,
)
from stock_kernel.db.types import UTCDateTime, round_amount

__all__ = [
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "create_engine_from_url",
    "create_tables",
    "make_session_factory",
    "round_amount",
    "session_scope",
]
