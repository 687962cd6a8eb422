"""
Module: stock_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the integer primary key convention, the type annotation map for consistent
    column types, and the TrackedBase mixin for audit timestamps.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Opaque integer identifiers: every model inherits an autoincrement
      primary key assigned by the database.  Human-readable numbers
      (transaction/request/task numbers) are separate columns.
    - Timestamps are always timezone-aware UTC (UTCDateTime).
    - Decimal maps to Numeric(15, 2) for prices and amounts.

Audit relevance:
    TrackedBase.created_at and updated_at are set from the injected Clock by
    the owning service, never from the database server clock, so tests and
    replays produce identical timestamps.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import BigInteger, Integer, Numeric
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from stock_kernel.db.types import UTCDateTime

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
Identifier = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model in the system inherits from Base (or TrackedBase).
        Base provides an integer primary key and a type_annotation_map that
        keeps column types consistent across the schema.

    Guarantees:
        - id is assigned by the database on INSERT and never reused.
        - datetime maps to UTCDateTime -- always timezone-aware on load.
        - int maps to BigInteger (INTEGER on SQLite).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(15, 2),
        datetime: UTCDateTime(),
        int: Identifier,
    }

    id: Mapped[int] = mapped_column(
        Identifier,
        primary_key=True,
        autoincrement=True,
    )


class TrackedBase(Base):
    """
    Abstract base with creation and modification timestamps.

    Contract:
        Services set both columns from their Clock.  updated_at is audit
        metadata and may change on rows that are otherwise frozen.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )
