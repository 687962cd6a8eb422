"""
Module: stock_kernel.db.types
Responsibility: Column types and money helpers shared by every model and
    service.  Centralizes timestamp normalization and amount rounding so that
    all writers produce identical representations.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Timestamps round-trip as timezone-aware UTC on every backend.  SQLite
      has no timezone storage, so values are stored as naive UTC there and
      re-tagged on load.
    - round_amount() is the only rounding function for prices and totals
      (two places, ROUND_HALF_UP).
"""

from datetime import UTC
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator

AMOUNT_DECIMAL_PLACES = 2


class UTCDateTime(TypeDecorator):
    """
    DateTime that always loads as timezone-aware UTC.

    Guarantees:
        - process_bind_param: aware values are converted to UTC; naive
          values are assumed to already be UTC.
        - process_result_value: naive values are tagged with UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
            if dialect.name == "sqlite":
                value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def round_amount(value: Decimal) -> Decimal:
    """Quantize a price or total to two decimal places, ROUND_HALF_UP."""
    quantum = Decimal(1).scaleb(-AMOUNT_DECIMAL_PLACES)
    return value.quantize(quantum, rounding=ROUND_HALF_UP)
