"""Human-readable document numbers.

Numbers have the form ``PREFIX-YYYYMMDD-NNNNNN``.  The date part is the
UTC issue date and is informational only; uniqueness comes from the
counter, which is allocated from a locked row per series and never resets.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class DocumentPrefixes:
    transaction: str = "TXN"
    import_request: str = "DIR"
    export_request: str = "SPER"
    task: str = "TSK"
    sequence_width: int = 6


def format_document_number(prefix: str, issued_on: date, value: int, width: int = 6) -> str:
    if value <= 0:
        raise ValueError(f"Sequence value must be positive, got {value}")
    return f"{prefix}-{issued_on:%Y%m%d}-{value:0{width}d}"
