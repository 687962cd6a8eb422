"""Interface of the separately-operated spare-parts stock service.

The kernel only pushes movements through this protocol; the HTTP
implementation lives in ``stock_services.spare_parts_client``.  Calls are
not transactional with the local database.
"""

from __future__ import annotations

from typing import Protocol


class ExternalStockGateway(Protocol):
    """Raises ExternalServiceFailureError when a call does not succeed."""

    def add_stock(self, part_id: int, quantity: int, notes: str) -> None: ...

    def remove_stock(self, part_id: int, quantity: int, notes: str) -> None: ...
