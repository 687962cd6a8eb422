"""
stock_services -- composition layer above the stock kernel.

Wires kernel services together (``StockOrchestrator``), owns process-level
resources (``ApplicationContext``), and talks to the spare-parts service
over HTTP (``SparePartsClient``).
"""

from stock_services.app_context import ApplicationContext
from stock_services.spare_parts_client import SparePartsClient
from stock_services.stock_orchestrator import StockOrchestrator

__all__ = [
    "ApplicationContext",
    "SparePartsClient",
    "StockOrchestrator",
]
