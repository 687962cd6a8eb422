"""
Config -> Kernel Bridges.

Functions that convert ``StockLedgerConfig`` sections into kernel value
types.  They live in stock_config (the producer) because the kernel must
NEVER import stock_config.
"""

from __future__ import annotations

from stock_config.schema import StockLedgerConfig
from stock_kernel.domain.dtos import LedgerDefaults, ResourceKind
from stock_kernel.domain.numbering import DocumentPrefixes
from stock_kernel.domain.requests import RequestPolicy
from stock_kernel.domain.tasks import RejectionPolicy


def build_ledger_defaults(config: StockLedgerConfig) -> dict[ResourceKind, LedgerDefaults]:
    return {
        ResourceKind(kind): LedgerDefaults(
            minimum_stock_level=values.minimum_stock_level,
            maximum_stock_level=values.maximum_stock_level,
            reorder_point=values.reorder_point,
        )
        for kind, values in config.ledger_defaults.items()
    }


def build_document_prefixes(config: StockLedgerConfig) -> DocumentPrefixes:
    numbering = config.numbering
    return DocumentPrefixes(
        transaction=numbering.transaction_prefix,
        import_request=numbering.import_request_prefix,
        export_request=numbering.export_request_prefix,
        task=numbering.task_prefix,
        sequence_width=numbering.sequence_width,
    )


def build_request_policy(config: StockLedgerConfig) -> RequestPolicy:
    return RequestPolicy(
        max_reason_length=config.request_policy.max_reason_length,
        max_total_amount=config.request_policy.max_total_amount,
    )


def build_rejection_policy(config: StockLedgerConfig) -> RejectionPolicy:
    return RejectionPolicy(config.task_policy.rejection_policy)
