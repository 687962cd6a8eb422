"""
Tests for pure domain values: ledger snapshots, result types, paging,
document numbering, and the exception hierarchy.
"""

from dataclasses import FrozenInstanceError
from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from stock_kernel.domain.dtos import LedgerDefaults, LedgerSnapshot, ResourceKind
from stock_kernel.domain.numbering import format_document_number
from stock_kernel.domain.paging import MAX_PAGE_SIZE, Page, PageRequest
from stock_kernel.domain.results import OutcomeStatus, StockRemovalResult, WorkflowOutcome
from stock_kernel.exceptions import (
    InsufficientStockError,
    InvalidStateTransitionError,
    LedgerNotFoundError,
    NotAuthorizedForTaskError,
    RequestNotFoundError,
    ResourceNotFoundError,
    ServiceRequestNotFoundError,
    StockKernelError,
    StockValidationError,
)

_NOW = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)


def _snapshot(**overrides) -> LedgerSnapshot:
    values = dict(
        id=1,
        resource_kind=ResourceKind.DEVICE,
        resource_id=10,
        quantity_in_stock=5,
        minimum_stock_level=5,
        maximum_stock_level=100,
        reorder_point=None,
        unit_cost=None,
        warehouse_location=None,
        notes=None,
        last_restocked_at=None,
        last_updated_by="SYSTEM",
        created_at=_NOW,
        updated_at=_NOW,
    )
    values.update(overrides)
    return LedgerSnapshot(**values)


# =========================================================================
# LedgerSnapshot
# =========================================================================


class TestLedgerSnapshot:
    def test_low_stock_is_inclusive(self):
        assert _snapshot(quantity_in_stock=5).is_low_stock
        assert not _snapshot(quantity_in_stock=6).is_low_stock

    def test_zero_minimum_means_unset(self):
        assert not _snapshot(quantity_in_stock=0, minimum_stock_level=0).is_low_stock
        assert not _snapshot(quantity_in_stock=0, minimum_stock_level=None).is_low_stock

    def test_out_of_stock(self):
        assert _snapshot(quantity_in_stock=0).is_out_of_stock
        assert not _snapshot(quantity_in_stock=1).is_out_of_stock

    def test_overstocked_is_inclusive(self):
        assert _snapshot(quantity_in_stock=100).is_overstocked
        assert not _snapshot(quantity_in_stock=99).is_overstocked

    def test_reorder(self):
        assert _snapshot(quantity_in_stock=3, reorder_point=3).needs_reorder
        assert not _snapshot(quantity_in_stock=3, reorder_point=None).needs_reorder

    def test_stock_value(self):
        assert _snapshot(quantity_in_stock=4, unit_cost=Decimal("2.50")).stock_value == Decimal("10.00")
        assert _snapshot(unit_cost=None).stock_value is None

    def test_negative_quantity_refused(self):
        with pytest.raises(ValueError):
            _snapshot(quantity_in_stock=-1)

    def test_frozen(self):
        snap = _snapshot()
        with pytest.raises(FrozenInstanceError):
            snap.quantity_in_stock = 99


class TestLedgerDefaults:
    def test_negative_threshold_refused(self):
        with pytest.raises(ValueError):
            LedgerDefaults(minimum_stock_level=-1, maximum_stock_level=10)

    def test_min_above_max_refused(self):
        with pytest.raises(ValueError):
            LedgerDefaults(minimum_stock_level=20, maximum_stock_level=10)

    def test_zero_max_means_unbounded(self):
        LedgerDefaults(minimum_stock_level=20, maximum_stock_level=0)


# =========================================================================
# Results
# =========================================================================


class TestStockRemovalResult:
    def test_failed_result_is_falsy_with_shortfall(self):
        result = StockRemovalResult(
            success=False, ledger=_snapshot(quantity_in_stock=3), requested_quantity=5
        )
        assert not result
        assert result.shortfall == 2

    def test_success_has_no_shortfall(self):
        result = StockRemovalResult(
            success=True, ledger=_snapshot(quantity_in_stock=0), requested_quantity=5
        )
        assert result
        assert result.shortfall == 0


class TestWorkflowOutcome:
    def test_success(self):
        outcome = WorkflowOutcome.success("value")
        assert outcome.is_success
        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.unwrap() == "value"

    @pytest.mark.parametrize(
        "error,status",
        [
            (InvalidStateTransitionError("Task", 1, "COMPLETED", "start"),
             OutcomeStatus.INVALID_STATE_TRANSITION),
            (InsufficientStockError("SPARE_PART", 1, 5, 2), OutcomeStatus.INSUFFICIENT_STOCK),
            (NotAuthorizedForTaskError(1, 7, 8), OutcomeStatus.NOT_AUTHORIZED),
        ],
    )
    def test_rejected_status_follows_error_type(self, error, status):
        outcome = WorkflowOutcome.rejected("unchanged", error)
        assert not outcome.is_success
        assert outcome.status == status
        assert outcome.value == "unchanged"

    def test_unwrap_raises_carried_error(self):
        error = InsufficientStockError("SPARE_PART", 1, 5, 2)
        with pytest.raises(InsufficientStockError) as exc_info:
            WorkflowOutcome.rejected(None, error).unwrap()
        assert exc_info.value is error


# =========================================================================
# Paging and numbering
# =========================================================================


class TestPaging:
    def test_defaults(self):
        page = PageRequest()
        assert (page.page, page.size, page.sort_by) == (0, 20, "id")
        assert page.offset == 0

    def test_offset(self):
        assert PageRequest(page=3, size=25).offset == 75

    @pytest.mark.parametrize("kwargs", [{"page": -1}, {"size": 0}, {"size": MAX_PAGE_SIZE + 1}])
    def test_invalid_requests(self, kwargs):
        with pytest.raises(StockValidationError):
            PageRequest(**kwargs)

    def test_page_metadata(self):
        page = Page(items=(1, 2), total=5, page=0, size=2)
        assert page.total_pages == 3
        assert page.has_next
        assert not Page(items=(), total=0, page=0, size=2).has_next


class TestDocumentNumbers:
    def test_format(self):
        assert format_document_number("TXN", date(2024, 3, 15), 7) == "TXN-20240315-000007"

    def test_width(self):
        assert format_document_number("TSK", date(2024, 1, 2), 12, width=3) == "TSK-20240102-012"

    def test_zero_refused(self):
        with pytest.raises(ValueError):
            format_document_number("TXN", date(2024, 3, 15), 0)


# =========================================================================
# Exceptions
# =========================================================================


class TestExceptions:
    def test_not_found_hierarchy(self):
        for cls in (LedgerNotFoundError, RequestNotFoundError, ServiceRequestNotFoundError):
            assert issubclass(cls, ResourceNotFoundError)
            assert issubclass(cls, StockKernelError)

    def test_codes_and_messages(self):
        err = ServiceRequestNotFoundError(12)
        assert err.code == "SERVICE_REQUEST_NOT_FOUND"
        assert err.entity_id == 12
        assert "12" in str(err)

    def test_validation_error_fields(self):
        err = StockValidationError("quantity", "must be > 0, got 0")
        assert err.field == "quantity"
        assert err.code == "VALIDATION_ERROR"
        assert str(err) == "Invalid quantity: must be > 0, got 0"

    def test_domain_errors_are_not_value_errors(self):
        assert not issubclass(StockValidationError, ValueError)
