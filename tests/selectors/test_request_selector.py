"""Tests for RequestSelector: lookups, search filters, review queue, statistics."""

from decimal import Decimal

import pytest

from stock_kernel.domain.paging import PageRequest, SortDirection
from stock_kernel.domain.requests import RequestFilter, RequestKind, RequestStatus
from stock_kernel.exceptions import RequestNotFoundError


@pytest.fixture
def requests_book(orchestrator, requests_service, make_import, stocked_part, clock, test_actor):
    """
    first    IMPORT  qty 10 @ 2.00, supplier 5        PENDING
    approved IMPORT  qty 5  @ 1.50                    APPROVED
    rejected IMPORT  qty 1                            REJECTED ("Duplicate order")
    export   EXPORT  qty 4 of part 501, task 9        ISSUED (3)
    late     IMPORT  qty 2, one hour after the rest   PENDING
    """
    first = make_import(101, 10, unit_price=Decimal("2.00"), supplier_id=5)
    approved = make_import(102, 5, unit_price=Decimal("1.50"))
    requests_service.approve(approved.id, None, "manager").unwrap()
    rejected = make_import(103, 1)
    requests_service.reject(rejected.id, "Duplicate order", "manager").unwrap()

    export = requests_service.create(
        RequestKind.EXPORT, stocked_part, 4, "Field repair", "storekeeper", task_id=9
    ).unwrap()
    requests_service.approve(export.id, None, "manager").unwrap()
    requests_service.issue(export.id, "storekeeper", issued_quantity=3).unwrap()

    clock.advance(seconds=3600)
    late = make_import(104, 2)

    return {
        "selector": orchestrator.request_selector,
        "first": first,
        "approved": approved,
        "rejected": rejected,
        "export": export,
        "late": late,
    }


class TestLookups:
    def test_get_and_get_by_number(self, requests_book):
        selector = requests_book["selector"]
        first = requests_book["first"]
        assert selector.get(first.id).request_number == first.request_number
        assert selector.get_by_number(first.request_number).id == first.id

    def test_missing(self, requests_book):
        with pytest.raises(RequestNotFoundError):
            requests_book["selector"].get(424242)
        with pytest.raises(RequestNotFoundError):
            requests_book["selector"].get_by_number("NOPE-20240315-000001")


class TestSearch:
    def test_by_kind_and_status(self, requests_book):
        selector = requests_book["selector"]
        assert selector.search(RequestFilter(kind=RequestKind.IMPORT)).total == 4
        page = selector.search(RequestFilter(status=RequestStatus.APPROVED))
        assert [r.id for r in page.items] == [requests_book["approved"].id]

    def test_keyword_covers_review_reason(self, requests_book):
        page = requests_book["selector"].search(RequestFilter(keyword="duplicate"))
        assert [r.id for r in page.items] == [requests_book["rejected"].id]

    def test_keyword_covers_request_reason(self, requests_book):
        assert requests_book["selector"].search(RequestFilter(keyword="RESTOCK")).total == 4

    def test_requester_supplier_and_task(self, requests_book):
        selector = requests_book["selector"]
        assert selector.search(RequestFilter(requested_by="storekeeper")).total == 1
        assert selector.search(RequestFilter(supplier_id=5)).total == 1
        page = selector.search(RequestFilter(task_id=9))
        assert page.items[0].issued_quantity == 3

    def test_sorted_by_quantity(self, requests_book):
        page = requests_book["selector"].search(
            page=PageRequest(sort_by="requested_quantity", direction=SortDirection.ASC)
        )
        assert [r.requested_quantity for r in page.items] == [1, 2, 4, 5, 10]


class TestReviewQueue:
    def test_pending_oldest_first(self, requests_book):
        pending = requests_book["selector"].pending_for_review()
        assert [r.id for r in pending] == [
            requests_book["first"].id,
            requests_book["late"].id,
        ]

    def test_pending_by_kind(self, requests_book):
        assert requests_book["selector"].pending_for_review(RequestKind.EXPORT) == []


class TestStatistics:
    def test_all_kinds(self, requests_book):
        stats = requests_book["selector"].statistics()
        assert stats.total == 5
        assert (stats.pending, stats.approved, stats.rejected) == (2, 1, 1)
        assert (stats.completed, stats.issued, stats.cancelled) == (0, 1, 0)
        assert stats.total_value == Decimal("27.50")
        assert stats.total_issued_quantity == 3

    def test_import_only(self, requests_book):
        stats = requests_book["selector"].statistics(RequestKind.IMPORT)
        assert stats.total == 4
        assert stats.issued == 0
        assert stats.total_issued_quantity == 0

    def test_empty(self, orchestrator):
        stats = orchestrator.request_selector.statistics()
        assert stats.total == 0
        assert stats.total_value == Decimal("0.00")
