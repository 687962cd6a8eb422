"""
End-to-end tests for ApplicationContext against a file-backed SQLite
database: configuration flows into the kernel, units of work commit or
roll back as a whole, and spare-part movements reach the remote service.
"""

import httpx
import pytest
import yaml

from stock_config import get_active_config
from stock_kernel.domain.dtos import ResourceKind
from stock_kernel.domain.requests import RequestKind, RequestStatus
from stock_kernel.domain.tasks import NewTask, TaskStatus, TaskType
from stock_services.app_context import ApplicationContext


@pytest.fixture
def make_context(tmp_path, clock):
    contexts = []

    def _make(overrides=None, transport=None):
        path = tmp_path / "override.yaml"
        path.write_text(yaml.safe_dump(overrides or {}))
        config = get_active_config(
            path,
            environ={"STOCK_LEDGER_DATABASE_URL": f"sqlite:///{tmp_path / 'app.db'}"},
        )
        context = ApplicationContext.from_config(
            config, clock=clock, spare_parts_transport=transport
        )
        contexts.append(context)
        return context

    yield _make
    for context in contexts:
        context.close()


class TestUnitOfWork:
    def test_commit_is_visible_to_next_unit(self, make_context):
        context = make_context()
        with context.unit_of_work(actor="alice") as stock:
            stock.stock.add_stock(1, 8, "Opening balance", "alice")

        with context.unit_of_work() as stock:
            assert stock.stock.available_quantity(1) == 8
            assert stock.transaction_log_selector.verify_consistency(1)

    def test_exception_rolls_back_everything(self, make_context):
        context = make_context()
        with pytest.raises(RuntimeError):
            with context.unit_of_work(actor="alice") as stock:
                stock.stock.add_stock(2, 5, "Will vanish", "alice")
                raise RuntimeError("boom")

        with context.unit_of_work() as stock:
            assert stock.ledger_selector.find(2) is None
            assert stock.transaction_log_selector.for_resource(2) == []

    def test_actor_bound_to_log_records(self, make_context, captured_logs):
        context = make_context()
        with context.unit_of_work(actor="alice") as stock:
            stock.stock.add_stock(3, 1, "Restock", "alice")

        record = next(r for r in captured_logs() if r["message"] == "stock_added")
        assert record["actor"] == "alice"

    def test_import_request_across_units(self, make_context):
        context = make_context()
        with context.unit_of_work() as stock:
            request = stock.requests.create(
                RequestKind.IMPORT, 40, 6, "Restock", "requester"
            ).unwrap()

        with context.unit_of_work() as stock:
            stock.requests.approve(request.id, "Budget ok", "manager").unwrap()

        with context.unit_of_work() as stock:
            assert stock.request_selector.get(request.id).status == RequestStatus.APPROVED
            assert stock.stock.available_quantity(40) == 6


class TestConfiguration:
    def test_thresholds_and_prefixes(self, make_context):
        context = make_context({
            "ledger_defaults": {"DEVICE": {"minimum_stock_level": 2, "maximum_stock_level": 20}},
            "numbering": {"task_prefix": "JOB"},
        })
        with context.unit_of_work() as stock:
            snap = stock.ledgers.get_or_create(10)
            task = stock.tasks.create(
                NewTask(title="Fit valve", task_type=TaskType.INSTALLATION, created_by="support")
            )

        assert snap.minimum_stock_level == 2
        assert snap.maximum_stock_level == 20
        assert task.task_number.startswith("JOB-")

    def test_requeue_policy(self, make_context):
        context = make_context({"task_policy": {"rejection_policy": "requeue"}})
        with context.unit_of_work() as stock:
            task = stock.tasks.create(
                NewTask(title="Fit valve", task_type=TaskType.INSTALLATION, created_by="support")
            )
            stock.tasks.assign(task.id, 7, "lead").unwrap()
            rejected = stock.tasks.reject(task.id, 7, "Out of area").unwrap()

        assert rejected.status == TaskStatus.PENDING
        assert rejected.assigned_technician_id is None


class TestSparePartsService:
    def test_disabled_by_default(self, make_context):
        assert make_context().spare_parts is None

    def test_movements_reach_service(self, make_context):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return httpx.Response(200, json={"success": True, "message": "OK", "data": None})

        context = make_context(
            {"spare_parts_service": {"enabled": True, "base_url": "http://parts.test"}},
            transport=httpx.MockTransport(handler),
        )
        with context.unit_of_work() as stock:
            stock.stock.add_stock(5, 4, "Inbound", "alice", resource_kind=ResourceKind.SPARE_PART)
            stock.stock.add_stock(5, 4, "Inbound", "alice", resource_kind=ResourceKind.DEVICE)

        assert seen == [("POST", "/api/v1/spare-part-inventory/5/add-stock")]

    def test_service_outage_does_not_block_local_write(self, make_context):
        context = make_context(
            {"spare_parts_service": {"enabled": True, "base_url": "http://parts.test"}},
            transport=httpx.MockTransport(lambda r: httpx.Response(503)),
        )
        with context.unit_of_work() as stock:
            stock.stock.add_stock(6, 2, "Inbound", "alice", resource_kind=ResourceKind.SPARE_PART)

        with context.unit_of_work() as stock:
            assert stock.stock.available_quantity(6, ResourceKind.SPARE_PART) == 2
