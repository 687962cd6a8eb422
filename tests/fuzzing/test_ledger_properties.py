"""
Property-based tests for the stock ledger.

For any sequence of adds, removes and adjustments:
- the quantity on hand never goes negative
- the ledger equals the replayed transaction log
- a removal succeeds exactly when enough stock is on hand
- rejected removals write nothing

Examples share one rolled-back session, so each example works on a fresh
resource id.
"""

import itertools

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from stock_kernel.domain.dtos import ResourceKind, TransactionType

_resource_ids = itertools.count(10_000)

operations = st.lists(
    st.one_of(
        st.tuples(st.just("add"), st.integers(min_value=1, max_value=50)),
        st.tuples(st.just("remove"), st.integers(min_value=1, max_value=60)),
        st.tuples(st.just("adjust"), st.integers(min_value=0, max_value=80)),
    ),
    min_size=1,
    max_size=25,
)

_settings = settings(
    max_examples=60,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)


@given(ops=operations, kind=st.sampled_from(list(ResourceKind)))
@_settings
def test_ledger_matches_model_and_log(orchestrator, test_actor, ops, kind):
    stock = orchestrator.stock
    log = orchestrator.transaction_log_selector
    resource_id = next(_resource_ids)
    expected = 0
    writes = 0

    for op, amount in ops:
        if op == "add":
            stock.add_stock(resource_id, amount, "fuzz", test_actor, resource_kind=kind)
            expected += amount
            writes += 1
        elif op == "remove":
            result = stock.remove_stock(resource_id, amount, "fuzz", test_actor, resource_kind=kind)
            assert result.success == (amount <= expected)
            if result.success:
                expected -= amount
                writes += 1
            else:
                assert result.shortfall == amount - expected
        else:
            stock.adjust_stock(resource_id, amount, "fuzz", test_actor, resource_kind=kind)
            expected = amount
            writes += 1

        assert stock.available_quantity(resource_id, kind) == expected
        assert expected >= 0

    entries = log.for_resource(resource_id, kind)
    assert len(entries) == writes
    assert log.replay_quantity(resource_id, kind) == expected
    assert log.verify_consistency(resource_id, kind)


@given(ops=operations)
@_settings
def test_log_entries_chain(orchestrator, test_actor, ops):
    """Each entry starts where the previous one ended, and change = after - before."""
    stock = orchestrator.stock
    resource_id = next(_resource_ids)

    for op, amount in ops:
        if op == "add":
            stock.add_stock(resource_id, amount, "fuzz", test_actor)
        elif op == "remove":
            stock.remove_stock(resource_id, amount, "fuzz", test_actor)
        else:
            stock.adjust_stock(resource_id, amount, "fuzz", test_actor)

    previous_after = 0
    for entry in orchestrator.transaction_log_selector.for_resource(resource_id):
        assert entry.quantity_before == previous_after
        assert entry.quantity_change == entry.quantity_after - entry.quantity_before
        assert entry.quantity_after >= 0
        if entry.transaction_type == TransactionType.IMPORT:
            assert entry.quantity_change > 0
        elif entry.transaction_type == TransactionType.EXPORT:
            assert entry.quantity_change < 0
        previous_after = entry.quantity_after
