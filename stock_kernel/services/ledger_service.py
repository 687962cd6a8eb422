"""
ResourceLedgerService -- lazy creation and threshold maintenance of ledger rows.

Responsibility:
    Owns the lifecycle of ``ResourceLedgerModel`` rows: get-or-create with
    configured default thresholds, row locking for the mutation engine, and
    partial threshold updates.  Quantity changes are NOT made here; only
    StockMutationEngine changes quantity, always paired with a log entry.

Architecture position:
    Kernel > Services.  Used by StockMutationEngine and the orchestrator.

Invariants enforced:
    - Exactly one row per (resource_kind, resource_id): concurrent
      get-or-create calls for an unseen resource resolve to a single row.
      Strategy is optimistic insert inside a savepoint; the loser's
      IntegrityError is caught, the savepoint rolled back, and the winner's
      row re-read.  No pre-acquired lock, no error surfaced to the caller.
    - Thresholds are non-negative and minimum <= maximum when both set.

Failure modes:
    - DuplicateResourceError only if the insert collided AND the re-read
      still finds nothing (a concurrent delete, which listeners forbid).
    - StockValidationError on malformed threshold input.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import (
    DEFAULT_LEDGER_DEFAULTS,
    LedgerDefaults,
    LedgerSnapshot,
    ResourceKind,
)
from stock_kernel.exceptions import DuplicateResourceError, StockValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.ledger import ResourceLedgerModel
from stock_kernel.services.base import BaseService

logger = get_logger("services.ledger")

SYSTEM_ACTOR = "SYSTEM"


class ResourceLedgerService(BaseService):
    """
    Get-or-create and threshold updates for resource ledgers.

    Contract:
        Returns LedgerSnapshot DTOs from public methods; the ``*_model``
        helpers return ORM rows for StockMutationEngine, which lives in
        the same unit of work.

    Non-goals:
        - Does NOT change quantity_in_stock.
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        defaults: dict[ResourceKind, LedgerDefaults] | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._defaults = dict(DEFAULT_LEDGER_DEFAULTS)
        if defaults:
            self._defaults.update(defaults)

    # ------------------------------------------------------------------
    # Row access
    # ------------------------------------------------------------------

    def _select(self, resource_kind: ResourceKind, resource_id: int, *, lock: bool):
        stmt = select(ResourceLedgerModel).where(
            ResourceLedgerModel.resource_kind == resource_kind.value,
            ResourceLedgerModel.resource_id == resource_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_or_create_model(
        self,
        resource_id: int,
        resource_kind: ResourceKind = ResourceKind.DEVICE,
        *,
        lock: bool = False,
    ) -> ResourceLedgerModel:
        """
        Return the ledger row for a resource, inserting a default row if
        none exists.

        Postconditions:
            - Exactly one row exists for (resource_kind, resource_id).
            - With ``lock=True`` the row is locked for the rest of the
              transaction (check-then-write safety for removals).
        """
        ledger = self._select(resource_kind, resource_id, lock=lock)
        if ledger is not None:
            return ledger

        defaults = self._defaults[resource_kind]
        now = self._clock.now()
        savepoint = self.session.begin_nested()
        try:
            ledger = ResourceLedgerModel(
                resource_kind=resource_kind.value,
                resource_id=resource_id,
                quantity_in_stock=0,
                minimum_stock_level=defaults.minimum_stock_level,
                maximum_stock_level=defaults.maximum_stock_level,
                reorder_point=defaults.reorder_point,
                last_updated_by=SYSTEM_ACTOR,
                created_at=now,
                updated_at=now,
            )
            self.session.add(ledger)
            self.session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            # Lost the creation race: the winner's row is now visible.
            savepoint.rollback()
            logger.info(
                "ledger_create_race_retry",
                extra={
                    "resource_kind": resource_kind.value,
                    "resource_id": resource_id,
                },
            )
            ledger = self._select(resource_kind, resource_id, lock=lock)
            if ledger is None:
                raise DuplicateResourceError(resource_kind.value, resource_id) from exc
            return ledger

        logger.info(
            "ledger_created",
            extra={
                "resource_kind": resource_kind.value,
                "resource_id": resource_id,
                "minimum_stock_level": defaults.minimum_stock_level,
                "maximum_stock_level": defaults.maximum_stock_level,
            },
        )
        return ledger

    def find_model(
        self, resource_id: int, resource_kind: ResourceKind = ResourceKind.DEVICE
    ) -> ResourceLedgerModel | None:
        return self._select(resource_kind, resource_id, lock=False)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def get_or_create(
        self,
        resource_id: int,
        resource_kind: ResourceKind = ResourceKind.DEVICE,
    ) -> LedgerSnapshot:
        """Existing ledger for the resource, or a new default one."""
        return self.get_or_create_model(resource_id, resource_kind).to_dto()

    def update_thresholds(
        self,
        resource_id: int,
        actor: str,
        *,
        resource_kind: ResourceKind = ResourceKind.DEVICE,
        minimum_stock_level: int | None = None,
        maximum_stock_level: int | None = None,
        reorder_point: int | None = None,
        unit_cost: Decimal | None = None,
        warehouse_location: str | None = None,
        notes: str | None = None,
    ) -> LedgerSnapshot:
        """
        Partial update of thresholds and descriptive fields.

        Arguments left as None are not touched.

        Raises:
            StockValidationError: negative values, or minimum above maximum
                after the update is applied.
        """
        for field, value in (
            ("minimum_stock_level", minimum_stock_level),
            ("maximum_stock_level", maximum_stock_level),
            ("reorder_point", reorder_point),
        ):
            if value is not None and value < 0:
                raise StockValidationError(field, f"must be >= 0, got {value}")
        if unit_cost is not None and unit_cost < 0:
            raise StockValidationError("unit_cost", f"must be >= 0, got {unit_cost}")

        ledger = self.get_or_create_model(resource_id, resource_kind, lock=True)

        new_min = ledger.minimum_stock_level if minimum_stock_level is None else minimum_stock_level
        new_max = ledger.maximum_stock_level if maximum_stock_level is None else maximum_stock_level
        if new_min and new_max and new_min > new_max:
            raise StockValidationError(
                "minimum_stock_level",
                f"{new_min} exceeds maximum_stock_level {new_max}",
            )

        changes = {
            "minimum_stock_level": minimum_stock_level,
            "maximum_stock_level": maximum_stock_level,
            "reorder_point": reorder_point,
            "unit_cost": unit_cost,
            "warehouse_location": warehouse_location,
            "notes": notes,
        }
        applied = {k: v for k, v in changes.items() if v is not None}
        for key, value in applied.items():
            setattr(ledger, key, value)
        ledger.last_updated_by = actor
        ledger.updated_at = self._clock.now()
        self.session.flush()

        logger.info(
            "ledger_thresholds_updated",
            extra={
                "resource_kind": resource_kind.value,
                "resource_id": resource_id,
                "actor": actor,
                "fields": sorted(applied),
            },
        )
        return ledger.to_dto()
