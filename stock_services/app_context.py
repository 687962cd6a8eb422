"""
ApplicationContext -- process-level wiring from configuration.

Responsibility:
    Turns a ``StockLedgerConfig`` into the long-lived objects a process
    needs: the engine, the session factory, the optional spare-parts
    client, and the kernel value types the orchestrator is built with.
    ``unit_of_work()`` hands out a fresh ``StockOrchestrator`` bound to a
    new session and commits or rolls back around it.

Architecture position:
    Services layer (outermost).  Imports stock_config and stock_kernel;
    nothing imports this module except entrypoints and tests.

Failure modes:
    - Any exception inside ``unit_of_work()`` rolls the session back and
      propagates.  Nothing from a failed unit of work reaches the database.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

import httpx
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from stock_config.bridges import (
    build_document_prefixes,
    build_ledger_defaults,
    build_rejection_policy,
    build_request_policy,
)
from stock_config.schema import StockLedgerConfig
from stock_kernel.db.engine import (
    create_engine_from_url,
    create_tables,
    make_session_factory,
    session_scope,
)
from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.logging_config import LogContext, configure_logging, get_logger
from stock_services.spare_parts_client import SparePartsClient
from stock_services.stock_orchestrator import StockOrchestrator

logger = get_logger("services.app_context")


class ApplicationContext:
    """Owns the engine and the external client for the life of a process."""

    def __init__(
        self,
        config: StockLedgerConfig,
        engine: Engine,
        session_factory: sessionmaker[Session],
        clock: Clock,
        spare_parts: SparePartsClient | None = None,
    ):
        self.config = config
        self.engine = engine
        self.session_factory = session_factory
        self.clock = clock
        self.spare_parts = spare_parts

        self._ledger_defaults = build_ledger_defaults(config)
        self._prefixes = build_document_prefixes(config)
        self._request_policy = build_request_policy(config)
        self._rejection_policy = build_rejection_policy(config)

    @classmethod
    def from_config(
        cls,
        config: StockLedgerConfig,
        *,
        clock: Clock | None = None,
        spare_parts_transport: httpx.BaseTransport | None = None,
        create_schema: bool = True,
    ) -> ApplicationContext:
        configure_logging(level=config.logging.level)
        register_immutability_listeners()

        engine = create_engine_from_url(
            config.database.url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
        )
        if create_schema:
            create_tables(engine)

        spare_parts = None
        service = config.spare_parts_service
        if service.enabled:
            spare_parts = SparePartsClient(
                service.base_url,
                api_token=service.api_token,
                timeout=service.timeout_seconds,
                transport=spare_parts_transport,
            )

        logger.info(
            "application_context_ready",
            extra={
                "checksum": config.checksum,
                "spare_parts_sync": spare_parts is not None,
            },
        )
        return cls(
            config,
            engine,
            make_session_factory(engine),
            clock or SystemClock(),
            spare_parts,
        )

    def orchestrator(self, session: Session) -> StockOrchestrator:
        return StockOrchestrator(
            session,
            self.clock,
            ledger_defaults=self._ledger_defaults,
            prefixes=self._prefixes,
            request_policy=self._request_policy,
            rejection_policy=self._rejection_policy,
            external_gateway=self.spare_parts,
        )

    @contextmanager
    def unit_of_work(self, actor: str | None = None) -> Generator[StockOrchestrator, None, None]:
        """
        One transaction: commit on normal exit, roll back on exception.

        Usage:
            with context.unit_of_work(actor="alice") as stock:
                stock.requests.approve(request_id, "ok", "alice")
        """
        with LogContext.bind(actor=actor):
            with session_scope(self.session_factory) as session:
                yield self.orchestrator(session)

    def close(self) -> None:
        if self.spare_parts is not None:
            self.spare_parts.close()
        self.engine.dispose()

    def __enter__(self) -> ApplicationContext:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

