"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-side service.  Services receive a SQLAlchemy ``Session``
    that they use via ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back themselves.  The unit of work in
    ``stock_services.app_context`` (or a test harness) owns commit and
    rollback, which is what makes a ledger write, its log entry, and a
    workflow transition atomic.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for write-side services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Query-only methods belong in ``stock_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
