"""
ServiceRequestCompletionService -- closes the service request behind a task.

Implements ``LinkedRequestCompleter`` for TaskWorkflowService.  Called
synchronously inside the task's unit of work; the caller wraps the call in a
savepoint, so a failure here never undoes the task completion.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.exceptions import ServiceRequestNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.service_request import ServiceRequestModel, ServiceRequestStatus
from stock_kernel.services.base import BaseService

logger = get_logger("services.service_request_linkage")


class ServiceRequestCompletionService(BaseService):
    """Marks a customer service request COMPLETED.  Idempotent."""

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def complete_linked_request(
        self, service_request_id: int, task_number: str, actor: str
    ) -> None:
        service_request = self.session.execute(
            select(ServiceRequestModel)
            .where(ServiceRequestModel.id == service_request_id)
            .with_for_update()
        ).scalar_one_or_none()
        if service_request is None:
            raise ServiceRequestNotFoundError(service_request_id)
        if service_request.status == ServiceRequestStatus.COMPLETED.value:
            logger.debug(
                "service_request_already_completed",
                extra={"service_request_id": service_request_id},
            )
            return

        now = self._clock.now()
        service_request.status = ServiceRequestStatus.COMPLETED.value
        service_request.completed_at = now
        service_request.completion_comment = f"Service request completed via task: {task_number}"
        service_request.last_updated_by = actor
        service_request.updated_at = now
        self.session.flush()
        logger.info(
            "service_request_completed",
            extra={
                "service_request_id": service_request_id,
                "task_number": task_number,
            },
        )
