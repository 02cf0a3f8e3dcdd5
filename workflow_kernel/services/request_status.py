"""
RequestStatusWriter -- the single workflow-driven write path for
``Request.status``.

Responsibility:
    Keeps the coarse, UI-facing request status in step with the workflow
    state an instance has just entered.  States without a status mapping
    leave the request untouched.

Architecture position:
    Kernel > Services.  Writes through a ``RequestRepository`` so the
    owning request store can be swapped out; never commits.

Failure modes:
    - InvalidRequestStatusError if the state maps to an unknown status.
    - RequestNotFoundError if the request vanished for the tenant.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from workflow_kernel.db.repositories import RequestRepository, SqlRequestRepository
from workflow_kernel.domain.workflow import RequestStatus
from workflow_kernel.exceptions import RequestNotFoundError
from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.request import Request
from workflow_kernel.models.workflow import WorkflowStateDefinition
from workflow_kernel.services.base import BaseService

logger = get_logger("services.request_status")


class RequestStatusWriter(BaseService[Request]):
    """Applies a workflow state's status mapping to the owning request."""

    def __init__(
        self,
        session: Session,
        request_repository: RequestRepository | None = None,
    ):
        super().__init__(session)
        self._requests = request_repository or SqlRequestRepository(session)

    def apply(
        self,
        tenant_id: UUID,
        request_id: UUID,
        state: WorkflowStateDefinition,
    ) -> RequestStatus | None:
        """
        Write the status ``state`` maps to, if it maps to one.

        Returns:
            The status written, or None when the state has no mapping.
        """
        status = state.mapped_status()
        if status is None:
            return None

        previous = self._requests.get_status(tenant_id, request_id)
        if not self._requests.update_status(tenant_id, request_id, status):
            raise RequestNotFoundError(str(tenant_id), str(request_id))

        logger.info(
            "request_status_synchronized",
            extra={
                "state_code": state.code,
                "from_status": previous.value if previous is not None else None,
                "to_status": status.value,
            },
        )
        return status
