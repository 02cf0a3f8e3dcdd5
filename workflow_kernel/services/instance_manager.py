"""
InstanceManager -- lazy bootstrap of a request's workflow instance.

Responsibility:
    Returns the workflow instance bound to a request, creating it on first
    use against the tenant's active definition.  The start state is
    recovered from the request's current status so requests that predate
    the engine (or were moved by legacy tooling) land in the matching
    state rather than at the beginning.

Architecture position:
    Kernel > Services -- imperative shell; never commits.

Invariants enforced:
    - One instance per (tenant, request).  Concurrent creators converge on
      a single row: the loser's INSERT fails inside a SAVEPOINT and the
      existing instance is returned.
    - An instance created in a terminal state is created completed.
    - ``ensure_instance`` is idempotent and never moves an existing
      instance.

Failure modes:
    - DefinitionNotFoundError: no active definition for the tenant.
    - RequestNotFoundError: the request does not exist for the tenant.
    - InitialStateNotFoundError: the active definition has no states.
"""

from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workflow_kernel.db.repositories import (
    DefinitionRepository,
    InstanceRepository,
    RequestRepository,
    SqlRequestRepository,
    StateRepository,
)
from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.workflow import RequestStatus, WorkflowSpec
from workflow_kernel.exceptions import (
    DefinitionNotFoundError,
    InitialStateNotFoundError,
    RequestNotFoundError,
)
from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.workflow import WorkflowInstance, WorkflowStateDefinition
from workflow_kernel.services.base import BaseService

logger = get_logger("services.instance_manager")


class InstanceManager(BaseService[WorkflowInstance]):
    """Get-or-create for workflow instances."""

    def __init__(
        self,
        session: Session,
        spec: WorkflowSpec,
        clock: Clock | None = None,
        request_repository: RequestRepository | None = None,
    ):
        super().__init__(session)
        self._spec = spec
        self._clock = clock or SystemClock()
        self._requests = request_repository or SqlRequestRepository(session)
        self._definitions = DefinitionRepository(session)
        self._states = StateRepository(session)
        self._instances = InstanceRepository(session)

    def ensure_instance(self, tenant_id: UUID, request_id: UUID) -> WorkflowInstance:
        """
        Return the request's instance, creating it if needed.

        Preconditions:
            The tenant's definition has been provisioned.
        """
        existing = self._instances.get_for_request(tenant_id, request_id)
        if existing is not None:
            return existing

        target_type = self._spec.target_type.value
        definition = self._definitions.get_active(tenant_id, self._spec.key, target_type)
        if definition is None:
            raise DefinitionNotFoundError(str(tenant_id), self._spec.key, target_type)

        status = self._requests.get_status(tenant_id, request_id)
        if status is None:
            raise RequestNotFoundError(str(tenant_id), str(request_id))

        state = self.resolve_start_state(tenant_id, definition.id, status)
        now = self._clock.now()

        savepoint = self.session.begin_nested()
        try:
            instance = WorkflowInstance(
                tenant_id=tenant_id,
                definition_id=definition.id,
                current_state_id=state.id,
                request_id=request_id,
                completed_at=now if state.is_terminal else None,
                created_at=now,
                updated_at=now,
            )
            self.session.add(instance)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "instance_create_race_retry",
                extra={"tenant_id": str(tenant_id), "request_id": str(request_id)},
            )
            winner = self._instances.get_for_request(tenant_id, request_id)
            if winner is None:
                raise
            return winner

        logger.info(
            "instance_created",
            extra={
                "tenant_id": str(tenant_id),
                "request_id": str(request_id),
                "instance_id": str(instance.id),
                "definition_id": str(definition.id),
                "definition_version": definition.version,
                "start_state": state.code,
                "request_status": status.value,
            },
        )
        return instance

    def resolve_start_state(
        self,
        tenant_id: UUID,
        definition_id: UUID,
        status: RequestStatus,
    ) -> WorkflowStateDefinition:
        """
        Pick the state a new instance starts in.

        Order: the state mapping ``status``, then the initial state, then
        the first state by sort order.
        """
        state = self._states.find_by_status(tenant_id, definition_id, status)
        if state is None:
            state = self._states.find_initial(tenant_id, definition_id)
        if state is None:
            ordered = self._states.list_for(tenant_id, definition_id)
            state = ordered[0] if ordered else None
        if state is None:
            raise InitialStateNotFoundError(str(definition_id))
        return state
