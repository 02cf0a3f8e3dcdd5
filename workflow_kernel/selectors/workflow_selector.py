"""
Module: workflow_kernel.selectors.workflow_selector
Responsibility: Read-only views over workflow instances: a request's history
    (definition, current state, audit events) and the work queues of
    instances waiting in a given state.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Every query is tenant-scoped.
    - History events are ordered newest first; queues oldest ``updated_at``
      first so the longest-waiting request is handled first.

Failure modes:
    - Returns None / empty list on absence of data; never raises on it.
"""

from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from workflow_kernel.domain.dtos import (
    DefinitionInfo,
    EventInfo,
    PendingInstance,
    StateInfo,
    WorkflowHistory,
)
from workflow_kernel.domain.workflow import RequestStatus
from workflow_kernel.models.request import Request
from workflow_kernel.models.workflow import (
    WorkflowDefinition,
    WorkflowEvent,
    WorkflowInstance,
    WorkflowStateDefinition,
)
from workflow_kernel.selectors.base import BaseSelector

DEFAULT_QUEUE_LIMIT = 200


class WorkflowSelector(BaseSelector[WorkflowInstance]):
    """Selector for workflow instance queries."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get_history(self, tenant_id: UUID, request_id: UUID) -> WorkflowHistory | None:
        """A request's workflow position and audit trail, or None if it has no instance."""
        instance = self.session.execute(
            select(WorkflowInstance).where(
                WorkflowInstance.tenant_id == tenant_id,
                WorkflowInstance.request_id == request_id,
            )
        ).scalar_one_or_none()
        if instance is None:
            return None

        definition = self.session.get(WorkflowDefinition, instance.definition_id)
        states = {
            s.id: s
            for s in self.session.execute(
                select(WorkflowStateDefinition).where(
                    WorkflowStateDefinition.workflow_id == instance.definition_id,
                )
            ).scalars()
        }
        events = self.session.execute(
            select(WorkflowEvent)
            .where(
                WorkflowEvent.tenant_id == tenant_id,
                WorkflowEvent.instance_id == instance.id,
            )
            .order_by(WorkflowEvent.created_at.desc(), WorkflowEvent.id.desc())
        ).scalars()

        return WorkflowHistory(
            instance_id=instance.id,
            request_id=instance.request_id,
            definition=DefinitionInfo.from_model(definition),
            current_state=self._state_info(states[instance.current_state_id]),
            completed_at=instance.completed_at,
            events=tuple(self._event_info(e, states) for e in events),
        )

    def list_instances_in_state(
        self,
        tenant_id: UUID,
        state_code: str,
        limit: int = DEFAULT_QUEUE_LIMIT,
    ) -> list[PendingInstance]:
        """
        Instances currently in ``state_code`` whose request status agrees
        with the state's mapping, longest-waiting first.
        """
        rows = self.session.execute(
            select(WorkflowInstance, WorkflowStateDefinition, Request)
            .join(
                WorkflowStateDefinition,
                WorkflowStateDefinition.id == WorkflowInstance.current_state_id,
            )
            .join(
                Request,
                (Request.id == WorkflowInstance.request_id)
                & (Request.tenant_id == WorkflowInstance.tenant_id),
            )
            .where(
                WorkflowInstance.tenant_id == tenant_id,
                WorkflowStateDefinition.code == state_code,
                or_(
                    WorkflowStateDefinition.request_status.is_(None),
                    Request.status == WorkflowStateDefinition.request_status,
                ),
            )
            .order_by(WorkflowInstance.updated_at, WorkflowInstance.id)
            .limit(limit)
        ).all()

        return [
            PendingInstance(
                instance_id=instance.id,
                request_id=request.id,
                gtmi_number=request.gtmi_number,
                title=request.title,
                state_code=state.code,
                request_status=request.status,
                updated_at=instance.updated_at,
            )
            for instance, state, request in rows
        ]

    @staticmethod
    def _state_info(state: WorkflowStateDefinition) -> StateInfo:
        known = {s.value for s in RequestStatus}
        status = (
            RequestStatus(state.request_status)
            if state.request_status in known
            else None
        )
        return StateInfo(
            id=state.id,
            code=state.code,
            name=state.name,
            is_terminal=state.is_terminal,
            request_status=status,
        )

    @staticmethod
    def _event_info(
        event: WorkflowEvent,
        states: dict[UUID, WorkflowStateDefinition],
    ) -> EventInfo:
        from_state = states.get(event.from_state_id) if event.from_state_id else None
        to_state = states.get(event.to_state_id)
        return EventInfo(
            id=event.id,
            action=event.action,
            from_state=from_state.code if from_state is not None else None,
            to_state=to_state.code if to_state is not None else str(event.to_state_id),
            note=event.note,
            actor_user_id=event.actor_user_id,
            created_at=event.created_at,
        )
