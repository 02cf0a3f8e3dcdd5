"""
Module: workflow_kernel.db.repositories
Responsibility: Tenant-scoped data access for the workflow tables and the
    owning request.  Services read and write definitions, states,
    transitions, instances and events only through these repositories.
Architecture position: Kernel > DB.  May import from db/base.py and models/.
    MUST NOT import from services/ or selectors/.

Invariants enforced:
    - Every query that can cross tenants filters on ``tenant_id``.
    - Repositories never commit.  ``add``/``append`` stage rows and flush so
      constraint violations surface inside the caller's transaction.
    - ``EventRepository`` exposes no update or delete path.

Failure modes:
    - IntegrityError from ``add``/``append`` on unique constraint violations.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from workflow_kernel.domain.workflow import RequestStatus
from workflow_kernel.models.request import Request
from workflow_kernel.models.workflow import (
    WorkflowDefinition,
    WorkflowEvent,
    WorkflowInstance,
    WorkflowStateDefinition,
    WorkflowTransitionDefinition,
)


class DefinitionRepository:
    """Access to versioned workflow definitions."""

    def __init__(self, session: Session):
        self.session = session

    def get_active(
        self,
        tenant_id: UUID,
        key: str,
        target_type: str,
        *,
        lock: bool = False,
    ) -> WorkflowDefinition | None:
        """
        Latest active definition for (tenant, key, target_type).

        With ``lock=True`` the row is locked FOR UPDATE and re-read, so
        concurrent provisioners serialize on it.
        """
        stmt = (
            select(WorkflowDefinition)
            .where(
                WorkflowDefinition.tenant_id == tenant_id,
                WorkflowDefinition.key == key,
                WorkflowDefinition.target_type == target_type,
                WorkflowDefinition.is_active.is_(True),
            )
            .order_by(WorkflowDefinition.version.desc())
            .limit(1)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def max_version(self, tenant_id: UUID, key: str) -> int:
        """Highest version ever created for (tenant, key), 0 if none."""
        value = self.session.execute(
            select(func.max(WorkflowDefinition.version)).where(
                WorkflowDefinition.tenant_id == tenant_id,
                WorkflowDefinition.key == key,
            )
        ).scalar_one_or_none()
        return int(value or 0)

    def list_versions(self, tenant_id: UUID, key: str) -> list[WorkflowDefinition]:
        return list(
            self.session.execute(
                select(WorkflowDefinition)
                .where(
                    WorkflowDefinition.tenant_id == tenant_id,
                    WorkflowDefinition.key == key,
                )
                .order_by(WorkflowDefinition.version)
            ).scalars()
        )

    def add(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        self.session.add(definition)
        self.session.flush()
        return definition


class StateRepository:
    """Access to the states of a definition."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, tenant_id: UUID, state_id: UUID) -> WorkflowStateDefinition | None:
        state = self.session.get(WorkflowStateDefinition, state_id)
        if state is None or state.tenant_id != tenant_id:
            return None
        return state

    def list_for(
        self,
        tenant_id: UUID,
        workflow_id: UUID,
    ) -> list[WorkflowStateDefinition]:
        return list(
            self.session.execute(
                select(WorkflowStateDefinition)
                .where(
                    WorkflowStateDefinition.tenant_id == tenant_id,
                    WorkflowStateDefinition.workflow_id == workflow_id,
                )
                .order_by(
                    WorkflowStateDefinition.sort_order,
                    WorkflowStateDefinition.code,
                )
            ).scalars()
        )

    def by_code(
        self,
        tenant_id: UUID,
        workflow_id: UUID,
    ) -> dict[str, WorkflowStateDefinition]:
        return {s.code: s for s in self.list_for(tenant_id, workflow_id)}

    def find_by_status(
        self,
        tenant_id: UUID,
        workflow_id: UUID,
        status: RequestStatus,
    ) -> WorkflowStateDefinition | None:
        """First state (by sort order) that maps to ``status``."""
        return self.session.execute(
            select(WorkflowStateDefinition)
            .where(
                WorkflowStateDefinition.tenant_id == tenant_id,
                WorkflowStateDefinition.workflow_id == workflow_id,
                WorkflowStateDefinition.request_status == status.value,
            )
            .order_by(
                WorkflowStateDefinition.sort_order,
                WorkflowStateDefinition.code,
            )
            .limit(1)
        ).scalar_one_or_none()

    def find_initial(
        self,
        tenant_id: UUID,
        workflow_id: UUID,
    ) -> WorkflowStateDefinition | None:
        return self.session.execute(
            select(WorkflowStateDefinition)
            .where(
                WorkflowStateDefinition.tenant_id == tenant_id,
                WorkflowStateDefinition.workflow_id == workflow_id,
                WorkflowStateDefinition.is_initial.is_(True),
            )
            .order_by(
                WorkflowStateDefinition.sort_order,
                WorkflowStateDefinition.code,
            )
            .limit(1)
        ).scalar_one_or_none()

    def add(self, state: WorkflowStateDefinition) -> WorkflowStateDefinition:
        self.session.add(state)
        self.session.flush()
        return state


class TransitionRepository:
    """Access to the transitions of a definition."""

    def __init__(self, session: Session):
        self.session = session

    def list_for(
        self,
        tenant_id: UUID,
        workflow_id: UUID,
    ) -> list[WorkflowTransitionDefinition]:
        return list(
            self.session.execute(
                select(WorkflowTransitionDefinition)
                .where(
                    WorkflowTransitionDefinition.tenant_id == tenant_id,
                    WorkflowTransitionDefinition.workflow_id == workflow_id,
                )
                .order_by(
                    WorkflowTransitionDefinition.sort_order,
                    WorkflowTransitionDefinition.action,
                )
            ).scalars()
        )

    def list_from(
        self,
        tenant_id: UUID,
        workflow_id: UUID,
        from_state_id: UUID,
    ) -> list[WorkflowTransitionDefinition]:
        """Transitions leaving a state, in declaration order."""
        return list(
            self.session.execute(
                select(WorkflowTransitionDefinition)
                .where(
                    WorkflowTransitionDefinition.tenant_id == tenant_id,
                    WorkflowTransitionDefinition.workflow_id == workflow_id,
                    WorkflowTransitionDefinition.from_state_id == from_state_id,
                )
                .order_by(
                    WorkflowTransitionDefinition.sort_order,
                    WorkflowTransitionDefinition.action,
                )
            ).scalars()
        )

    def add(
        self,
        transition: WorkflowTransitionDefinition,
    ) -> WorkflowTransitionDefinition:
        self.session.add(transition)
        self.session.flush()
        return transition


class InstanceRepository:
    """Access to per-request workflow instances."""

    def __init__(self, session: Session):
        self.session = session

    def get_for_request(
        self,
        tenant_id: UUID,
        request_id: UUID,
        *,
        lock: bool = False,
    ) -> WorkflowInstance | None:
        stmt = select(WorkflowInstance).where(
            WorkflowInstance.tenant_id == tenant_id,
            WorkflowInstance.request_id == request_id,
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def add(self, instance: WorkflowInstance) -> WorkflowInstance:
        self.session.add(instance)
        self.session.flush()
        return instance


class EventRepository:
    """Append-only access to the workflow audit trail."""

    def __init__(self, session: Session):
        self.session = session

    def append(self, event: WorkflowEvent) -> WorkflowEvent:
        self.session.add(event)
        self.session.flush()
        return event


@runtime_checkable
class RequestRepository(Protocol):
    """
    What the workflow engine needs from the request store.

    Implementations must scope every lookup by tenant.
    """

    def get_status(self, tenant_id: UUID, request_id: UUID) -> RequestStatus | None:
        """Current status, or None when the request does not exist."""
        ...

    def update_status(
        self,
        tenant_id: UUID,
        request_id: UUID,
        status: RequestStatus,
    ) -> bool:
        """Set the status; False when no request matched."""
        ...


class SqlRequestRepository:
    """RequestRepository over the ``requests`` table in the same session."""

    def __init__(self, session: Session):
        self.session = session

    def _get(self, tenant_id: UUID, request_id: UUID) -> Request | None:
        return self.session.execute(
            select(Request).where(
                Request.tenant_id == tenant_id,
                Request.id == request_id,
            )
        ).scalar_one_or_none()

    def get_status(self, tenant_id: UUID, request_id: UUID) -> RequestStatus | None:
        request = self._get(tenant_id, request_id)
        return request.status if request is not None else None

    def update_status(
        self,
        tenant_id: UUID,
        request_id: UUID,
        status: RequestStatus,
    ) -> bool:
        request = self._get(tenant_id, request_id)
        if request is None:
            return False
        request.status = status
        self.session.flush()
        return True
