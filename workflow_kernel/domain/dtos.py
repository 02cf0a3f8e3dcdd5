"""
DTOs -- read-side data transfer objects for the workflow engine.

Responsibility:
    Frozen structures returned by the facade and the workflow selector, so
    callers outside the session never hold live ORM rows.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model`` converters exist at
    the boundary and are only invoked from services and selectors.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from workflow_kernel.domain.workflow import RequestStatus

if TYPE_CHECKING:
    from workflow_kernel.models.workflow import WorkflowDefinition


@dataclass(frozen=True)
class DefinitionInfo:
    """Identity of a provisioned workflow definition."""

    id: UUID
    tenant_id: UUID
    key: str
    name: str
    version: int
    is_active: bool
    spec_fingerprint: str | None = None

    @classmethod
    def from_model(cls, model: WorkflowDefinition) -> DefinitionInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            key=model.key,
            name=model.name,
            version=model.version,
            is_active=model.is_active,
            spec_fingerprint=model.spec_fingerprint,
        )


@dataclass(frozen=True)
class StateInfo:
    id: UUID
    code: str
    name: str
    is_terminal: bool
    request_status: RequestStatus | None


@dataclass(frozen=True)
class EventInfo:
    """One audit event, with state codes resolved."""

    id: UUID
    action: str
    from_state: str | None
    to_state: str
    note: str | None
    actor_user_id: UUID | None
    created_at: datetime


@dataclass(frozen=True)
class WorkflowHistory:
    """
    A request's workflow position and its audit trail.

    ``events`` are ordered newest first.
    """

    instance_id: UUID
    request_id: UUID
    definition: DefinitionInfo
    current_state: StateInfo
    completed_at: datetime | None
    events: tuple[EventInfo, ...]


@dataclass(frozen=True)
class PendingInstance:
    """An instance waiting in a queue state (approval worklists)."""

    instance_id: UUID
    request_id: UUID
    gtmi_number: str
    title: str
    state_code: str
    request_status: RequestStatus
    updated_at: datetime
