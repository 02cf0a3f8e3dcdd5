"""
Module: workflow_kernel.models.workflow
Responsibility: ORM persistence for versioned workflow definitions, their
    states and transitions, per-request workflow instances, and the
    append-only audit trail of transitions.
Architecture position: Kernel > Models.  May import from db/base.py,
    exceptions and the pure domain enums.

Invariants enforced:
    - UNIQUE(tenant_id, key, version) on definitions.
    - At most one active definition per (tenant_id, key, target_type):
      partial unique index over ``is_active``.
    - UNIQUE(workflow_id, code) on states.
    - UNIQUE(workflow_id, from_state_id, action) on transitions: an action
      resolves to at most one edge from any state.
    - UNIQUE(tenant_id, request_id) on instances: one instance per request.
    - Instance updates carry an optimistic ``lock_version``.
    - WorkflowEvent rows are append-only (ORM listeners below).
    - WorkflowDefinition rows are never hard-deleted; they are superseded
      by deactivation.

Failure modes:
    - IntegrityError on any of the unique constraints above.  Provisioning
      and instance creation catch it inside a SAVEPOINT.
    - StaleDataError on a stale instance write (mapped to
      OptimisticLockError by the executor).
    - ImmutabilityViolationError on event UPDATE/DELETE or definition DELETE.

Audit relevance:
    WorkflowEvent is the per-request audit trail.  Every applied transition
    writes exactly one event; rejected transitions write none.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workflow_kernel.db.base import Base, TimestampedBase, UTCDateTime, UUIDString
from workflow_kernel.domain.workflow import RequestStatus, WorkflowTargetType
from workflow_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidRequestStatusError,
)


class WorkflowDefinition(TimestampedBase):
    """
    A versioned, tenant-scoped workflow definition.

    Contract:
        ``(tenant_id, key, version)`` identifies a definition.  Only one
        version per (tenant_id, key, target_type) is active at a time.

    Guarantees:
        - Never hard-deleted.  A new version is published by deactivating
          the current one and inserting version n+1.
        - ``spec_fingerprint`` records the checksum of the graph it was
          last reconciled against.
    """

    __tablename__ = "workflow_definitions"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "key", "version",
            name="uq_workflow_definition_version",
        ),
        Index(
            "uq_workflow_definition_active",
            "tenant_id", "key", "target_type",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    target_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=WorkflowTargetType.REQUEST.value,
    )
    version: Mapped[int] = mapped_column(nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    spec_fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)

    states: Mapped[list[WorkflowStateDefinition]] = relationship(
        "WorkflowStateDefinition",
        back_populates="workflow",
        order_by="WorkflowStateDefinition.sort_order",
        passive_deletes="all",
    )
    transitions: Mapped[list[WorkflowTransitionDefinition]] = relationship(
        "WorkflowTransitionDefinition",
        back_populates="workflow",
        order_by="WorkflowTransitionDefinition.sort_order",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        active = "active" if self.is_active else "inactive"
        return f"<WorkflowDefinition {self.key} v{self.version} ({active})>"


class WorkflowStateDefinition(Base):
    """
    A named state of a definition.

    ``request_status`` is stored as text and checked on use, so a row
    written by other tooling with an unknown status surfaces as
    InvalidRequestStatusError rather than a load failure.
    """

    __tablename__ = "workflow_state_definitions"

    __table_args__ = (
        UniqueConstraint("workflow_id", "code", name="uq_workflow_state_code"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_definitions.id"),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    sort_order: Mapped[int] = mapped_column(nullable=False, default=0)
    is_initial: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_terminal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    request_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    workflow: Mapped[WorkflowDefinition] = relationship(
        "WorkflowDefinition",
        back_populates="states",
    )

    def __repr__(self) -> str:
        return f"<WorkflowState {self.code}>"

    def mapped_status(self) -> RequestStatus | None:
        """
        The request status this state maps to, if any.

        Raises:
            InvalidRequestStatusError: stored value is not a RequestStatus.
        """
        if self.request_status is None:
            return None
        try:
            return RequestStatus(self.request_status)
        except ValueError:
            raise InvalidRequestStatusError(self.code, self.request_status) from None


class WorkflowTransitionDefinition(Base):
    """
    A directed edge between two states of the same definition.

    ``sort_order`` is the declaration position in the source graph and makes
    "first matching transition" lookups deterministic.
    """

    __tablename__ = "workflow_transition_definitions"

    __table_args__ = (
        UniqueConstraint(
            "workflow_id", "from_state_id", "action",
            name="uq_workflow_transition_action",
        ),
        Index("idx_workflow_transition_from", "workflow_id", "from_state_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_definitions.id"),
        nullable=False,
    )
    from_state_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_state_definitions.id"),
        nullable=False,
    )
    to_state_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_state_definitions.id"),
        nullable=False,
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    required_permission: Mapped[str | None] = mapped_column(
        String(100), nullable=True,
    )
    sort_order: Mapped[int] = mapped_column(nullable=False, default=0)

    workflow: Mapped[WorkflowDefinition] = relationship(
        "WorkflowDefinition",
        back_populates="transitions",
    )
    from_state: Mapped[WorkflowStateDefinition] = relationship(
        "WorkflowStateDefinition",
        foreign_keys=[from_state_id],
    )
    to_state: Mapped[WorkflowStateDefinition] = relationship(
        "WorkflowStateDefinition",
        foreign_keys=[to_state_id],
    )

    def __repr__(self) -> str:
        return f"<WorkflowTransition {self.action} {self.from_state_id}->{self.to_state_id}>"


class WorkflowInstance(Base):
    """
    A request's live position in a workflow definition.

    Contract:
        Exactly one instance per (tenant_id, request_id).  ``completed_at``
        is non-null iff the current state is terminal.

    Guarantees:
        - Every UPDATE bumps ``lock_version``; a writer holding a stale
          version fails with StaleDataError instead of overwriting.
        - ``definition_id`` never changes after creation, so publishing a
          new definition version leaves running instances on the old one.
    """

    __tablename__ = "workflow_instances"

    __table_args__ = (
        UniqueConstraint("tenant_id", "request_id", name="uq_workflow_instance_request"),
        Index("idx_workflow_instance_state", "tenant_id", "current_state_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    definition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_definitions.id"),
        nullable=False,
    )
    current_state_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_state_definitions.id"),
        nullable=False,
    )
    # Request rows belong to the RequestRepository store, which may be external
    request_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False,
    )
    lock_version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    definition: Mapped[WorkflowDefinition] = relationship("WorkflowDefinition")
    current_state: Mapped[WorkflowStateDefinition] = relationship(
        "WorkflowStateDefinition",
    )

    __mapper_args__ = {"version_id_col": lock_version}

    def __repr__(self) -> str:
        return f"<WorkflowInstance request={self.request_id} state={self.current_state_id}>"

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class WorkflowEvent(Base):
    """
    One applied transition.  Append-only.

    ``from_state_id`` is nullable so an event can record an instance's entry
    into its first state.
    """

    __tablename__ = "workflow_events"

    __table_args__ = (
        Index("idx_workflow_event_instance", "instance_id", "created_at"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    instance_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_instances.id"),
        nullable=False,
    )
    from_state_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_state_definitions.id"),
        nullable=True,
    )
    to_state_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_state_definitions.id"),
        nullable=False,
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False,
    )

    from_state: Mapped[WorkflowStateDefinition | None] = relationship(
        "WorkflowStateDefinition",
        foreign_keys=[from_state_id],
    )
    to_state: Mapped[WorkflowStateDefinition] = relationship(
        "WorkflowStateDefinition",
        foreign_keys=[to_state_id],
    )

    def __repr__(self) -> str:
        return f"<WorkflowEvent {self.action} instance={self.instance_id}>"


# =============================================================================
# ORM-Level Immutability
# =============================================================================


@event.listens_for(WorkflowEvent, "before_update")
def prevent_event_update(mapper, connection, target):
    """Prevent updates to workflow audit events."""
    raise ImmutabilityViolationError(
        entity_type="WorkflowEvent",
        entity_id=str(target.id),
        reason="Workflow events are immutable -- cannot modify",
    )


@event.listens_for(WorkflowEvent, "before_delete")
def prevent_event_delete(mapper, connection, target):
    """Prevent deletion of workflow audit events."""
    raise ImmutabilityViolationError(
        entity_type="WorkflowEvent",
        entity_id=str(target.id),
        reason="Workflow events are immutable -- cannot delete",
    )


@event.listens_for(WorkflowDefinition, "before_delete")
def prevent_definition_delete(mapper, connection, target):
    """Definitions are superseded by deactivation, never deleted."""
    raise ImmutabilityViolationError(
        entity_type="WorkflowDefinition",
        entity_id=str(target.id),
        reason="Workflow definitions cannot be deleted -- publish a new version",
    )
