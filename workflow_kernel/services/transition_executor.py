"""
TransitionExecutor -- move a request's workflow instance along one edge.

Responsibility:
    Resolves a transition leaving the instance's current state, either by
    action name or by the request status its destination maps to, checks
    the actor's capability when grants are supplied, and applies the
    transition: instance update, request status synchronisation and one
    audit event, all inside the caller's transaction.

Architecture position:
    Kernel > Services -- thin coordinator over InstanceManager,
    RequestStatusWriter and the repositories.  Never commits.

Invariants enforced:
    - A rejected transition (no matching edge, or capability denied)
      mutates nothing: no instance change, no status write, no event.
    - An applied transition writes exactly one WorkflowEvent.
    - ``completed_at`` is set iff the destination state is terminal.
    - Candidate edges are evaluated in declaration order, so "first
      matching transition" is deterministic.
    - The instance row is locked (FOR UPDATE, re-read) before the current
      state is inspected; a stale write still slipping through fails on
      ``lock_version``.

Failure modes:
    - OptimisticLockError: the instance changed under this transaction.
    - DefinitionNotFoundError / RequestNotFoundError /
      InitialStateNotFoundError: bubbled from instance bootstrap.
    - InvalidRequestStatusError: destination maps to an unknown status
      (raised before anything is mutated).
    - ValueError: ``transition_to_status`` given an unknown status.

Audit relevance:
    Every call logs one ``workflow_transition`` trace with its outcome
    (success, no_transition, permission_denied, conflict) and duration.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from workflow_kernel.db.repositories import (
    EventRepository,
    InstanceRepository,
    RequestRepository,
    StateRepository,
    TransitionRepository,
)
from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.permissions import (
    AdvisoryPermissionChecker,
    PermissionChecker,
)
from workflow_kernel.domain.workflow import (
    RequestStatus,
    StateRef,
    TransitionRejection,
    TransitionResult,
    TransitionSpec,
    WorkflowSpec,
)
from workflow_kernel.exceptions import OptimisticLockError
from workflow_kernel.logging_config import LogContext, get_logger
from workflow_kernel.models.workflow import (
    WorkflowEvent,
    WorkflowInstance,
    WorkflowStateDefinition,
    WorkflowTransitionDefinition,
)
from workflow_kernel.services.base import BaseService
from workflow_kernel.services.instance_manager import InstanceManager
from workflow_kernel.services.request_status import RequestStatusWriter

logger = get_logger("services.transition_executor")

TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
OUTCOME_SUCCESS = "success"
OUTCOME_NO_TRANSITION = "no_transition"
OUTCOME_PERMISSION_DENIED = "permission_denied"
OUTCOME_CONFLICT = "conflict"

TransitionSelector = Callable[
    [list[WorkflowTransitionDefinition]],
    WorkflowTransitionDefinition | None,
]


def _emit_transition_trace(
    workflow_key: str,
    requested: str,
    request_id: UUID,
    from_state: str,
    outcome: str,
    reason: str,
    duration_ms: float,
    action: str | None = None,
    to_state: str | None = None,
    required_permission: str | None = None,
    instance_id: UUID | None = None,
) -> None:
    """Emit a structured workflow transition record."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
        "workflow": workflow_key,
        "requested": requested,
        "entity_type": "REQUEST",
        "entity_id": str(request_id),
        "from_state": from_state,
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
    }
    if action is not None:
        record["action"] = action
    if to_state is not None:
        record["to_state"] = to_state
    if required_permission is not None:
        record["required_permission"] = required_permission
    if instance_id is not None:
        record["workflow_instance_id"] = str(instance_id)
    level = logger.warning if outcome == OUTCOME_CONFLICT else logger.info
    level("workflow_transition", extra=record)


class TransitionExecutor(BaseService[WorkflowInstance]):
    """
    Applies workflow transitions to request instances.

    Contract:
        Returns a TransitionResult for every expected outcome; only
        conflicts and bootstrap failures raise.

    Non-goals:
        - Does NOT retry on conflict.
        - Does NOT evaluate permissions unless ``actor_permissions`` is
          passed; otherwise ``required_permission`` is reported for the
          caller to enforce.
    """

    def __init__(
        self,
        session: Session,
        spec: WorkflowSpec,
        clock: Clock | None = None,
        permission_checker: PermissionChecker | None = None,
        request_repository: RequestRepository | None = None,
    ):
        super().__init__(session)
        self._spec = spec
        self._clock = clock or SystemClock()
        self._permission_checker = permission_checker or AdvisoryPermissionChecker()
        self._instance_manager = InstanceManager(
            session, spec, self._clock, request_repository,
        )
        self._status_writer = RequestStatusWriter(session, request_repository)
        self._instances = InstanceRepository(session)
        self._states = StateRepository(session)
        self._transitions = TransitionRepository(session)
        self._events = EventRepository(session)

    def transition_by_action(
        self,
        tenant_id: UUID,
        request_id: UUID,
        action: str,
        actor_user_id: UUID | None = None,
        note: str | None = None,
        actor_permissions: Iterable[str] | None = None,
    ) -> TransitionResult:
        """Apply the transition named ``action`` from the current state."""

        def select_by_action(candidates):
            for candidate in candidates:
                if candidate.action == action:
                    return candidate
            return None

        return self._execute(
            tenant_id,
            request_id,
            requested=action,
            select=select_by_action,
            actor_user_id=actor_user_id,
            note=note,
            actor_permissions=actor_permissions,
        )

    def transition_to_status(
        self,
        tenant_id: UUID,
        request_id: UUID,
        target_status: RequestStatus | str,
        actor_user_id: UUID | None = None,
        note: str | None = None,
        actor_permissions: Iterable[str] | None = None,
    ) -> TransitionResult:
        """
        Apply the first transition whose destination maps to ``target_status``.

        Raises:
            ValueError: ``target_status`` is not a RequestStatus value.
        """
        target = RequestStatus(target_status)

        def select_by_status(candidates):
            for candidate in candidates:
                destination = self._states.get(tenant_id, candidate.to_state_id)
                if destination is not None and destination.request_status == target.value:
                    return candidate
            return None

        return self._execute(
            tenant_id,
            request_id,
            requested=f"status:{target.value}",
            select=select_by_status,
            actor_user_id=actor_user_id,
            note=note,
            actor_permissions=actor_permissions,
        )

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _execute(
        self,
        tenant_id: UUID,
        request_id: UUID,
        requested: str,
        select: TransitionSelector,
        actor_user_id: UUID | None,
        note: str | None,
        actor_permissions: Iterable[str] | None,
    ) -> TransitionResult:
        t0 = time.monotonic()

        with LogContext.bind(
            tenant_id=tenant_id,
            request_id=request_id,
            actor_id=actor_user_id,
            workflow_key=self._spec.key,
        ):
            bootstrapped = self._instance_manager.ensure_instance(tenant_id, request_id)
            # Serialise with concurrent executors and re-read the committed state
            instance = self._instances.get_for_request(tenant_id, request_id, lock=True)
            if instance is None:
                raise OptimisticLockError("WorkflowInstance", str(bootstrapped.id))

            with LogContext.bind(instance_id=instance.id):
                return self._resolve(
                    instance,
                    requested,
                    select,
                    actor_user_id,
                    note,
                    actor_permissions,
                    t0,
                )

    def _resolve(
        self,
        instance: WorkflowInstance,
        requested: str,
        select: TransitionSelector,
        actor_user_id: UUID | None,
        note: str | None,
        actor_permissions: Iterable[str] | None,
        t0: float,
    ) -> TransitionResult:
        tenant_id = instance.tenant_id
        request_id = instance.request_id
        current = self._states.get(tenant_id, instance.current_state_id)
        candidates = self._transitions.list_from(
            tenant_id, instance.definition_id, instance.current_state_id,
        )
        transition = select(candidates)

        if transition is None:
            reason = f"No transition from '{current.code}' for '{requested}'"
            _emit_transition_trace(
                workflow_key=self._spec.key,
                requested=requested,
                request_id=request_id,
                from_state=current.code,
                outcome=OUTCOME_NO_TRANSITION,
                reason=reason,
                duration_ms=(time.monotonic() - t0) * 1000,
                instance_id=instance.id,
            )
            return TransitionResult.rejected(
                TransitionRejection.TRANSITION_NOT_ALLOWED,
                action=None if requested.startswith("status:") else requested,
            )

        destination = self._states.get(tenant_id, transition.to_state_id)

        if actor_permissions is not None and not self._permission_checker.can_execute(
            actor_permissions,
            self._as_spec(transition, current, destination),
        ):
            _emit_transition_trace(
                workflow_key=self._spec.key,
                requested=requested,
                request_id=request_id,
                from_state=current.code,
                outcome=OUTCOME_PERMISSION_DENIED,
                reason=f"Missing permission {transition.required_permission}",
                duration_ms=(time.monotonic() - t0) * 1000,
                action=transition.action,
                to_state=destination.code,
                required_permission=transition.required_permission,
                instance_id=instance.id,
            )
            return TransitionResult.rejected(
                TransitionRejection.PERMISSION_DENIED,
                action=transition.action,
                required_permission=transition.required_permission,
            )

        # Validate the mapping before anything is written
        to_status = destination.mapped_status()

        return self._apply(
            instance=instance,
            current=current,
            destination=destination,
            transition=transition,
            to_status=to_status,
            requested=requested,
            actor_user_id=actor_user_id,
            note=note,
            t0=t0,
        )

    def _apply(
        self,
        instance: WorkflowInstance,
        current: WorkflowStateDefinition,
        destination: WorkflowStateDefinition,
        transition: WorkflowTransitionDefinition,
        to_status: RequestStatus | None,
        requested: str,
        actor_user_id: UUID | None,
        note: str | None,
        t0: float,
    ) -> TransitionResult:
        now = self._clock.now()
        # A failed flush leaves the session unusable; the conflict path
        # reads only these
        instance_id = instance.id
        request_id = instance.request_id
        from_code = current.code
        to_code = destination.code
        action = transition.action

        instance.current_state_id = destination.id
        instance.completed_at = now if destination.is_terminal else None
        instance.updated_at = now

        try:
            self.session.flush()
        except StaleDataError:
            _emit_transition_trace(
                workflow_key=self._spec.key,
                requested=requested,
                request_id=request_id,
                from_state=from_code,
                outcome=OUTCOME_CONFLICT,
                reason="Instance modified by another transaction",
                duration_ms=(time.monotonic() - t0) * 1000,
                action=action,
                to_state=to_code,
                instance_id=instance_id,
            )
            raise OptimisticLockError("WorkflowInstance", str(instance_id)) from None

        self._status_writer.apply(instance.tenant_id, instance.request_id, destination)

        self._events.append(
            WorkflowEvent(
                tenant_id=instance.tenant_id,
                instance_id=instance.id,
                from_state_id=current.id,
                to_state_id=destination.id,
                action=transition.action,
                note=note,
                actor_user_id=actor_user_id,
                created_at=now,
            )
        )

        _emit_transition_trace(
            workflow_key=self._spec.key,
            requested=requested,
            request_id=instance.request_id,
            from_state=current.code,
            outcome=OUTCOME_SUCCESS,
            reason="Transition applied",
            duration_ms=(time.monotonic() - t0) * 1000,
            action=transition.action,
            to_state=destination.code,
            required_permission=transition.required_permission,
            instance_id=instance.id,
        )

        return TransitionResult.applied(
            action=transition.action,
            required_permission=transition.required_permission,
            to_state=StateRef(
                id=destination.id,
                code=destination.code,
                request_status=to_status,
            ),
        )

    @staticmethod
    def _as_spec(
        transition: WorkflowTransitionDefinition,
        current: WorkflowStateDefinition,
        destination: WorkflowStateDefinition,
    ) -> TransitionSpec:
        return TransitionSpec(
            from_state=current.code,
            to_state=destination.code,
            action=transition.action,
            required_permission=transition.required_permission,
        )
