"""
DefinitionProvisioner -- materialise a static workflow graph per tenant.

Responsibility:
    Ensures that a tenant has an active, versioned definition whose states
    and transitions match the canonical graph, creating version 1 on first
    use and repairing drift in place on every later call.  Also publishes a
    new definition version on demand.

Architecture position:
    Kernel > Services -- imperative shell.  Reads and writes through the
    definition/state/transition repositories; never commits.

Invariants enforced:
    - At most one active definition per (tenant, key, target type).
      Concurrent first-time provisioning converges on the winner's row:
      the loser's INSERT fails on the partial unique index inside a
      SAVEPOINT, the savepoint is rolled back and the winner is re-read.
    - Reconciliation runs under a row lock on the active definition.
    - States are matched by code, transitions by (from state, action).
      Rows present in the store but absent from the graph are left in
      place and reported, never deleted.

Failure modes:
    - WorkflowConfigError if the graph has no states, references unknown
      state codes, leaves a terminal state or declares the same
      (from state, action) twice.
    - IntegrityError from a concurrent creator that could not be resolved
      to an active definition (re-raised).

Audit relevance:
    ``definition_created``, ``definition_reconciled`` and
    ``definition_version_published`` are logged with the tenant, key,
    version and the graph fingerprint.
"""

from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workflow_kernel.db.repositories import (
    DefinitionRepository,
    StateRepository,
    TransitionRepository,
)
from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.workflow import WorkflowSpec
from workflow_kernel.exceptions import WorkflowConfigError
from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.workflow import (
    WorkflowDefinition,
    WorkflowStateDefinition,
    WorkflowTransitionDefinition,
)
from workflow_kernel.services.base import BaseService

logger = get_logger("services.definition_provisioner")


class DefinitionProvisioner(BaseService[WorkflowDefinition]):
    """
    Idempotent provisioning of a workflow definition for a tenant.

    Contract:
        ``ensure_definition`` may be called any number of times, from any
        number of transactions, and always leaves exactly one active
        definition whose states and transitions cover the graph.

    Non-goals:
        - Does NOT migrate running instances between versions.
        - Does NOT delete states or transitions.
    """

    def __init__(
        self,
        session: Session,
        spec: WorkflowSpec,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._spec = spec
        self._clock = clock or SystemClock()
        self._definitions = DefinitionRepository(session)
        self._states = StateRepository(session)
        self._transitions = TransitionRepository(session)

    @property
    def spec(self) -> WorkflowSpec:
        return self._spec

    def ensure_definition(self, tenant_id: UUID) -> WorkflowDefinition:
        """
        Return the tenant's active definition, creating or repairing it.

        Postconditions:
            - The returned definition is active and locked for the rest of
              the caller's transaction.
            - Every state and transition of the graph exists with the
              graph's attributes.
        """
        self._check_graph()

        definition = self._definitions.get_active(
            tenant_id,
            self._spec.key,
            self._spec.target_type.value,
            lock=True,
        )
        if definition is None:
            definition = self._create_definition(tenant_id)

        self._reconcile(definition)
        return definition

    def publish_new_version(self, tenant_id: UUID) -> WorkflowDefinition:
        """
        Deactivate the current definition and materialise version n+1.

        Instances already bound to the previous version keep it.
        """
        self._check_graph()

        current = self._definitions.get_active(
            tenant_id,
            self._spec.key,
            self._spec.target_type.value,
            lock=True,
        )
        previous_version = None
        if current is not None:
            previous_version = current.version
            current.is_active = False
            # Deactivation must reach the partial unique index first
            self.session.flush()

        version = self._definitions.max_version(tenant_id, self._spec.key) + 1
        definition = self._definitions.add(self._new_definition(tenant_id, version))
        self._reconcile(definition)

        logger.info(
            "definition_version_published",
            extra={
                "tenant_id": str(tenant_id),
                "key": self._spec.key,
                "version": version,
                "previous_version": previous_version,
                "spec_fingerprint": self._spec.fingerprint,
            },
        )
        return definition

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _check_graph(self) -> None:
        codes = {s.code for s in self._spec.states}
        errors = [
            f"Transition {t.action} references unknown state "
            f"{t.from_state if t.from_state not in codes else t.to_state}"
            for t in self._spec.transitions
            if t.from_state not in codes or t.to_state not in codes
        ]
        errors.extend(
            f"Duplicate transition {action} from {from_state}"
            for from_state, action in self._spec.ambiguous_transitions()
        )
        for state in self._spec.states:
            if state.is_terminal:
                errors.extend(
                    f"Transition {t.action} leaves terminal state {state.code}"
                    for t in self._spec.transitions_from(state.code)
                )
        if self._spec.initial_state is None:
            errors.append("Graph declares no states")
        if errors:
            raise WorkflowConfigError(self._spec.key, errors)

    def _new_definition(self, tenant_id: UUID, version: int) -> WorkflowDefinition:
        now = self._clock.now()
        return WorkflowDefinition(
            created_at=now,
            updated_at=now,
            tenant_id=tenant_id,
            key=self._spec.key,
            name=self._spec.name,
            target_type=self._spec.target_type.value,
            version=version,
            is_active=True,
            spec_fingerprint=self._spec.fingerprint or None,
        )

    def _create_definition(self, tenant_id: UUID) -> WorkflowDefinition:
        version = self._definitions.max_version(tenant_id, self._spec.key) + 1

        # Savepoint so a lost race does not roll back the caller's work
        savepoint = self.session.begin_nested()
        try:
            definition = self._new_definition(tenant_id, version)
            self.session.add(definition)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "definition_create_race_retry",
                extra={"tenant_id": str(tenant_id), "key": self._spec.key},
            )
            self.session.expire_all()
            winner = self._definitions.get_active(
                tenant_id,
                self._spec.key,
                self._spec.target_type.value,
                lock=True,
            )
            if winner is None:
                raise
            return winner

        logger.info(
            "definition_created",
            extra={
                "tenant_id": str(tenant_id),
                "key": self._spec.key,
                "version": version,
                "definition_id": str(definition.id),
            },
        )
        return definition

    def _reconcile(self, definition: WorkflowDefinition) -> None:
        created_states = updated_states = 0
        existing_states = self._states.by_code(definition.tenant_id, definition.id)

        for state_spec in self._spec.states:
            status = (
                state_spec.request_status.value
                if state_spec.request_status is not None
                else None
            )
            row = existing_states.get(state_spec.code)
            if row is None:
                row = WorkflowStateDefinition(
                    tenant_id=definition.tenant_id,
                    workflow_id=definition.id,
                    code=state_spec.code,
                    name=state_spec.name,
                    sort_order=state_spec.sort_order,
                    is_initial=state_spec.is_initial,
                    is_terminal=state_spec.is_terminal,
                    request_status=status,
                )
                self.session.add(row)
                existing_states[state_spec.code] = row
                created_states += 1
                continue

            wanted = {
                "name": state_spec.name,
                "sort_order": state_spec.sort_order,
                "is_initial": state_spec.is_initial,
                "is_terminal": state_spec.is_terminal,
                "request_status": status,
            }
            if _apply_changes(row, wanted):
                updated_states += 1

        # State ids are needed for the transition rows
        self.session.flush()
        state_ids = {code: row.id for code, row in existing_states.items()}

        created_transitions = updated_transitions = 0
        existing_transitions = {
            (t.from_state_id, t.action): t
            for t in self._transitions.list_for(definition.tenant_id, definition.id)
        }
        seen: set[tuple[UUID, str]] = set()

        for position, transition_spec in enumerate(self._spec.transitions):
            from_id = state_ids[transition_spec.from_state]
            to_id = state_ids[transition_spec.to_state]
            match_key = (from_id, transition_spec.action)
            seen.add(match_key)

            row = existing_transitions.get(match_key)
            if row is None:
                self.session.add(
                    WorkflowTransitionDefinition(
                        tenant_id=definition.tenant_id,
                        workflow_id=definition.id,
                        from_state_id=from_id,
                        to_state_id=to_id,
                        action=transition_spec.action,
                        required_permission=transition_spec.required_permission,
                        sort_order=position,
                    )
                )
                created_transitions += 1
                continue

            wanted = {
                "to_state_id": to_id,
                "required_permission": transition_spec.required_permission,
                "sort_order": position,
            }
            if _apply_changes(row, wanted):
                updated_transitions += 1

        codes_by_id = {state_id: code for code, state_id in state_ids.items()}
        for (from_id, action), row in existing_transitions.items():
            if (from_id, action) not in seen:
                logger.warning(
                    "definition_transition_not_in_spec",
                    extra={
                        "definition_id": str(definition.id),
                        "from_state": codes_by_id.get(from_id, str(from_id)),
                        "action": action,
                    },
                )

        _apply_changes(
            definition,
            {
                "name": self._spec.name,
                "spec_fingerprint": self._spec.fingerprint or None,
            },
        )
        self.session.flush()

        logger.info(
            "definition_reconciled",
            extra={
                "tenant_id": str(definition.tenant_id),
                "definition_id": str(definition.id),
                "key": definition.key,
                "version": definition.version,
                "states_created": created_states,
                "states_updated": updated_states,
                "transitions_created": created_transitions,
                "transitions_updated": updated_transitions,
            },
        )


def _apply_changes(row, wanted: dict) -> bool:
    """Set attributes that differ; return True if anything changed."""
    changed = False
    for attr, value in wanted.items():
        if getattr(row, attr) != value:
            setattr(row, attr, value)
            changed = True
    return changed
