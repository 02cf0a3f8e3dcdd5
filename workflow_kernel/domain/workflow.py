"""
Canonical workflow types (``workflow_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the request workflow state machine: the static graph
(``WorkflowSpec`` with its ``StateSpec`` / ``TransitionSpec`` members) that
provisioning materialises into the definition tables, and the typed
``TransitionResult`` returned by the executor.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Structural checks on a graph (known state codes, exactly one initial
  state, no edges out of terminal states, unique (from, action) pairs)
  are enforced when the graph is loaded from configuration; see
  ``workflow_config.validator``.
* ``TransitionResult.moved`` is True iff ``reason`` is None.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class RequestStatus(str, Enum):
    """Coarse, UI-facing lifecycle status carried on the request itself."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    FULFILLED = "FULFILLED"


class WorkflowTargetType(str, Enum):
    """Entity type a workflow definition governs."""

    REQUEST = "REQUEST"


class TransitionRejection(str, Enum):
    """Non-exceptional reasons a transition was not applied."""

    TRANSITION_NOT_ALLOWED = "TRANSITION_NOT_ALLOWED"
    PERMISSION_DENIED = "PERMISSION_DENIED"


class PresidencyDecision(str, Enum):
    """Decision taken on a presidency dispatch."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"


PRESIDENCY_ACTIONS: dict[PresidencyDecision, str] = {
    PresidencyDecision.APPROVE: "PRESIDENCY_APPROVE",
    PresidencyDecision.REJECT: "PRESIDENCY_REJECT",
}


@dataclass(frozen=True)
class StateSpec:
    """A named state of the static graph.

    ``sort_order`` is for UI ordering only and carries no semantics.
    """
    code: str
    name: str
    sort_order: int
    is_initial: bool = False
    is_terminal: bool = False
    request_status: RequestStatus | None = None


@dataclass(frozen=True)
class TransitionSpec:
    """A directed, optionally permission-gated edge triggered by an action."""
    from_state: str
    to_state: str
    action: str
    required_permission: str | None = None


@dataclass(frozen=True)
class WorkflowSpec:
    """A static state machine definition for one entity type.

    Contract: frozen; the declaration order of ``transitions`` is preserved
    into the store as ``sort_order`` and decides which edge wins when several
    leave the same state towards the same request status.
    ``fingerprint`` is the checksum of the configuration source it was built
    from (empty for graphs built in code).
    """
    key: str
    name: str
    target_type: WorkflowTargetType
    states: tuple[StateSpec, ...]
    transitions: tuple[TransitionSpec, ...]
    description: str = ""
    fingerprint: str = ""

    def state(self, code: str) -> StateSpec | None:
        for state in self.states:
            if state.code == code:
                return state
        return None

    @property
    def initial_state(self) -> StateSpec | None:
        """The state flagged initial, else the first by sort order."""
        flagged = [s for s in self.states if s.is_initial]
        if flagged:
            return flagged[0]
        ordered = sorted(self.states, key=lambda s: s.sort_order)
        return ordered[0] if ordered else None

    def transitions_from(self, code: str) -> tuple[TransitionSpec, ...]:
        return tuple(t for t in self.transitions if t.from_state == code)

    def ambiguous_transitions(self) -> list[tuple[str, str]]:
        """Return every (from_state, action) pair declared more than once."""
        seen: set[tuple[str, str]] = set()
        duplicates: list[tuple[str, str]] = []
        for t in self.transitions:
            pair = (t.from_state, t.action)
            if pair in seen and pair not in duplicates:
                duplicates.append(pair)
            seen.add(pair)
        return duplicates


@dataclass(frozen=True)
class StateRef:
    """Identity of a persisted state, as reported back to callers."""
    id: UUID
    code: str
    request_status: RequestStatus | None = None


@dataclass(frozen=True)
class TransitionResult:
    """Result of asking the executor to move an instance.

    ``moved=False`` results never carry side effects: the instance, the
    request status and the event log are exactly as before the call.
    """

    moved: bool
    action: str | None = None
    required_permission: str | None = None
    to_state: StateRef | None = None
    reason: TransitionRejection | None = None

    @property
    def status(self) -> RequestStatus | None:
        """Request status the applied transition mapped to, if any."""
        return self.to_state.request_status if self.to_state else None

    @classmethod
    def applied(
        cls,
        action: str,
        required_permission: str | None,
        to_state: StateRef,
    ) -> TransitionResult:
        return cls(
            moved=True,
            action=action,
            required_permission=required_permission,
            to_state=to_state,
        )

    @classmethod
    def rejected(
        cls,
        reason: TransitionRejection,
        action: str | None = None,
        required_permission: str | None = None,
    ) -> TransitionResult:
        return cls(
            moved=False,
            action=action,
            required_permission=required_permission,
            reason=reason,
        )
