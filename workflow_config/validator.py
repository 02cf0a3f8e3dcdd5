"""
Configuration Validator (``workflow_config.validator``).

Responsibility
--------------
Validates an assembled ``WorkflowGraphDef`` before it is bridged into the
kernel, so structural mistakes in a graph are caught at load time rather
than when a request first hits the bad edge.

Errors (block loading)
----------------------
* Empty workflow key.
* Duplicate state code.
* Transition referencing an unknown from/to state.
* Not exactly one initial state.
* Transition leaving a terminal state.
* Duplicate (from state, action) pair -- the action would be ambiguous.
* ``request_status`` outside RequestStatus.
* ``target_type`` outside WorkflowTargetType.

Warnings (reviewed, never block)
--------------------------------
* State unreachable from the initial state.
* Non-terminal state without outgoing transitions (a dead end).
* Permission string not in ``domain.action`` form.
* Set status still ``draft``.
"""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass, field

from workflow_config.schema import ConfigStatus, WorkflowGraphDef
from workflow_kernel.domain.permissions import is_well_formed_permission
from workflow_kernel.domain.workflow import RequestStatus, WorkflowTargetType


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    * Warnings do not block loading but should be reviewed.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_workflow_graph(graph: WorkflowGraphDef) -> ConfigValidationResult:
    """
    Validate a workflow graph.

    Postconditions:
        - Returns a ``ConfigValidationResult``; the graph may be bridged
          into the kernel only when ``is_valid``.
    """
    result = ConfigValidationResult()

    if not graph.key.strip():
        result.add_error("Workflow key must not be empty")

    known_targets = {t.value for t in WorkflowTargetType}
    if graph.target_type not in known_targets:
        result.add_error(f"Unknown target_type '{graph.target_type}'")

    if graph.status == ConfigStatus.DRAFT:
        result.add_warning(f"Configuration set '{graph.set_name}' is still draft")

    _validate_states(graph, result)
    _validate_transitions(graph, result)
    _check_reachability(graph, result)

    return result


def _validate_states(graph: WorkflowGraphDef, result: ConfigValidationResult) -> None:
    if not graph.states:
        result.add_error("Workflow declares no states")
        return

    counts = Counter(s.code for s in graph.states)
    for code, count in sorted(counts.items()):
        if count > 1:
            result.add_error(f"Duplicate state code '{code}' ({count} declarations)")

    initial = [s.code for s in graph.states if s.is_initial]
    if len(initial) != 1:
        result.add_error(
            f"Exactly one initial state required, found {len(initial)}"
            + (f": {', '.join(initial)}" if initial else "")
        )

    known_statuses = {s.value for s in RequestStatus}
    for state in graph.states:
        if state.request_status is not None and state.request_status not in known_statuses:
            result.add_error(
                f"State '{state.code}' maps to unknown request status "
                f"'{state.request_status}'"
            )


def _validate_transitions(
    graph: WorkflowGraphDef,
    result: ConfigValidationResult,
) -> None:
    states = {s.code: s for s in graph.states}
    seen: set[tuple[str, str]] = set()

    for t in graph.transitions:
        label = f"{t.from_state} --{t.action}--> {t.to_state}"
        if t.from_state not in states:
            result.add_error(f"Transition {label}: unknown from state '{t.from_state}'")
        if t.to_state not in states:
            result.add_error(f"Transition {label}: unknown to state '{t.to_state}'")

        source = states.get(t.from_state)
        if source is not None and source.is_terminal:
            result.add_error(f"Transition {label} leaves terminal state '{t.from_state}'")

        pair = (t.from_state, t.action)
        if pair in seen:
            result.add_error(
                f"Duplicate transition: action '{t.action}' declared twice "
                f"from '{t.from_state}'"
            )
        seen.add(pair)

        if t.required_permission is not None and not is_well_formed_permission(
            t.required_permission
        ):
            result.add_warning(
                f"Transition {label}: permission '{t.required_permission}' "
                "is not in domain.action form"
            )

    outgoing = {t.from_state for t in graph.transitions}
    for state in graph.states:
        if not state.is_terminal and state.code not in outgoing:
            result.add_warning(
                f"State '{state.code}' is not terminal but has no outgoing transitions"
            )


def _check_reachability(
    graph: WorkflowGraphDef,
    result: ConfigValidationResult,
) -> None:
    initial = [s.code for s in graph.states if s.is_initial]
    if len(initial) != 1:
        return

    edges: dict[str, list[str]] = {}
    for t in graph.transitions:
        edges.setdefault(t.from_state, []).append(t.to_state)

    reached = {initial[0]}
    queue = deque(initial)
    while queue:
        for nxt in edges.get(queue.popleft(), ()):
            if nxt not in reached:
                reached.add(nxt)
                queue.append(nxt)

    for state in graph.states:
        if state.code not in reached:
            result.add_warning(
                f"State '{state.code}' is unreachable from initial state '{initial[0]}'"
            )
