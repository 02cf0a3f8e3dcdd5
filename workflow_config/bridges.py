"""
Config -> Kernel Bridges.

Converts a validated ``WorkflowGraphDef`` into the kernel's ``WorkflowSpec``.
Lives in workflow_config (the producer) because the kernel must never
import workflow_config.

Usage:
    from workflow_config import get_workflow_spec

    spec = get_workflow_spec("request_standard")
    DefinitionProvisioner(session, spec).ensure_definition(tenant_id)
"""

from __future__ import annotations

from workflow_config.schema import WorkflowGraphDef
from workflow_kernel.domain.workflow import (
    RequestStatus,
    StateSpec,
    TransitionSpec,
    WorkflowSpec,
    WorkflowTargetType,
)


def build_workflow_spec(graph: WorkflowGraphDef) -> WorkflowSpec:
    """Build a WorkflowSpec from a validated graph.

    Preconditions:
        ``validate_workflow_graph(graph).is_valid``; unknown status or
        target type values raise ValueError here.
    """
    return WorkflowSpec(
        key=graph.key,
        name=graph.name,
        target_type=WorkflowTargetType(graph.target_type),
        description=graph.description,
        fingerprint=graph.checksum,
        states=tuple(
            StateSpec(
                code=s.code,
                name=s.name,
                sort_order=s.sort_order,
                is_initial=s.is_initial,
                is_terminal=s.is_terminal,
                request_status=(
                    RequestStatus(s.request_status)
                    if s.request_status is not None
                    else None
                ),
            )
            for s in graph.states
        ),
        transitions=tuple(
            TransitionSpec(
                from_state=t.from_state,
                to_state=t.to_state,
                action=t.action,
                required_permission=t.required_permission,
            )
            for t in graph.transitions
        ),
    )
