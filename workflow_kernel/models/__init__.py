"""ORM models for the workflow kernel."""

from workflow_kernel.models.request import Request
from workflow_kernel.models.workflow import (
    WorkflowDefinition,
    WorkflowEvent,
    WorkflowInstance,
    WorkflowStateDefinition,
    WorkflowTransitionDefinition,
)

__all__ = [
    "Request",
    "WorkflowDefinition",
    "WorkflowStateDefinition",
    "WorkflowTransitionDefinition",
    "WorkflowInstance",
    "WorkflowEvent",
]
