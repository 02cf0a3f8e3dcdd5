"""Pure domain types for the workflow kernel (no I/O)."""

from workflow_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from workflow_kernel.domain.dtos import (
    DefinitionInfo,
    EventInfo,
    PendingInstance,
    StateInfo,
    WorkflowHistory,
)
from workflow_kernel.domain.permissions import (
    AdvisoryPermissionChecker,
    GrantPermissionChecker,
    PermissionChecker,
)
from workflow_kernel.domain.workflow import (
    PRESIDENCY_ACTIONS,
    PresidencyDecision,
    RequestStatus,
    StateRef,
    StateSpec,
    TransitionRejection,
    TransitionResult,
    TransitionSpec,
    WorkflowSpec,
    WorkflowTargetType,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "DefinitionInfo",
    "EventInfo",
    "PendingInstance",
    "StateInfo",
    "WorkflowHistory",
    "PermissionChecker",
    "AdvisoryPermissionChecker",
    "GrantPermissionChecker",
    "PRESIDENCY_ACTIONS",
    "PresidencyDecision",
    "RequestStatus",
    "StateRef",
    "StateSpec",
    "TransitionRejection",
    "TransitionResult",
    "TransitionSpec",
    "WorkflowSpec",
    "WorkflowTargetType",
]
