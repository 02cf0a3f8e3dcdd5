"""
Workflow configuration schema.

Frozen dataclasses describing a workflow graph as authored in YAML.  The
assembled ``WorkflowGraphDef`` is the input to validation, fingerprint
pinning and the bridge into the kernel's ``WorkflowSpec``.

  WorkflowGraphDef = assembled set (root + states + transitions, checksummed)
  WorkflowSpec     = kernel value object provisioned per tenant
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique


@unique
class ConfigStatus(str, Enum):
    """Lifecycle status declared in a set's root.yaml."""

    DRAFT = "draft"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    PUBLISHED = "published"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class StateDef:
    """YAML-authored workflow state."""

    code: str
    name: str
    sort_order: int = 0
    is_initial: bool = False
    is_terminal: bool = False
    # Raw text; checked against RequestStatus by the validator
    request_status: str | None = None


@dataclass(frozen=True)
class TransitionDef:
    """YAML-authored transition.  Declaration order is significant."""

    from_state: str
    to_state: str
    action: str
    required_permission: str | None = None


@dataclass(frozen=True)
class WorkflowGraphDef:
    """
    One assembled workflow configuration set.

    ``checksum`` is the SHA-256 over the parsed root, states and transitions
    and is what an APPROVED_FINGERPRINT pin is compared with.
    """

    set_name: str
    key: str
    name: str
    target_type: str
    description: str = ""
    status: ConfigStatus = ConfigStatus.DRAFT
    states: tuple[StateDef, ...] = ()
    transitions: tuple[TransitionDef, ...] = ()
    checksum: str = field(default="", compare=False)
