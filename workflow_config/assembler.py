"""
workflow_config.assembler -- composes YAML fragments into one WorkflowGraphDef.

Fragment structure::

    sets/request_standard/
    +-- root.yaml          # key, name, target_type, description, status
    +-- states.yaml        # states: [...]
    +-- transitions.yaml   # transitions: [...]  (order is significant)
    +-- APPROVED_FINGERPRINT   # optional pin

Invariants enforced:
    - All three fragments must exist.
    - A deterministic SHA-256 checksum is computed over the parsed data.
    - Transition declaration order is preserved.

Failure modes:
    - ``AssemblyError`` -- missing fragment, malformed YAML or missing
      mandatory fields.
"""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path

import yaml

from workflow_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_state,
    parse_transition,
)
from workflow_config.schema import ConfigStatus, WorkflowGraphDef
from workflow_kernel.exceptions import ConfigError

REQUIRED_FRAGMENTS = ("root.yaml", "states.yaml", "transitions.yaml")


class AssemblyError(ConfigError):
    """Error during fragment assembly.

    Raised for the first fatal issue found; field-level problems that
    parse cleanly are left to the validator.
    """

    code: str = "CONFIG_ASSEMBLY_ERROR"


def assemble_from_directory(fragment_dir: Path) -> WorkflowGraphDef:
    """Compose the fragments in ``fragment_dir`` into a WorkflowGraphDef.

    The set name is the directory name.

    Raises:
        AssemblyError: If required fragments are missing or malformed.
    """
    if not fragment_dir.is_dir():
        raise AssemblyError(f"Fragment directory not found: {fragment_dir}")

    for fragment in REQUIRED_FRAGMENTS:
        if not (fragment_dir / fragment).exists():
            raise AssemblyError(f"{fragment} not found in {fragment_dir}")

    try:
        root_data = load_yaml_file(fragment_dir / "root.yaml")
        states_data = load_yaml_file(fragment_dir / "states.yaml")
        transitions_data = load_yaml_file(fragment_dir / "transitions.yaml")

        states = tuple(parse_state(s) for s in states_data.get("states") or [])
        transitions = tuple(
            parse_transition(t) for t in transitions_data.get("transitions") or []
        )
        status = ConfigStatus(root_data.get("status", "draft"))
        key = str(root_data.get("key") or "")
        name = str(root_data["name"])
        target_type = str(root_data.get("target_type", "REQUEST"))
    except yaml.YAMLError as exc:
        raise AssemblyError(f"Malformed YAML in {fragment_dir}: {exc}") from exc
    except KeyError as exc:
        raise AssemblyError(
            f"Missing required field {exc} in {fragment_dir}"
        ) from exc
    except (TypeError, ValueError) as exc:
        raise AssemblyError(f"Invalid fragment in {fragment_dir}: {exc}") from exc

    description = str(root_data.get("description") or "").strip()

    checksum = compute_checksum(
        {
            "key": key,
            "name": name,
            "target_type": target_type,
            "description": description,
            "states": [asdict(s) for s in states],
            "transitions": [asdict(t) for t in transitions],
        }
    )

    return WorkflowGraphDef(
        set_name=fragment_dir.name,
        key=key,
        name=name,
        target_type=target_type,
        description=description,
        status=status,
        states=states,
        transitions=transitions,
        checksum=checksum,
    )
