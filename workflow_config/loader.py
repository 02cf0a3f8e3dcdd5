"""
Configuration Loader (``workflow_config.loader``).

Responsibility
--------------
Loads individual YAML fragment files and parses their entries into typed
``workflow_config.schema`` dataclass instances.  Build/test tooling only;
the runtime entrypoint is ``workflow_config.get_workflow_spec()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Wrongly typed values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from workflow_config.schema import StateDef, TransitionDef


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: expected a mapping at top level")
    return data


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _as_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"{name} must be true or false, got {value!r}")


def parse_state(data: dict[str, Any]) -> StateDef:
    """Parse a ``StateDef``; ``code`` and ``name`` are required."""
    return StateDef(
        code=str(data["code"]),
        name=str(data["name"]),
        sort_order=int(data.get("sort_order", 0)),
        is_initial=_as_bool(data.get("initial", False), "initial"),
        is_terminal=_as_bool(data.get("terminal", False), "terminal"),
        request_status=_optional_str(data.get("request_status")),
    )


def parse_transition(data: dict[str, Any]) -> TransitionDef:
    """Parse a ``TransitionDef``; ``from``, ``to`` and ``action`` are required."""
    return TransitionDef(
        from_state=str(data["from"]),
        to_state=str(data["to"]),
        action=str(data["action"]),
        required_permission=_optional_str(data.get("permission")),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
