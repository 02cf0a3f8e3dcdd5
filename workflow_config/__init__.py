"""
workflow_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the only way to obtain a workflow graph at runtime through
    ``get_workflow_spec()``.  Graphs are authored as YAML fragments under
    ``workflow_config/sets/<set_name>/``; assembly, validation and pinning
    are internal steps of that call.

Architecture position:
    Configuration -- sits above ``workflow_kernel`` and below
    ``workflow_services``.  The kernel never imports from here; bridges in
    this package translate assembled graphs into the kernel's WorkflowSpec.

Invariants enforced:
    - Load-time validation: a graph with structural errors never reaches
      the kernel.
    - Fingerprint pinning: when an APPROVED_FINGERPRINT file exists, the
      assembled checksum must match it.
    - Deterministic assembly: the same fragments always produce the same
      checksum, which provisioning records on the definition row.

Failure modes:
    - ``AssemblyError`` -- missing set or fragment, malformed YAML.
    - ``WorkflowConfigError`` -- validation errors.
    - ``ConfigIntegrityError`` -- fingerprint mismatch against the pin.

Audit relevance:
    Every successful ``get_workflow_spec()`` call emits a
    ``WORKFLOW_CONFIG_TRACE`` log entry with the set name, key, checksum
    and graph size.
"""

from __future__ import annotations

import logging
from pathlib import Path

from workflow_config.assembler import AssemblyError, assemble_from_directory
from workflow_config.bridges import build_workflow_spec
from workflow_config.integrity import ConfigIntegrityError, verify_fingerprint_pin
from workflow_config.schema import WorkflowGraphDef
from workflow_config.settings import EngineSettings, load_engine_settings
from workflow_config.validator import ConfigValidationResult, validate_workflow_graph
from workflow_kernel.domain.workflow import WorkflowSpec
from workflow_kernel.exceptions import WorkflowConfigError

_logger = logging.getLogger("workflow_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_SET_NAME = "request_standard"

__all__ = [
    "AssemblyError",
    "ConfigIntegrityError",
    "ConfigValidationResult",
    "DEFAULT_SET_NAME",
    "EngineSettings",
    "WorkflowGraphDef",
    "get_workflow_spec",
    "list_workflow_sets",
    "load_engine_settings",
    "load_workflow_graph",
    "validate_workflow_graph",
]


def list_workflow_sets(config_dir: Path | None = None) -> list[str]:
    """Names of the set directories that carry a root.yaml."""
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    if not sets_dir.is_dir():
        return []
    return sorted(
        d.name for d in sets_dir.iterdir()
        if d.is_dir() and (d / "root.yaml").exists()
    )


def load_workflow_graph(
    set_name: str | None = None,
    config_dir: Path | None = None,
) -> WorkflowGraphDef:
    """
    Assemble and validate a set without bridging it.

    Raises:
        AssemblyError: set or fragments missing or malformed.
        WorkflowConfigError: validation errors.
    """
    name = set_name or DEFAULT_SET_NAME
    fragment_dir = (config_dir or _DEFAULT_CONFIG_DIR) / name

    graph = assemble_from_directory(fragment_dir)

    validation = validate_workflow_graph(graph)
    for warning in validation.warnings:
        _logger.warning(
            "workflow_config_warning",
            extra={"set_name": name, "warning": warning},
        )
    if not validation.is_valid:
        raise WorkflowConfigError(name, validation.errors)

    return graph


def get_workflow_spec(
    set_name: str | None = None,
    config_dir: Path | None = None,
) -> WorkflowSpec:
    """The public configuration entrypoint.

    Guarantees:
        - The returned ``WorkflowSpec`` has passed validation and, when a
          pin file exists, fingerprint verification.
        - ``WorkflowSpec.fingerprint`` equals the assembled checksum.
        - A ``WORKFLOW_CONFIG_TRACE`` log entry is emitted on every
          successful call.

    Non-goals:
        - Does NOT cache; callers hold the returned spec.

    Args:
        set_name: Directory name under the sets directory.  Defaults to
            ``request_standard``.
        config_dir: Override path to the sets directory.

    Raises:
        AssemblyError, WorkflowConfigError, ConfigIntegrityError.
    """
    name = set_name or DEFAULT_SET_NAME
    fragment_dir = (config_dir or _DEFAULT_CONFIG_DIR) / name

    graph = load_workflow_graph(name, config_dir)

    verify_fingerprint_pin(
        set_name=name,
        checksum=graph.checksum,
        config_dir=fragment_dir,
    )

    spec = build_workflow_spec(graph)

    _logger.info(
        "WORKFLOW_CONFIG_TRACE",
        extra={
            "trace_type": "WORKFLOW_CONFIG_TRACE",
            "set_name": name,
            "workflow_key": graph.key,
            "target_type": graph.target_type,
            "config_status": graph.status.value,
            "checksum": graph.checksum,
            "state_count": len(graph.states),
            "transition_count": len(graph.transitions),
        },
    )

    return spec
