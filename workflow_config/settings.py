"""
Engine settings.

Database connection and engine behaviour read from ``engine.yaml``
(default: the one shipped next to this module).  ``WORKFLOW_DATABASE_URL``
overrides ``database_url`` so deployments never need to edit the file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from workflow_config.loader import load_yaml_file

DATABASE_URL_ENV = "WORKFLOW_DATABASE_URL"
DEFAULT_SETTINGS_FILE = Path(__file__).parent / "engine.yaml"


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings for the workflow engine."""

    database_url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    definition_set: str = "request_standard"
    # When true the facade enforces required permissions itself
    enforce_permissions: bool = False

    def engine_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``init_engine_from_url``."""
        return {
            "echo": self.echo,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
        }


def load_engine_settings(
    path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> EngineSettings:
    """
    Load settings from YAML, then apply the environment override.

    Unknown keys are rejected so a typo does not silently fall back to
    a default.

    Raises:
        FileNotFoundError: ``path`` given but missing.
        ValueError: unknown keys in the file.
    """
    environ = os.environ if environ is None else environ
    settings_path = path or DEFAULT_SETTINGS_FILE

    data: dict[str, Any] = {}
    if path is not None or settings_path.exists():
        data = load_yaml_file(settings_path).get("engine", {}) or {}

    allowed = set(EngineSettings.__dataclass_fields__)
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"Unknown engine settings: {', '.join(unknown)}")

    override = environ.get(DATABASE_URL_ENV)
    if override:
        data["database_url"] = override

    return EngineSettings(**data)
