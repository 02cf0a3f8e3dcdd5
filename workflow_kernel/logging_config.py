"""
Module: workflow_kernel.logging_config
Responsibility: One JSON object per log line for everything under the
    ``workflow_kernel`` logger, with the workflow being driven (tenant,
    request, actor, workflow key, instance) merged into each record.
Architecture position: Kernel root.  Imported by every layer; imports
    nothing from the kernel.

The executor binds the context around a transition attempt, so the trace
record and anything logged beneath it (instance bootstrap, status
write-back, conflicts) carry the same identifiers without passing them
through ``extra``.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

CONTEXT_FIELDS: tuple[str, ...] = (
    "tenant_id",
    "request_id",
    "actor_id",
    "workflow_key",
    "instance_id",
)

_LOGGER_PREFIX = "workflow_kernel"


class LogContext:
    """
    Workflow identifiers attached to every record emitted in the current
    thread or task.

    Values are stored as strings; UUIDs and enums are accepted and
    rendered on the way in.  Unknown field names raise ``TypeError`` so a
    typo cannot silently drop context.
    """

    _vars: dict[str, ContextVar[str | None]] = {
        name: ContextVar(f"workflow_log_{name}", default=None)
        for name in CONTEXT_FIELDS
    }

    @classmethod
    def _var(cls, name: str) -> ContextVar[str | None]:
        try:
            return cls._vars[name]
        except KeyError:
            raise TypeError(f"Unknown log context field: {name}") from None

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set the given fields; None values are ignored."""
        for name, value in fields.items():
            var = cls._var(name)
            if value is not None:
                var.set(_as_text(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        """Bound fields in ``CONTEXT_FIELDS`` order."""
        return {
            name: value
            for name, var in cls._vars.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in cls._vars.values():
            var.set(None)

    @classmethod
    def bind(cls, **fields: Any) -> "_Binding":
        """Scope fields to a ``with`` block, restoring prior values on exit."""
        for name in fields:
            cls._var(name)
        return _Binding(fields)


class _Binding:
    def __init__(self, fields: dict[str, Any]):
        self._fields = fields
        self._tokens: list[tuple[ContextVar[str | None], Token]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._fields.items():
            if value is None:
                continue
            var = LogContext._vars[name]
            self._tokens.append((var, var.set(_as_text(value))))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def _as_text(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

_RESERVED: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _jsonable(value: Any) -> Any:
    """Render values the json module does not know how to encode."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """
    Render a record as a single JSON line.

    Layout: ``ts``, ``level``, ``logger``, ``message``, then the bound
    ``LogContext`` fields, then the record's ``extra`` keys.  A logged
    exception adds ``exc_type``, ``exc_message``, the kernel error's
    ``code`` and public attributes as ``exc_<name>``, and ``traceback``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, value in vars(record).items():
            if key in _RESERVED or key in payload:
                continue
            # Enums by value, including str mixins json would pass through
            payload[key] = value.value if isinstance(value, Enum) else value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))

        return json.dumps(payload, default=_jsonable)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        for name, value in vars(exc).items():
            if not name.startswith("_") and name != "code":
                fields[f"exc_{name}"] = value
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger named ``workflow_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a StructuredFormatter handler to the ``workflow_kernel`` logger.

    Only the first call has any effect until ``reset_logging`` runs.
    Records do not propagate to the root logger.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

        root = logging.getLogger(_LOGGER_PREFIX)
        root.setLevel(level)
        root.propagate = False

        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        root.addHandler(target)


def reset_logging() -> None:
    """Undo ``configure_logging``. Used by the test suite."""
    global _configured
    with _lock:
        _configured = False
        root = logging.getLogger(_LOGGER_PREFIX)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
        root.propagate = True
