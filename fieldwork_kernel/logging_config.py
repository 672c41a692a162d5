"""
Structured JSON logging for the fieldwork kernel.

Every record leaves the ``fieldwork_kernel`` logger tree as one JSON line:

    {"ts": ..., "level": "INFO", "logger": "fieldwork_kernel.services...",
     "message": "stage_transition", "schedule_id": "job-1", ...}

Messages are snake_case event names; details travel in ``extra``. Fields
bound through ``LogContext`` (job, work unit, actor, correlation id) are
added to every record emitted inside the binding and win over ``extra``
keys of the same name.
"""

__all__ = [
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

_ROOT_LOGGER = "fieldwork_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"fieldwork_log_{name}", default=None)
    for name in ("correlation_id", "actor_id", "schedule_id", "category_id")
}


class LogContext:
    """
    Request-scoped log fields, safe across threads and asyncio tasks.

    ``bind`` is the usual entry point; ``set`` and ``clear`` exist for
    long-lived scopes such as a worker loop or a test fixture.
    """

    @staticmethod
    def set(**fields: str | None) -> None:
        """Set the given fields; ``None`` values leave a field unchanged."""
        for name, value in fields.items():
            if value is not None:
                _context_var(name).set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _CONTEXT_VARS.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _CONTEXT_VARS.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = [
            (_context_var(name), _context_var(name).set(value))
            for name, value in fields.items()
            if value is not None
        ]
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


def _context_var(name: str) -> ContextVar[str | None]:
    try:
        return _CONTEXT_VARS[name]
    except KeyError:
        raise TypeError(f"Unknown log context field: {name}") from None


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    """Log payloads carry Decimals, stages, ids and timestamps."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # FieldworkError subclasses keep their details as public attributes.
    for key, value in vars(exc).items():
        if not key.startswith("_") and key != "code":
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, Korean text left unescaped."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger for a kernel component, e.g. ``get_logger("services.schedule")``."""
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")


_setup_lock = threading.Lock()
_configured = False


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``fieldwork_kernel`` logger.

    Only the first call has an effect until ``reset_logging`` runs, so
    library entry points may call this freely.
    """
    global _configured
    with _setup_lock:
        if _configured:
            return
        _configured = True

        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())

        root = logging.getLogger(_ROOT_LOGGER)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and configuration state (tests only)."""
    global _configured
    with _setup_lock:
        _configured = False
        root = logging.getLogger(_ROOT_LOGGER)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
