# src/logging/context.py - v1
"""Contextual logging support: attach run_id, job, step, namespace to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Set per invocation by the execution engine.
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_job: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "job", default=None
)
_namespace: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "namespace", default=None
)
_step: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "step", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    job: str | None = None
    namespace: str | None = None
    step: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        job=_job.get(),
        namespace=_namespace.get(),
        step=_step.get(),
    )


def set_run_context(run_id: str, job: str, namespace: str | None = None) -> None:
    """Set run-level context (called once per invocation)."""
    _run_id.set(run_id)
    _job.set(job)
    _namespace.set(namespace)


def set_step_context(step: str | None) -> None:
    """Set step-level context (called per step)."""
    _step.set(step)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _job.set(None)
    _namespace.set(None)
    _step.set(None)
