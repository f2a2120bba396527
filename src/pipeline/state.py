# src/pipeline/state.py - v1
"""Step state machine and per-run step tracking.

Allowed transitions:
  pending -> running -> succeeded | failed
  pending -> skipped
Terminal states never change again.
"""

from __future__ import annotations

from enum import Enum

from podci.core.errors import PodciError


class StepState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StepState.SUCCEEDED, StepState.FAILED, StepState.SKIPPED)


_TRANSITIONS: dict[StepState, frozenset[StepState]] = {
    StepState.PENDING: frozenset({StepState.RUNNING, StepState.SKIPPED}),
    StepState.RUNNING: frozenset({StepState.SUCCEEDED, StepState.FAILED}),
    StepState.SUCCEEDED: frozenset(),
    StepState.FAILED: frozenset(),
    StepState.SKIPPED: frozenset(),
}


class IllegalTransition(PodciError):
    """A step was moved along an edge the state machine does not allow."""


class StepTracker:
    """Current state of every step in a run, in execution order."""

    def __init__(self, step_names: list[str]) -> None:
        self._order = list(step_names)
        self._states = {name: StepState.PENDING for name in step_names}

    def state(self, step: str) -> StepState:
        return self._states[step]

    def transition(self, step: str, target: StepState) -> None:
        current = self._states[step]
        if target not in _TRANSITIONS[current]:
            raise IllegalTransition(
                f"step '{step}': illegal transition {current.value} -> {target.value}"
            )
        self._states[step] = target

    def skip_pending(self) -> list[str]:
        """Move every still-pending step to skipped; return their names in order."""
        skipped = [name for name in self._order if self._states[name] is StepState.PENDING]
        for name in skipped:
            self.transition(name, StepState.SKIPPED)
        return skipped

    def snapshot(self) -> dict[str, StepState]:
        return {name: self._states[name] for name in self._order}
