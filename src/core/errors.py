# src/core/errors.py - v1
"""Error taxonomy shared by every podci module.

Fatal construction-time errors (config, image reference, engine availability)
abort before any container or volume is touched. Execution-time errors are
recorded in the run manifest before they surface to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class PodciError(Exception):
    """Base class for all podci errors."""


# === CONFIGURATION ===


@dataclass(frozen=True)
class ConfigIssue:
    """A single violated field in a configuration document."""

    location: str
    message: str

    def __str__(self) -> str:
        return f"{self.location}: {self.message}"


class ConfigError(PodciError):
    """Configuration is invalid; carries every issue found in one pass."""

    def __init__(self, issues: list[ConfigIssue] | str) -> None:
        if isinstance(issues, str):
            issues = [ConfigIssue(location="config", message=issues)]
        self.issues: list[ConfigIssue] = list(issues)
        super().__init__(self._render())

    def _render(self) -> str:
        if len(self.issues) == 1:
            return f"invalid configuration: {self.issues[0]}"
        lines = [f"invalid configuration ({len(self.issues)} issues):"]
        lines.extend(f"  - {issue}" for issue in self.issues)
        return "\n".join(lines)

    @property
    def locations(self) -> list[str]:
        return [issue.location for issue in self.issues]


class AmbiguousImageReference(ConfigError):
    """A container value is neither a known template nor an explicit image reference."""


# === CONTAINER ENGINE ===


class ContainerEngineUnavailable(PodciError):
    """The container engine binary is missing or not responding."""


class EngineCommandError(PodciError):
    """An engine bookkeeping command (volume, image, inspect) failed."""

    def __init__(
        self,
        kind: str,
        command: str,
        status: int | None,
        stderr_tail: str = "",
        stdout_path: Path | None = None,
        stderr_path: Path | None = None,
    ) -> None:
        self.kind = kind
        self.command = command
        self.status = status
        self.stderr_tail = stderr_tail
        self.stdout_path = stdout_path
        self.stderr_path = stderr_path
        msg = f"engine command failed ({kind}) exit_code={status if status is not None else 1}"
        if stderr_tail:
            msg += f": {stderr_tail.strip()}"
        if stderr_path is not None:
            msg += f" (stderr: {stderr_path})"
        if stdout_path is not None:
            msg += f" (stdout: {stdout_path})"
        super().__init__(msg)


class DigestCaptureError(PodciError):
    """Base image digest could not be captured. Never fatal."""


# === EXECUTION ===


class StepExecutionError(PodciError):
    """A step failed; the job halts and a manifest is still written."""

    def __init__(
        self,
        step: str,
        message: str,
        *,
        exit_code: int | None = None,
        error_kind: str = "exit_code",
        run_id: str | None = None,
        stdout_path: Path | None = None,
        stderr_path: Path | None = None,
    ) -> None:
        self.step = step
        self.exit_code = exit_code
        self.error_kind = error_kind
        self.run_id = run_id
        self.stdout_path = stdout_path
        self.stderr_path = stderr_path
        super().__init__(f"step '{step}' failed: {message}")

    def describe(self) -> str:
        """Human-readable summary with run id and log paths when known."""
        parts = [str(self)]
        if self.run_id:
            parts.append(f"run_id: {self.run_id}")
        if self.stderr_path is not None:
            parts.append(f"stderr: {self.stderr_path}")
        if self.stdout_path is not None:
            parts.append(f"stdout: {self.stdout_path}")
        return "\n".join(parts)


class InterruptedRunError(StepExecutionError):
    """The run was cancelled by the operator while a step was in flight."""

    def __init__(
        self,
        step: str,
        *,
        run_id: str | None = None,
        stdout_path: Path | None = None,
        stderr_path: Path | None = None,
    ) -> None:
        super().__init__(
            step,
            "interrupted by operator",
            error_kind="interrupted",
            run_id=run_id,
            stdout_path=stdout_path,
            stderr_path=stderr_path,
        )
        # RunOutcome of the interrupted run, attached by the engine.
        self.outcome: object | None = None


# === VOLUMES / PRUNE ===


class VolumeOwnershipWarning(UserWarning):
    """An existing volume with a computed name lacks podci ownership labels."""

    def __init__(self, volume: str, reason: str) -> None:
        self.volume = volume
        self.reason = reason
        super().__init__(f"volume '{volume}' is not podci-managed ({reason}); using it without adopting")


class PruneVolumeError(PodciError):
    """Deleting one volume failed during prune apply."""

    def __init__(self, volume: str, cause: Exception) -> None:
        self.volume = volume
        self.cause = cause
        super().__init__(f"failed to remove volume '{volume}': {cause}")


# === MANIFEST ===


class ManifestSchemaError(PodciError):
    """Manifest file declares a schema this reader does not understand."""
