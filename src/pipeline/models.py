# src/pipeline/models.py - v1
"""Execution models: RunEnvironment (inputs) and RunOutcome (result)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from podci.config.settings import Settings
from podci.core.errors import StepExecutionError, VolumeOwnershipWarning
from podci.core.models import RunContext
from podci.runtime.models import ResolvedImage
from podci.storage.models import Manifest
from podci.version import __version__


@dataclass(frozen=True)
class RunEnvironment:
    """Explicit run configuration handed to the execution engine."""

    repo_root: Path
    state_root: Path
    cache_mounts: dict[str, str] = field(default_factory=dict)
    base_env: dict[str, str] = field(default_factory=dict)
    podci_version: str = __version__

    @classmethod
    def from_settings(cls, settings: Settings, repo_root: Path) -> RunEnvironment:
        return cls(
            repo_root=repo_root.resolve(),
            state_root=settings.state_root(),
            cache_mounts=settings.cache_mounts_map,
            base_env=settings.base_env_map,
        )


@dataclass
class RunOutcome:
    """Result of one job invocation."""

    run_id: str
    context: RunContext
    image: ResolvedImage
    manifest: Manifest
    dry_run: bool = False
    invocations: list[list[str]] = field(default_factory=list)
    manifest_path: Path | None = None
    error: StepExecutionError | None = None
    warnings: list[VolumeOwnershipWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.manifest.result.ok

    @property
    def exit_code(self) -> int:
        return self.manifest.result.exit_code

    def raise_for_status(self) -> None:
        """Raise the recorded StepExecutionError if the run failed."""
        if self.error is not None:
            raise self.error
