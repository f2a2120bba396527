# src/api/models.py - v1
"""API-level models: RunRequest, PruneRequest, PruneResult."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel

from podci.prune.models import PrunePlan, PruneReport


class RunRequest(BaseModel):
    """What the caller wants to run."""

    job: str
    config_path: Path = Path("podci.toml")
    # Defaults to the directory holding the config file.
    repo_root: Path | None = None
    step: str | None = None
    profile: str | None = None
    dry_run: bool = False
    pull: bool = False
    rebuild: bool = False

    def resolved_repo_root(self) -> Path:
        root = self.repo_root or self.config_path.resolve().parent
        return root.resolve()


class PruneRequest(BaseModel):
    """Retention parameters; nothing is deleted unless ``apply`` is set."""

    keep: int = 3
    older_than_days: int | None = None
    apply: bool = False


class PruneResult(BaseModel):
    """Plan, plus the report when the plan was applied."""

    plan: PrunePlan
    report: PruneReport | None = None

    @property
    def applied(self) -> bool:
        return self.report is not None
