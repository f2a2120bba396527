# src/storage/models.py - v2
"""Storage domain models: Manifest, ManifestStep, ManifestResult, StepResult.

The manifest JSON is a versioned contract (``podci-manifest.v1``). Readers
ignore unknown fields; new fields are only ever added.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MANIFEST_SCHEMA = "podci-manifest.v1"

StepStatus = Literal["succeeded", "failed", "skipped"]
DigestStatus = Literal["present", "unavailable", "error"]


class StepResult(BaseModel):
    """Outcome of one step as handed to the recorder by the engine."""

    name: str
    argv: list[str]
    status: StepStatus
    duration_ms: int = 0
    exit_code: int | None = None
    error_kind: str | None = None
    stdout_path: Path | None = None
    stderr_path: Path | None = None


class ManifestStep(BaseModel):
    """One entry of ``steps[]`` in manifest.json."""

    model_config = ConfigDict(extra="ignore")

    name: str
    argv: list[str]
    duration_ms: int
    exit_code: int | None = None
    # Relative to the run directory, e.g. "logs/00-fmt.stdout"
    stdout_path: str | None = None
    stderr_path: str | None = None
    status: StepStatus = "succeeded"
    error_kind: str | None = None


class ManifestResult(BaseModel):
    """Overall outcome of a run."""

    model_config = ConfigDict(extra="ignore")

    ok: bool
    exit_code: int
    error: str | None = None


class Manifest(BaseModel):
    """Full manifest for a run, written to manifest.json."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    schema_: str = Field(default=MANIFEST_SCHEMA, alias="schema")
    podci_version: str
    timestamp_utc: str
    run_id: str | None = None
    project: str
    job: str
    profile: str
    namespace: str
    env_id: str
    base_image_digest: str | None = None
    base_image_digest_status: DigestStatus = "unavailable"
    steps: list[ManifestStep] = Field(default_factory=list)
    result: ManifestResult
    warnings: list[str] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)

    def failed_step(self) -> ManifestStep | None:
        """First failed step, if any."""
        return next((s for s in self.steps if s.status == "failed"), None)
