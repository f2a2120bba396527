# src/storage/run_manager.py - v2
"""Run lifecycle: run id, append-only step recording, finalize, atomic persist.

A run writes two identical manifest files:
  <state>/runs/<run_id>/manifest.json   (history)
  <state>/manifest.json                 (latest pointer)
Both are written via temp file + fsync + rename, so a reader never sees a
partially written manifest.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from podci.core.errors import ManifestSchemaError, PodciError
from podci.core.models import RunContext
from podci.storage import layout
from podci.storage.models import (
    MANIFEST_SCHEMA,
    DigestStatus,
    Manifest,
    ManifestResult,
    ManifestStep,
    StepResult,
)

logger = logging.getLogger(__name__)


def generate_run_id(timestamp: datetime | None = None) -> str:
    """Generate a run_id: YYYYmmddTHHMMSSZ-{10 hex chars}."""
    ts = timestamp or datetime.now(timezone.utc)
    return f"{ts.astimezone(timezone.utc).strftime('%Y%m%dT%H%M%SZ')}-{secrets.token_hex(5)}"


def rfc3339_utc(timestamp: datetime | None = None) -> str:
    ts = timestamp or datetime.now(timezone.utc)
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write via a temp file in the same directory, fsync, then rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp-{os.getpid()}-{secrets.token_hex(4)}")
    try:
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            tmp.unlink()


class ManifestRecorder:
    """Accumulates step results for one run and persists the manifest.

    Steps are appended in execution order. After ``finalize`` the step list
    is frozen; ``persist`` writes the finalized manifest.
    """

    def __init__(
        self,
        state_root: Path,
        run_id: str,
        context: RunContext,
        *,
        podci_version: str,
        base_image_digest: str | None = None,
        base_image_digest_status: DigestStatus = "unavailable",
        started_at: datetime | None = None,
    ) -> None:
        self.state_root = state_root
        self.run_id = run_id
        self.context = context
        self.podci_version = podci_version
        self.base_image_digest = base_image_digest
        self.base_image_digest_status = base_image_digest_status
        self.timestamp_utc = rfc3339_utc(started_at)
        self._steps: list[ManifestStep] = []
        self._warnings: list[str] = []
        self._manifest: Manifest | None = None

    @property
    def finalized(self) -> bool:
        return self._manifest is not None

    @property
    def manifest(self) -> Manifest | None:
        return self._manifest

    @property
    def run_manifest_path(self) -> Path:
        return layout.run_manifest_path(self.state_root, self.run_id)

    @property
    def latest_manifest_path(self) -> Path:
        return layout.latest_manifest_path(self.state_root)

    def log_paths(self, step: str, index: int) -> tuple[Path, Path]:
        """(stdout_path, stderr_path) for the step at ``index`` in this run's walk."""
        return layout.step_log_paths(self.state_root, self.run_id, step, index)

    def _relative_log_path(self, path: Path | None) -> str | None:
        """Manifest form of a log path: relative to the run directory, POSIX separators."""
        if path is None:
            return None
        run_root = layout.run_dir(self.state_root, self.run_id)
        try:
            return path.relative_to(run_root).as_posix()
        except ValueError:
            raise PodciError(f"log file {path} is outside run directory {run_root}") from None

    def record(self, result: StepResult) -> None:
        """Append a step result.

        Raises:
            PodciError: If the manifest has already been finalized, or a log
                path lies outside the run directory.
        """
        if self._manifest is not None:
            raise PodciError(f"manifest for run {self.run_id} is finalized; cannot record '{result.name}'")
        self._steps.append(
            ManifestStep(
                name=result.name,
                argv=list(result.argv),
                duration_ms=result.duration_ms,
                exit_code=result.exit_code,
                stdout_path=self._relative_log_path(result.stdout_path),
                stderr_path=self._relative_log_path(result.stderr_path),
                status=result.status,
                error_kind=result.error_kind,
            )
        )

    def add_warning(self, message: str) -> None:
        if self._manifest is not None:
            raise PodciError(f"manifest for run {self.run_id} is finalized")
        self._warnings.append(message)

    def finalize(self, ok: bool, exit_code: int, error: str | None = None) -> Manifest:
        """Build the final manifest. A second call raises."""
        if self._manifest is not None:
            raise PodciError(f"manifest for run {self.run_id} already finalized")
        self._manifest = Manifest(
            schema_=MANIFEST_SCHEMA,
            podci_version=self.podci_version,
            timestamp_utc=self.timestamp_utc,
            run_id=self.run_id,
            project=self.context.project,
            job=self.context.job,
            profile=self.context.profile,
            namespace=self.context.namespace,
            env_id=self.context.env_id,
            base_image_digest=self.base_image_digest,
            base_image_digest_status=self.base_image_digest_status,
            steps=list(self._steps),
            result=ManifestResult(ok=ok, exit_code=exit_code, error=error),
            warnings=list(self._warnings),
        )
        return self._manifest

    def persist(self) -> Path:
        """Write the finalized manifest to the run directory and the latest pointer.

        Returns:
            Path of the per-run manifest.
        """
        if self._manifest is None:
            raise PodciError(f"manifest for run {self.run_id} must be finalized before persist")
        data = (self._manifest.to_json() + "\n").encode("utf-8")
        atomic_write_bytes(self.run_manifest_path, data)
        atomic_write_bytes(self.latest_manifest_path, data)
        logger.info(
            "manifest_written",
            extra={"data": {"path": str(self.run_manifest_path), "ok": self._manifest.result.ok}},
        )
        return self.run_manifest_path


# === READERS ===


def read_manifest(path: Path) -> Manifest:
    """Parse a manifest file, ignoring unknown fields.

    Raises:
        FileNotFoundError: If the file does not exist.
        ManifestSchemaError: Unknown schema string or malformed content.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ManifestSchemaError(f"{path}: not valid JSON ({exc})") from exc
    if not isinstance(data, dict):
        raise ManifestSchemaError(f"{path}: manifest must be a JSON object")
    schema = data.get("schema")
    if schema != MANIFEST_SCHEMA:
        raise ManifestSchemaError(
            f"{path}: unsupported manifest schema {schema!r} (expected {MANIFEST_SCHEMA})"
        )
    try:
        return Manifest.model_validate(data)
    except ValidationError as exc:
        raise ManifestSchemaError(f"{path}: malformed manifest ({exc.error_count()} errors)") from exc


def load_latest_manifest(state_root: Path) -> Manifest:
    return read_manifest(layout.latest_manifest_path(state_root))


def load_run_manifest(state_root: Path, run_id: str) -> Manifest:
    return read_manifest(layout.run_manifest_path(state_root, run_id))
