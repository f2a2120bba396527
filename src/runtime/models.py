# src/runtime/models.py - v2
"""Runtime domain models: ResolvedImage, ContainerRunRequest, ContainerRunResult."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from podci.storage.models import DigestStatus

EngineFailureKind = Literal[
    "not_installed", "permission_denied", "storage_error", "command_failed", "unknown"
]

STDERR_TAIL_BYTES = 16 * 1024


def classify_failure(status: int | None, stderr: str) -> EngineFailureKind:
    """Map an engine exit status and stderr text to a failure kind."""
    text = stderr.lower()
    if "permission denied" in text:
        return "permission_denied"
    if "creating container storage" in text or "containers/storage" in text:
        return "storage_error"
    # Missing images, volumes and containers also say "not found"; only a
    # missing executable means the engine itself is not installed.
    if status == 127 or "executable file not found" in text or "command not found" in text:
        return "not_installed"
    if status is None:
        return "unknown"
    return "command_failed"


def stderr_tail(raw: bytes, limit: int = STDERR_TAIL_BYTES) -> str:
    """Decode the last ``limit`` bytes of stderr, marking truncation."""
    if len(raw) <= limit:
        return raw.decode("utf-8", errors="replace")
    tail = raw[-limit:].decode("utf-8", errors="replace")
    return f"...(truncated, showing last {limit} bytes)...\n{tail}"


class ResolvedImage(BaseModel):
    """Concrete image to run plus best-effort digest."""

    image: str
    digest: str | None = None
    digest_status: DigestStatus = "unavailable"
    built: bool = False


class VolumeMount(BaseModel):
    """Named volume mounted at a fixed container path."""

    name: str
    container_path: str


class ContainerRunRequest(BaseModel):
    """Everything needed to run one step in a fresh container."""

    image: str
    argv: list[str]
    repo_root: Path
    workdir: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    volumes: list[VolumeMount] = Field(default_factory=list)


class ContainerRunResult(BaseModel):
    """Outcome of one container run. ``exit_code`` is None in dry-run."""

    invocation: list[str]
    exit_code: int | None = None
    duration_ms: int = 0
    stdout_truncated: bool = False
    stderr_truncated: bool = False
