# tests/conftest.py - v1
"""Shared test fixtures for all unit and integration tests.

Provides an in-memory container driver, sample podci.toml documents, a
scratch repository and state directory. No container engine is needed;
all engine I/O goes through FakeContainerDriver.
"""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from podci.cache.models import VolumeInfo
from podci.cache.volume_manager import VolumeManager
from podci.config.models import ValidatedConfig
from podci.config.settings import Settings
from podci.config.validator import validate_config
from podci.core.errors import ContainerEngineUnavailable
from podci.core.models import ExplicitImageRef, TemplateRef
from podci.pipeline.models import RunEnvironment
from podci.pipeline.runner import StepExecutionEngine
from podci.runtime.base_driver import BaseContainerDriver
from podci.runtime.invocation import build_run_args
from podci.runtime.models import ContainerRunRequest, ContainerRunResult, ResolvedImage
from podci.runtime.templates import template_tag

DEFAULT_CACHE_MOUNTS = {
    "cargo_registry": "/usr/local/cargo/registry",
    "cargo_git": "/usr/local/cargo/git",
    "target": "/work/target",
}
BASE_ENV = {"CARGO_HOME": "/usr/local/cargo"}
FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# === FAKE DRIVER ===


class FakeContainerDriver(BaseContainerDriver):
    """In-memory driver: volumes in a dict, step exit codes scripted by argv.

    ``exit_codes`` maps ``" ".join(argv)`` to an exit code (default 0).
    ``hang_on`` lists argv strings whose container never finishes, so a test
    can cancel the run mid-step.
    """

    def __init__(self, digest: str | None = "sha256:" + "ab" * 32) -> None:
        self.available = True
        self.digest = digest
        self.exit_codes: dict[str, int] = {}
        self.hang_on: set[str] = set()
        self.run_errors: dict[str, Exception] = {}
        self.remove_errors: dict[str, Exception] = {}
        self.volumes: dict[str, VolumeInfo] = {}
        self.calls: list[str] = []
        self.runs: list[ContainerRunRequest] = []
        self.removed: list[str] = []
        self.created: list[str] = []
        self.clock = FIXED_NOW
        self.started = asyncio.Event()

    @property
    def binary(self) -> str:
        return "podman"

    def add_volume(
        self, name: str, labels: dict[str, str] | None = None, created_at: datetime | None = None
    ) -> None:
        self.volumes[name] = VolumeInfo(name=name, labels=labels or {}, created_at=created_at)

    async def check_available(self) -> None:
        self.calls.append("check_available")
        if not self.available:
            raise ContainerEngineUnavailable("container engine 'podman' not found on PATH")

    async def resolve_image(self, container, *, pull=False, rebuild=False, dry_run=False):
        self.calls.append(f"resolve_image:{container}:dry_run={dry_run}")
        if isinstance(container, TemplateRef):
            image = template_tag(container.name)
            digest = self.digest
        else:
            assert isinstance(container, ExplicitImageRef)
            image = container.ref
            digest = container.digest or self.digest
        return ResolvedImage(
            image=image,
            digest=digest,
            digest_status="present" if digest else "unavailable",
            built=isinstance(container, TemplateRef) and not dry_run,
        )

    async def run_container(self, request, *, stdout_path, stderr_path, dry_run=False):
        invocation = [self.binary, *build_run_args(request)]
        if dry_run:
            return ContainerRunResult(invocation=invocation)
        key = " ".join(request.argv)
        self.calls.append(f"run:{key}")
        self.runs.append(request)
        if key in self.run_errors:
            raise self.run_errors[key]
        stdout_path.parent.mkdir(parents=True, exist_ok=True)
        stdout_path.write_text(f"ran {key}\n", encoding="utf-8")
        stderr_path.write_text("", encoding="utf-8")
        if key in self.hang_on:
            self.started.set()
            await asyncio.sleep(3600)
        return ContainerRunResult(
            invocation=invocation, exit_code=self.exit_codes.get(key, 0), duration_ms=7
        )

    async def create_volume(self, name: str, labels: dict[str, str]) -> None:
        self.calls.append(f"create_volume:{name}")
        if name not in self.volumes:
            self.clock += timedelta(seconds=1)
            self.volumes[name] = VolumeInfo(name=name, labels=dict(labels), created_at=self.clock)
            self.created.append(name)

    async def inspect_volume(self, name: str) -> VolumeInfo | None:
        return self.volumes.get(name)

    async def list_volumes(self, label_filter: dict[str, str] | None = None) -> list[VolumeInfo]:
        return [
            v for v in self.volumes.values()
            if all(v.labels.get(k) == val for k, val in (label_filter or {}).items())
        ]

    async def remove_volume(self, name: str) -> bool:
        self.calls.append(f"remove_volume:{name}")
        if name in self.remove_errors:
            raise self.remove_errors[name]
        if name not in self.volumes:
            return False
        del self.volumes[name]
        self.removed.append(name)
        return True


# === FIXTURES: Config documents ===


SAMPLE_DOCUMENT: dict[str, Any] = {
    "version": 1,
    "project": "demo",
    "profiles": {
        "dev": {"container": "rust-debian", "env": {"RUST_BACKTRACE": "1"}},
        "alpine": {"container": "rust-alpine"},
    },
    "jobs": {
        "default": {
            "profile": "dev",
            "step_order": ["fmt", "test", "package"],
            "steps": {
                "fmt": {"run": ["cargo", "fmt", "--check"]},
                "test": {"run": ["cargo", "test"], "env": {"RUST_BACKTRACE": "full"}},
                "package": {"run": ["cargo", "package"], "workdir": "crates/core"},
            },
        },
        "lint": {
            "profile": "dev",
            "step_order": ["clippy"],
            "steps": {"clippy": {"run": ["cargo", "clippy"]}},
        },
    },
}

SAMPLE_TOML = """\
version = 1
project = "demo"

[profiles.dev]
container = "rust-debian"
env = { RUST_BACKTRACE = "1" }

[jobs.default]
profile = "dev"
step_order = ["fmt", "test"]

[jobs.default.steps.fmt]
run = ["cargo", "fmt", "--check"]

[jobs.default.steps.test]
run = ["cargo", "test"]
"""


@pytest.fixture
def sample_document() -> dict[str, Any]:
    """Deep copy of a valid three-step config document."""
    return copy.deepcopy(SAMPLE_DOCUMENT)


@pytest.fixture
def sample_config(sample_document: dict[str, Any]) -> ValidatedConfig:
    return validate_config(sample_document)


@pytest.fixture
def sample_toml() -> str:
    return SAMPLE_TOML


# === FIXTURES: Filesystem ===


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    """Scratch repository containing crates/core."""
    root = tmp_path / "repo"
    (root / "crates" / "core").mkdir(parents=True)
    return root


@pytest.fixture
def state_root(tmp_path: Path) -> Path:
    return tmp_path / "state"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        state_dir=tmp_path / "state",
        cache_dir=tmp_path / "cache",
    )


# === FIXTURES: Engine wiring ===


@pytest.fixture
def fake_driver() -> FakeContainerDriver:
    return FakeContainerDriver()


@pytest.fixture
def run_env(repo_root: Path, state_root: Path) -> RunEnvironment:
    return RunEnvironment(
        repo_root=repo_root,
        state_root=state_root,
        cache_mounts=dict(DEFAULT_CACHE_MOUNTS),
        base_env=dict(BASE_ENV),
    )


@pytest.fixture
def volume_manager(fake_driver: FakeContainerDriver) -> VolumeManager:
    return VolumeManager(fake_driver, DEFAULT_CACHE_MOUNTS)


@pytest.fixture
def engine(
    fake_driver: FakeContainerDriver,
    volume_manager: VolumeManager,
    run_env: RunEnvironment,
) -> StepExecutionEngine:
    return StepExecutionEngine(fake_driver, volume_manager, run_env)
