# src/config/models.py - v1
"""Config domain models: the podci.toml document schema and the validated job graph.

The ``*Document`` models mirror the on-disk schema and reject unknown keys.
``ValidatedConfig`` is what the rest of podci consumes: container references
are already resolved and every job's step_order is a bijection onto its steps.
"""

from __future__ import annotations

from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_validator

from podci.core.errors import ConfigError, ConfigIssue
from podci.core.models import ImageRef

SUPPORTED_CONFIG_VERSION = 1


def check_workdir_syntax(value: str) -> str:
    """Validate a step workdir: relative, non-empty, no parent traversal.

    Existence on the host is checked later, at execution time.
    """
    if not value.strip():
        raise ValueError("workdir must not be empty")
    if value.startswith("/") or value.startswith("\\") or PurePosixPath(value).is_absolute():
        raise ValueError(f"workdir must be relative (got absolute {value!r})")
    parts = value.replace("\\", "/").split("/")
    if ".." in parts:
        raise ValueError(f"workdir must not contain '..' (got {value!r})")
    return value


# === DOCUMENT SCHEMA (version 1) ===


class StepDocument(BaseModel):
    """``[jobs.<job>.steps.<step>]`` table."""

    model_config = ConfigDict(extra="forbid")

    run: list[str]
    workdir: str | None = None
    env: dict[str, str] = Field(default_factory=dict)

    @field_validator("run")
    @classmethod
    def validate_run(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("run argv must not be empty")
        return v

    @field_validator("workdir")
    @classmethod
    def validate_workdir(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return check_workdir_syntax(v)


class ProfileDocument(BaseModel):
    """``[profiles.<name>]`` table."""

    model_config = ConfigDict(extra="forbid")

    container: str
    env: dict[str, str] = Field(default_factory=dict)


class JobDocument(BaseModel):
    """``[jobs.<name>]`` table."""

    model_config = ConfigDict(extra="forbid")

    profile: str
    step_order: list[str]
    steps: dict[str, StepDocument] = Field(default_factory=dict)


class ConfigDocument(BaseModel):
    """Root of podci.toml."""

    model_config = ConfigDict(extra="forbid")

    version: int
    project: str
    profiles: dict[str, ProfileDocument]
    jobs: dict[str, JobDocument]

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: int) -> int:
        if v != SUPPORTED_CONFIG_VERSION:
            raise ValueError(
                f"unsupported config version {v} (expected {SUPPORTED_CONFIG_VERSION})"
            )
        return v

    @field_validator("project")
    @classmethod
    def validate_project(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("project must be non-empty")
        return v

    @field_validator("profiles", "jobs")
    @classmethod
    def validate_non_empty(cls, v: dict) -> dict:
        if not v:
            raise ValueError("must define at least one entry")
        return v


# === VALIDATED JOB GRAPH ===


class Step(BaseModel):
    """A resolved step, read-only for the rest of the invocation."""

    model_config = ConfigDict(frozen=True)

    name: str
    argv: tuple[str, ...]
    workdir: str | None = None
    env: dict[str, str] = Field(default_factory=dict)


class Profile(BaseModel):
    """A resolved profile whose container is a TemplateRef or ExplicitImageRef."""

    model_config = ConfigDict(frozen=True)

    name: str
    container: ImageRef
    env: dict[str, str] = Field(default_factory=dict)


class Job(BaseModel):
    """A job whose step_order is guaranteed to be a bijection onto steps."""

    model_config = ConfigDict(frozen=True)

    name: str
    profile: str
    step_order: tuple[str, ...]
    steps: dict[str, Step]

    def ordered_steps(self) -> list[Step]:
        """Steps in execution order."""
        return [self.steps[name] for name in self.step_order]


class ValidatedConfig(BaseModel):
    """Fully-typed, already-consistent configuration."""

    model_config = ConfigDict(frozen=True)

    version: int
    project: str
    profiles: dict[str, Profile]
    jobs: dict[str, Job]

    def job(self, name: str) -> Job:
        try:
            return self.jobs[name]
        except KeyError:
            raise ConfigError([ConfigIssue("jobs", f"unknown job '{name}'")]) from None

    def profile(self, name: str) -> Profile:
        try:
            return self.profiles[name]
        except KeyError:
            raise ConfigError([ConfigIssue("profiles", f"unknown profile '{name}'")]) from None
