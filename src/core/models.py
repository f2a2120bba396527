# src/core/models.py - v1
"""Shared Pydantic domain models used across modules.

The container reference is resolved once, during validation, into the tagged
union ``TemplateRef | ExplicitImageRef``; downstream code never re-inspects
the raw string.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# === IMAGE REFERENCES ===


class TemplateRef(BaseModel):
    """A named, podci-maintained image definition built on demand."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["template"] = "template"
    name: str

    def __str__(self) -> str:
        return self.name


class ExplicitImageRef(BaseModel):
    """An external image reference used as-is (registry/name[:tag][@digest])."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["image"] = "image"
    ref: str
    digest: str | None = None

    def __str__(self) -> str:
        return self.ref


ImageRef = Annotated[Union[TemplateRef, ExplicitImageRef], Field(discriminator="kind")]


# === RUN CONTEXT ===


class RunContext(BaseModel):
    """Identity of one invocation, computed once and immutable thereafter."""

    model_config = ConfigDict(frozen=True)

    project: str
    job: str
    profile: str
    namespace: str
    env_id: str
