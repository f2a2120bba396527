# src/prune/models.py - v1
"""Prune domain models: PrunePolicy, PrunePlan, PruneReport."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from podci.cache.models import CacheVolume

VolumeOutcome = Literal["deleted", "already_absent", "error"]


class PrunePolicy(BaseModel):
    """Retention policy applied per namespace."""

    keep: int = 3
    older_than_days: int | None = None

    @field_validator("keep")
    @classmethod
    def validate_keep(cls, v: int) -> int:
        if v < 0:
            raise ValueError("keep must be >= 0")
        return v

    @field_validator("older_than_days")
    @classmethod
    def validate_older_than(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("older_than_days must be >= 0")
        return v


class NamespacePlan(BaseModel):
    """Decision for one namespace (all volumes of one project/job)."""

    namespace: str
    newest_created_at: datetime
    rank: int
    delete: bool
    volumes: list[CacheVolume] = Field(default_factory=list)


class PrunePlan(BaseModel):
    """Immutable result of evaluating a policy against managed volumes."""

    policy: PrunePolicy
    evaluated_at: datetime
    namespaces: list[NamespacePlan] = Field(default_factory=list)

    @property
    def to_delete(self) -> list[CacheVolume]:
        return [v for ns in self.namespaces if ns.delete for v in ns.volumes]

    @property
    def to_keep(self) -> list[CacheVolume]:
        return [v for ns in self.namespaces if not ns.delete for v in ns.volumes]


class VolumeReport(BaseModel):
    name: str
    namespace: str
    outcome: VolumeOutcome
    error: str | None = None


class PruneReport(BaseModel):
    """Per-volume outcome of applying a plan."""

    volumes: list[VolumeReport] = Field(default_factory=list)

    @property
    def deleted(self) -> list[str]:
        return [v.name for v in self.volumes if v.outcome == "deleted"]

    @property
    def already_absent(self) -> list[str]:
        return [v.name for v in self.volumes if v.outcome == "already_absent"]

    @property
    def errors(self) -> list[VolumeReport]:
        return [v for v in self.volumes if v.outcome == "error"]

    @property
    def ok(self) -> bool:
        return not self.errors
