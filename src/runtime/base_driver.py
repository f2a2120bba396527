# src/runtime/base_driver.py - v1
"""Abstract container driver interface.

The only component that talks to the container engine. Everything above it
(volume manager, execution engine, prune) depends on this interface, so tests
substitute an in-memory driver.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from podci.cache.models import VolumeInfo
from podci.core.models import ExplicitImageRef, TemplateRef
from podci.runtime.models import ContainerRunRequest, ContainerRunResult, ResolvedImage


class BaseContainerDriver(ABC):
    """Unified interface for container engine backends."""

    @property
    @abstractmethod
    def binary(self) -> str:
        """Engine executable shown in invocations."""

    @abstractmethod
    async def check_available(self) -> None:
        """Raise ContainerEngineUnavailable if the engine cannot be used."""

    @abstractmethod
    async def resolve_image(
        self,
        container: TemplateRef | ExplicitImageRef,
        *,
        pull: bool = False,
        rebuild: bool = False,
        dry_run: bool = False,
    ) -> ResolvedImage:
        """Make the image available (building templates) and capture its digest."""

    @abstractmethod
    async def run_container(
        self,
        request: ContainerRunRequest,
        *,
        stdout_path: Path,
        stderr_path: Path,
        dry_run: bool = False,
    ) -> ContainerRunResult:
        """Run one step in a fresh container, streaming output to the log files."""

    @abstractmethod
    async def create_volume(self, name: str, labels: dict[str, str]) -> None:
        """Create a volume with labels. No-op if it already exists."""

    @abstractmethod
    async def inspect_volume(self, name: str) -> VolumeInfo | None:
        """Return volume details, or None if it does not exist."""

    @abstractmethod
    async def list_volumes(self, label_filter: dict[str, str] | None = None) -> list[VolumeInfo]:
        """List volumes, optionally restricted to those carrying all given labels."""

    @abstractmethod
    async def remove_volume(self, name: str) -> bool:
        """Remove a volume. Returns False if it was already absent."""
