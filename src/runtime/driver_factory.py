# src/runtime/driver_factory.py - v1
"""Factory: instantiate the container driver from settings."""

from __future__ import annotations

import shutil

from podci.config.settings import Settings
from podci.core.errors import ContainerEngineUnavailable
from podci.runtime.base_driver import BaseContainerDriver


def create_driver(settings: Settings | None = None) -> BaseContainerDriver:
    """Create the container driver for the configured engine binary.

    Args:
        settings: Deployment settings. Defaults to environment settings.

    Raises:
        ContainerEngineUnavailable: If the engine binary cannot be found.
    """
    if settings is None:
        settings = Settings()

    binary = shutil.which(settings.engine_binary)
    if binary is None:
        raise ContainerEngineUnavailable(
            f"container engine '{settings.engine_binary}' not found on PATH; "
            "install podman or set PODCI_ENGINE_BINARY"
        )

    from podci.runtime.podman_driver import PodmanDriver

    return PodmanDriver(
        binary=binary,
        cache_root=settings.cache_root(),
        timeout_s=settings.engine_timeout_s,
        workspace_mount=settings.workspace_mount,
        userns=settings.userns or None,
        selinux_relabel=settings.selinux_relabel,
        max_log_bytes=settings.max_log_bytes,
    )
