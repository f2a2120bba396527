# src/cache/volume_manager.py - v1
"""Cache volume lifecycle: deterministic names, ownership labels, listing.

Every (namespace, env_id, kind) triple maps to exactly one volume. Volumes
podci creates carry the full label set; anything without it is never adopted
and never pruned.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from podci.cache.models import (
    LABEL_ENV_ID,
    LABEL_MANAGED,
    LABEL_NAMESPACE,
    LABEL_VOLUME_KIND,
    CacheVolume,
    VolumeEnsureResult,
    VolumeInfo,
)
from podci.core.errors import VolumeOwnershipWarning
from podci.core.models import RunContext
from podci.runtime.base_driver import BaseContainerDriver

logger = logging.getLogger(__name__)

VOLUME_PREFIX = "podci"
_ID_PREFIX_LEN = 16


def volume_name(namespace: str, env_id: str, kind: str) -> str:
    """Deterministic volume name, e.g. podci_<ns16>_<env16>_cargo_registry."""
    return f"{VOLUME_PREFIX}_{namespace[:_ID_PREFIX_LEN]}_{env_id[:_ID_PREFIX_LEN]}_{kind}"


def _ownership_problem(info: VolumeInfo, expected: CacheVolume) -> str | None:
    """Why an existing volume does not belong to ``expected``, or None."""
    if not info.is_managed():
        return "missing podci ownership labels"
    for key, value in expected.labels().items():
        if info.labels.get(key) != value:
            return f"label {key}={info.labels.get(key)!r} does not match {value!r}"
    return None


class VolumeManager:
    """Creates and lists podci-owned cache volumes through a driver."""

    def __init__(self, driver: BaseContainerDriver, cache_mounts: Mapping[str, str]) -> None:
        """
        Args:
            driver: Container driver.
            cache_mounts: Ordered volume kind -> in-container path.
        """
        self.driver = driver
        self.cache_mounts = dict(cache_mounts)

    def planned_volumes(self, ctx: RunContext) -> list[CacheVolume]:
        """One volume per declared kind, in declaration order. No I/O."""
        return [
            CacheVolume(
                name=volume_name(ctx.namespace, ctx.env_id, kind),
                namespace=ctx.namespace,
                env_id=ctx.env_id,
                kind=kind,
                mount_path=path,
            )
            for kind, path in self.cache_mounts.items()
        ]

    async def ensure_volumes(self, ctx: RunContext, *, dry_run: bool = False) -> VolumeEnsureResult:
        """Make sure every cache volume for ``ctx`` exists.

        Missing volumes are created with ownership labels. A pre-existing
        volume whose labels do not match is used as-is, never relabeled,
        and reported as a VolumeOwnershipWarning. In dry-run nothing is
        created; existing volumes are still inspected.
        """
        result = VolumeEnsureResult()
        for planned in self.planned_volumes(ctx):
            info = await self.driver.inspect_volume(planned.name)
            if info is None:
                if not dry_run:
                    await self.driver.create_volume(planned.name, planned.labels())
                    logger.info("Created cache volume %s", planned.name)
                result.created.append(planned.name)
                result.volumes.append(planned)
                continue

            problem = _ownership_problem(info, planned)
            if problem is not None:
                warning = VolumeOwnershipWarning(planned.name, problem)
                logger.warning(str(warning))
                result.warnings.append(warning)
            result.volumes.append(planned.model_copy(update={"created_at": info.created_at}))
        return result

    async def list_managed(self) -> list[CacheVolume]:
        """All volumes carrying the complete podci label set. Read-only."""
        infos = await self.driver.list_volumes({LABEL_MANAGED: "true"})
        managed = []
        for info in infos:
            if not info.is_managed():
                continue
            managed.append(
                CacheVolume(
                    name=info.name,
                    namespace=info.labels[LABEL_NAMESPACE],
                    env_id=info.labels[LABEL_ENV_ID],
                    kind=info.labels[LABEL_VOLUME_KIND],
                    created_at=info.created_at,
                )
            )
        return managed
