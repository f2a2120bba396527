# src/prune/policy.py - v1
"""Prune planning (pure) and application (through the driver).

The unit of retention is the namespace: a namespace is ranked by its newest
volume, the ``keep`` most recent namespaces survive, and of the rest only
those older than ``older_than_days`` (when set) are deleted.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from podci.cache.models import CacheVolume
from podci.core.errors import EngineCommandError, PruneVolumeError
from podci.prune.models import NamespacePlan, PrunePlan, PrunePolicy, PruneReport, VolumeReport
from podci.runtime.base_driver import BaseContainerDriver

logger = logging.getLogger(__name__)


def plan_prune(
    volumes: Iterable[CacheVolume],
    policy: PrunePolicy,
    now: datetime | None = None,
) -> PrunePlan:
    """Decide which namespaces to delete. Mutates nothing.

    Volumes with an unknown creation time count as created ``now``, so they
    are never the reason a namespace looks old.
    """
    now = now or datetime.now(timezone.utc)
    grouped: dict[str, list[CacheVolume]] = defaultdict(list)
    for volume in volumes:
        grouped[volume.namespace].append(volume)

    newest = {
        ns: max((v.created_at or now) for v in members)
        for ns, members in grouped.items()
    }
    # Newest first; name breaks ties so the plan is deterministic.
    ranked = sorted(grouped, key=lambda ns: (newest[ns], ns), reverse=True)
    cutoff = (
        now - timedelta(days=policy.older_than_days)
        if policy.older_than_days is not None
        else None
    )

    namespaces = []
    for rank, ns in enumerate(ranked):
        delete = rank >= policy.keep and (cutoff is None or newest[ns] < cutoff)
        namespaces.append(
            NamespacePlan(
                namespace=ns,
                newest_created_at=newest[ns],
                rank=rank,
                delete=delete,
                volumes=sorted(grouped[ns], key=lambda v: v.name),
            )
        )
    return PrunePlan(policy=policy, evaluated_at=now, namespaces=namespaces)


async def apply_prune(plan: PrunePlan, driver: BaseContainerDriver) -> PruneReport:
    """Delete exactly the planned volumes, continuing past individual failures."""
    report = PruneReport()
    for volume in plan.to_delete:
        try:
            removed = await driver.remove_volume(volume.name)
        except (EngineCommandError, OSError) as exc:
            err = PruneVolumeError(volume.name, exc)
            logger.warning(str(err))
            report.volumes.append(
                VolumeReport(name=volume.name, namespace=volume.namespace, outcome="error", error=str(exc))
            )
            continue
        outcome = "deleted" if removed else "already_absent"
        logger.info("Prune %s: %s", volume.name, outcome)
        report.volumes.append(
            VolumeReport(name=volume.name, namespace=volume.namespace, outcome=outcome)
        )
    return report
