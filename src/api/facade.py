# src/api/facade.py - v1
"""Public API facade: run a job, plan or apply a prune, read manifests.

Usage:
    from podci.api.facade import run_job
    from podci.api.models import RunRequest
    outcome = await run_job(RunRequest(job="default"))

Each function wires settings, the driver factory and the relevant engine.
A driver may be injected (tests, embedding in other tools).
"""

from __future__ import annotations

import logging

from podci.api.models import PruneRequest, PruneResult, RunRequest
from podci.cache.volume_manager import VolumeManager
from podci.config.settings import Settings
from podci.config.validator import load_config
from podci.pipeline.models import RunEnvironment, RunOutcome
from podci.pipeline.runner import StepExecutionEngine
from podci.prune.models import PrunePolicy
from podci.prune.policy import apply_prune, plan_prune
from podci.runtime.base_driver import BaseContainerDriver
from podci.runtime.driver_factory import create_driver
from podci.storage.models import Manifest
from podci.storage.run_manager import load_latest_manifest, load_run_manifest

logger = logging.getLogger(__name__)


async def run_job(
    request: RunRequest,
    settings: Settings | None = None,
    driver: BaseContainerDriver | None = None,
) -> RunOutcome:
    """Load config, then run one job (or one step) end to end.

    Raises:
        ConfigError: Invalid config or unknown job/profile/step.
        ContainerEngineUnavailable: Engine missing.
        InterruptedRunError: Cancelled while a step was running.
    """
    settings = settings or Settings()
    config = load_config(request.config_path)
    driver = driver or create_driver(settings)

    run_env = RunEnvironment.from_settings(settings, request.resolved_repo_root())
    volumes = VolumeManager(driver, run_env.cache_mounts)
    engine = StepExecutionEngine(driver, volumes, run_env)

    logger.info("Running job %s (config %s)", request.job, request.config_path)
    return await engine.run(
        config,
        request.job,
        step=request.step,
        profile=request.profile,
        dry_run=request.dry_run,
        pull=request.pull,
        rebuild=request.rebuild,
    )


async def plan_or_apply_prune(
    request: PruneRequest,
    settings: Settings | None = None,
    driver: BaseContainerDriver | None = None,
) -> PruneResult:
    """Compute a prune plan over podci-managed volumes; apply it if requested."""
    settings = settings or Settings()
    driver = driver or create_driver(settings)
    await driver.check_available()

    manager = VolumeManager(driver, settings.cache_mounts_map)
    managed = await manager.list_managed()
    plan = plan_prune(
        managed,
        PrunePolicy(keep=request.keep, older_than_days=request.older_than_days),
    )
    logger.info(
        "Prune plan: %d namespaces, %d volumes to delete",
        len(plan.namespaces),
        len(plan.to_delete),
    )
    if not request.apply:
        return PruneResult(plan=plan)
    report = await apply_prune(plan, driver)
    return PruneResult(plan=plan, report=report)


def show_manifest(run_id: str | None = None, settings: Settings | None = None) -> Manifest:
    """Load the latest manifest, or a specific run's.

    Raises:
        FileNotFoundError: No such manifest.
        ManifestSchemaError: Unsupported or malformed manifest.
    """
    settings = settings or Settings()
    state_root = settings.state_root()
    if run_id:
        return load_run_manifest(state_root, run_id)
    return load_latest_manifest(state_root)
