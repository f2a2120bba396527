# src/pipeline/runner.py - v2
"""Step execution engine: run a job's steps sequentially in containers.

Order of operations per invocation:
  1. derive RunContext (namespace, env_id) and select steps
  2. check the container engine is available
  3. resolve the image (build templates, capture digest)
  4. ensure cache volumes
  5. walk the steps fail-fast, recording every step in the manifest
Failures in 1-4 abort before any step container starts. Once the walk
begins, a manifest is always finalized, including on failure and interrupt.
"""

from __future__ import annotations

import asyncio
import logging
import time

from podci.cache.fingerprint import derive_run_context
from podci.cache.volume_manager import VolumeManager
from podci.config.models import Step, ValidatedConfig
from podci.core.errors import (
    ConfigError,
    ConfigIssue,
    ContainerEngineUnavailable,
    EngineCommandError,
    InterruptedRunError,
    StepExecutionError,
)
from podci.logging.context import clear_context, set_run_context, set_step_context
from podci.pipeline.models import RunEnvironment, RunOutcome
from podci.pipeline.state import StepState, StepTracker
from podci.pipeline.workdir import resolve_host_workdir
from podci.runtime.base_driver import BaseContainerDriver
from podci.runtime.invocation import merge_env, render_command
from podci.runtime.models import ContainerRunRequest, ResolvedImage, VolumeMount
from podci.storage.models import StepResult
from podci.storage.run_manager import ManifestRecorder, generate_run_id

logger = logging.getLogger(__name__)

INTERRUPTED_EXIT_CODE = 130


class StepExecutionEngine:
    """Execute one job (or one step of it) against a container driver.

    Args:
        driver: Container driver.
        volume_manager: Cache volume manager bound to the same driver.
        run_env: Explicit run configuration (repo root, state dir, env).
    """

    def __init__(
        self,
        driver: BaseContainerDriver,
        volume_manager: VolumeManager,
        run_env: RunEnvironment,
    ) -> None:
        self._driver = driver
        self._volumes = volume_manager
        self._env = run_env

    async def run(
        self,
        config: ValidatedConfig,
        job: str,
        *,
        step: str | None = None,
        profile: str | None = None,
        dry_run: bool = False,
        pull: bool = False,
        rebuild: bool = False,
    ) -> RunOutcome:
        """Run a job.

        Returns:
            RunOutcome; failed steps are reported through ``outcome.error``.

        Raises:
            ConfigError: Unknown job, profile or step.
            ContainerEngineUnavailable: Engine missing or not responding.
            EngineCommandError: Image or volume preparation failed.
            InterruptedRunError: The run was cancelled while a step ran.
        """
        ctx = derive_run_context(config, job, profile)
        job_def = config.job(job)
        profile_def = config.profile(ctx.profile)

        steps = job_def.ordered_steps()
        if step is not None:
            if step not in job_def.steps:
                raise ConfigError(
                    [ConfigIssue(f"jobs.{job}.steps", f"unknown step '{step}'")]
                )
            steps = [job_def.steps[step]]

        await self._driver.check_available()
        image = await self._driver.resolve_image(
            profile_def.container, pull=pull, rebuild=rebuild, dry_run=dry_run
        )
        ensured = await self._volumes.ensure_volumes(ctx, dry_run=dry_run)

        run_id = generate_run_id()
        set_run_context(run_id, ctx.job, ctx.namespace)
        recorder = ManifestRecorder(
            self._env.state_root,
            run_id,
            ctx,
            podci_version=self._env.podci_version,
            base_image_digest=image.digest,
            base_image_digest_status=image.digest_status,
        )
        for warning in ensured.warnings:
            recorder.add_warning(str(warning))

        mounts = [
            VolumeMount(name=v.name, container_path=v.mount_path)
            for v in ensured.volumes
            if v.mount_path
        ]
        env_base = merge_env(self._env.base_env, profile_def.env)
        logger.info(
            "run_start",
            extra={"data": {
                "job": ctx.job, "profile": ctx.profile, "env_id": ctx.env_id,
                "image": image.image, "steps": [s.name for s in steps], "dry_run": dry_run,
            }},
        )

        tracker = StepTracker([s.name for s in steps])
        invocations: list[list[str]] = []
        error: StepExecutionError | None = None
        interrupted: InterruptedRunError | None = None

        for index, step_def in enumerate(steps):
            if error is not None:
                break
            set_step_context(step_def.name)
            try:
                invocation, error = await self._run_step(
                    step_def, index, image, mounts, env_base, tracker, recorder, dry_run=dry_run
                )
            except InterruptedRunError as exc:
                interrupted = exc
                break
            if invocation is not None:
                invocations.append(invocation)
        set_step_context(None)

        for name in tracker.skip_pending():
            skipped = next(s for s in steps if s.name == name)
            recorder.record(StepResult(name=name, argv=list(skipped.argv), status="skipped"))
            logger.info("step_skipped %s", name)

        if interrupted is not None:
            manifest = recorder.finalize(False, INTERRUPTED_EXIT_CODE, str(interrupted))
        elif error is not None:
            exit_code = error.exit_code if error.exit_code is not None else 1
            manifest = recorder.finalize(False, exit_code, str(error))
        else:
            manifest = recorder.finalize(True, 0)

        manifest_path = None
        if not dry_run:
            manifest_path = recorder.persist()
        logger.info(
            "run_end",
            extra={"data": {"ok": manifest.result.ok, "exit_code": manifest.result.exit_code}},
        )
        clear_context()

        outcome = RunOutcome(
            run_id=run_id,
            context=ctx,
            image=image,
            manifest=manifest,
            dry_run=dry_run,
            invocations=invocations,
            manifest_path=manifest_path,
            error=error,
            warnings=list(ensured.warnings),
        )
        if interrupted is not None:
            interrupted.outcome = outcome
            raise interrupted
        return outcome

    async def _run_step(
        self,
        step: Step,
        index: int,
        image: ResolvedImage,
        mounts: list[VolumeMount],
        env_base: dict[str, str],
        tracker: StepTracker,
        recorder: ManifestRecorder,
        *,
        dry_run: bool,
    ) -> tuple[list[str] | None, StepExecutionError | None]:
        """Run one step. Returns (invocation, error); raises InterruptedRunError."""
        stdout_path, stderr_path = recorder.log_paths(step.name, index)
        argv = list(step.argv)

        def fail(message: str, kind: str, exit_code: int | None = None, duration_ms: int = 0):
            if tracker.state(step.name) is StepState.PENDING:
                tracker.transition(step.name, StepState.RUNNING)
            tracker.transition(step.name, StepState.FAILED)
            recorder.record(StepResult(
                name=step.name, argv=argv, status="failed", duration_ms=duration_ms,
                exit_code=exit_code, error_kind=kind,
                stdout_path=None if dry_run else stdout_path,
                stderr_path=None if dry_run else stderr_path,
            ))
            logger.error("step_failed %s: %s", step.name, message)
            return StepExecutionError(
                step.name, message, exit_code=exit_code, error_kind=kind,
                run_id=recorder.run_id,
                stdout_path=None if dry_run else stdout_path,
                stderr_path=None if dry_run else stderr_path,
            )

        if not dry_run:
            tracker.transition(step.name, StepState.RUNNING)
        logger.info("step_start %s", step.name)

        try:
            resolve_host_workdir(self._env.repo_root, step.workdir)
        except ValueError as exc:
            return None, fail(str(exc), "workdir_missing")

        request = ContainerRunRequest(
            image=image.image,
            argv=argv,
            repo_root=self._env.repo_root,
            workdir=step.workdir,
            env=merge_env(env_base, step.env),
            volumes=mounts,
        )

        started = time.monotonic()
        try:
            result = await self._driver.run_container(
                request, stdout_path=stdout_path, stderr_path=stderr_path, dry_run=dry_run
            )
        except asyncio.CancelledError:
            duration_ms = int((time.monotonic() - started) * 1000)
            fail("interrupted by operator", "interrupted", duration_ms=duration_ms)
            raise InterruptedRunError(
                step.name,
                run_id=recorder.run_id,
                stdout_path=stdout_path,
                stderr_path=stderr_path,
            ) from None
        except (ContainerEngineUnavailable, EngineCommandError, OSError) as exc:
            duration_ms = int((time.monotonic() - started) * 1000)
            return None, fail(str(exc), "engine_error", duration_ms=duration_ms)

        if dry_run:
            logger.info("step_planned %s: %s", step.name, render_command(result.invocation))
            tracker.transition(step.name, StepState.SKIPPED)
            recorder.record(StepResult(name=step.name, argv=argv, status="skipped"))
            return result.invocation, None

        if result.exit_code == 0:
            tracker.transition(step.name, StepState.SUCCEEDED)
            recorder.record(StepResult(
                name=step.name, argv=argv, status="succeeded",
                duration_ms=result.duration_ms, exit_code=0,
                stdout_path=stdout_path, stderr_path=stderr_path,
            ))
            logger.info("step_end %s ok in %dms", step.name, result.duration_ms)
            return result.invocation, None

        return result.invocation, fail(
            f"exited with status {result.exit_code}",
            "exit_code",
            exit_code=result.exit_code,
            duration_ms=result.duration_ms,
        )
