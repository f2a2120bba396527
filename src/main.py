# src/main.py - v1
"""CLI entry point: run, prune, manifest show, version commands.

Usage:
    podci run [--config podci.toml] [--job default] [--step NAME] [--dry-run]
    podci prune [--keep 3] [--older-than-days N] [--yes]
    podci manifest show [--run RUN_ID]
    podci version

Exit status is 0 on success and 1 on any failure.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from podci.config.settings import Settings, SettingsError, load_settings
from podci.core.errors import (
    ContainerEngineUnavailable,
    EngineCommandError,
    ManifestSchemaError,
    PodciError,
    StepExecutionError,
)
from podci.logging.logger import setup_logging
from podci.version import __version__

logger = logging.getLogger(__name__)

_HINTS = {
    "not_installed": (
        "podman is not installed or not on PATH. Install Podman and make sure "
        "`podman` (or PODCI_ENGINE_BINARY) resolves in your shell."
    ),
    "permission_denied": (
        "podman returned a permission error. Verify rootless Podman works for your "
        "user (try `podman info`). If SELinux is enforcing, keep volume relabeling "
        "enabled and make sure your storage directory is writable."
    ),
    "storage_error": (
        "podman storage appears unhealthy. Check free disk space and inodes, run "
        "`podman system check`, and as a last resort `podman system reset` "
        "(destructive). Review the printed log files for the exact error."
    ),
    "command_failed": (
        "the container step failed. Review the step stderr/stdout logs and re-run "
        "with -v for more context. A deterministic failure reproduces locally with "
        "the same job and profile."
    ),
}


def operator_hint(exc: BaseException) -> str | None:
    """Short remediation text for engine-related failures, if any."""
    if isinstance(exc, ContainerEngineUnavailable):
        return _HINTS["not_installed"]
    if isinstance(exc, EngineCommandError):
        return _HINTS.get(exc.kind)
    if isinstance(exc, StepExecutionError) and exc.error_kind in ("exit_code", "engine_error"):
        return _HINTS["command_failed"]
    return None


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = _load_settings(args)
    except (SettingsError, ValidationError) as exc:
        print(f"error: invalid settings: {exc}", file=sys.stderr)
        return 1
    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        print("interrupted", file=sys.stderr)
        return 1
    except PodciError as exc:
        _report(exc)
        return 1
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose > 0)
        print(f"error: {exc}", file=sys.stderr)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="podci",
        description=f"podci v{__version__} - local-first CI runner in containers",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="More log output (-v info, -vv debug)",
    )
    parser.add_argument(
        "--log-format", choices=["text", "json"], default=None,
        help="Log output format (default: PODCI_LOG_FORMAT or text)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser("run", help="Run a job's steps in containers")
    p_run.add_argument(
        "-c", "--config", type=Path, default=Path("podci.toml"),
        help="Path to podci.toml (default: ./podci.toml)",
    )
    p_run.add_argument("-j", "--job", default="default", help="Job name (default: default)")
    p_run.add_argument("--step", default=None, help="Run only this step of the job")
    p_run.add_argument("--profile", default=None, help="Override the job's profile")
    p_run.add_argument(
        "--repo-root", type=Path, default=None,
        help="Repository mounted into containers (default: config directory)",
    )
    p_run.add_argument(
        "--dry-run", action="store_true",
        help="Print container invocations without running anything",
    )
    p_run.add_argument("--pull", action="store_true", help="Pull base images before use")
    p_run.add_argument("--rebuild", action="store_true", help="Rebuild template images")
    p_run.set_defaults(func=_cmd_run)

    # --- prune ---
    p_prune = subparsers.add_parser("prune", help="Delete cache volumes of stale namespaces")
    p_prune.add_argument(
        "--keep", type=int, default=3,
        help="Most recent namespaces to keep (default: 3)",
    )
    p_prune.add_argument(
        "--older-than-days", type=int, default=None,
        help="Only delete namespaces older than this many days",
    )
    p_prune.add_argument(
        "--yes", action="store_true",
        help="Apply the plan (default: show it only)",
    )
    p_prune.set_defaults(func=_cmd_prune)

    # --- manifest ---
    p_manifest = subparsers.add_parser("manifest", help="Inspect run manifests")
    manifest_sub = p_manifest.add_subparsers(dest="manifest_command")
    p_show = manifest_sub.add_parser("show", help="Print a manifest as JSON")
    group = p_show.add_mutually_exclusive_group()
    group.add_argument("--latest", action="store_true", help="Latest run (default)")
    group.add_argument("--run", dest="run_id", default=None, help="Specific run id")
    p_show.set_defaults(func=_cmd_manifest_show)

    # --- version ---
    p_version = subparsers.add_parser("version", help="Print version")
    p_version.set_defaults(func=_cmd_version)

    return parser


async def _cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    """Run a job (or a single step)."""
    from podci.api.facade import run_job
    from podci.api.models import RunRequest
    from podci.runtime.invocation import render_command

    request = RunRequest(
        job=args.job,
        config_path=args.config,
        repo_root=args.repo_root,
        step=args.step,
        profile=args.profile,
        dry_run=args.dry_run,
        pull=args.pull,
        rebuild=args.rebuild,
    )
    outcome = await run_job(request, settings=settings)

    for warning in outcome.warnings:
        print(f"warning: {warning}", file=sys.stderr)

    if outcome.dry_run:
        print(f"# job={outcome.context.job} profile={outcome.context.profile} image={outcome.image.image}")
        print(f"# env_id={outcome.context.env_id}")
        for invocation in outcome.invocations:
            print(render_command(invocation))
        if outcome.error is not None:
            _report(outcome.error)
            return 1
        return 0

    if outcome.error is not None:
        _report(outcome.error)
        print(f"manifest: {outcome.manifest_path}", file=sys.stderr)
        return 1

    print(f"ok: job '{outcome.context.job}' ({len(outcome.manifest.steps)} steps)")
    print(f"run_id:   {outcome.run_id}")
    print(f"manifest: {outcome.manifest_path}")
    return 0


async def _cmd_prune(args: argparse.Namespace, settings: Settings) -> int:
    """Show or apply a prune plan."""
    from podci.api.facade import plan_or_apply_prune
    from podci.api.models import PruneRequest

    if args.keep < 0 or (args.older_than_days is not None and args.older_than_days < 0):
        print("error: --keep and --older-than-days must be >= 0", file=sys.stderr)
        return 1

    result = await plan_or_apply_prune(
        PruneRequest(keep=args.keep, older_than_days=args.older_than_days, apply=args.yes),
        settings=settings,
    )
    plan = result.plan
    for ns in plan.namespaces:
        action = "delete" if ns.delete else "keep"
        print(
            f"{action:6s} namespace {ns.namespace[:16]} "
            f"newest={ns.newest_created_at.isoformat()} volumes={len(ns.volumes)}"
        )
        for volume in ns.volumes:
            print(f"         {volume.name}")

    if result.report is None:
        if plan.to_delete:
            print(f"\n{len(plan.to_delete)} volume(s) would be deleted; re-run with --yes to apply")
        else:
            print("\nnothing to prune")
        return 0

    report = result.report
    print(
        f"\ndeleted {len(report.deleted)}, already absent {len(report.already_absent)}, "
        f"errors {len(report.errors)}"
    )
    for failure in report.errors:
        print(f"error: {failure.name}: {failure.error}", file=sys.stderr)
    return 0 if report.ok else 1


async def _cmd_manifest_show(args: argparse.Namespace, settings: Settings) -> int:
    """Print a manifest."""
    from podci.api.facade import show_manifest

    try:
        manifest = show_manifest(run_id=args.run_id, settings=settings)
    except FileNotFoundError as exc:
        print(f"error: no manifest found ({exc.filename})", file=sys.stderr)
        return 1
    except ManifestSchemaError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(manifest.to_json())
    return 0


async def _cmd_version(args: argparse.Namespace, settings: Settings) -> int:
    print(f"podci {__version__}")
    return 0


def _load_settings(args: argparse.Namespace) -> Settings:
    overrides: dict[str, object] = {}
    if args.log_format:
        overrides["log_format"] = args.log_format
    return load_settings(**overrides)


def _report(exc: BaseException) -> None:
    """Print a fatal error with run id, log paths and hint when known."""
    if isinstance(exc, StepExecutionError):
        print(f"error: {exc.describe()}", file=sys.stderr)
    else:
        print(f"error: {exc}", file=sys.stderr)
    hint = operator_hint(exc)
    if hint:
        print(f"hint: {hint}", file=sys.stderr)


def _setup_logging(settings: Settings, verbose: int) -> None:
    """Configure logging for CLI usage."""
    level = settings.log_level
    if verbose == 1:
        level = "INFO"
    elif verbose >= 2:
        level = "DEBUG"
    setup_logging(
        level=level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
