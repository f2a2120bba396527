# src/runtime/podman_driver.py - v2
"""Podman container driver built on asyncio subprocesses.

Bookkeeping commands (volume, image, inspect) are captured in memory with a
timeout. Step containers stream stdout/stderr straight into the run's log
files so output of any size is never held in memory.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import IO

from podci.cache.models import VolumeInfo
from podci.core.errors import (
    ContainerEngineUnavailable,
    DigestCaptureError,
    EngineCommandError,
)
from podci.core.models import ExplicitImageRef, TemplateRef
from podci.runtime.base_driver import BaseContainerDriver
from podci.runtime.invocation import build_run_args, render_command
from podci.runtime.models import (
    ContainerRunRequest,
    ContainerRunResult,
    ResolvedImage,
    classify_failure,
    stderr_tail,
)
from podci.runtime.templates import containerfile_for, template_tag
from podci.storage.layout import template_containerfile_path

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_TERMINATE_GRACE_S = 10.0
TRUNCATION_MARKER = b"\n[podci: output truncated, log cap reached]\n"

_FRACTION = re.compile(r"(\.\d{6})\d+")
_ABSENT_MARKERS = ("no such", "not known", "no such object", "does not exist")


@dataclass
class _Captured:
    status: int
    stdout: bytes
    stderr: bytes


def parse_engine_timestamp(value: str | None) -> datetime | None:
    """Parse engine CreatedAt values (RFC 3339, possibly with nanoseconds)."""
    if not value:
        return None
    text = _FRACTION.sub(r"\1", value.strip())
    # "2024-05-01 10:00:00.123 +0000 UTC" style from older engines
    text = text.replace(" UTC", "").replace("Z", "+00:00")
    if " " in text and "T" not in text:
        date_part, _, rest = text.partition(" ")
        time_part, _, offset = rest.partition(" ")
        text = f"{date_part}T{time_part}{offset[:3]}:{offset[3:]}" if offset else f"{date_part}T{time_part}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Unparseable volume timestamp %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


async def _pump(stream: asyncio.StreamReader, sink: IO[bytes], limit: int) -> bool:
    """Copy a pipe into a file up to ``limit`` bytes; drain the rest.

    Returns:
        True if output was truncated.
    """
    written = 0
    truncated = False
    while True:
        chunk = await stream.read(_CHUNK_SIZE)
        if not chunk:
            break
        if truncated:
            continue
        room = limit - written
        if len(chunk) > room:
            sink.write(chunk[:room])
            sink.write(TRUNCATION_MARKER)
            written = limit
            truncated = True
        else:
            sink.write(chunk)
            written += len(chunk)
        sink.flush()
    return truncated


class PodmanDriver(BaseContainerDriver):
    """Drive a local podman (or compatible) CLI."""

    def __init__(
        self,
        binary: str = "podman",
        *,
        cache_root: Path,
        timeout_s: float = 60.0,
        workspace_mount: str = "/work",
        userns: str | None = "keep-id",
        selinux_relabel: bool = True,
        max_log_bytes: int = 256 * 1024 * 1024,
    ) -> None:
        self._binary = binary
        self.cache_root = cache_root
        self.timeout_s = timeout_s
        self.workspace_mount = workspace_mount
        self.userns = userns
        self.selinux_relabel = selinux_relabel
        self.max_log_bytes = max_log_bytes

    @property
    def binary(self) -> str:
        return self._binary

    # --- Engine calls ---

    async def _capture(self, *args: str, timeout: float | None = None) -> _Captured:
        """Run a bookkeeping command and capture its output."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self._binary,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise ContainerEngineUnavailable(
                f"container engine '{self._binary}' not found on PATH"
            ) from exc
        except PermissionError as exc:
            raise ContainerEngineUnavailable(
                f"container engine '{self._binary}' is not executable: {exc}"
            ) from exc

        try:
            out, err = await asyncio.wait_for(
                proc.communicate(), timeout=timeout or self.timeout_s
            )
        except asyncio.TimeoutError:
            await self._terminate(proc)
            raise EngineCommandError(
                "command_failed",
                render_command([self._binary, *args]),
                None,
                f"timed out after {timeout or self.timeout_s:.0f}s",
            ) from None
        except asyncio.CancelledError:
            await self._terminate(proc)
            raise
        return _Captured(status=proc.returncode or 0, stdout=out, stderr=err)

    async def _checked(self, *args: str, timeout: float | None = None) -> _Captured:
        """Like _capture, but raise EngineCommandError on non-zero exit."""
        result = await self._capture(*args, timeout=timeout)
        if result.status != 0:
            tail = stderr_tail(result.stderr)
            raise EngineCommandError(
                classify_failure(result.status, tail),
                render_command([self._binary, *args]),
                result.status,
                tail,
            )
        return result

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=_TERMINATE_GRACE_S)
        except asyncio.TimeoutError:
            logger.warning("Engine process %s ignored SIGTERM, killing", proc.pid)
            try:
                proc.kill()
            except ProcessLookupError:
                return
            await proc.wait()

    # --- Availability ---

    async def check_available(self) -> None:
        try:
            result = await self._capture("--version", timeout=min(self.timeout_s, 15.0))
        except EngineCommandError as exc:
            raise ContainerEngineUnavailable(str(exc)) from exc
        if result.status != 0:
            raise ContainerEngineUnavailable(
                f"'{self._binary} --version' exited {result.status}: "
                f"{stderr_tail(result.stderr).strip()}"
            )
        logger.debug("Engine available: %s", result.stdout.decode(errors="replace").strip())

    # --- Images ---

    async def _image_exists(self, image: str) -> bool:
        result = await self._capture("image", "exists", image)
        return result.status == 0

    async def _capture_digest(self, image: str) -> str | None:
        """Digest via image inspect. None when the engine reports none.

        Raises:
            DigestCaptureError: The inspect call itself failed.
        """
        try:
            result = await self._capture("image", "inspect", "--format", "{{.Digest}}", image)
        except EngineCommandError as exc:
            raise DigestCaptureError(str(exc)) from exc
        if result.status != 0:
            tail = stderr_tail(result.stderr)
            if any(marker in tail.lower() for marker in _ABSENT_MARKERS):
                return None
            raise DigestCaptureError(tail.strip() or f"exit status {result.status}")
        value = result.stdout.decode("utf-8", errors="replace").strip()
        if not value or value == "<no value>":
            return None
        return value

    async def _resolve_digest(self, image: str, known: str | None = None) -> ResolvedImage:
        try:
            digest = await self._capture_digest(image)
        except DigestCaptureError as exc:
            logger.warning("image_digest_unavailable image=%s error=%s", image, exc)
            if known:
                return ResolvedImage(image=image, digest=known, digest_status="present")
            return ResolvedImage(image=image, digest=None, digest_status="error")
        digest = digest or known
        return ResolvedImage(
            image=image,
            digest=digest,
            digest_status="present" if digest else "unavailable",
        )

    async def resolve_image(
        self,
        container: TemplateRef | ExplicitImageRef,
        *,
        pull: bool = False,
        rebuild: bool = False,
        dry_run: bool = False,
    ) -> ResolvedImage:
        if isinstance(container, ExplicitImageRef):
            if pull and not dry_run:
                logger.info("Pulling %s", container.ref)
                await self._checked("pull", container.ref, timeout=max(self.timeout_s, 600.0))
            return await self._resolve_digest(container.ref, container.digest)

        tag = template_tag(container.name)
        if dry_run:
            return await self._resolve_digest(tag)

        exists = await self._image_exists(tag)
        if rebuild and exists:
            await self._capture("rmi", "-f", tag)
        built = False
        if rebuild or not exists:
            await self._build_template(container.name, tag, pull=pull, no_cache=rebuild)
            built = True
        resolved = await self._resolve_digest(tag)
        return resolved.model_copy(update={"built": built})

    async def _build_template(self, name: str, tag: str, *, pull: bool, no_cache: bool) -> None:
        containerfile = template_containerfile_path(self.cache_root, name)
        containerfile.parent.mkdir(parents=True, exist_ok=True)
        containerfile.write_text(containerfile_for(name), encoding="utf-8")

        args = ["build"]
        if pull:
            args.append("--pull")
        if no_cache:
            args.append("--no-cache")
        args.extend(["-f", str(containerfile), "-t", tag, str(containerfile.parent)])
        logger.info("Building template image %s", tag)
        # Image builds legitimately take minutes.
        await self._checked(*args, timeout=max(self.timeout_s, 3600.0))

    # --- Step containers ---

    async def run_container(
        self,
        request: ContainerRunRequest,
        *,
        stdout_path: Path,
        stderr_path: Path,
        dry_run: bool = False,
    ) -> ContainerRunResult:
        invocation = [
            self._binary,
            *build_run_args(
                request,
                workspace_mount=self.workspace_mount,
                userns=self.userns,
                selinux_relabel=self.selinux_relabel,
            ),
        ]
        if dry_run:
            return ContainerRunResult(invocation=invocation)

        stdout_path.parent.mkdir(parents=True, exist_ok=True)
        stderr_path.parent.mkdir(parents=True, exist_ok=True)
        started = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *invocation,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise ContainerEngineUnavailable(
                f"container engine '{self._binary}' not found on PATH"
            ) from exc

        if proc.stdout is None or proc.stderr is None:
            await self._terminate(proc)
            raise EngineCommandError(
                "unknown", render_command(invocation), None, "engine process has no output pipes"
            )
        try:
            with open(stdout_path, "wb") as out, open(stderr_path, "wb") as err:
                out_truncated, err_truncated, _ = await asyncio.gather(
                    _pump(proc.stdout, out, self.max_log_bytes),
                    _pump(proc.stderr, err, self.max_log_bytes),
                    proc.wait(),
                )
        except asyncio.CancelledError:
            logger.warning("Step container interrupted, terminating engine process")
            await self._terminate(proc)
            raise

        duration_ms = int((time.monotonic() - started) * 1000)
        return ContainerRunResult(
            invocation=invocation,
            exit_code=proc.returncode,
            duration_ms=duration_ms,
            stdout_truncated=out_truncated,
            stderr_truncated=err_truncated,
        )

    # --- Volumes ---

    async def create_volume(self, name: str, labels: dict[str, str]) -> None:
        if await self.inspect_volume(name) is not None:
            return
        args = ["volume", "create"]
        for key, value in labels.items():
            args.extend(["--label", f"{key}={value}"])
        args.append(name)
        result = await self._capture(*args)
        if result.status != 0:
            tail = stderr_tail(result.stderr)
            # Lost a race with a concurrent creator.
            if "already exists" in tail.lower():
                return
            raise EngineCommandError(
                classify_failure(result.status, tail),
                render_command([self._binary, *args]),
                result.status,
                tail,
            )

    async def inspect_volume(self, name: str) -> VolumeInfo | None:
        result = await self._capture("volume", "inspect", "--format", "json", name)
        if result.status != 0:
            tail = stderr_tail(result.stderr)
            if any(marker in tail.lower() for marker in _ABSENT_MARKERS):
                return None
            raise EngineCommandError(
                classify_failure(result.status, tail),
                render_command([self._binary, "volume", "inspect", name]),
                result.status,
                tail,
            )
        rows = self._parse_rows(result.stdout, "volume inspect")
        if not rows:
            return None
        return self._volume_from_row(rows[0], fallback_name=name)

    async def list_volumes(self, label_filter: dict[str, str] | None = None) -> list[VolumeInfo]:
        args = ["volume", "ls", "--format", "json"]
        for key, value in (label_filter or {}).items():
            args.extend(["--filter", f"label={key}={value}"])
        result = await self._checked(*args)
        volumes = [self._volume_from_row(row) for row in self._parse_rows(result.stdout, "volume ls")]
        if label_filter:
            # Older engines ignore repeated --filter flags; enforce locally.
            volumes = [
                v for v in volumes
                if all(v.labels.get(k) == val for k, val in label_filter.items())
            ]
        return volumes

    async def remove_volume(self, name: str) -> bool:
        result = await self._capture("volume", "rm", name)
        if result.status == 0:
            return True
        tail = stderr_tail(result.stderr)
        if any(marker in tail.lower() for marker in _ABSENT_MARKERS):
            return False
        raise EngineCommandError(
            classify_failure(result.status, tail),
            render_command([self._binary, "volume", "rm", name]),
            result.status,
            tail,
        )

    def _parse_rows(self, raw: bytes, what: str) -> list[dict]:
        text = raw.decode("utf-8", errors="replace").strip()
        if not text:
            return []
        try:
            rows = json.loads(text)
        except json.JSONDecodeError as exc:
            raise EngineCommandError(
                "unknown", f"{self._binary} {what}", 0, f"unparseable JSON output: {exc}"
            ) from exc
        if isinstance(rows, dict):
            rows = [rows]
        return [row for row in rows if isinstance(row, dict)]

    @staticmethod
    def _volume_from_row(row: dict, fallback_name: str = "") -> VolumeInfo:
        return VolumeInfo(
            name=row.get("Name") or fallback_name,
            labels={str(k): str(v) for k, v in (row.get("Labels") or {}).items()},
            created_at=parse_engine_timestamp(row.get("CreatedAt")),
        )
