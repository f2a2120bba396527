# src/runtime/invocation.py - v1
"""Engine command-line construction for ``run`` and friends.

Kept free of I/O so the exact invocation can be shown in dry-run and
asserted in tests.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from podci.runtime.models import ContainerRunRequest

_SAFE_SHELL_WORD = re.compile(r"^[A-Za-z0-9_./:=@%+,-]+$")


def merge_env(*layers: Mapping[str, str]) -> dict[str, str]:
    """Merge env layers left to right; later layers override earlier ones."""
    merged: dict[str, str] = {}
    for layer in layers:
        merged.update(layer)
    return merged


def container_workdir(workspace_mount: str, workdir: str | None) -> str:
    """Container-side working directory for a step."""
    base = workspace_mount.rstrip("/") or "/"
    if not workdir or workdir in (".", "./"):
        return base
    rel = workdir.strip("/")
    if rel.startswith("./"):
        rel = rel[2:]
    return f"{base}/{rel}"


def build_run_args(
    request: ContainerRunRequest,
    *,
    workspace_mount: str = "/work",
    userns: str | None = "keep-id",
    selinux_relabel: bool = True,
) -> list[str]:
    """Arguments after the engine binary for running one step.

    Shape: run --rm [--userns=..] -v vol:path[:Z].. -v repo:/work[:Z] -w dir
    --env K=V.. image argv..
    """
    suffix = ":Z" if selinux_relabel else ""
    args = ["run", "--rm"]
    if userns:
        args.append(f"--userns={userns}")
    for volume in request.volumes:
        args.extend(["-v", f"{volume.name}:{volume.container_path}{suffix}"])
    args.extend(["-v", f"{request.repo_root}:{workspace_mount}{suffix}"])
    args.extend(["-w", container_workdir(workspace_mount, request.workdir)])
    for key, value in request.env.items():
        args.extend(["--env", f"{key}={value}"])
    args.append(request.image)
    args.extend(request.argv)
    return args


def shell_quote(word: str) -> str:
    """POSIX-shell quote a single word for display."""
    if word and _SAFE_SHELL_WORD.match(word):
        return word
    return "'" + word.replace("'", "'\"'\"'") + "'"


def render_command(argv: list[str]) -> str:
    """Render an argv list as a copy-pasteable shell command line."""
    return " ".join(shell_quote(word) for word in argv)
