# src/pipeline/workdir.py - v1
"""Execution-time resolution of a step's host working directory."""

from __future__ import annotations

from pathlib import Path

from podci.config.models import check_workdir_syntax


def resolve_host_workdir(repo_root: Path, workdir: str | None) -> Path:
    """Resolve ``workdir`` against the repository root and require it to exist.

    Raises:
        ValueError: Syntactically invalid, escapes the repository, or missing.
    """
    root = repo_root.resolve()
    if not workdir:
        return root
    check_workdir_syntax(workdir)
    candidate = (root / workdir).resolve()
    # Symlinks may still point outside the repository.
    if candidate != root and root not in candidate.parents:
        raise ValueError(f"workdir '{workdir}' resolves outside the repository ({candidate})")
    if not candidate.is_dir():
        raise ValueError(f"workdir '{workdir}' does not exist under {root}")
    return candidate
