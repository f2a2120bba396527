# src/storage/layout.py - v2
"""State directory structure definition.

  <state>/manifest.json                       latest manifest (copy, not link)
  <state>/runs/<run_id>/manifest.json         per-run manifest
  <state>/runs/<run_id>/logs/<step>.stdout    captured step output
  <state>/runs/<run_id>/logs/<step>.stderr
  <cache>/images/<template>/Containerfile     rendered template definitions
"""

from __future__ import annotations

import os
import re
from pathlib import Path

APP_DIR = "podci"
RUNS_DIR = "runs"
LOGS_DIR = "logs"
IMAGES_DIR = "images"
MANIFEST_FILE = "manifest.json"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _xdg_dir(env_var: str, fallback: tuple[str, ...]) -> Path:
    value = os.environ.get(env_var, "").strip()
    if value and Path(value).is_absolute():
        return Path(value) / APP_DIR
    return Path.home().joinpath(*fallback) / APP_DIR


def default_state_root() -> Path:
    """$XDG_STATE_HOME/podci, falling back to ~/.local/state/podci."""
    return _xdg_dir("XDG_STATE_HOME", (".local", "state"))


def default_cache_root() -> Path:
    """$XDG_CACHE_HOME/podci, falling back to ~/.cache/podci."""
    return _xdg_dir("XDG_CACHE_HOME", (".cache",))


def sanitize_for_filename(name: str) -> str:
    """Make a step name safe to use as a log file stem."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", name).strip(".")
    return cleaned or "step"


# --- State paths ---

def runs_dir(state_root: Path) -> Path:
    return state_root / RUNS_DIR


def run_dir(state_root: Path, run_id: str) -> Path:
    return runs_dir(state_root) / run_id


def run_manifest_path(state_root: Path, run_id: str) -> Path:
    return run_dir(state_root, run_id) / MANIFEST_FILE


def latest_manifest_path(state_root: Path) -> Path:
    return state_root / MANIFEST_FILE


def logs_dir(state_root: Path, run_id: str) -> Path:
    return run_dir(state_root, run_id) / LOGS_DIR


def step_log_paths(
    state_root: Path, run_id: str, step: str, index: int
) -> tuple[Path, Path]:
    """Return (stdout_path, stderr_path) for a step.

    The stem is prefixed with the step's position in the walk so that
    names which sanitize to the same string ("a b" and "a_b") never share
    a log file.
    """
    stem = f"{index:02d}-{sanitize_for_filename(step)}"
    base = logs_dir(state_root, run_id)
    return base / f"{stem}.stdout", base / f"{stem}.stderr"


# --- Cache paths ---

def template_containerfile_path(cache_root: Path, template: str) -> Path:
    return cache_root / IMAGES_DIR / sanitize_for_filename(template) / "Containerfile"
