# src/config/settings.py - v1
"""Typed deployment settings loaded from the environment via pydantic-settings.

Single source of truth for engine, storage, cache and logging settings.
Every variable is read with the ``PODCI_`` prefix, e.g. ``PODCI_ENGINE_BINARY``.
Project-level job definitions live in podci.toml, not here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from podci.core.errors import PodciError
from podci.storage.layout import default_cache_root, default_state_root


class SettingsError(PodciError):
    """Raised when settings are internally inconsistent."""


def _parse_pairs(raw: str, what: str) -> dict[str, str]:
    """Parse ``K=V,K2=V2`` into an ordered dict."""
    pairs: dict[str, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"{what}: expected KEY=VALUE, got {item!r}")
        pairs[key.strip()] = value.strip()
    return pairs


class Settings(BaseSettings):
    """Deployment settings loaded from environment / .env."""

    model_config = SettingsConfigDict(
        env_prefix="PODCI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Container engine ===
    engine_binary: str = "podman"
    engine_timeout_s: float = 60.0
    workspace_mount: str = "/work"
    userns: str = "keep-id"
    selinux_relabel: bool = True

    # === Storage ===
    state_dir: Path | None = None
    cache_dir: Path | None = None
    max_log_bytes: int = 256 * 1024 * 1024

    # === Cache volumes ===
    # Ordered volume_kind=container_path pairs, one volume per kind per environment.
    cache_mounts: str = (
        "cargo_registry=/usr/local/cargo/registry,"
        "cargo_git=/usr/local/cargo/git,"
        "target=/work/target"
    )
    # Enforced before profile and step env.
    base_env: str = "CARGO_HOME=/usr/local/cargo"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator("max_log_bytes")
    @classmethod
    def validate_max_log_bytes(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("max_log_bytes must be > 0")
        return v

    @field_validator("engine_timeout_s")
    @classmethod
    def validate_engine_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("engine_timeout_s must be > 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Cross-field rules; every violation is reported at once."""
        errors: list[str] = []

        if not self.engine_binary.strip():
            errors.append("ENGINE_BINARY must not be empty")
        if not self.workspace_mount.startswith("/"):
            errors.append("WORKSPACE_MOUNT must be an absolute container path")

        try:
            mounts = self.cache_mounts_map
        except ValueError as exc:
            errors.append(str(exc))
        else:
            for kind, path in mounts.items():
                if not path.startswith("/"):
                    errors.append(f"CACHE_MOUNTS: path for '{kind}' must be absolute")
                if path.rstrip("/") == self.workspace_mount.rstrip("/"):
                    errors.append(f"CACHE_MOUNTS: '{kind}' would shadow the workspace mount")
        try:
            self.base_env_map
        except ValueError as exc:
            errors.append(str(exc))

        if errors:
            raise SettingsError("; ".join(errors))
        return self

    # --- Helpers ---

    @property
    def cache_mounts_map(self) -> dict[str, str]:
        """Ordered volume kind -> in-container path mapping."""
        return _parse_pairs(self.cache_mounts, "CACHE_MOUNTS")

    @property
    def base_env_map(self) -> dict[str, str]:
        """Base container environment."""
        return _parse_pairs(self.base_env, "BASE_ENV")

    def state_root(self) -> Path:
        """State directory (manifests, run logs)."""
        return self.state_dir.expanduser() if self.state_dir else default_state_root()

    def cache_root(self) -> Path:
        """Cache directory (rendered template Containerfiles)."""
        return self.cache_dir.expanduser() if self.cache_dir else default_cache_root()


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment / .env with optional overrides.

    Args:
        **overrides: Field-level overrides (CLI flags, tests).

    Raises:
        SettingsError: If settings are internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
