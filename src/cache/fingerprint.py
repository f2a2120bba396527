# src/cache/fingerprint.py - v1
"""Environment fingerprinting: canonical serialization + SHA-256.

Two identities are derived per invocation:
  - namespace: hash of (project, job) only, groups every volume of a job
    across its environment history (the prune unit).
  - env_id: hash of image identity, profile env and ordered steps. Any change
    to what runs or where it runs yields a fresh set of cache volumes.

Names (profile, step) never enter env_id; only what they describe does.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from typing import Any

from podci.config.models import Profile, Step, ValidatedConfig
from podci.core.errors import AmbiguousImageReference, ConfigIssue
from podci.core.models import ExplicitImageRef, RunContext, TemplateRef

# Bumped whenever the serialized shape changes, so old volumes are not reused.
FINGERPRINT_VERSION = "podci-env.v1"


def image_identity(ref: Any) -> dict[str, Any]:
    """Canonical identity of a resolved container reference.

    Raises:
        AmbiguousImageReference: If ``ref`` is not a resolved reference.
    """
    if isinstance(ref, TemplateRef):
        return {"kind": "template", "name": ref.name}
    if isinstance(ref, ExplicitImageRef):
        return {"kind": "image", "ref": ref.ref, "digest": ref.digest}
    raise AmbiguousImageReference(
        [ConfigIssue("container", f"unresolved container reference {ref!r}")]
    )


def _env_pairs(env: Mapping[str, str]) -> list[list[str]]:
    return [[key, env[key]] for key in sorted(env)]


def canonical_serialize(profile: Profile, steps: Iterable[Step]) -> bytes:
    """Deterministic UTF-8 JSON for the environment of a job.

    Env maps become sorted ``[key, value]`` pairs; steps keep execution order.
    """
    payload = {
        "fingerprint": FINGERPRINT_VERSION,
        "image": image_identity(profile.container),
        "profile_env": _env_pairs(profile.env),
        "steps": [
            {
                "argv": list(step.argv),
                "workdir": step.workdir,
                "env": _env_pairs(step.env),
            }
            for step in steps
        ],
    }
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def compute_env_id(profile: Profile, steps: Iterable[Step]) -> str:
    """SHA-256 hex digest (64 chars) of the canonical environment."""
    return hashlib.sha256(canonical_serialize(profile, steps)).hexdigest()


def compute_namespace(project: str, job: str) -> str:
    """SHA-256 hex digest of (project, job); independent of profile and steps."""
    payload = json.dumps(
        {"project": project, "job": job}, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def derive_run_context(
    config: ValidatedConfig,
    job: str,
    profile: str | None = None,
) -> RunContext:
    """Compute the RunContext once for an invocation.

    Args:
        config: Validated configuration.
        job: Job name.
        profile: Optional profile override; defaults to the job's profile.

    Raises:
        ConfigError: Unknown job or profile.
    """
    job_def = config.job(job)
    profile_def = config.profile(profile or job_def.profile)
    return RunContext(
        project=config.project,
        job=job_def.name,
        profile=profile_def.name,
        namespace=compute_namespace(config.project, job_def.name),
        env_id=compute_env_id(profile_def, job_def.ordered_steps()),
    )
