# src/config/validator.py - v2
"""Config validation: document -> ValidatedConfig, reporting every issue at once.

Two passes run over the same raw document:
  1. structural pass through the pydantic ``*Document`` models,
  2. cross-field checks (step_order bijection, profile references,
     container classification) on the raw mapping, tolerant of bad shapes,
so a single ConfigError lists every violated field.
"""

from __future__ import annotations

import logging
import re
import tomllib
from collections.abc import Collection, Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from podci.config.models import (
    ConfigDocument,
    Job,
    Profile,
    Step,
    ValidatedConfig,
)
from podci.core.errors import AmbiguousImageReference, ConfigError, ConfigIssue
from podci.core.models import ExplicitImageRef, ImageRef, TemplateRef
from podci.runtime.templates import known_templates

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "podci.toml"

_IMAGE_REF_CHARS = re.compile(r"^[A-Za-z0-9._/@:-]+$")


def resolve_container(value: str, templates: Collection[str] | None = None) -> ImageRef:
    """Classify a profile ``container`` value.

    A known template name wins. Anything else must look like an explicit image
    reference: it contains ``/``, ``:`` or ``@`` and only reference characters.

    Raises:
        AmbiguousImageReference: Bare name that is not a known template.
        ConfigError: Empty value or forbidden characters.
    """
    names = known_templates() if templates is None else templates
    value = value.strip()
    if not value:
        raise ConfigError("container must not be empty")
    if value in names:
        return TemplateRef(name=value)
    if not any(sep in value for sep in "/:@"):
        known = ", ".join(sorted(names))
        raise AmbiguousImageReference(
            [
                ConfigIssue(
                    "container",
                    f"'{value}' is neither a known template ({known}) nor an explicit "
                    "image reference; use a registry-qualified name such as "
                    f"docker.io/library/{value}:latest",
                )
            ]
        )
    if not _IMAGE_REF_CHARS.match(value):
        raise ConfigError(
            [ConfigIssue("container", f"'{value}' contains characters not allowed in an image reference")]
        )
    digest = value.split("@", 1)[1] if "@" in value else None
    return ExplicitImageRef(ref=value, digest=digest or None)


def validate_config(
    document: Mapping[str, Any],
    templates: Collection[str] | None = None,
) -> ValidatedConfig:
    """Validate a parsed configuration document.

    Args:
        document: Parsed podci.toml content.
        templates: Template names treated as known (defaults to the embedded set).

    Raises:
        AmbiguousImageReference: When the only problems are ambiguous containers.
        ConfigError: Every other violation, all of them in one exception.
    """
    if not isinstance(document, Mapping):
        raise ConfigError([ConfigIssue("config", "document must be a table")])

    names = known_templates() if templates is None else frozenset(templates)
    issues: list[ConfigIssue] = []
    ambiguous: list[ConfigIssue] = []

    parsed: ConfigDocument | None = None
    try:
        parsed = ConfigDocument.model_validate(dict(document))
    except ValidationError as exc:
        issues.extend(_issues_from_validation(exc))

    images: dict[str, ImageRef] = {}
    for name, profile in _as_mapping(document.get("profiles")).items():
        container = profile.get("container") if isinstance(profile, Mapping) else None
        if not isinstance(container, str):
            continue
        location = f"profiles.{name}.container"
        try:
            images[name] = resolve_container(container, names)
        except AmbiguousImageReference as exc:
            ambiguous.extend(ConfigIssue(location, i.message) for i in exc.issues)
        except ConfigError as exc:
            issues.extend(ConfigIssue(location, i.message) for i in exc.issues)

    profile_names = set(_as_mapping(document.get("profiles")))
    for job_name, job in _as_mapping(document.get("jobs")).items():
        if isinstance(job, Mapping):
            issues.extend(_check_job(str(job_name), job, profile_names))

    if issues or ambiguous:
        all_issues = issues + ambiguous
        logger.debug("config rejected with %d issue(s)", len(all_issues))
        if not issues:
            raise AmbiguousImageReference(all_issues)
        raise ConfigError(all_issues)

    if parsed is None:
        raise ConfigError([ConfigIssue("config", "document failed schema validation")])
    return _build(parsed, images)


def load_config(path: str | Path) -> ValidatedConfig:
    """Read and validate a podci.toml file.

    Raises:
        ConfigError: File missing, unreadable, not TOML, or invalid.
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        raise ConfigError([ConfigIssue(str(path), "config file not found")]) from None
    except OSError as exc:
        raise ConfigError([ConfigIssue(str(path), f"cannot read config: {exc}")]) from exc

    try:
        document = tomllib.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError([ConfigIssue(str(path), f"invalid TOML: {exc}")]) from exc

    config = validate_config(document)
    logger.info(
        "Config loaded",
        extra={"data": {"path": str(path), "project": config.project, "jobs": sorted(config.jobs)}},
    )
    return config


# === INTERNAL ===


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _check_job(name: str, job: Mapping[str, Any], profile_names: set[str]) -> list[ConfigIssue]:
    issues: list[ConfigIssue] = []
    prefix = f"jobs.{name}"

    profile = job.get("profile")
    if isinstance(profile, str) and profile not in profile_names:
        issues.append(ConfigIssue(f"{prefix}.profile", f"references unknown profile '{profile}'"))

    order = job.get("step_order")
    steps = _as_mapping(job.get("steps"))
    if not isinstance(order, list):
        return issues

    if not order and steps:
        issues.append(ConfigIssue(f"{prefix}.step_order", "must not be empty when steps are defined"))
    elif not order:
        issues.append(ConfigIssue(f"{prefix}.step_order", "job defines no steps"))

    seen: set[str] = set()
    for entry in order:
        if not isinstance(entry, str):
            continue
        if entry in seen:
            issues.append(ConfigIssue(f"{prefix}.step_order", f"duplicate step '{entry}'"))
        seen.add(entry)
        if entry not in steps:
            issues.append(
                ConfigIssue(f"{prefix}.step_order", f"'{entry}' is not defined in {prefix}.steps")
            )

    for step_name in steps:
        if step_name not in seen:
            issues.append(
                ConfigIssue(f"{prefix}.steps.{step_name}", "defined but missing from step_order")
            )
    return issues


def _issues_from_validation(exc: ValidationError) -> list[ConfigIssue]:
    issues = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"]) or "config"
        if err["type"] == "extra_forbidden":
            message = "unknown key"
        elif err["type"] == "missing":
            message = "required key is missing"
        else:
            message = err["msg"].removeprefix("Value error, ")
        issues.append(ConfigIssue(location, message))
    return issues


def _build(parsed: ConfigDocument, images: dict[str, ImageRef]) -> ValidatedConfig:
    profiles = {
        name: Profile(name=name, container=images[name], env=dict(doc.env))
        for name, doc in parsed.profiles.items()
    }
    jobs = {
        name: Job(
            name=name,
            profile=doc.profile,
            step_order=tuple(doc.step_order),
            steps={
                step_name: Step(
                    name=step_name,
                    argv=tuple(step.run),
                    workdir=step.workdir,
                    env=dict(step.env),
                )
                for step_name, step in doc.steps.items()
            },
        )
        for name, doc in parsed.jobs.items()
    }
    return ValidatedConfig(
        version=parsed.version,
        project=parsed.project,
        profiles=profiles,
        jobs=jobs,
    )
