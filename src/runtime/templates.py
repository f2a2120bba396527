# src/runtime/templates.py - v1
"""Embedded image definitions for podci template images.

A template name in a profile's ``container`` field resolves to one of these
Containerfiles. The driver builds it locally under a deterministic tag.
"""

from __future__ import annotations

from podci.version import __version__

TAG_PREFIX = "localhost/podci-"

_GENERIC = """\
FROM docker.io/library/debian:bookworm-slim
RUN apt-get update \\
 && apt-get install -y --no-install-recommends ca-certificates git make \\
 && rm -rf /var/lib/apt/lists/*
WORKDIR /work
"""

_RUST_DEBIAN = """\
FROM docker.io/library/rust:1-slim-bookworm
RUN apt-get update \\
 && apt-get install -y --no-install-recommends ca-certificates git pkg-config libssl-dev \\
 && rm -rf /var/lib/apt/lists/*
RUN rustup component add rustfmt clippy
ENV CARGO_HOME=/usr/local/cargo
WORKDIR /work
"""

_RUST_ALPINE = """\
FROM docker.io/library/rust:1-alpine
RUN apk add --no-cache musl-dev git pkgconf openssl-dev
RUN rustup component add rustfmt clippy
ENV CARGO_HOME=/usr/local/cargo
WORKDIR /work
"""

_CPP_DEBIAN = """\
FROM docker.io/library/debian:bookworm-slim
RUN apt-get update \\
 && apt-get install -y --no-install-recommends \\
      build-essential cmake ninja-build ccache git ca-certificates \\
 && rm -rf /var/lib/apt/lists/*
WORKDIR /work
"""

EMBEDDED_TEMPLATES: dict[str, str] = {
    "generic": _GENERIC,
    "rust-debian": _RUST_DEBIAN,
    "rust-alpine": _RUST_ALPINE,
    "cpp-debian": _CPP_DEBIAN,
}


def known_templates() -> frozenset[str]:
    """Return the set of template names a profile may reference."""
    return frozenset(EMBEDDED_TEMPLATES)


def containerfile_for(name: str) -> str:
    """Return the embedded Containerfile for a template.

    Raises:
        KeyError: If the template is unknown.
    """
    try:
        return EMBEDDED_TEMPLATES[name]
    except KeyError:
        raise KeyError(f"unknown container template {name!r}") from None


def template_tag(name: str, version: str = __version__) -> str:
    """Deterministic local tag for a template image, e.g. localhost/podci-generic:v0.1.0."""
    return f"{TAG_PREFIX}{name}:v{version}"
