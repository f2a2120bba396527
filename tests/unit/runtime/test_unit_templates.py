# tests/unit/runtime/test_unit_templates.py - v1
"""Tests for runtime/templates.py - embedded template lookup and tagging."""

from __future__ import annotations

import pytest

from podci.runtime.templates import (
    EMBEDDED_TEMPLATES,
    containerfile_for,
    known_templates,
    template_tag,
)


class TestTemplates:
    def test_known_names(self):
        assert known_templates() == {"generic", "rust-debian", "rust-alpine", "cpp-debian"}

    @pytest.mark.parametrize("name", sorted(EMBEDDED_TEMPLATES))
    def test_containerfile_starts_with_from(self, name):
        assert containerfile_for(name).startswith("FROM ")

    def test_unknown_template(self):
        with pytest.raises(KeyError, match="unknown container template"):
            containerfile_for("nope")

    def test_tag_is_versioned(self):
        assert template_tag("generic", "1.2.3") == "localhost/podci-generic:v1.2.3"
        assert template_tag("generic") == template_tag("generic")
