# tests/unit/runtime/test_unit_runtime_models.py - v2
"""Tests for runtime/models.py - failure classification and stderr tails."""

from __future__ import annotations

import pytest

from podci.runtime.models import ContainerRunResult, ResolvedImage, classify_failure, stderr_tail


class TestClassifyFailure:
    @pytest.mark.parametrize(
        ("status", "stderr", "kind"),
        [
            (125, "Error: open /run/user: Permission denied", "permission_denied"),
            (125, "error creating container storage: layer not known", "storage_error"),
            (127, "", "not_installed"),
            (1, "executable file not found in $PATH", "not_installed"),
            (1, "bash: podman: command not found", "not_installed"),
            (125, "Error: quay.io/org/img:1: image not known: image not found", "command_failed"),
            (125, "Error: no such volume: volume not found", "command_failed"),
            (125, "Error: container abc123 not found", "command_failed"),
            (125, "Error: something else", "command_failed"),
            (None, "", "unknown"),
        ],
    )
    def test_kinds(self, status, stderr, kind):
        assert classify_failure(status, stderr) == kind


class TestStderrTail:
    def test_short_output_untouched(self):
        assert stderr_tail(b"boom\n") == "boom\n"

    def test_long_output_truncated_to_tail(self):
        raw = b"x" * 100 + b"END"
        tail = stderr_tail(raw, limit=10)
        assert tail.startswith("...(truncated, showing last 10 bytes)...")
        assert tail.endswith("xxxxxxxEND")

    def test_invalid_utf8_replaced(self):
        assert "�" in stderr_tail(b"\xff\xfe")


class TestModels:
    def test_defaults(self):
        assert ResolvedImage(image="x").digest_status == "unavailable"
        assert ContainerRunResult(invocation=["podman"]).exit_code is None
