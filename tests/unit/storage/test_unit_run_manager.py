# tests/unit/storage/test_unit_run_manager.py - v1
"""Tests for storage/run_manager.py - run ids, recording, persistence, readers."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path

import pytest

from podci.core.errors import ManifestSchemaError, PodciError
from podci.core.models import RunContext
from podci.storage.models import MANIFEST_SCHEMA, StepResult
from podci.storage.run_manager import (
    ManifestRecorder,
    atomic_write_bytes,
    generate_run_id,
    load_latest_manifest,
    load_run_manifest,
    read_manifest,
    rfc3339_utc,
)

CTX = RunContext(project="demo", job="default", profile="dev", namespace="a" * 64, env_id="b" * 64)
WHEN = datetime(2026, 3, 1, 12, 0, 5, tzinfo=timezone.utc)


@pytest.fixture
def recorder(state_root: Path) -> ManifestRecorder:
    return ManifestRecorder(
        state_root,
        "20260301T120005Z-0123456789",
        CTX,
        podci_version="0.1.0",
        base_image_digest="sha256:feed",
        base_image_digest_status="present",
        started_at=WHEN,
    )


def _step(name: str, status: str = "succeeded", exit_code: int | None = 0) -> StepResult:
    return StepResult(name=name, argv=["cargo", name], status=status, duration_ms=12, exit_code=exit_code)


class TestRunId:
    def test_format(self):
        run_id = generate_run_id(WHEN)
        assert re.fullmatch(r"20260301T120005Z-[0-9a-f]{10}", run_id)

    def test_unique(self):
        assert len({generate_run_id(WHEN) for _ in range(50)}) == 50

    def test_rfc3339(self):
        assert rfc3339_utc(WHEN) == "2026-03-01T12:00:05Z"


class TestRecorder:
    def test_steps_kept_in_order(self, recorder):
        recorder.record(_step("fmt"))
        recorder.record(_step("test", "failed", 101))
        recorder.record(_step("package", "skipped", None))
        manifest = recorder.finalize(ok=False, exit_code=101, error="step 'test' failed")
        assert [s.name for s in manifest.steps] == ["fmt", "test", "package"]
        assert manifest.failed_step().name == "test"
        assert manifest.result.exit_code == 101
        assert manifest.timestamp_utc == "2026-03-01T12:00:05Z"

    def test_record_after_finalize_raises(self, recorder):
        recorder.finalize(ok=True, exit_code=0)
        with pytest.raises(PodciError, match="finalized"):
            recorder.record(_step("late"))

    def test_second_finalize_raises(self, recorder):
        recorder.finalize(ok=True, exit_code=0)
        with pytest.raises(PodciError):
            recorder.finalize(ok=True, exit_code=0)

    def test_warnings_carried(self, recorder):
        recorder.add_warning("volume 'x' is not podci-managed")
        assert recorder.finalize(ok=True, exit_code=0).warnings == [
            "volume 'x' is not podci-managed"
        ]

    def test_persist_requires_finalize(self, recorder):
        with pytest.raises(PodciError, match="finalized before persist"):
            recorder.persist()


class TestPersist:
    def test_round_trip(self, recorder, state_root):
        recorder.record(_step("fmt"))
        recorder.record(_step("test"))
        recorder.finalize(ok=True, exit_code=0)
        path = recorder.persist()

        loaded = load_run_manifest(state_root, recorder.run_id)
        assert loaded == recorder.manifest
        assert loaded.schema_ == MANIFEST_SCHEMA
        assert [s.name for s in loaded.steps] == ["fmt", "test"]
        assert path == state_root / "runs" / recorder.run_id / "manifest.json"

    def test_latest_is_byte_identical(self, recorder, state_root):
        recorder.finalize(ok=True, exit_code=0)
        path = recorder.persist()
        latest = state_root / "manifest.json"
        assert latest.read_bytes() == path.read_bytes()
        assert load_latest_manifest(state_root).run_id == recorder.run_id

    def test_json_uses_schema_key(self, recorder):
        recorder.finalize(ok=True, exit_code=0)
        data = json.loads(recorder.persist().read_text(encoding="utf-8"))
        assert data["schema"] == MANIFEST_SCHEMA
        assert "schema_" not in data
        assert data["base_image_digest"] == "sha256:feed"

    def test_no_temp_files_left(self, recorder, state_root):
        recorder.finalize(ok=True, exit_code=0)
        recorder.persist()
        leftovers = [p for p in state_root.rglob("*") if ".tmp-" in p.name]
        assert leftovers == []


class TestReaders:
    def _write(self, path: Path, data: dict) -> Path:
        atomic_write_bytes(path, json.dumps(data).encode("utf-8"))
        return path

    def _valid(self) -> dict:
        return {
            "schema": MANIFEST_SCHEMA,
            "podci_version": "0.1.0",
            "timestamp_utc": "2026-03-01T12:00:05Z",
            "project": "demo",
            "job": "default",
            "profile": "dev",
            "namespace": "a" * 64,
            "env_id": "b" * 64,
            "steps": [],
            "result": {"ok": True, "exit_code": 0},
        }

    def test_unknown_fields_ignored(self, tmp_path):
        data = self._valid()
        data["future_field"] = {"x": 1}
        data["result"]["extra"] = 1
        manifest = read_manifest(self._write(tmp_path / "m.json", data))
        assert manifest.project == "demo"

    def test_wrong_schema_rejected(self, tmp_path):
        data = self._valid()
        data["schema"] = "podci-manifest.v9"
        with pytest.raises(ManifestSchemaError, match="unsupported manifest schema"):
            read_manifest(self._write(tmp_path / "m.json", data))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "m.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(ManifestSchemaError, match="not valid JSON"):
            read_manifest(path)

    def test_missing_required_field(self, tmp_path):
        data = self._valid()
        del data["result"]
        with pytest.raises(ManifestSchemaError, match="malformed"):
            read_manifest(self._write(tmp_path / "m.json", data))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_latest_manifest(tmp_path)
