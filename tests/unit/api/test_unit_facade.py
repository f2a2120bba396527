# tests/unit/api/test_unit_facade.py - v1
"""Tests for api/facade.py - end-to-end wiring with an in-memory driver."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from podci.api.facade import plan_or_apply_prune, run_job, show_manifest
from podci.api.models import PruneRequest, RunRequest
from podci.core.errors import ConfigError, ContainerEngineUnavailable, ManifestSchemaError


@pytest.fixture
def config_path(repo_root: Path, sample_toml: str) -> Path:
    path = repo_root / "podci.toml"
    path.write_text(sample_toml, encoding="utf-8")
    return path


class TestRunRequest:
    def test_repo_root_defaults_to_config_dir(self, config_path, repo_root):
        request = RunRequest(job="default", config_path=config_path)
        assert request.resolved_repo_root() == repo_root.resolve()

    def test_explicit_repo_root(self, config_path, tmp_path):
        request = RunRequest(job="default", config_path=config_path, repo_root=tmp_path)
        assert request.resolved_repo_root() == tmp_path.resolve()


class TestRunJob:
    @pytest.mark.asyncio
    async def test_runs_and_persists(self, config_path, settings, fake_driver):
        outcome = await run_job(
            RunRequest(job="default", config_path=config_path), settings=settings, driver=fake_driver
        )
        assert outcome.ok
        assert [s.name for s in outcome.manifest.steps] == ["fmt", "test"]
        assert outcome.manifest_path.is_relative_to(settings.state_root())
        assert fake_driver.runs[0].repo_root == config_path.parent.resolve()

    @pytest.mark.asyncio
    async def test_settings_env_reaches_containers(self, config_path, tmp_path, fake_driver):
        from podci.config.settings import Settings

        settings = Settings(
            _env_file=None, state_dir=tmp_path / "s", cache_dir=tmp_path / "c",
            base_env="CI=1", cache_mounts="target=/work/target",
        )
        await run_job(RunRequest(job="default", config_path=config_path), settings=settings, driver=fake_driver)
        run = fake_driver.runs[0]
        assert run.env == {"CI": "1", "RUST_BACKTRACE": "1"}
        assert [m.container_path for m in run.volumes] == ["/work/target"]

    @pytest.mark.asyncio
    async def test_invalid_config_touches_nothing(self, tmp_path, settings, fake_driver):
        path = tmp_path / "podci.toml"
        path.write_text('version = 1\nproject = "x"\n', encoding="utf-8")
        with pytest.raises(ConfigError):
            await run_job(RunRequest(job="default", config_path=path), settings=settings, driver=fake_driver)
        assert fake_driver.calls == []


class TestPrune:
    @pytest.mark.asyncio
    async def test_plan_only_deletes_nothing(self, config_path, settings, fake_driver):
        await run_job(RunRequest(job="default", config_path=config_path), settings=settings, driver=fake_driver)
        before = dict(fake_driver.volumes)
        result = await plan_or_apply_prune(PruneRequest(keep=0), settings=settings, driver=fake_driver)
        assert not result.applied
        assert len(result.plan.to_delete) == 3
        assert fake_driver.volumes == before

    @pytest.mark.asyncio
    async def test_apply(self, config_path, settings, fake_driver):
        await run_job(RunRequest(job="default", config_path=config_path), settings=settings, driver=fake_driver)
        fake_driver.add_volume("someone_elses", labels={})
        result = await plan_or_apply_prune(
            PruneRequest(keep=0, apply=True), settings=settings, driver=fake_driver
        )
        assert result.applied
        assert result.report.ok
        assert len(result.report.deleted) == 3
        assert list(fake_driver.volumes) == ["someone_elses"]

    @pytest.mark.asyncio
    async def test_recent_namespace_survives_age_filter(self, config_path, settings, fake_driver):
        await run_job(RunRequest(job="default", config_path=config_path), settings=settings, driver=fake_driver)
        for name, info in list(fake_driver.volumes.items()):
            fake_driver.volumes[name] = info.model_copy(
                update={"created_at": info.created_at + timedelta(days=36500)}
            )
        result = await plan_or_apply_prune(
            PruneRequest(keep=0, older_than_days=30, apply=True), settings=settings, driver=fake_driver
        )
        assert result.report.deleted == []
        assert len(fake_driver.volumes) == 3


class TestShowManifest:
    @pytest.mark.asyncio
    async def test_latest_and_by_run(self, config_path, settings, fake_driver):
        first = await run_job(RunRequest(job="default", config_path=config_path), settings=settings, driver=fake_driver)
        second = await run_job(RunRequest(job="default", config_path=config_path), settings=settings, driver=fake_driver)
        assert show_manifest(settings=settings).run_id == second.run_id
        assert show_manifest(first.run_id, settings=settings).run_id == first.run_id

    def test_no_manifest(self, settings):
        with pytest.raises(FileNotFoundError):
            show_manifest(settings=settings)

    def test_unsupported_schema(self, settings):
        path = settings.state_root() / "manifest.json"
        path.parent.mkdir(parents=True)
        path.write_text('{"schema": "other.v1"}', encoding="utf-8")
        with pytest.raises(ManifestSchemaError):
            show_manifest(settings=settings)


class TestDriverWiring:
    @pytest.mark.asyncio
    async def test_factory_used_without_driver(self, config_path, settings, fake_driver):
        with patch("podci.api.facade.create_driver", return_value=fake_driver) as factory:
            outcome = await run_job(RunRequest(job="default", config_path=config_path), settings=settings)
        factory.assert_called_once_with(settings)
        assert outcome.ok

    @pytest.mark.asyncio
    async def test_prune_checks_engine_first(self, settings, fake_driver):
        fake_driver.available = False
        with patch("podci.api.facade.create_driver", return_value=fake_driver):
            with pytest.raises(ContainerEngineUnavailable):
                await plan_or_apply_prune(PruneRequest(), settings=settings)
        assert fake_driver.calls == ["check_available"]
