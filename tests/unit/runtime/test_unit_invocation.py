# tests/unit/runtime/test_unit_invocation.py - v1
"""Tests for runtime/invocation.py - run argument construction and rendering."""

from __future__ import annotations

from pathlib import Path

import pytest

from podci.runtime.invocation import (
    build_run_args,
    container_workdir,
    merge_env,
    render_command,
    shell_quote,
)
from podci.runtime.models import ContainerRunRequest, VolumeMount


@pytest.fixture
def request_() -> ContainerRunRequest:
    return ContainerRunRequest(
        image="localhost/podci-rust-debian:v0.1.0",
        argv=["cargo", "test"],
        repo_root=Path("/home/dev/repo"),
        workdir="crates/core",
        env={"CARGO_HOME": "/usr/local/cargo", "RUST_BACKTRACE": "1"},
        volumes=[VolumeMount(name="podci_a_b_target", container_path="/work/target")],
    )


class TestMergeEnv:
    def test_later_layers_win(self):
        merged = merge_env({"A": "base", "B": "base"}, {"B": "profile"}, {"C": "step"})
        assert merged == {"A": "base", "B": "profile", "C": "step"}

    def test_empty(self):
        assert merge_env() == {}


class TestContainerWorkdir:
    @pytest.mark.parametrize(
        ("workdir", "expected"),
        [
            (None, "/work"),
            (".", "/work"),
            ("crates/core", "/work/crates/core"),
            ("./crates", "/work/crates"),
        ],
    )
    def test_mapping(self, workdir, expected):
        assert container_workdir("/work", workdir) == expected

    def test_trailing_slash_mount(self):
        assert container_workdir("/src/", "a") == "/src/a"


class TestBuildRunArgs:
    def test_full_shape(self, request_):
        args = build_run_args(request_)
        assert args == [
            "run", "--rm", "--userns=keep-id",
            "-v", "podci_a_b_target:/work/target:Z",
            "-v", "/home/dev/repo:/work:Z",
            "-w", "/work/crates/core",
            "--env", "CARGO_HOME=/usr/local/cargo",
            "--env", "RUST_BACKTRACE=1",
            "localhost/podci-rust-debian:v0.1.0",
            "cargo", "test",
        ]

    def test_no_relabel_no_userns(self, request_):
        args = build_run_args(request_, userns=None, selinux_relabel=False)
        assert not any(a.startswith("--userns") for a in args)
        assert "/home/dev/repo:/work" in args
        assert not any(a.endswith(":Z") for a in args)

    def test_custom_workspace_mount(self, request_):
        args = build_run_args(request_, workspace_mount="/src")
        assert "/home/dev/repo:/src:Z" in args
        assert args[args.index("-w") + 1] == "/src/crates/core"

    def test_argv_is_never_shell_joined(self, request_):
        request_.argv = ["sh", "-c", "echo a && echo b"]
        args = build_run_args(request_)
        assert args[-3:] == ["sh", "-c", "echo a && echo b"]


class TestRender:
    def test_safe_words_unquoted(self):
        assert shell_quote("cargo") == "cargo"
        assert shell_quote("--env=A=1") == "--env=A=1"

    def test_unsafe_words_quoted(self):
        assert shell_quote("echo a") == "'echo a'"
        assert shell_quote("") == "''"
        assert shell_quote("it's") == "'it'\"'\"'s'"

    def test_render_command(self):
        assert render_command(["podman", "run", "sh", "-c", "ls -la"]) == "podman run sh -c 'ls -la'"
