"""Tests for container engine control."""

import subprocess
from pathlib import Path

import pytest

from dfirlab.core import docker


def test_running_requires_server_version(monkeypatch) -> None:
    monkeypatch.setattr(docker, "run_json", lambda cmd, timeout=None: {"ServerVersion": "26.1"})
    assert docker.is_docker_running()


def test_client_only_is_not_running(monkeypatch) -> None:
    info = {"ServerVersion": "", "ServerErrors": ["Cannot connect to the Docker daemon"]}
    monkeypatch.setattr(docker, "run_json", lambda cmd, timeout=None: info)
    assert not docker.is_docker_running()


def test_no_output_is_not_running(monkeypatch) -> None:
    monkeypatch.setattr(docker, "run_json", lambda cmd, timeout=None: None)
    assert not docker.is_docker_running()


@pytest.mark.parametrize(
    "system, expected",
    [
        ("Darwin", ["open", "-a", "Docker"]),
        ("Windows", [docker.DOCKER_DESKTOP_WINDOWS]),
        ("Plan9", None),
    ],
)
def test_start_command(system, expected) -> None:
    assert docker.start_command(system) == expected


def test_start_command_linux(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
    assert docker.start_command("Linux") == ["sudo", "-n", "systemctl", "start", "docker"]

    (tmp_path / ".docker" / "desktop").mkdir(parents=True)
    assert docker.start_command("Linux")[:3] == ["systemctl", "--user", "start"]


def test_already_running_is_not_started(monkeypatch) -> None:
    monkeypatch.setattr(docker, "is_docker_running", lambda: True)
    monkeypatch.setattr(docker, "start_docker_engine", lambda: pytest.fail("started"))
    assert docker.ensure_docker_running()


def test_waits_for_daemon(monkeypatch, clock) -> None:
    answers = iter([False, False, True])
    monkeypatch.setattr(docker, "is_docker_running", lambda: next(answers))
    monkeypatch.setattr(docker, "start_docker_engine", lambda: True)
    assert docker.ensure_docker_running(timeout=60, interval=5, sleep=clock.sleep, clock=clock)
    assert clock.now == 10


def test_gives_up_after_timeout(monkeypatch, clock) -> None:
    monkeypatch.setattr(docker, "is_docker_running", lambda: False)
    monkeypatch.setattr(docker, "start_docker_engine", lambda: True)
    assert not docker.ensure_docker_running(timeout=20, interval=5, sleep=clock.sleep, clock=clock)
    assert clock.now == 20


def test_build_missing_dockerfile(tmp_path) -> None:
    assert docker.build_image("hashr", "t1", project_root=tmp_path) == (False, "")


def test_build_image(monkeypatch, tmp_path) -> None:
    dockerfile = tmp_path / "docker" / "hashr.Dockerfile"
    dockerfile.parent.mkdir()
    dockerfile.write_text("FROM scratch\n")
    calls = []
    monkeypatch.setattr(docker, "run", lambda cmd, timeout=None: calls.append(cmd))

    assert docker.build_image("hashr", "t1", project_root=tmp_path) == (True, "dfirlab-hashr:t1")
    assert calls[0][:2] == ["docker", "build"]
    assert "dfirlab-hashr:t1" in calls[0]


def test_build_failure(monkeypatch, tmp_path) -> None:
    dockerfile = tmp_path / "docker" / "hashr.Dockerfile"
    dockerfile.parent.mkdir()
    dockerfile.write_text("FROM scratch\n")

    def fail(cmd, timeout=None):
        raise subprocess.CalledProcessError(1, cmd)

    monkeypatch.setattr(docker, "run", fail)
    assert docker.build_image("hashr", "t1", project_root=tmp_path) == (False, "")


def test_build_unknown_component() -> None:
    assert docker.build_image("nope") == (False, "")


def test_load_image(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(
        docker, "run_quiet", lambda cmd, timeout=None: calls.append(cmd) or (True, "")
    )
    assert docker.load_image_to_minikube("dfirlab-hashr:t1", "osdfir")
    assert calls[0] == ["minikube", "image", "load", "dfirlab-hashr:t1", "-p", "osdfir"]
