"""Tests for Helm release queries."""

from dfirlab.core import helm

RELEASES = [
    {
        "name": "osdfir-lab",
        "namespace": "osdfir",
        "revision": "2",
        "status": "deployed",
        "chart": "osdfir-infrastructure-2.3.1",
        "app_version": "",
    },
    {"name": "ollama", "namespace": "osdfir", "revision": "1", "status": "deployed"},
]


def test_list_releases_with_context(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(helm, "run_json", lambda cmd, timeout=None: calls.append(cmd) or RELEASES)
    assert helm.list_releases("osdfir", "osdfir") == RELEASES
    assert calls[0][-2:] == ["--kube-context", "osdfir"]


def test_list_releases_failure_is_empty(monkeypatch) -> None:
    monkeypatch.setattr(helm, "run_json", lambda cmd, timeout=None: None)
    assert helm.list_releases("osdfir") == []


def test_release_status(monkeypatch) -> None:
    monkeypatch.setattr(helm, "run_json", lambda cmd, timeout=None: RELEASES)
    status = helm.get_release_status("osdfir-lab", "osdfir")
    assert status["installed"]
    assert status["status"] == "deployed"
    assert status["chart"] == "osdfir-infrastructure-2.3.1"

    assert not helm.get_release_status("other", "osdfir")["installed"]


def test_uninstall_absent_release_is_ok(monkeypatch) -> None:
    monkeypatch.setattr(helm, "run_json", lambda cmd, timeout=None: [])
    monkeypatch.setattr(helm, "run_quiet", lambda cmd, timeout=None: (False, "should not run"))
    assert helm.uninstall_release("osdfir-lab", "osdfir")


def test_uninstall(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(helm, "run_json", lambda cmd, timeout=None: RELEASES)
    monkeypatch.setattr(helm, "run_quiet", lambda cmd, timeout=None: calls.append(cmd) or (True, ""))
    assert helm.uninstall_release("osdfir-lab", "osdfir", "osdfir")
    assert calls[0][:3] == ["helm", "uninstall", "osdfir-lab"]
    assert "--wait" in calls[0]
