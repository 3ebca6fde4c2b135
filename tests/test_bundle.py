"""Tests for config bundles and workspace backups."""

import base64
import io
import tarfile
import zipfile
from pathlib import Path

import pytest

from dfirlab.core import bundle
from dfirlab.core.errors import ResourceNotFoundError


def _members(b64_file):
    raw = base64.b64decode(b64_file.read_bytes())
    with tarfile.open(fileobj=io.BytesIO(raw), mode="r:gz") as tar:
        return {
            m.name: tar.extractfile(m).read().decode()
            for m in tar.getmembers()
            if m.isfile()
        }


@pytest.fixture
def fake_clone(monkeypatch):
    """Serve fake upstream checkouts instead of running git."""

    def clone(repo, ref, dest):
        if repo == bundle.TIMESKETCH_REPO:
            (dest / "data" / "sigma").mkdir(parents=True)
            (dest / "data" / "timesketch.conf").write_text(f"upstream {ref}")
            (dest / "data" / "sigma" / "rule.yml").write_text("rule")
        else:
            (dest / "dfiq" / "data" / "scenarios").mkdir(parents=True)
            (dest / "dfiq" / "data" / "scenarios" / "S1001.yaml").write_text("scenario")
        return dest

    monkeypatch.setattr(bundle, "shallow_clone", clone)


def test_b64_tarball_is_single_line(tmp_path) -> None:
    src = tmp_path / "src"
    (src / "sub").mkdir(parents=True)
    (src / "a.txt").write_text("A")
    (src / "sub" / "b.txt").write_text("B")

    out = bundle.write_b64_tarball(src, tmp_path / "out" / "bundle.b64")

    assert b"\n" not in out.read_bytes()
    assert _members(out) == {"a.txt": "A", "sub/b.txt": "B"}


def test_build_config_bundle_layers(tmp_path, fake_clone) -> None:
    custom = tmp_path / "custom"
    custom.mkdir()
    (custom / "timesketch.conf").write_text("local")

    out = bundle.build_config_bundle(
        tmp_path / "ts-configs.tgz.b64", ts_ref="v1", custom_dir=custom
    )

    members = _members(out)
    assert members["timesketch.conf"] == "local"
    assert members["sigma/rule.yml"] == "rule"
    assert members["dfiq/scenarios/S1001.yaml"] == "scenario"


def test_build_config_bundle_without_overrides(tmp_path, fake_clone) -> None:
    out = bundle.build_config_bundle(
        tmp_path / "ts.b64", ts_ref="v2", custom_dir=tmp_path / "missing"
    )
    assert _members(out)["timesketch.conf"] == "upstream v2"


def test_copy_tree_missing_source(tmp_path) -> None:
    with pytest.raises(ResourceNotFoundError):
        bundle.copy_tree(tmp_path / "nope", tmp_path / "dest")


def test_backup_excludes_state_and_vcs(tmp_path) -> None:
    root = tmp_path / "lab"
    for path in [
        "dfirlab/cli.py",
        "terraform/main.tf",
        "terraform/terraform.tfstate",
        "terraform/.terraform/providers/p",
        ".git/HEAD",
        "backups/old.zip",
    ]:
        (root / path).parent.mkdir(parents=True, exist_ok=True)
        (root / path).write_text("x")

    archive = bundle.backup_workspace(root)

    assert archive.parent == root / "backups"
    with zipfile.ZipFile(archive) as zf:
        assert sorted(zf.namelist()) == ["dfirlab/cli.py", "terraform/main.tf"]


def test_backup_to_other_directory(tmp_path) -> None:
    root = tmp_path / "lab"
    root.mkdir()
    (root / "README.md").write_text("x")

    archive = bundle.backup_workspace(root, tmp_path / "elsewhere")

    assert archive.parent == (tmp_path / "elsewhere").resolve()
    assert archive.name.startswith("lab-")


def test_backup_with_relative_dest_skips_itself(tmp_path, monkeypatch) -> None:
    root = tmp_path / "ws"
    root.mkdir()
    (root / "a.txt").write_text("x")
    monkeypatch.chdir(root)

    archive = bundle.backup_workspace(root, Path("archives"))

    assert archive.parent == (root / "archives").resolve()
    with zipfile.ZipFile(archive) as zf:
        assert zf.namelist() == ["a.txt"]


def test_backup_skips_earlier_archives_in_dest(tmp_path) -> None:
    root = tmp_path / "ws"
    (root / "archives").mkdir(parents=True)
    (root / "a.txt").write_text("x")
    (root / "archives" / "ws-20240101-000000.zip").write_bytes(b"old")

    archive = bundle.backup_workspace(root, root / "archives")

    with zipfile.ZipFile(archive) as zf:
        assert zf.namelist() == ["a.txt"]
