"""Vendored configuration bundles and workspace backups."""

import base64
import logging
import shutil
import tarfile
import tempfile
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from dfirlab.config import DFIQ_REPO, TIMESKETCH_REPO
from dfirlab.core.errors import ResourceNotFoundError
from dfirlab.core.utils import log, run_tool

logger = logging.getLogger(__name__)

# Never part of a workspace backup
BACKUP_EXCLUDES = {
    ".git",
    ".terraform",
    "backups",
    "__pycache__",
    ".pytest_cache",
    ".venv",
    "venv",
}
BACKUP_EXCLUDE_SUFFIXES = (".tfstate", ".tfstate.backup", ".pyc")


def shallow_clone(repo: str, ref: str, dest: Path) -> Path:
    """Clone a single ref of a git repository without history.

    Raises:
        ToolError: If git fails
    """
    log(f"Cloning {repo}@{ref}...")
    run_tool(
        ["git", "clone", "--depth", "1", "--branch", ref, repo, str(dest)],
        timeout=600,
    )
    return dest


def copy_tree(src: Path, dest: Path) -> None:
    """Copy a directory's contents into dest, overwriting existing files."""
    if not src.is_dir():
        raise ResourceNotFoundError(f"Directory not found: {src}")
    shutil.copytree(src, dest, dirs_exist_ok=True)


def write_b64_tarball(source_dir: Path, out_file: Path) -> Path:
    """Tar+gzip the contents of source_dir and write it base64-encoded.

    Archive members are relative to source_dir itself, not its parent.
    """
    out_file.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.TemporaryDirectory() as tmp:
        tgz = Path(tmp) / "bundle.tgz"
        with tarfile.open(tgz, "w:gz") as tar:
            for entry in sorted(source_dir.iterdir()):
                tar.add(entry, arcname=entry.name)
        out_file.write_bytes(base64.b64encode(tgz.read_bytes()))
    return out_file


def build_config_bundle(
    out_file: Path,
    ts_ref: str = "master",
    dfiq_ref: str = "main",
    custom_dir: Optional[Path] = None,
    ts_repo: str = TIMESKETCH_REPO,
    dfiq_repo: str = DFIQ_REPO,
) -> Path:
    """Build the base64 Timesketch configuration tarball.

    Layers, later ones win: upstream Timesketch ``data/``, upstream DFIQ
    ``dfiq/data/`` under ``dfiq/``, then local overrides from custom_dir.

    Args:
        out_file: Where to write the base64 text
        ts_ref: Timesketch branch or tag
        dfiq_ref: DFIQ branch or tag
        custom_dir: Directory with local overrides (skipped if missing)

    Returns:
        Path of the written file

    Raises:
        ToolError: If cloning fails
        ResourceNotFoundError: If an upstream data directory is missing
    """
    with tempfile.TemporaryDirectory() as work:
        work_dir = Path(work)
        staging = work_dir / "timesketch"
        staging.mkdir()

        ts_checkout = shallow_clone(ts_repo, ts_ref, work_dir / "ts")
        copy_tree(ts_checkout / "data", staging)

        dfiq_checkout = shallow_clone(dfiq_repo, dfiq_ref, work_dir / "dfiq")
        copy_tree(dfiq_checkout / "dfiq" / "data", staging / "dfiq")

        if custom_dir is not None and custom_dir.is_dir():
            log(f"Applying overrides from {custom_dir}")
            copy_tree(custom_dir, staging)
        elif custom_dir is not None:
            logger.debug("No override directory at %s", custom_dir)

        write_b64_tarball(staging, out_file)

    size_kb = out_file.stat().st_size / 1024
    log(f"Wrote {size_kb:.0f} KiB: {out_file}", "success")
    return out_file


def _excluded(relative: Path, excludes: Iterable[str]) -> bool:
    excludes = set(excludes)
    if any(part in excludes for part in relative.parts):
        return True
    return relative.name.endswith(BACKUP_EXCLUDE_SUFFIXES)


def backup_workspace(
    root: Path,
    dest_dir: Optional[Path] = None,
    excludes: Iterable[str] = BACKUP_EXCLUDES,
) -> Path:
    """Zip the working tree into a timestamped archive.

    Args:
        root: Directory to back up
        dest_dir: Where to put the zip (defaults to root/backups)

    Returns:
        Path of the zip file
    """
    root = root.resolve()
    if not root.is_dir():
        raise ResourceNotFoundError(f"Directory not found: {root}")
    dest_dir = (dest_dir or root / "backups").resolve()
    dest_dir.mkdir(parents=True, exist_ok=True)

    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    archive = dest_dir / f"{root.name}-{stamp}.zip"
    excludes = set(excludes)

    count = 0
    with zipfile.ZipFile(archive, "w", zipfile.ZIP_DEFLATED) as zf:
        for path in sorted(root.rglob("*")):
            relative = path.relative_to(root)
            # Earlier archives in the destination are never backed up again
            if path.is_relative_to(dest_dir):
                continue
            if not path.is_file() or _excluded(relative, excludes):
                continue
            zf.write(path, relative.as_posix())
            count += 1

    log(f"Backed up {count} files to {archive}", "success")
    return archive
