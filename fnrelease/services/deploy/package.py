"""Function artifact packaging.

The artifact is a zip of the configured source directory. Entries are sorted
and carry a fixed timestamp so the same sources always produce the same bytes
(and the same sha256).
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path
from zipfile import ZIP_DEFLATED, ZipFile, ZipInfo

from fnrelease.core.result import Err, Ok, Result
from fnrelease.services.deploy.errors import CollaboratorError

_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
_EXCLUDE_DIRS = {"__pycache__", ".git", ".pytest_cache"}
_EXCLUDE_SUFFIXES = (".pyc", ".pyo")


@dataclass(frozen=True, slots=True)
class Archive:
    path: Path
    size: int
    sha256: str


def _sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def _collect_files(source_dir: Path) -> list[tuple[Path, str]]:
    out: list[tuple[Path, str]] = []
    for p in sorted(source_dir.rglob("*")):
        if p.is_dir():
            continue
        rel = p.relative_to(source_dir)
        if any(part in _EXCLUDE_DIRS for part in rel.parts):
            continue
        if p.name.endswith(_EXCLUDE_SUFFIXES):
            continue
        out.append((p, rel.as_posix()))
    return out


def build_archive(*, source_dir: Path, out_path: Path) -> Result[Archive, CollaboratorError]:
    if not source_dir.is_dir():
        return Err(
            CollaboratorError(
                kind="publish_failed",
                message=f"source directory not found: {source_dir}",
                hint="Set deploy.source_directory in the config file.",
            )
        )

    files = _collect_files(source_dir)
    if not files:
        return Err(
            CollaboratorError(
                kind="publish_failed",
                message=f"source directory is empty: {source_dir}",
            )
        )

    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with ZipFile(out_path, "w", compression=ZIP_DEFLATED) as zf:
            for src, arc in files:
                info = ZipInfo(arc, date_time=_ZIP_EPOCH)
                info.compress_type = ZIP_DEFLATED
                info.external_attr = (src.stat().st_mode & 0o777) << 16
                zf.writestr(info, src.read_bytes())
    except OSError as e:
        return Err(
            CollaboratorError(
                kind="publish_failed",
                message=f"failed to package {source_dir}: {e}",
                hint=str(out_path),
            )
        )

    return Ok(Archive(path=out_path, size=out_path.stat().st_size, sha256=_sha256_file(out_path)))
