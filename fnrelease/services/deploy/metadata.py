"""Package metadata file (``package.json`` style).

The ``setup`` command stamps the resolved version into the file so later
build steps see it; ``deploy`` reads name and description from it.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from fnrelease.core.result import Err, Ok, Result
from fnrelease.core.structured import StrDict, as_str_dict, get_str
from fnrelease.services.deploy.model import PackageMetadata


@dataclass(frozen=True, slots=True)
class MetadataError:
    message: str
    path: Path


def _read_object(path: Path) -> Result[StrDict, MetadataError]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        return Err(MetadataError(f"failed to read metadata: {e}", path=path))

    try:
        obj: object = json.loads(text)
    except json.JSONDecodeError as e:
        return Err(MetadataError(f"invalid JSON in metadata: {e}", path=path))

    data = as_str_dict(obj)
    if data is None:
        return Err(MetadataError("metadata root must be a JSON object", path=path))
    return Ok(data)


def load_package_metadata(path: Path) -> Result[PackageMetadata, MetadataError]:
    result = _read_object(path)
    if isinstance(result, Err):
        return result

    data = result.value
    name = get_str(data, "name")
    if name is None:
        return Err(MetadataError("metadata is missing 'name'", path=path))

    return Ok(
        PackageMetadata(
            name=name,
            version=get_str(data, "version") or "0.0.0",
            description=get_str(data, "description"),
        )
    )


def _atomic_write_text(path: Path, content: str) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def stamp_version(path: Path, version: str) -> Result[PackageMetadata, MetadataError]:
    """Write ``version`` into the metadata file, keeping every other key as is."""
    result = _read_object(path)
    if isinstance(result, Err):
        return result

    data = dict(result.value)
    data["version"] = version
    try:
        _atomic_write_text(path, json.dumps(data, indent=2) + "\n")
    except OSError as e:
        return Err(MetadataError(f"failed to write metadata: {e}", path=path))

    return load_package_metadata(path)
