from __future__ import annotations

import json
from pathlib import Path

from fnrelease.core.result import Err, Ok
from fnrelease.services.deploy.metadata import load_package_metadata, stamp_version
from fnrelease.services.deploy.model import PackageMetadata


def _write_json(path: Path, data: object) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestLoadPackageMetadata:
    def test_load(self, tmp_path: Path) -> None:
        path = _write_json(
            tmp_path / "package.json",
            {"name": "vanish", "version": "1.2.3", "description": "Vanishing links"},
        )
        assert load_package_metadata(path) == Ok(
            PackageMetadata(name="vanish", version="1.2.3", description="Vanishing links")
        )

    def test_version_and_description_are_optional(self, tmp_path: Path) -> None:
        path = _write_json(tmp_path / "package.json", {"name": "vanish"})
        assert load_package_metadata(path) == Ok(PackageMetadata(name="vanish", version="0.0.0"))

    def test_name_is_required(self, tmp_path: Path) -> None:
        path = _write_json(tmp_path / "package.json", {"version": "1.0.0"})
        result = load_package_metadata(path)
        assert isinstance(result, Err)
        assert "name" in result.error.message
        assert result.error.path == path

    def test_root_must_be_object(self, tmp_path: Path) -> None:
        path = _write_json(tmp_path / "package.json", ["vanish"])
        assert isinstance(load_package_metadata(path), Err)

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "package.json"
        path.write_text("{name:", encoding="utf-8")
        result = load_package_metadata(path)
        assert isinstance(result, Err)
        assert "invalid JSON" in result.error.message

    def test_missing_file(self, tmp_path: Path) -> None:
        result = load_package_metadata(tmp_path / "package.json")
        assert isinstance(result, Err)
        assert "failed to read" in result.error.message


class TestStampVersion:
    def test_stamp_keeps_other_keys(self, tmp_path: Path) -> None:
        path = _write_json(
            tmp_path / "package.json",
            {"name": "vanish", "version": "0.0.0", "scripts": {"test": "jest"}},
        )
        result = stamp_version(path, "2.3.47")
        assert result == Ok(PackageMetadata(name="vanish", version="2.3.47"))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == {"name": "vanish", "version": "2.3.47", "scripts": {"test": "jest"}}
        assert path.read_text(encoding="utf-8").endswith("}\n")

    def test_stamp_leaves_no_temp_files(self, tmp_path: Path) -> None:
        path = _write_json(tmp_path / "package.json", {"name": "vanish"})
        stamp_version(path, "1.0.0")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["package.json"]

    def test_stamp_missing_file(self, tmp_path: Path) -> None:
        assert isinstance(stamp_version(tmp_path / "package.json", "1.0.0"), Err)
