from __future__ import annotations

import io
import sys
import zipfile
from pathlib import Path

import pytest

import crx_zip
from crx_errors import ArchiveBuildError


def test_archive_is_deterministic(repo_root: Path, vectors: dict) -> None:
    source = repo_root / vectors["ext-complex"]["path"]
    assert crx_zip.build_archive(source) == crx_zip.build_archive(source)


def test_archive_entries_match_vectors(repo_root: Path, vectors: dict) -> None:
    for name, entry in vectors.items():
        data = crx_zip.build_archive(repo_root / entry["path"])
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            assert zf.namelist() == entry["expectedEntries"], f"{name} entry mismatch"


def test_archive_metadata_is_fixed(repo_root: Path, vectors: dict) -> None:
    data = crx_zip.build_archive(repo_root / vectors["ext-complex"]["path"])
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        for info in zf.infolist():
            assert info.compress_type == zipfile.ZIP_DEFLATED
            assert info.date_time == crx_zip.ZIP_TIMESTAMP
            assert info.external_attr >> 16 == 0o644
            assert info.create_system == 0


def test_stored_archive_keeps_content(minimal_extension: Path) -> None:
    data = crx_zip.build_archive(minimal_extension, compression="stored")
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        info = zf.getinfo("manifest.json")
        assert info.compress_type == zipfile.ZIP_STORED
        assert zf.read("manifest.json") == b'{"name":"t"}'


def test_unsupported_compression_rejected(minimal_extension: Path) -> None:
    with pytest.raises(ArchiveBuildError, match="Unsupported compression"):
        crx_zip.build_archive(minimal_extension, compression="bzip2")


def test_missing_directory_raises(tmp_path: Path) -> None:
    with pytest.raises(ArchiveBuildError, match="not found"):
        crx_zip.build_archive(tmp_path / "missing")


def test_file_instead_of_directory_raises(tmp_path: Path) -> None:
    path = tmp_path / "manifest.json"
    path.write_text("{}", encoding="utf-8")
    with pytest.raises(ArchiveBuildError, match="not a directory"):
        crx_zip.build_archive(path)


def test_case_collision_raises(tmp_path: Path) -> None:
    (tmp_path / "Icon.png").write_bytes(b"a")
    (tmp_path / "icon.png").write_bytes(b"b")
    if len(list(tmp_path.iterdir())) < 2:
        pytest.skip("case-insensitive file system")
    with pytest.raises(ArchiveBuildError, match="collision"):
        crx_zip.build_archive(tmp_path)


@pytest.mark.skipif(sys.platform == "win32", reason="backslash is a separator on Windows")
def test_backslash_filename_is_not_rewritten(minimal_extension: Path) -> None:
    (minimal_extension / "a\\b.js").write_text("1", encoding="utf-8")
    with pytest.raises(ArchiveBuildError, match="backslash"):
        crx_zip.build_archive(minimal_extension)


def test_empty_directory_builds_empty_archive(tmp_path: Path) -> None:
    data = crx_zip.build_archive(tmp_path)
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert zf.namelist() == []


def test_write_archive_creates_parent_directory(minimal_extension: Path, tmp_path: Path) -> None:
    out_zip = tmp_path / "nested" / "ext.zip"
    size = crx_zip.write_archive(minimal_extension, out_zip)
    assert out_zip.exists()
    assert out_zip.stat().st_size == size
