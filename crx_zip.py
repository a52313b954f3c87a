#!/usr/bin/env python3
"""Build the deterministic ZIP archive embedded in a CRX3 container.

The signature covers the exact archive bytes, so the archive is built the
same way on every run:
  - Files are added in bytewise order of their normalized UTF-8 paths.
  - All entries use a fixed timestamp (1980-01-01 00:00:00, the ZIP epoch).
  - Permissions are fixed to 0644 and the creator system is "FAT".
  - Compression is deflate at a fixed level, or stored.

Note: the archive is byte-for-byte stable only if the input file bytes are
identical and the same zlib build is used.
"""

from __future__ import annotations

import argparse
import io
import pathlib
import sys
import zipfile
from typing import Optional, Set

from crx_errors import ArchiveBuildError
from crx_files import (
    PathValidationError,
    check_case_collisions,
    enumerate_extension_files,
    validate_path,
)

ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)

DEFLATE_LEVEL = 9

COMPRESSION_METHODS = {
    "deflate": zipfile.ZIP_DEFLATED,
    "stored": zipfile.ZIP_STORED,
}


def collect_files(
    directory: pathlib.Path, excludes: Optional[Set[str]] = None
) -> list[tuple[str, pathlib.Path]]:
    """Return validated (relative_path, absolute_path) pairs in archive order."""
    directory = pathlib.Path(directory)
    if not directory.exists():
        raise FileNotFoundError(f"Extension directory not found: {directory}")
    if not directory.is_dir():
        raise NotADirectoryError(f"Extension path is not a directory: {directory}")

    files = list(enumerate_extension_files(directory, excludes))
    for rel, _ in files:
        validate_path(rel)

    collision = check_case_collisions([rel for rel, _ in files])
    if collision:
        raise PathValidationError(collision)

    return sorted(files, key=lambda t: t[0].encode("utf-8"))


def build_archive(
    directory: pathlib.Path,
    excludes: Optional[Set[str]] = None,
    compression: str = "deflate",
) -> bytes:
    """Archive an extension directory into an in-memory ZIP.

    Raises:
        ArchiveBuildError: If the directory is missing or unreadable, or a
            path cannot be stored.
    """
    if compression not in COMPRESSION_METHODS:
        raise ArchiveBuildError(f"Unsupported compression: {compression}")
    method = COMPRESSION_METHODS[compression]

    try:
        files = collect_files(directory, excludes)
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", compression=method) as zf:
            for rel, fpath in files:
                zi = zipfile.ZipInfo(filename=rel, date_time=ZIP_TIMESTAMP)
                zi.compress_type = method
                zi.create_system = 0
                zi.external_attr = (0o644 & 0xFFFF) << 16
                with open(fpath, "rb") as f:
                    data = f.read()
                if method == zipfile.ZIP_DEFLATED:
                    zf.writestr(zi, data, compresslevel=DEFLATE_LEVEL)
                else:
                    zf.writestr(zi, data)
    except (OSError, ValueError) as exc:
        raise ArchiveBuildError(f"Cannot archive {directory}: {exc}") from exc

    return buf.getvalue()


def write_archive(
    directory: pathlib.Path,
    out_zip: pathlib.Path,
    excludes: Optional[Set[str]] = None,
    compression: str = "deflate",
) -> int:
    """Write the deterministic archive to disk and return its size."""
    data = build_archive(directory, excludes=excludes, compression=compression)
    out_zip.parent.mkdir(parents=True, exist_ok=True)
    out_zip.write_bytes(data)
    return len(data)


def main() -> int:
    ap = argparse.ArgumentParser(description="Create the deterministic ZIP of an extension")
    ap.add_argument("directory", type=pathlib.Path, help="Path to unpacked extension")
    ap.add_argument("out_zip", type=pathlib.Path, help="Output zip path")
    ap.add_argument("--stored", action="store_true", help="Store entries without compression")
    ap.add_argument(
        "--include-all", action="store_true", help="Do not skip VCS metadata and OS cruft"
    )
    args = ap.parse_args()

    try:
        size = write_archive(
            args.directory,
            args.out_zip,
            excludes=set() if args.include_all else None,
            compression="stored" if args.stored else "deflate",
        )
    except ArchiveBuildError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Archive written to {args.out_zip} ({size:,} bytes)", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
