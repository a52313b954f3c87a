#!/usr/bin/env python3
"""Unpack the ZIP archive embedded in a CRX3 container.

Extraction rejects path traversal, absolute paths and symlink entries. By
default the container is verified before anything is written.
"""

from __future__ import annotations

import argparse
import io
import shutil
import sys
import zipfile
from pathlib import Path
from stat import S_ISLNK
from typing import List, NamedTuple, Optional

from crx_errors import ContainerFormatError
from crx_files import hash_file, normalize_path, validate_path
from crx_verify import VerificationReport, parse_container, verify_container


class UnpackResult(NamedTuple):
    report: Optional[VerificationReport]
    files: List[str]


def _safe_extract_zip(zf: zipfile.ZipFile, dest: Path) -> List[str]:
    """Extract a ZIP archive safely, rejecting traversal and symlinks."""
    dest = dest.resolve()
    written: List[str] = []
    for member in zf.infolist():
        if member.is_dir() or member.filename.endswith("/"):
            continue
        if S_ISLNK(member.external_attr >> 16):
            raise ValueError(f"Symlinks not allowed in archive: {member.filename}")
        normalized = normalize_path(member.filename.replace("\\", "/"))
        validate_path(normalized)
        target = (dest / normalized).resolve()
        if not target.is_relative_to(dest):
            raise ValueError(f"Archive member escapes destination: {member.filename}")
        target.parent.mkdir(parents=True, exist_ok=True)
        with zf.open(member) as src, open(target, "wb") as dst:
            shutil.copyfileobj(src, dst)
        written.append(normalized)
    return written


def extract_container(crx_path: Path, dest: Path, verify: bool = True) -> UnpackResult:
    """Verify (optionally) and extract a container into dest.

    Raises:
        ContainerFormatError: If the container is malformed or fails verification.
        ValueError: If an archive entry is unsafe.
    """
    data = Path(crx_path).read_bytes()

    report = None
    if verify:
        report = verify_container(data)
        if not report.passed:
            failed = ", ".join(report.failed_rules())
            raise ContainerFormatError(f"Container failed verification ({failed})")

    parsed = parse_container(data)
    try:
        with zipfile.ZipFile(io.BytesIO(parsed.archive)) as zf:
            files = _safe_extract_zip(zf, dest)
    except zipfile.BadZipFile as exc:
        raise ContainerFormatError(f"Embedded archive is not a ZIP: {exc}") from exc

    return UnpackResult(report=report, files=files)


def main() -> int:
    parser = argparse.ArgumentParser(description="Unpack a CRX3 container")
    parser.add_argument("crx", type=Path, help="Path to .crx file")
    parser.add_argument("dest", type=Path, help="Destination directory")
    parser.add_argument(
        "--no-verify", action="store_true", help="Extract without checking signatures"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="List extracted files")
    args = parser.parse_args()

    try:
        result = extract_container(args.crx, args.dest, verify=not args.no_verify)
    except (ContainerFormatError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.verbose:
        for rel in result.files:
            digest, size = hash_file(args.dest / rel)
            print(f"  {rel}")
            print(f"    sha256:{digest} ({size:,} bytes)")
    print(f"Extracted {len(result.files)} files to {args.dest}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
