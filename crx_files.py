#!/usr/bin/env python3
"""
Extension directory enumeration.

Walks an unpacked extension directory and yields the files that go into the
packed archive. Paths are normalized to the form stored in ZIP entries:

1. Relative to the extension root, "/" separators
2. Unicode NFC
3. No ".", ".." or empty components, no absolute paths

Symlinks and other non-regular files are never packed.
"""

from __future__ import annotations

import hashlib
import os
import unicodedata
from pathlib import Path
from typing import Iterator, Optional, Set

# =============================================================================
# Constants
# =============================================================================

# Version-control metadata and OS cruft that never belongs in a package
DEFAULT_EXCLUDES: Set[str] = {
    ".git",
    ".svn",
    ".hg",
    ".DS_Store",
    "Thumbs.db",
    "__MACOSX",
}

MAX_PATH_COMPONENT_LENGTH = 255

MAX_PATH_LENGTH = 4096


# =============================================================================
# Path Validation
# =============================================================================


class PathValidationError(ValueError):
    """Raised when a path cannot be stored as an archive entry."""

    pass


def validate_path(path: str) -> None:
    """
    Validate an extension-relative path.

    Rejects empty paths, NUL bytes, backslashes, absolute paths, empty,
    "." or ".." components, and paths exceeding the length limits.

    Raises:
        PathValidationError: If path fails validation
    """
    if not path:
        raise PathValidationError("Empty path")

    if len(path) > MAX_PATH_LENGTH:
        raise PathValidationError(f"Path exceeds {MAX_PATH_LENGTH} characters: {path[:50]}...")

    if "\x00" in path:
        raise PathValidationError(f"Path contains NUL byte: {repr(path)}")

    if "\\" in path:
        raise PathValidationError(f"Path contains backslash (use / separator): {path}")

    if path.startswith("/"):
        raise PathValidationError(f"Absolute path not allowed: {path}")

    for component in path.split("/"):
        if not component:
            raise PathValidationError(f"Empty path component in: {path}")
        if component == "..":
            raise PathValidationError(f"Path traversal (..) not allowed: {path}")
        if component == ".":
            raise PathValidationError(f"Current directory (.) not allowed in path: {path}")
        if len(component) > MAX_PATH_COMPONENT_LENGTH:
            raise PathValidationError(
                "Path component exceeds "
                f"{MAX_PATH_COMPONENT_LENGTH} characters: {component[:50]}..."
            )


def normalize_path(path: str) -> str:
    """Apply NFC and strip any leading "./".

    Backslashes are kept literally; on POSIX they are legal filename
    characters and validate_path rejects them.
    """
    normalized = unicodedata.normalize("NFC", path)
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def should_exclude(relative_path: str, excludes: Optional[Set[str]] = None) -> bool:
    """Return True if any component of the path is in the exclusion set."""
    if excludes is None:
        excludes = DEFAULT_EXCLUDES
    return any(component in excludes for component in relative_path.split("/"))


# =============================================================================
# Enumeration
# =============================================================================


def _raise_walk_error(exc: OSError) -> None:
    # os.walk skips unreadable directories unless told otherwise
    raise exc


def enumerate_extension_files(
    root: Path, excludes: Optional[Set[str]] = None
) -> Iterator[tuple[str, Path]]:
    """
    Enumerate packable files below an extension root.

    Args:
        root: Extension root directory
        excludes: Exclusion set (DEFAULT_EXCLUDES if None, empty set packs all)

    Yields:
        Tuples of (relative_path, absolute_path)

    Raises:
        OSError: If the root or any subdirectory cannot be listed
    """
    root = root.resolve()

    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        if rel_dir == ".":
            rel_dir = ""

        dirnames[:] = [
            d for d in dirnames if not should_exclude(f"{rel_dir}/{d}" if rel_dir else d, excludes)
        ]

        for filename in filenames:
            rel_path = normalize_path(f"{rel_dir}/{filename}" if rel_dir else filename)
            if should_exclude(rel_path, excludes):
                continue

            abs_path = Path(dirpath) / filename
            if abs_path.is_symlink() or not abs_path.is_file():
                continue

            yield rel_path, abs_path


def check_case_collisions(paths: list[str]) -> Optional[str]:
    """Return an error message if two paths differ only by case."""
    seen: dict[str, str] = {}

    for path in paths:
        lower = path.lower()
        if lower in seen:
            return f"Case-insensitive collision detected: '{seen[lower]}' and '{path}'"
        seen[lower] = path

    return None


def hash_file(filepath: Path, chunk_size: int = 65536) -> tuple[str, int]:
    """Return (SHA-256 hex digest, size in bytes) of a file."""
    hasher = hashlib.sha256()
    size = 0

    with open(filepath, "rb") as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
            size += len(chunk)

    return hasher.hexdigest(), size
