#!/usr/bin/env python3
"""CI validation script for the CRX3 tools and test vectors.

This script validates:
1. All Python tools compile successfully
2. Test vector directories archive to the expected entry lists
3. Each vector packs and verifies through the CLIs (round-trip)
4. Re-packing with the same key is byte-identical
5. A tampered archive byte is rejected by the verifier

Usage:
    python ci_validate.py                    # Run all validations
    python ci_validate.py --verbose          # Show detailed output
    python ci_validate.py --compile-only     # Only compile the tools

Exit codes:
    0 = All validations passed
    1 = One or more validations failed
    2 = Script error
"""

from __future__ import annotations

import argparse
import json
import pathlib
import subprocess
import sys
import tempfile
from dataclasses import dataclass
from typing import List, Optional

# =============================================================================
# Configuration
# =============================================================================

SCRIPT_DIR = pathlib.Path(__file__).parent.resolve()

PYTHON_TOOLS = [
    "crx.py",
    "crx_archive.py",
    "crx_crypto.py",
    "crx_errors.py",
    "crx_files.py",
    "crx_options.py",
    "crx_pack.py",
    "crx_proto.py",
    "crx_verify.py",
    "crx_zip.py",
]

VECTORS_FILE = "test-vectors/vectors.json"


# =============================================================================
# Validation result tracking
# =============================================================================


@dataclass
class ValidationResult:
    name: str
    passed: bool
    message: str
    details: Optional[str] = None


class ValidationReport:
    def __init__(self):
        self.results: List[ValidationResult] = []

    def add(self, name: str, passed: bool, message: str, details: Optional[str] = None):
        self.results.append(ValidationResult(name, passed, message, details))

    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    def print_report(self, verbose: bool = False):
        print("\n" + "=" * 70)
        print("CRX CI VALIDATION REPORT")
        print("=" * 70)

        passed = [r for r in self.results if r.passed]
        failed = [r for r in self.results if not r.passed]

        if failed:
            print(f"\n❌ FAILED ({len(failed)}):\n")
            for r in failed:
                print(f"  • {r.name}: {r.message}")
                if r.details:
                    for line in r.details.split("\n"):
                        print(f"      {line}")

        if verbose and passed:
            print(f"\n✅ PASSED ({len(passed)}):\n")
            for r in passed:
                print(f"  • {r.name}: {r.message}")

        print("\n" + "-" * 70)
        if self.passed():
            print(f"RESULT: ✅ ALL {len(self.results)} VALIDATIONS PASSED")
        else:
            print(f"RESULT: ❌ {len(failed)}/{len(self.results)} VALIDATIONS FAILED")
        print("-" * 70 + "\n")


# =============================================================================
# Validation functions
# =============================================================================


def _run_tool(tool: str, *args: str) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, str(SCRIPT_DIR / tool), *args],
        capture_output=True,
        text=True,
    )


def _load_vectors(report: ValidationReport) -> dict:
    vectors_path = SCRIPT_DIR / VECTORS_FILE
    if not vectors_path.exists():
        report.add("vectors", False, f"Vectors file not found: {VECTORS_FILE}")
        return {}
    try:
        return json.loads(vectors_path.read_text(encoding="utf-8")).get("testVectors", {})
    except json.JSONDecodeError as e:
        report.add("vectors", False, "Invalid vectors JSON", str(e))
        return {}


def validate_python_compilation(report: ValidationReport):
    """Validate all Python tools compile without syntax errors."""
    for tool in PYTHON_TOOLS:
        tool_path = SCRIPT_DIR / tool
        if not tool_path.exists():
            report.add(f"compile:{tool}", False, f"File not found: {tool}")
            continue

        result = subprocess.run(
            [sys.executable, "-m", "py_compile", str(tool_path)],
            capture_output=True,
            text=True,
        )

        if result.returncode == 0:
            report.add(f"compile:{tool}", True, "Compiles successfully")
        else:
            report.add(f"compile:{tool}", False, "Compilation failed", result.stderr.strip())


def validate_vector_entries(report: ValidationReport, vectors: dict):
    """Validate each vector archives to the expected entry list."""
    sys.path.insert(0, str(SCRIPT_DIR))
    import crx_zip

    for tv_name, tv_entry in vectors.items():
        tv_path = SCRIPT_DIR / tv_entry["path"]
        if not tv_path.exists():
            report.add(f"tv:{tv_name}", False, f"Path not found: {tv_entry['path']}")
            continue

        entries = [rel for rel, _ in crx_zip.collect_files(tv_path)]
        expected = tv_entry["expectedEntries"]
        if entries == expected:
            report.add(f"tv:{tv_name}", True, f"{len(entries)} entries in archive order")
        else:
            report.add(
                f"tv:{tv_name}",
                False,
                "Entry list mismatch",
                f"Expected: {expected}\nComputed: {entries}",
            )


def _verify_json(crx_path: pathlib.Path) -> Optional[dict]:
    result = _run_tool("crx_verify.py", str(crx_path), "--json")
    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError:
        return None


def validate_pack_roundtrip(report: ValidationReport, vectors: dict):
    """Pack each vector, verify it, re-pack for determinism, then tamper."""
    for tv_name, tv_entry in vectors.items():
        tv_path = SCRIPT_DIR / tv_entry["path"]
        if not tv_path.exists():
            continue

        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = pathlib.Path(tmpdir)
            key_path = tmp / "key.pem"
            first = tmp / "first.crx"
            second = tmp / "second.crx"

            result = _run_tool(
                "crx_pack.py", str(tv_path), "-o", str(first), "--key-output", str(key_path)
            )
            if result.returncode != 0:
                report.add(f"pack:{tv_name}", False, "Packing failed", result.stderr.strip())
                continue

            verify_result = _verify_json(first)
            if verify_result is None:
                report.add(f"roundtrip:{tv_name}", False, "Verifier output invalid")
                continue
            if verify_result.get("passed"):
                report.add(f"roundtrip:{tv_name}", True, "Container verified")
            else:
                failures = [
                    r["message"]
                    for r in verify_result.get("results", [])
                    if not r.get("passed") and r.get("severity") == "ERROR"
                ]
                report.add(
                    f"roundtrip:{tv_name}", False, "Verification failed", "\n".join(failures)
                )

            result = _run_tool(
                "crx_pack.py", str(tv_path), "-o", str(second), "--key", str(key_path)
            )
            if result.returncode == 0 and first.read_bytes() == second.read_bytes():
                report.add(f"determinism:{tv_name}", True, "Re-pack is byte-identical")
            else:
                report.add(
                    f"determinism:{tv_name}", False, "Re-pack differs", result.stderr.strip()
                )

            tampered = bytearray(first.read_bytes())
            tampered[-1] ^= 0x01
            first.write_bytes(bytes(tampered))
            verify_result = _verify_json(first)
            if verify_result is not None and not verify_result.get("passed"):
                report.add(f"tamper:{tv_name}", True, "Tampered archive rejected")
            else:
                report.add(f"tamper:{tv_name}", False, "Tampered archive was not rejected")


def validate_known_answers(report: ValidationReport, vectors: dict):
    """Pack vectors that pin a fixed key and compare against recorded digests."""
    for tv_name, tv_entry in vectors.items():
        expected = tv_entry.get("knownAnswer")
        if not expected:
            continue

        args = [str(SCRIPT_DIR / tv_entry["path"]), "--key", str(SCRIPT_DIR / expected["key"])]
        if expected.get("compression") == "stored":
            args.append("--stored")

        with tempfile.TemporaryDirectory() as tmpdir:
            out = pathlib.Path(tmpdir) / "ext.crx"
            result = _run_tool("crx_pack.py", *args, "-o", str(out), "--json")
            if result.returncode != 0:
                report.add(f"kat:{tv_name}", False, "Packing failed", result.stderr.strip())
                continue

        summary = json.loads(result.stdout)
        mismatches = [
            f"{field}: expected {expected[field]}, got {summary.get(field)}"
            for field in ("crxId", "extensionId", "headerLength", "size", "sha256")
            if summary.get(field) != expected[field]
        ]
        if mismatches:
            report.add(f"kat:{tv_name}", False, "Known answer mismatch", "\n".join(mismatches))
        else:
            report.add(f"kat:{tv_name}", True, "Matches recorded digest")


# =============================================================================
# Main
# =============================================================================


def main() -> int:
    parser = argparse.ArgumentParser(description="CRX CI validation")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--compile-only", action="store_true", help="Only compile the tools")
    args = parser.parse_args()

    report = ValidationReport()

    print("Running CRX CI validations...")

    validate_python_compilation(report)

    if not args.compile_only:
        vectors = _load_vectors(report)
        validate_vector_entries(report, vectors)
        validate_pack_roundtrip(report, vectors)
        validate_known_answers(report, vectors)

    report.print_report(verbose=args.verbose)

    return 0 if report.passed() else 1


if __name__ == "__main__":
    sys.exit(main())
