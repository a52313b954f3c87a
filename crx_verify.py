#!/usr/bin/env python3
"""Verify CRX3 containers.

Parses the container preamble and header, recomputes the signing input for
every RSA proof and checks it against the embedded public key, and confirms
that the signed crx_id belongs to one of the proof keys.

Usage:
    # Verify a container
    python crx_verify.py extension.crx

    # Additionally require a specific signing key
    python crx_verify.py extension.crx --public-key publisher.pem

Exit codes:
    0 = Verification passed
    1 = Verification failed
    2 = Error (unreadable input, etc.)
"""

from __future__ import annotations

import argparse
import io
import json
import pathlib
import struct
import sys
import zipfile
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

import crx_crypto
import crx_proto
from crx_errors import ContainerFormatError, EncodingError
from crx_pack import CRX_MAGIC, CRX_PREAMBLE_SIZE, CRX_VERSION

MANIFEST_NAME = "manifest.json"


# =============================================================================
# Verification result types
# =============================================================================


class Severity(Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"


@dataclass
class VerificationResult:
    rule_id: str
    passed: bool
    severity: Severity
    message: str
    details: Optional[str] = None


class VerificationReport:
    def __init__(self):
        self.results: List[VerificationResult] = []
        self.extension_id: Optional[str] = None

    def add(self, result: VerificationResult):
        self.results.append(result)

    def add_error(self, rule_id: str, message: str, details: Optional[str] = None):
        self.add(VerificationResult(rule_id, False, Severity.ERROR, message, details))

    def add_warning(self, rule_id: str, message: str, details: Optional[str] = None):
        self.add(VerificationResult(rule_id, False, Severity.WARNING, message, details))

    def add_pass(self, rule_id: str, message: str):
        self.add(VerificationResult(rule_id, True, Severity.INFO, message))

    @property
    def passed(self) -> bool:
        return not any(r.severity == Severity.ERROR and not r.passed for r in self.results)

    @property
    def has_warnings(self) -> bool:
        return any(r.severity == Severity.WARNING and not r.passed for r in self.results)

    def failed_rules(self) -> List[str]:
        return [r.rule_id for r in self.results if r.severity == Severity.ERROR and not r.passed]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "has_warnings": self.has_warnings,
            "extension_id": self.extension_id,
            "results": [
                {
                    "rule_id": r.rule_id,
                    "passed": r.passed,
                    "severity": r.severity.value,
                    "message": r.message,
                    "details": r.details,
                }
                for r in self.results
            ],
        }

    def print_report(self, verbose: bool = False):
        print("\n" + "=" * 60)
        print("CRX3 VERIFICATION REPORT")
        print("=" * 60)

        if self.extension_id:
            print(f"\nExtension ID: {self.extension_id}")

        errors = [r for r in self.results if r.severity == Severity.ERROR and not r.passed]
        warnings = [r for r in self.results if r.severity == Severity.WARNING and not r.passed]
        passes = [r for r in self.results if r.passed]

        if errors:
            print(f"\n❌ ERRORS ({len(errors)}):")
            for r in errors:
                print(f"  [{r.rule_id}] {r.message}")
                if r.details and verbose:
                    print(f"      Details: {r.details}")

        if warnings:
            print(f"\n⚠️  WARNINGS ({len(warnings)}):")
            for r in warnings:
                print(f"  [{r.rule_id}] {r.message}")
                if r.details and verbose:
                    print(f"      Details: {r.details}")

        if verbose and passes:
            print(f"\n✅ PASSED ({len(passes)}):")
            for r in passes:
                print(f"  [{r.rule_id}] {r.message}")

        print("\n" + "-" * 60)
        if self.passed:
            if self.has_warnings:
                print("RESULT: ⚠️  PASSED WITH WARNINGS")
            else:
                print("RESULT: ✅ PASSED")
        else:
            print("RESULT: ❌ FAILED")
        print("-" * 60 + "\n")


# =============================================================================
# Parsing
# =============================================================================


class ParsedContainer(NamedTuple):
    version: int
    header_bytes: bytes
    header: crx_proto.CrxFileHeader
    archive: bytes
    archive_offset: int


def read_preamble(data: bytes) -> tuple[int, int]:
    """Return (version, header_length) from the 12-byte preamble."""
    if len(data) < CRX_PREAMBLE_SIZE:
        raise ContainerFormatError(f"File too short for CRX preamble: {len(data)} bytes")
    if data[:4] != CRX_MAGIC:
        raise ContainerFormatError(f"Bad magic: {data[:4]!r}")
    version, header_length = struct.unpack("<II", data[4:CRX_PREAMBLE_SIZE])
    return version, header_length


def parse_container(data: bytes) -> ParsedContainer:
    """Split a CRX3 container into its header and archive.

    Raises:
        ContainerFormatError: On bad magic, unsupported version, a header
            length past the end of the data, or an undecodable header.
    """
    version, header_length = read_preamble(data)
    if version != CRX_VERSION:
        raise ContainerFormatError(f"Unsupported CRX version: {version}")

    archive_offset = CRX_PREAMBLE_SIZE + header_length
    if archive_offset > len(data):
        raise ContainerFormatError(
            f"Header length {header_length} exceeds file size {len(data)}"
        )

    header_bytes = bytes(data[CRX_PREAMBLE_SIZE:archive_offset])
    try:
        header = crx_proto.decode_file_header(header_bytes)
    except EncodingError as exc:
        raise ContainerFormatError(f"Cannot decode CrxFileHeader: {exc}") from exc

    return ParsedContainer(
        version=version,
        header_bytes=header_bytes,
        header=header,
        archive=bytes(data[archive_offset:]),
        archive_offset=archive_offset,
    )


# =============================================================================
# Verification functions
# =============================================================================


def _verify_preamble(data: bytes, report: VerificationReport) -> Optional[ParsedContainer]:
    try:
        version, header_length = read_preamble(data)
    except ContainerFormatError as e:
        report.add_error("CRX-001", "Not a CRX container", str(e))
        return None
    report.add_pass("CRX-001", "Magic bytes are Cr24")

    if version != CRX_VERSION:
        report.add_error("CRX-002", f"Unsupported CRX version {version}", "Only CRX3 is supported")
        return None
    report.add_pass("CRX-002", "Format version is 3")

    if CRX_PREAMBLE_SIZE + header_length > len(data):
        report.add_error(
            "CRX-003",
            "Header length exceeds file size",
            f"header_length={header_length}, file size={len(data)}",
        )
        return None
    report.add_pass("CRX-003", f"Header length {header_length} fits in file")

    try:
        parsed = parse_container(data)
    except ContainerFormatError as e:
        report.add_error("CRX-004", "Header does not decode", str(e))
        return None
    report.add_pass("CRX-004", "CrxFileHeader decoded")
    return parsed


def _verify_signed_data(
    header: crx_proto.CrxFileHeader, report: VerificationReport
) -> Optional[bytes]:
    if not header.signed_header_data:
        report.add_error("CRX-005", "Header has no signed_header_data")
        return None
    try:
        signed_data = crx_proto.decode_signed_data(header.signed_header_data)
    except EncodingError as e:
        report.add_error("CRX-005", "SignedData does not decode", str(e))
        return None
    if len(signed_data.crx_id) != crx_crypto.CRX_ID_LENGTH:
        report.add_error(
            "CRX-005",
            "crx_id has wrong length",
            f"Expected {crx_crypto.CRX_ID_LENGTH} bytes, got {len(signed_data.crx_id)}",
        )
        return None
    report.add_pass("CRX-005", f"crx_id {signed_data.crx_id.hex()}")
    return signed_data.crx_id


def _verify_proofs(parsed: ParsedContainer, report: VerificationReport) -> List[bytes]:
    """Verify every RSA proof; return the DER keys whose signatures verified."""
    header = parsed.header
    if header.sha256_with_ecdsa:
        report.add_warning(
            "CRX-006", f"{len(header.sha256_with_ecdsa)} ECDSA proof(s) present but not checked"
        )
    if not header.sha256_with_rsa:
        report.add_error("CRX-006", "No sha256_with_rsa proofs in header")
        return []
    report.add_pass("CRX-006", f"{len(header.sha256_with_rsa)} RSA proof(s) present")

    verified: List[bytes] = []
    for index, proof in enumerate(header.sha256_with_rsa):
        try:
            public_key = crx_crypto.load_public_key_der(proof.public_key)
        except Exception as e:
            report.add_error("CRX-007", f"Proof {index}: public key does not load", str(e))
            continue
        if crx_crypto.verify_container_signature(
            header.signed_header_data, parsed.archive, proof.signature, public_key
        ):
            verified.append(proof.public_key)
        else:
            report.add_error("CRX-007", f"Proof {index}: signature does not verify")

    if len(verified) == len(header.sha256_with_rsa):
        report.add_pass("CRX-007", "All RSA proof signatures verified")
    return verified


def _verify_archive(archive: bytes, report: VerificationReport) -> None:
    try:
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            names = zf.namelist()
    except zipfile.BadZipFile as e:
        report.add_warning("CRX-010", "Archive is not a readable ZIP", str(e))
        return
    report.add_pass("CRX-010", f"Archive is a ZIP with {len(names)} entries")

    if MANIFEST_NAME in names:
        report.add_pass("CRX-011", f"{MANIFEST_NAME} present")
    else:
        report.add_warning("CRX-011", f"{MANIFEST_NAME} missing from archive root")


def verify_container(
    data: bytes, public_keys: Optional[Iterable[object]] = None
) -> VerificationReport:
    """Run every container rule; pinned public_keys enable CRX-009."""
    report = VerificationReport()

    parsed = _verify_preamble(data, report)
    if parsed is None:
        return report

    crx_id = _verify_signed_data(parsed.header, report)
    verified = _verify_proofs(parsed, report)

    if crx_id is not None and verified:
        if any(crx_crypto.compute_crx_id(der) == crx_id for der in verified):
            report.add_pass("CRX-008", "crx_id matches a verified proof key")
            # Only an ID owned by a verified key is reported
            report.extension_id = crx_crypto.extension_id(crx_id)
        else:
            report.add_error("CRX-008", "crx_id does not match any verified proof key")

    if public_keys is not None:
        pinned = {crx_crypto.public_key_der(key) for key in public_keys}
        if pinned & set(verified):
            report.add_pass("CRX-009", "Container signed by a pinned public key")
        else:
            report.add_error("CRX-009", "No verified proof uses a pinned public key")

    _verify_archive(parsed.archive, report)
    return report


def verify_file(
    crx_path: pathlib.Path, public_keys: Optional[List[pathlib.Path]] = None
) -> VerificationReport:
    keys = crx_crypto.load_public_keys(public_keys) if public_keys else None
    return verify_container(crx_path.read_bytes(), public_keys=keys)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Verify CRX3 containers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("crx", type=pathlib.Path, help="Path to .crx file")
    parser.add_argument(
        "--public-key",
        action="append",
        type=pathlib.Path,
        help="PEM public key or certificate the container must be signed by",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show detailed output including passed checks",
    )
    parser.add_argument("--json", action="store_true", help="Output report as JSON")
    args = parser.parse_args()

    try:
        report = verify_file(args.crx, public_keys=args.public_key)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        report.print_report(verbose=args.verbose)

    return 0 if report.passed else 1


if __name__ == "__main__":
    sys.exit(main())
