#!/usr/bin/env python3
"""Pack an unpacked extension directory into a signed CRX3 container.

Usage:
    # Pack with a freshly generated key, saving the key next to the output
    python crx_pack.py path/to/extension -o extension.crx --key-output key.pem

    # Pack with an existing PEM key
    python crx_pack.py path/to/extension -o extension.crx --key key.pem

    # Emit base64 for a browser session capabilities payload
    python crx_pack.py path/to/extension --key key.pem --base64

Container layout:

    offset  size  field
    0       4     magic "Cr24"
    4       4     version, uint32 little-endian, value 3
    8       4     header_length, uint32 little-endian
    12      H     header (encoded CrxFileHeader)
    12+H    *     archive bytes
"""

from __future__ import annotations

import argparse
import base64
import hashlib
import io
import json
import os
import pathlib
import struct
import sys
import tempfile
from typing import BinaryIO, Optional, Set, Tuple

import crx_crypto
import crx_proto
from crx_errors import AssemblyError, CrxError, EncodingError
from crx_zip import build_archive

# =============================================================================
# Constants
# =============================================================================

CRX_MAGIC = b"Cr24"

CRX_VERSION = 3

CRX_PREAMBLE_SIZE = 12

PASSPHRASE_ENV = "CRX_KEY_PASSPHRASE"


# =============================================================================
# Header
# =============================================================================


def build_signed_header_data(public_der: bytes) -> bytes:
    """Encode SignedData{crx_id} for a DER public key."""
    try:
        return crx_proto.encode_signed_data(
            crx_proto.SignedData(crx_id=crx_crypto.compute_crx_id(public_der))
        )
    except EncodingError:
        raise
    except Exception as exc:
        raise EncodingError(f"Cannot encode SignedData: {exc}") from exc


def assemble_header(public_der: bytes, signature: bytes, signed_header_data: bytes) -> bytes:
    """Encode the CrxFileHeader carrying a single RSA proof."""
    header = crx_proto.CrxFileHeader(
        sha256_with_rsa=(
            crx_proto.AsymmetricKeyProof(public_key=public_der, signature=signature),
        ),
        signed_header_data=signed_header_data,
    )
    try:
        return crx_proto.encode_file_header(header)
    except EncodingError:
        raise
    except Exception as exc:
        raise EncodingError(f"Cannot encode CrxFileHeader: {exc}") from exc


# =============================================================================
# Container
# =============================================================================


def write_container(sink: BinaryIO, header: bytes, archive: bytes) -> int:
    """Write magic, version, header length, header and archive to sink."""
    if len(header) > 0xFFFFFFFF:
        raise AssemblyError(f"Header too large for CRX3: {len(header)} bytes")
    try:
        sink.write(CRX_MAGIC)
        sink.write(struct.pack("<I", CRX_VERSION))
        sink.write(struct.pack("<I", len(header)))
        sink.write(header)
        sink.write(archive)
    except (OSError, ValueError) as exc:
        raise AssemblyError(f"Cannot write container: {exc}") from exc
    return CRX_PREAMBLE_SIZE + len(header) + len(archive)


def assemble_container(header: bytes, archive: bytes) -> bytes:
    buf = io.BytesIO()
    write_container(buf, header, archive)
    return buf.getvalue()


def build_container(archive: bytes, private_key: object) -> bytes:
    """Sign an archive and wrap it in a CRX3 container."""
    public_der = crx_crypto.public_key_der(private_key)
    signed_header_data = build_signed_header_data(public_der)
    signature = crx_crypto.sign_container(signed_header_data, archive, private_key)
    header = assemble_header(public_der, signature, signed_header_data)
    return assemble_container(header, archive)


# =============================================================================
# Pipeline
# =============================================================================


def package_with_key(
    directory: pathlib.Path,
    private_key: object,
    excludes: Optional[Set[str]] = None,
    compression: str = "deflate",
) -> bytes:
    """Pack a directory into a CRX3 container signed by private_key."""
    archive = build_archive(pathlib.Path(directory), excludes=excludes, compression=compression)
    return build_container(archive, private_key)


def package_with_new_key(
    directory: pathlib.Path,
    excludes: Optional[Set[str]] = None,
    compression: str = "deflate",
    key_size: int = crx_crypto.RSA_KEY_SIZE,
) -> Tuple[bytes, object]:
    """Pack a directory with a freshly generated key; returns (container, key)."""
    archive = build_archive(pathlib.Path(directory), excludes=excludes, compression=compression)
    private_key = crx_crypto.generate_private_key(key_size)
    return build_container(archive, private_key), private_key


def write_crx(data: bytes, path: pathlib.Path) -> None:
    """Write output atomically so a failed write never leaves a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except OSError as exc:
        pathlib.Path(tmp_name).unlink(missing_ok=True)
        raise AssemblyError(f"Cannot write {path}: {exc}") from exc


def describe_container(data: bytes, private_key: object) -> dict:
    crx_id = crx_crypto.compute_crx_id(crx_crypto.public_key_der(private_key))
    header_length = struct.unpack("<I", data[8:12])[0]
    return {
        "extensionId": crx_crypto.extension_id(crx_id),
        "crxId": crx_id.hex(),
        "size": len(data),
        "headerLength": header_length,
        "archiveSize": len(data) - CRX_PREAMBLE_SIZE - header_length,
        "sha256": hashlib.sha256(data).hexdigest(),
    }


# =============================================================================
# CLI
# =============================================================================


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Pack an extension directory into a signed CRX3 container",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s ./my-extension -o my-extension.crx --key-output key.pem
  %(prog)s ./my-extension -o my-extension.crx --key key.pem
  %(prog)s ./my-extension --key key.pem --base64 > my-extension.b64
        """,
    )
    parser.add_argument("directory", type=pathlib.Path, help="Path to unpacked extension")
    parser.add_argument(
        "--output", "-o", type=pathlib.Path, help="Output .crx path (default: <dir>.crx)"
    )
    parser.add_argument("--key", type=pathlib.Path, help="PEM private key to sign with")
    parser.add_argument(
        "--key-passphrase",
        type=str,
        help=f"Passphrase for --key / --key-output (default: ${PASSPHRASE_ENV})",
    )
    parser.add_argument(
        "--key-output", type=pathlib.Path, help="Where to save a newly generated key"
    )
    parser.add_argument("--stored", action="store_true", help="Store archive entries uncompressed")
    parser.add_argument(
        "--include-all", action="store_true", help="Do not skip VCS metadata and OS cruft"
    )
    parser.add_argument(
        "--base64",
        action="store_true",
        help="Print the container as base64 to stdout instead of writing a file",
    )
    parser.add_argument("--json", action="store_true", help="Print a JSON summary to stdout")
    args = parser.parse_args()

    passphrase = args.key_passphrase or os.environ.get(PASSPHRASE_ENV) or None
    excludes = set() if args.include_all else None
    compression = "stored" if args.stored else "deflate"

    try:
        if args.key and args.key_output:
            raise ValueError("--key-output only applies when a new key is generated")

        if args.key:
            private_key = crx_crypto.load_private_key(args.key, passphrase)
            data = package_with_key(
                args.directory, private_key, excludes=excludes, compression=compression
            )
        else:
            data, private_key = package_with_new_key(
                args.directory, excludes=excludes, compression=compression
            )
            if args.key_output:
                args.key_output.write_bytes(crx_crypto.private_key_pem(private_key, passphrase))
                print(f"Private key written to {args.key_output}", file=sys.stderr)
            elif not args.base64:
                print(
                    "Warning: generated key was not saved (use --key-output)", file=sys.stderr
                )

        summary = describe_container(data, private_key)
        encoded = base64.b64encode(data).decode("ascii") if args.base64 else None

        if not args.base64:
            resolved = args.directory.resolve()
            output = args.output or resolved.parent / f"{resolved.name}.crx"
            write_crx(data, output)
            summary["output"] = str(output)
            print(f"Container written to {output}", file=sys.stderr)

        if args.json:
            if encoded is not None:
                summary["base64"] = encoded
            print(json.dumps(summary, indent=2))
        elif encoded is not None:
            print(encoded)
        else:
            print(f"Extension ID: {summary['extensionId']}")

        return 0

    except (CrxError, ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
