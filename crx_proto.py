#!/usr/bin/env python3
"""Protobuf wire-format codec for the CRX3 header messages.

Only the fixed crx3.proto schemas are supported:

    message CrxFileHeader {
      repeated AsymmetricKeyProof sha256_with_rsa = 2;
      repeated AsymmetricKeyProof sha256_with_ecdsa = 3;
      bytes signed_header_data = 10000;
    }
    message AsymmetricKeyProof {
      bytes public_key = 1;
      bytes signature = 2;
    }
    message SignedData {
      bytes crx_id = 1;
    }

Encoders write fields in field-number order and omit empty bytes fields.
Decoders skip unknown fields so headers written by other packers parse.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Tuple

from crx_errors import EncodingError

# =============================================================================
# Constants
# =============================================================================

WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH_DELIMITED = 2
WIRE_FIXED32 = 5

SIGNED_DATA_CRX_ID = 1

KEY_PROOF_PUBLIC_KEY = 1
KEY_PROOF_SIGNATURE = 2

FILE_HEADER_SHA256_WITH_RSA = 2
FILE_HEADER_SHA256_WITH_ECDSA = 3
FILE_HEADER_SIGNED_HEADER_DATA = 10000


# =============================================================================
# Messages
# =============================================================================


@dataclass(frozen=True)
class SignedData:
    crx_id: bytes = b""


@dataclass(frozen=True)
class AsymmetricKeyProof:
    public_key: bytes = b""
    signature: bytes = b""


@dataclass(frozen=True)
class CrxFileHeader:
    sha256_with_rsa: Tuple[AsymmetricKeyProof, ...] = field(default_factory=tuple)
    sha256_with_ecdsa: Tuple[AsymmetricKeyProof, ...] = field(default_factory=tuple)
    signed_header_data: bytes = b""


# =============================================================================
# Wire primitives
# =============================================================================


def encode_varint(value: int) -> bytes:
    if value < 0:
        raise EncodingError(f"Varint must be non-negative: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes, offset: int) -> tuple[int, int]:
    """Decode a varint at offset; return (value, next_offset)."""
    result = 0
    shift = 0
    while True:
        if offset >= len(data):
            raise EncodingError("Truncated varint")
        if shift >= 64:
            raise EncodingError("Varint too long")
        byte = data[offset]
        offset += 1
        result |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            return result, offset


def encode_tag(field_number: int, wire_type: int) -> bytes:
    return encode_varint((field_number << 3) | wire_type)


def encode_bytes_field(field_number: int, value: bytes) -> bytes:
    """Encode a length-delimited field; empty values are omitted."""
    if not value:
        return b""
    return encode_tag(field_number, WIRE_LENGTH_DELIMITED) + encode_varint(len(value)) + value


def iter_fields(data: bytes) -> Iterator[tuple[int, int, object]]:
    """Yield (field_number, wire_type, value) for each field in a message.

    Length-delimited values are returned as bytes, varints as int, and fixed
    width values as raw bytes.
    """
    offset = 0
    end = len(data)
    while offset < end:
        key, offset = decode_varint(data, offset)
        field_number, wire_type = key >> 3, key & 0x7
        if field_number == 0:
            raise EncodingError("Invalid field number 0")

        if wire_type == WIRE_VARINT:
            value, offset = decode_varint(data, offset)
            yield field_number, wire_type, value
        elif wire_type == WIRE_LENGTH_DELIMITED:
            length, offset = decode_varint(data, offset)
            if offset + length > end:
                raise EncodingError(f"Field {field_number} overruns message")
            yield field_number, wire_type, bytes(data[offset : offset + length])
            offset += length
        elif wire_type in (WIRE_FIXED64, WIRE_FIXED32):
            width = 8 if wire_type == WIRE_FIXED64 else 4
            if offset + width > end:
                raise EncodingError(f"Field {field_number} overruns message")
            yield field_number, wire_type, bytes(data[offset : offset + width])
            offset += width
        else:
            raise EncodingError(f"Unsupported wire type {wire_type} for field {field_number}")


def _expect_bytes(field_number: int, wire_type: int, value: object) -> bytes:
    if wire_type != WIRE_LENGTH_DELIMITED or not isinstance(value, bytes):
        raise EncodingError(f"Field {field_number} must be length-delimited")
    return value


# =============================================================================
# SignedData
# =============================================================================


def encode_signed_data(message: SignedData) -> bytes:
    return encode_bytes_field(SIGNED_DATA_CRX_ID, message.crx_id)


def decode_signed_data(data: bytes) -> SignedData:
    crx_id = b""
    for number, wire_type, value in iter_fields(data):
        if number == SIGNED_DATA_CRX_ID:
            crx_id = _expect_bytes(number, wire_type, value)
    return SignedData(crx_id=crx_id)


# =============================================================================
# AsymmetricKeyProof
# =============================================================================


def encode_key_proof(proof: AsymmetricKeyProof) -> bytes:
    return encode_bytes_field(KEY_PROOF_PUBLIC_KEY, proof.public_key) + encode_bytes_field(
        KEY_PROOF_SIGNATURE, proof.signature
    )


def decode_key_proof(data: bytes) -> AsymmetricKeyProof:
    public_key = b""
    signature = b""
    for number, wire_type, value in iter_fields(data):
        if number == KEY_PROOF_PUBLIC_KEY:
            public_key = _expect_bytes(number, wire_type, value)
        elif number == KEY_PROOF_SIGNATURE:
            signature = _expect_bytes(number, wire_type, value)
    return AsymmetricKeyProof(public_key=public_key, signature=signature)


# =============================================================================
# CrxFileHeader
# =============================================================================


def _encode_proof_field(field_number: int, proof: AsymmetricKeyProof) -> bytes:
    # Repeated message fields are written even when the proof is empty
    body = encode_key_proof(proof)
    return encode_tag(field_number, WIRE_LENGTH_DELIMITED) + encode_varint(len(body)) + body


def encode_file_header(header: CrxFileHeader) -> bytes:
    parts = [_encode_proof_field(FILE_HEADER_SHA256_WITH_RSA, p) for p in header.sha256_with_rsa]
    parts.extend(
        _encode_proof_field(FILE_HEADER_SHA256_WITH_ECDSA, p) for p in header.sha256_with_ecdsa
    )
    parts.append(encode_bytes_field(FILE_HEADER_SIGNED_HEADER_DATA, header.signed_header_data))
    return b"".join(parts)


def decode_file_header(data: bytes) -> CrxFileHeader:
    rsa_proofs: list[AsymmetricKeyProof] = []
    ecdsa_proofs: list[AsymmetricKeyProof] = []
    signed_header_data = b""

    for number, wire_type, value in iter_fields(data):
        if number == FILE_HEADER_SHA256_WITH_RSA:
            rsa_proofs.append(decode_key_proof(_expect_bytes(number, wire_type, value)))
        elif number == FILE_HEADER_SHA256_WITH_ECDSA:
            ecdsa_proofs.append(decode_key_proof(_expect_bytes(number, wire_type, value)))
        elif number == FILE_HEADER_SIGNED_HEADER_DATA:
            signed_header_data = _expect_bytes(number, wire_type, value)

    return CrxFileHeader(
        sha256_with_rsa=tuple(rsa_proofs),
        sha256_with_ecdsa=tuple(ecdsa_proofs),
        signed_header_data=signed_header_data,
    )
