from __future__ import annotations

import pytest

import crx_proto
from crx_errors import EncodingError


@pytest.mark.parametrize(
    ("value", "encoded"),
    [
        (0, b"\x00"),
        (1, b"\x01"),
        (127, b"\x7f"),
        (128, b"\x80\x01"),
        (300, b"\xac\x02"),
    ],
)
def test_encode_varint(value: int, encoded: bytes) -> None:
    assert crx_proto.encode_varint(value) == encoded
    assert crx_proto.decode_varint(encoded, 0) == (value, len(encoded))


def test_negative_varint_rejected() -> None:
    with pytest.raises(EncodingError):
        crx_proto.encode_varint(-1)


def test_signed_header_data_tag_is_three_bytes() -> None:
    assert crx_proto.encode_tag(10000, crx_proto.WIRE_LENGTH_DELIMITED) == b"\x82\xf1\x04"


def test_signed_data_encoding() -> None:
    crx_id = bytes(range(16))
    encoded = crx_proto.encode_signed_data(crx_proto.SignedData(crx_id=crx_id))
    assert encoded == b"\x0a\x10" + crx_id
    assert crx_proto.decode_signed_data(encoded).crx_id == crx_id


def test_key_proof_encoding() -> None:
    proof = crx_proto.AsymmetricKeyProof(public_key=b"KEY", signature=b"SIG")
    assert crx_proto.encode_key_proof(proof) == b"\x0a\x03KEY\x12\x03SIG"


def test_file_header_layout() -> None:
    header = crx_proto.CrxFileHeader(
        sha256_with_rsa=(crx_proto.AsymmetricKeyProof(public_key=b"K", signature=b"S"),),
        signed_header_data=b"\x0a\x01X",
    )
    encoded = crx_proto.encode_file_header(header)
    assert encoded == b"\x12\x06\x0a\x01K\x12\x01S" + b"\x82\xf1\x04\x03\x0a\x01X"
    assert crx_proto.decode_file_header(encoded) == header


def test_empty_signed_header_data_is_omitted() -> None:
    header = crx_proto.CrxFileHeader(
        sha256_with_rsa=(crx_proto.AsymmetricKeyProof(public_key=b"K", signature=b"S"),),
    )
    assert crx_proto.encode_file_header(header) == b"\x12\x06\x0a\x01K\x12\x01S"


def test_decode_skips_unknown_fields() -> None:
    unknown = b"\x28\x96\x01" + b"\x25\x00\x00\x00\x00" + b"\x32\x02ab"
    encoded = unknown + b"\x0a\x02ID"
    assert crx_proto.decode_signed_data(encoded).crx_id == b"ID"


def test_decode_collects_ecdsa_proofs() -> None:
    encoded = b"\x1a\x03\x0a\x01E" + b"\x12\x03\x0a\x01R"
    header = crx_proto.decode_file_header(encoded)
    assert header.sha256_with_ecdsa == (crx_proto.AsymmetricKeyProof(public_key=b"E"),)
    assert header.sha256_with_rsa == (crx_proto.AsymmetricKeyProof(public_key=b"R"),)


@pytest.mark.parametrize(
    "data",
    [
        b"\x0a\x10short",  # length overruns message
        b"\x0a",  # missing length
        b"\x80",  # truncated varint key
        b"\x0b\x00",  # wire type 3 (groups)
        b"\x08\x01",  # crx_id as varint
    ],
)
def test_decode_rejects_malformed(data: bytes) -> None:
    with pytest.raises(EncodingError):
        crx_proto.decode_signed_data(data)
