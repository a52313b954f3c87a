from __future__ import annotations

import hashlib
import struct
from pathlib import Path

import pytest
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa

import crx_crypto
from crx_errors import EncodingError, KeyGenerationError, KeyLoadError, SigningError


def test_crx_id_is_sha256_prefix(test_key) -> None:
    der = crx_crypto.public_key_der(test_key)
    crx_id = crx_crypto.compute_crx_id(der)
    assert len(crx_id) == 16
    assert crx_id == hashlib.sha256(der).digest()[:16]


def test_crx_id_length_independent_of_key_size() -> None:
    small = rsa.generate_private_key(public_exponent=65537, key_size=1024)
    assert len(crx_crypto.compute_crx_id(crx_crypto.public_key_der(small))) == 16


def test_extension_id_maps_nibbles() -> None:
    crx_id = bytes.fromhex("0123456789abcdef0123456789abcdef")
    assert crx_crypto.extension_id(crx_id) == "abcdefghijklmnopabcdefghijklmnop"


def test_public_key_der_accepts_public_key(test_key) -> None:
    assert crx_crypto.public_key_der(test_key) == crx_crypto.public_key_der(test_key.public_key())


def test_public_key_der_rejects_non_key() -> None:
    with pytest.raises(EncodingError):
        crx_crypto.public_key_der(b"not a key")


def test_signing_prefix_layout() -> None:
    shd = b"\x0a\x10" + bytes(16)
    prefix = crx_crypto.signing_prefix(shd)
    assert prefix[:16] == b"CRX3 SignedData\x00"
    assert prefix[16:20] == struct.pack("<I", 18)
    assert prefix[20:] == shd


def test_signing_digest_is_chunk_independent() -> None:
    shd = b"\x0a\x02ID"
    archive = bytes(range(256)) * 50
    expected = hashlib.sha256(crx_crypto.signing_prefix(shd) + archive).digest()
    assert crx_crypto.signing_digest(shd, archive) == expected
    assert crx_crypto.signing_digest(shd, archive, chunk_size=7) == expected


def test_sign_and_verify(test_key, other_key) -> None:
    signature = crx_crypto.sign_container(b"shd", b"archive", test_key)
    assert len(signature) == 256
    assert crx_crypto.verify_container_signature(
        b"shd", b"archive", signature, test_key.public_key()
    )
    assert not crx_crypto.verify_container_signature(
        b"shd", b"archivE", signature, test_key.public_key()
    )
    assert not crx_crypto.verify_container_signature(
        b"shd", b"archive", signature, other_key.public_key()
    )


def test_signature_is_deterministic(test_key) -> None:
    first = crx_crypto.sign_container(b"shd", b"archive", test_key)
    assert crx_crypto.sign_container(b"shd", b"archive", test_key) == first


def test_sign_rejects_non_rsa_key() -> None:
    with pytest.raises(SigningError, match="RSA private key"):
        crx_crypto.sign_container(b"shd", b"archive", ed25519.Ed25519PrivateKey.generate())


def test_verify_rejects_non_rsa_public_key(test_key) -> None:
    signature = crx_crypto.sign_container(b"shd", b"archive", test_key)
    other = ed25519.Ed25519PrivateKey.generate().public_key()
    assert not crx_crypto.verify_container_signature(b"shd", b"archive", signature, other)


def test_generate_private_key_defaults() -> None:
    key = crx_crypto.generate_private_key()
    assert isinstance(key, rsa.RSAPrivateKey)
    assert key.key_size == 2048
    assert key.public_key().public_numbers().e == 65537


def test_generate_private_key_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def _broken():
        raise RuntimeError("no entropy")

    monkeypatch.setattr(crx_crypto, "_load_crypto", _broken)
    with pytest.raises(KeyGenerationError, match="no entropy"):
        crx_crypto.generate_private_key()


def test_private_key_pem_roundtrip(test_key, tmp_path: Path) -> None:
    path = tmp_path / "key.pem"
    path.write_bytes(crx_crypto.private_key_pem(test_key, passphrase="secret"))
    loaded = crx_crypto.load_private_key(path, passphrase="secret")
    assert crx_crypto.public_key_der(loaded) == crx_crypto.public_key_der(test_key)

    with pytest.raises(KeyLoadError, match=r"^\[key\] Cannot load private key"):
        crx_crypto.load_private_key(path)
    with pytest.raises(KeyLoadError):
        crx_crypto.load_private_key(path, passphrase="wrong")


def test_load_public_keys_from_pem(test_key, tmp_path: Path) -> None:
    from cryptography.hazmat.primitives import serialization

    path = tmp_path / "pub.pem"
    path.write_bytes(
        test_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )
    (loaded,) = crx_crypto.load_public_keys([path])
    assert crx_crypto.public_key_der(loaded) == crx_crypto.public_key_der(test_key)
