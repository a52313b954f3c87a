#!/usr/bin/env python3
"""Key handling and CRX3 signing.

A CRX3 proof is an RSASSA-PKCS1-v1.5 / SHA-256 signature over

    b"CRX3 SignedData\\x00" + uint32le(len(signed_header_data))
        + signed_header_data + archive

This module requires `cryptography` for everything except the identity and
digest helpers.
"""

from __future__ import annotations

import hashlib
import struct
from pathlib import Path
from typing import Iterable, Optional

from crx_errors import EncodingError, KeyGenerationError, KeyLoadError, SigningError

# =============================================================================
# Constants
# =============================================================================

RSA_KEY_SIZE = 2048

RSA_PUBLIC_EXPONENT = 65537

SIGNATURE_CONTEXT = b"CRX3 SignedData\x00"

CRX_ID_LENGTH = 16

HASH_CHUNK_SIZE = 1 << 20


def _load_crypto():
    try:
        from cryptography import x509
        from cryptography.hazmat.primitives import hashes, serialization
        from cryptography.hazmat.primitives.asymmetric import padding, rsa, utils
    except Exception as exc:  # pragma: no cover - depends on installed packages
        raise RuntimeError(
            "cryptography is required for key and signature operations. "
            "Install with: pip install cryptography"
        ) from exc
    return x509, hashes, serialization, padding, rsa, utils


# =============================================================================
# Keys
# =============================================================================


def generate_private_key(key_size: int = RSA_KEY_SIZE) -> object:
    """Generate a fresh RSA private key from the OS CSPRNG."""
    try:
        _x509, _hashes, _serialization, _padding, rsa, _utils = _load_crypto()
        return rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=key_size)
    except Exception as exc:
        raise KeyGenerationError(f"RSA-{key_size} key generation failed: {exc}") from exc


def load_private_key(path: Path, passphrase: Optional[str] = None) -> object:
    """Load a PEM private key.

    Raises:
        FileNotFoundError: If path does not exist
        KeyLoadError: If the PEM is malformed or the passphrase is wrong or missing
    """
    _x509, _hashes, serialization, _padding, _rsa, _utils = _load_crypto()
    password = passphrase.encode("utf-8") if passphrase else None
    data = path.read_bytes()
    try:
        return serialization.load_pem_private_key(data, password=password)
    except (TypeError, ValueError) as exc:
        # cryptography raises TypeError for a missing or unexpected passphrase
        raise KeyLoadError(f"Cannot load private key {path}: {exc}") from exc


def private_key_pem(key: object, passphrase: Optional[str] = None) -> bytes:
    """Serialize a private key as PKCS#8 PEM, encrypted when a passphrase is given."""
    _x509, _hashes, serialization, _padding, _rsa, _utils = _load_crypto()
    if passphrase:
        encryption = serialization.BestAvailableEncryption(passphrase.encode("utf-8"))
    else:
        encryption = serialization.NoEncryption()
    return key.private_bytes(  # type: ignore[attr-defined]
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    )


def public_key_der(key: object) -> bytes:
    """Return the SubjectPublicKeyInfo DER of a private or public key."""
    try:
        _x509, _hashes, serialization, _padding, _rsa, _utils = _load_crypto()
        public = key.public_key() if hasattr(key, "public_key") else key
        return public.public_bytes(  # type: ignore[attr-defined]
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    except Exception as exc:
        raise EncodingError(f"Cannot DER-encode public key: {exc}") from exc


def load_public_key_der(der: bytes) -> object:
    _x509, _hashes, serialization, _padding, _rsa, _utils = _load_crypto()
    return serialization.load_der_public_key(der)


def load_public_keys(paths: Iterable[Path]) -> list[object]:
    """Load PEM public keys or certificates."""
    x509, _hashes, serialization, _padding, _rsa, _utils = _load_crypto()
    keys: list[object] = []
    for path in paths:
        data = path.read_bytes()
        try:
            cert = x509.load_pem_x509_certificate(data)
            keys.append(cert.public_key())
            continue
        except ValueError:
            pass
        keys.append(serialization.load_pem_public_key(data))
    return keys


# =============================================================================
# Identity
# =============================================================================


def compute_crx_id(public_der: bytes) -> bytes:
    """First 128 bits of SHA-256 over the DER public key."""
    return hashlib.sha256(public_der).digest()[:CRX_ID_LENGTH]


def extension_id(crx_id: bytes) -> str:
    """Render a crx_id as a browser extension ID (hex nibbles mapped to a-p)."""
    return "".join(chr(ord("a") + int(c, 16)) for c in crx_id.hex())


# =============================================================================
# Signing
# =============================================================================


def signing_prefix(signed_header_data: bytes) -> bytes:
    if len(signed_header_data) > 0xFFFFFFFF:
        raise SigningError("Signed header data exceeds 4 GiB")
    return SIGNATURE_CONTEXT + struct.pack("<I", len(signed_header_data)) + signed_header_data


def signing_digest(
    signed_header_data: bytes, archive: bytes, chunk_size: int = HASH_CHUNK_SIZE
) -> bytes:
    """SHA-256 of the signing input; the archive is hashed in chunks."""
    hasher = hashlib.sha256(signing_prefix(signed_header_data))
    view = memoryview(archive)
    for start in range(0, len(view), chunk_size):
        hasher.update(view[start : start + chunk_size])
    return hasher.digest()


def sign_container(signed_header_data: bytes, archive: bytes, private_key: object) -> bytes:
    """Produce the RSASSA-PKCS1-v1.5 / SHA-256 proof signature."""
    try:
        _x509, hashes, _serialization, padding, rsa, utils = _load_crypto()
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise TypeError(
                f"RSASSA-PKCS1-v1.5 requires an RSA private key, got {type(private_key).__name__}"
            )
        digest = signing_digest(signed_header_data, archive)
        return private_key.sign(digest, padding.PKCS1v15(), utils.Prehashed(hashes.SHA256()))
    except SigningError:
        raise
    except Exception as exc:
        raise SigningError(f"Signing failed: {exc}") from exc


def verify_container_signature(
    signed_header_data: bytes,
    archive: bytes,
    signature: bytes,
    public_key: object,
) -> bool:
    _x509, hashes, _serialization, padding, rsa, utils = _load_crypto()
    if not isinstance(public_key, rsa.RSAPublicKey):
        return False
    try:
        digest = signing_digest(signed_header_data, archive)
        public_key.verify(signature, digest, padding.PKCS1v15(), utils.Prehashed(hashes.SHA256()))
        return True
    except Exception:
        return False
