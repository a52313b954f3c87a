#!/usr/bin/env python3
"""Error taxonomy for the CRX3 packaging pipeline.

Every failure surfaced by the pipeline is a CrxError subclass whose ``stage``
names the step that failed. The underlying cause is chained with ``from``.
"""

from __future__ import annotations


class CrxError(Exception):
    """Base class for packaging and verification failures."""

    stage = "crx"

    def __str__(self) -> str:
        message = super().__str__()
        return f"[{self.stage}] {message}" if message else f"[{self.stage}]"


class KeyGenerationError(CrxError):
    """Raised when a fresh RSA keypair cannot be produced."""

    stage = "key"


class KeyLoadError(CrxError):
    """Raised when a PEM private key cannot be read or decrypted."""

    stage = "key"


class ArchiveBuildError(CrxError):
    """Raised when the source directory cannot be archived."""

    stage = "archive"


class EncodingError(CrxError):
    """Raised when a header message cannot be encoded or decoded."""

    stage = "encode"


class SigningError(CrxError):
    """Raised when the container signature cannot be computed."""

    stage = "sign"


class AssemblyError(CrxError):
    """Raised when the container bytes cannot be written."""

    stage = "assemble"


class ContainerFormatError(CrxError):
    """Raised when input bytes are not a well-formed CRX3 container."""

    stage = "parse"
