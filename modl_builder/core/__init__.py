"""
Stable facade: error taxonomy and hashing primitives only. No I/O beyond file hashing.
Do not add exports without updating __all__.
"""

from __future__ import annotations

from .errors import (
    ArchiveError,
    ArchiveIOError,
    ConfigurationError,
    KeyStoreError,
    MissingSignatureError,
    ModlBuilderError,
    SignatureVerificationError,
    SigningError,
    TamperedArchiveError,
    TerminalUnavailableError,
    UploadError,
    VerificationError,
)
from .hashing import canonical_json_bytes, compute_file_sha256, sha256_hex

# Do not add exports without updating __all__.
__all__ = [
    "ArchiveError",
    "ArchiveIOError",
    "ConfigurationError",
    "KeyStoreError",
    "MissingSignatureError",
    "ModlBuilderError",
    "SignatureVerificationError",
    "SigningError",
    "TamperedArchiveError",
    "TerminalUnavailableError",
    "UploadError",
    "VerificationError",
    "canonical_json_bytes",
    "compute_file_sha256",
    "sha256_hex",
]
