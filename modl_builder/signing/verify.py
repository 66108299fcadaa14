"""
Verify a signed module: signature entries present, manifest signature valid for the
leaf certificate, chain links intact, and every entry digest matching the manifest.

Failure classes are distinct: MissingSignatureError (never signed),
TamperedArchiveError (content changed after signing), SignatureVerificationError
(signature or chain does not check out).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ..core.errors import (
    ConfigurationError,
    MissingSignatureError,
    SignatureVerificationError,
    TamperedArchiveError,
)
from ..core.hashing import sha256_hex
from .chain import parse_certificate_chain
from .signer import CHAIN_ENTRY, MANIFEST_ENTRY, SIGNATURE_ENTRIES, SIGNATURE_ENTRY, SignatureManifest, read_entries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationReport:
    path: Path
    entry_count: int
    signer_subject: str
    chain_length: int


def _verify_chain_links(chain) -> None:
    for child, issuer in zip(chain, chain[1:]):
        try:
            child.verify_directly_issued_by(issuer)
        except (ValueError, TypeError, InvalidSignature) as exc:
            raise SignatureVerificationError(
                f"Certificate {child.subject.rfc4514_string()} is not issued by {issuer.subject.rfc4514_string()}"
            ) from exc


def verify_signed_module(path: str | Path) -> VerificationReport:
    path = Path(path)
    entries = read_entries(path)
    contents: Dict[str, bytes] = {info.filename: data for info, data in entries}

    missing = [name for name in SIGNATURE_ENTRIES if name not in contents]
    if missing:
        raise MissingSignatureError(f"{path} is not signed (missing {', '.join(missing)})")

    manifest_bytes = contents[MANIFEST_ENTRY]
    try:
        manifest = SignatureManifest.from_bytes(manifest_bytes)
    except (TypeError, ValueError) as exc:
        raise TamperedArchiveError(f"Signature manifest is unreadable: {exc}", MANIFEST_ENTRY) from exc

    try:
        chain = parse_certificate_chain(contents[CHAIN_ENTRY])
    except ConfigurationError as exc:
        raise SignatureVerificationError(f"Embedded certificate chain is unreadable: {exc}") from exc
    leaf_key = chain[0].public_key()
    if not isinstance(leaf_key, rsa.RSAPublicKey):
        raise SignatureVerificationError("Leaf certificate does not carry an RSA public key")
    try:
        leaf_key.verify(contents[SIGNATURE_ENTRY], manifest_bytes, padding.PKCS1v15(), hashes.SHA256())
    except InvalidSignature as exc:
        raise SignatureVerificationError(f"Manifest signature does not verify for {path}") from exc
    _verify_chain_links(chain)

    expected = manifest.digests()
    signed_entries: Tuple[str, ...] = tuple(n for n in contents if n not in SIGNATURE_ENTRIES)
    for name in signed_entries:
        digest = expected.get(name)
        if digest is None:
            raise TamperedArchiveError(f"Entry {name} is not covered by the signature manifest", name)
        if sha256_hex(contents[name]) != digest:
            raise TamperedArchiveError(f"Digest mismatch for entry {name}", name)
    for name in expected:
        if name not in contents:
            raise TamperedArchiveError(f"Signed entry {name} is missing from the archive", name)

    subject = chain[0].subject.rfc4514_string()
    logger.info("Verified %s: %d entries signed by %s", path, len(signed_entries), subject)
    return VerificationReport(path=path, entry_count=len(signed_entries), signer_subject=subject, chain_length=len(chain))


__all__ = ["VerificationReport", "verify_signed_module"]
