"""
Module signer: digest every archive entry, sign the canonical digest manifest,
and write a new archive with the signature entries appended.

Signed archive layout (stable, for external verifiers):

    <every unsigned entry, same order, same bytes>
    META-INF/modl-signature/manifest.json   canonical JSON: {"digest_algorithm", "entries": {name: sha256 hex},
                                             "signature_algorithm", "version"}
    META-INF/modl-signature/manifest.sig    raw RSA PKCS#1 v1.5 SHA-256 signature over manifest.json bytes
    META-INF/modl-signature/chain.pem       PEM certificates, leaf first

The unsigned archive is never modified; the signed archive only appears once fully written.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from cryptography import x509

from ..assembly import ZIP_EPOCH
from ..core.errors import ArchiveError, ArchiveIOError, ConfigurationError, ModlBuilderError, SigningError
from ..core.hashing import canonical_json_bytes, sha256_hex
from .chain import chain_to_pem, load_certificate_chain
from .keys import KeySource, SigningKey
from .passwords import PasswordProvider

logger = logging.getLogger(__name__)

SIGNATURE_DIR = "META-INF/modl-signature/"
MANIFEST_ENTRY = SIGNATURE_DIR + "manifest.json"
SIGNATURE_ENTRY = SIGNATURE_DIR + "manifest.sig"
CHAIN_ENTRY = SIGNATURE_DIR + "chain.pem"
SIGNATURE_ENTRIES = (MANIFEST_ENTRY, SIGNATURE_ENTRY, CHAIN_ENTRY)

MANIFEST_VERSION = 1
DIGEST_ALGORITHM = "SHA-256"
SIGNATURE_ALGORITHM = "SHA256withRSA"


@dataclass(frozen=True)
class SignatureManifest:
    """Entry name -> SHA-256 hex digest, in archive order."""

    entries: Tuple[Tuple[str, str], ...]
    digest_algorithm: str = DIGEST_ALGORITHM
    signature_algorithm: str = SIGNATURE_ALGORITHM
    version: int = MANIFEST_VERSION

    def as_dict(self) -> dict:
        return {
            "version": self.version,
            "digest_algorithm": self.digest_algorithm,
            "signature_algorithm": self.signature_algorithm,
            "entries": dict(self.entries),
        }

    def to_bytes(self) -> bytes:
        """Canonical serialization; the signature covers exactly these bytes."""
        return canonical_json_bytes(self.as_dict())

    def digests(self) -> Dict[str, str]:
        return dict(self.entries)

    @classmethod
    def from_bytes(cls, data: bytes) -> "SignatureManifest":
        obj = json.loads(data.decode("utf-8"))
        if not isinstance(obj, dict) or not isinstance(obj.get("entries"), dict):
            raise ValueError("manifest has no 'entries' mapping")
        return cls(
            entries=tuple((str(k), str(v)) for k, v in obj["entries"].items()),
            digest_algorithm=str(obj.get("digest_algorithm", "")),
            signature_algorithm=str(obj.get("signature_algorithm", "")),
            version=int(obj.get("version", 0)),
        )


def read_entries(path: str | Path) -> List[Tuple[zipfile.ZipInfo, bytes]]:
    """All entries of an archive (directory entries included, with empty content), in stored order."""
    path = Path(path)
    if not path.is_file():
        raise ArchiveIOError(f"Module archive not found: {path}", path)
    try:
        with zipfile.ZipFile(path, "r") as zf:
            return [(info, b"" if info.is_dir() else zf.read(info)) for info in zf.infolist()]
    except zipfile.BadZipFile as exc:
        raise ArchiveError(f"Not a valid module archive: {path}: {exc}") from exc
    except OSError as exc:
        raise ArchiveIOError(f"Cannot read module archive {path}: {exc}", path) from exc


def build_signature_manifest(entries: Sequence[Tuple[zipfile.ZipInfo, bytes]]) -> SignatureManifest:
    try:
        return SignatureManifest(entries=tuple((info.filename, sha256_hex(data)) for info, data in entries))
    except Exception as exc:
        raise SigningError(f"Failed to digest archive entries: {exc}") from exc


def check_key_matches_chain(key: SigningKey, chain: Sequence[x509.Certificate]) -> None:
    """Software keys expose their public half; it must be the leaf certificate's key."""
    public_key = getattr(key, "public_key", None)
    if public_key is None:
        return
    leaf_public = chain[0].public_key()
    if leaf_public.public_numbers() != public_key().public_numbers():
        raise ConfigurationError(
            f"Leaf certificate {chain[0].subject.rfc4514_string()} does not match the key for alias '{key.alias}'"
        )


def _copy_info(src: zipfile.ZipInfo) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(src.filename, date_time=src.date_time)
    info.compress_type = src.compress_type
    info.external_attr = src.external_attr
    info.create_system = src.create_system
    info.comment = src.comment
    return info


def _signature_info(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=ZIP_EPOCH)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = 0o100644 << 16
    return info


def sign_module(
    unsigned_path: str | Path,
    signed_path: str | Path,
    key: SigningKey,
    chain: Sequence[x509.Certificate],
) -> SignatureManifest:
    """Write signed_path from unsigned_path. Nothing appears at signed_path unless every step succeeds."""
    unsigned_path = Path(unsigned_path)
    signed_path = Path(signed_path)
    if unsigned_path.resolve() == signed_path.resolve():
        raise ConfigurationError(f"Signed output must differ from unsigned input: {signed_path}")
    if not chain:
        raise ConfigurationError("Certificate chain is empty")
    if key.algorithm.upper() != "RSA":
        raise ConfigurationError(f"no RSA PrivateKey found for alias '{key.alias}'.")
    check_key_matches_chain(key, chain)

    entries = read_entries(unsigned_path)
    present = [info.filename for info, _ in entries if info.filename in SIGNATURE_ENTRIES]
    if present:
        raise ConfigurationError(f"{unsigned_path} already carries signature entries: {present}")

    manifest = build_signature_manifest(entries)
    manifest_bytes = manifest.to_bytes()
    signature = key.sign(manifest_bytes)
    logger.info("Signed digest manifest of %d entries with alias '%s'", len(entries), key.alias)

    try:
        signed_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".", suffix=".modl.tmp", dir=str(signed_path.parent))
        os.close(fd)
    except OSError as exc:
        raise ArchiveIOError(f"Cannot write to {signed_path.parent}: {exc}", signed_path) from exc

    tmp_path = Path(tmp_name)
    try:
        with zipfile.ZipFile(tmp_path, "w") as zf:
            for info, data in entries:
                zf.writestr(_copy_info(info), data)
            zf.writestr(_signature_info(MANIFEST_ENTRY), manifest_bytes)
            zf.writestr(_signature_info(SIGNATURE_ENTRY), signature)
            zf.writestr(_signature_info(CHAIN_ENTRY), chain_to_pem(chain))
        os.replace(tmp_path, signed_path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise ArchiveIOError(f"Error writing signed module {signed_path}: {exc}", signed_path) from exc
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    logger.info("Wrote signed module %s", signed_path)
    return manifest


def sign_module_file(
    unsigned_path: str | Path,
    signed_path: str | Path,
    source: KeySource,
    alias: str,
    chain_path: str | Path,
    passwords: PasswordProvider,
) -> SignatureManifest:
    """Acquire the key from source, sign, and release the key even on failure."""
    if not alias:
        raise ConfigurationError("sign.alias is required")
    logger.info("Signing %s", unsigned_path)
    chain = load_certificate_chain(chain_path)
    key: Optional[SigningKey] = None
    try:
        key = source.open(alias, passwords)
        return sign_module(unsigned_path, signed_path, key, chain)
    except ModlBuilderError:
        raise
    except Exception as exc:
        raise SigningError(f"Could not sign the module: {exc}") from exc
    finally:
        if key is not None:
            key.close()


__all__ = [
    "CHAIN_ENTRY",
    "MANIFEST_ENTRY",
    "SIGNATURE_ENTRIES",
    "SIGNATURE_ENTRY",
    "SignatureManifest",
    "build_signature_manifest",
    "check_key_matches_chain",
    "read_entries",
    "sign_module",
    "sign_module_file",
]
