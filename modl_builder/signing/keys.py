"""
Key sources and signing keys.

A KeySource is a tagged variant: SoftwareKeySource (keystore file) or
HardwareKeySource (PKCS#11 token, see hsm.py). Both hand back a SigningKey
whose only capability is sign(data) -> signature; the signer never sees which
one it got. Hardware keys never export key material.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from ..core.errors import ArchiveIOError, ConfigurationError, KeyStoreError, SigningError
from .passwords import ALIAS_PASSWORD, KEYSTORE_PASSWORD, PasswordProvider, obtain

logger = logging.getLogger(__name__)

FORMAT_PKCS12 = "pkcs12"
FORMAT_JKS = "jks"
PKCS12_EXTENSIONS = (".pfx", ".p12")
RSA = "RSA"


@runtime_checkable
class SigningKey(Protocol):
    alias: str
    algorithm: str

    def sign(self, data: bytes) -> bytes:
        """Return the SHA256withRSA signature of data."""
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class KeySource(Protocol):
    def open(self, alias: str, passwords: PasswordProvider) -> SigningKey:
        """Locate and unlock the key stored under alias."""
        ...


def no_rsa_key(alias: str) -> ConfigurationError:
    return ConfigurationError(f"no RSA PrivateKey found for alias '{alias}'.")


class SoftwareSigningKey:
    """RSA private key held in process memory (loaded from a keystore file)."""

    algorithm = RSA

    def __init__(self, alias: str, private_key: Any) -> None:
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise no_rsa_key(alias)
        self.alias = alias
        self._key = private_key

    def public_key(self) -> rsa.RSAPublicKey:
        return self._key.public_key()

    def sign(self, data: bytes) -> bytes:
        try:
            return self._key.sign(data, padding.PKCS1v15(), hashes.SHA256())
        except Exception as exc:
            raise SigningError(f"RSA signing failed for alias '{self.alias}': {exc}") from exc

    def close(self) -> None:
        self._key = None

    def __enter__(self) -> "SoftwareSigningKey":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def keystore_format_for(path: str | Path) -> str:
    """.pfx/.p12 select PKCS#12; anything else is treated as JKS."""
    suffix = Path(path).suffix.lower()
    return FORMAT_PKCS12 if suffix in PKCS12_EXTENSIONS else FORMAT_JKS


def _alias_matches(stored: Optional[str], alias: str) -> bool:
    return stored is not None and stored.lower() == alias.lower()


def load_pkcs12_key(data: bytes, alias: str, store_password: str) -> Any:
    """
    Return the private key whose certificate carries friendly name alias.
    Only the first key entry of the file is read; other entries are not reachable.
    """
    try:
        bundle = pkcs12.load_pkcs12(data, store_password.encode("utf-8"))
    except ValueError as exc:
        raise KeyStoreError(f"Could not open PKCS#12 keystore (wrong password or corrupt file): {exc}") from exc
    name = None
    if bundle.cert is not None and bundle.cert.friendly_name is not None:
        name = bundle.cert.friendly_name.decode("utf-8", errors="replace")
    if bundle.key is None:
        raise no_rsa_key(alias)
    if not _alias_matches(name, alias):
        raise ConfigurationError(
            f"no RSA PrivateKey found for alias '{alias}'. The keystore's key entry is named "
            f"'{name or '<unnamed>'}' (only the first key entry of a PKCS#12 file is read)."
        )
    return bundle.key


def load_jks_key(data: bytes, alias: str, store_password: str, alias_password: str) -> Any:
    """Open a JKS/JCEKS store, then decrypt the alias entry with its own password."""
    try:
        import jks
    except ImportError as exc:
        raise ConfigurationError("JKS keystores require the 'jks' extra (pyjks)") from exc

    try:
        store = jks.KeyStore.loads(data, store_password, try_decrypt_keys=False)
    except jks.util.KeystoreException as exc:
        raise KeyStoreError(f"Could not open JKS keystore (wrong password or corrupt file): {exc}") from exc

    entry = None
    for stored_alias, pk in store.private_keys.items():
        if _alias_matches(stored_alias, alias):
            entry = pk
            break
    if entry is None:
        raise no_rsa_key(alias)
    if not entry.is_decrypted():
        try:
            entry.decrypt(alias_password)
        except jks.util.DecryptionFailureException as exc:
            raise KeyStoreError(f"Could not unlock key entry '{alias}': wrong alias password") from exc
    try:
        return serialization.load_der_private_key(entry.pkey_pkcs8, password=None)
    except (ValueError, TypeError) as exc:
        raise no_rsa_key(alias) from exc


@dataclass(frozen=True)
class SoftwareKeySource:
    """Keystore file on disk; format inferred from the extension."""

    keystore_path: Path

    @property
    def keystore_format(self) -> str:
        return keystore_format_for(self.keystore_path)

    def open(self, alias: str, passwords: PasswordProvider) -> SoftwareSigningKey:
        path = Path(self.keystore_path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise ArchiveIOError(f"Cannot read keystore {path}: {exc}", path) from exc

        fmt = self.keystore_format
        logger.info("Opening %s keystore %s", fmt, path)
        store_password = obtain(passwords, KEYSTORE_PASSWORD)
        if fmt == FORMAT_PKCS12:
            # PKCS#12 key bags share the store password
            key = load_pkcs12_key(data, alias, store_password)
        else:
            key = load_jks_key(data, alias, store_password, obtain(passwords, ALIAS_PASSWORD))
        return SoftwareSigningKey(alias, key)


__all__ = [
    "FORMAT_JKS",
    "FORMAT_PKCS12",
    "KeySource",
    "SigningKey",
    "SoftwareKeySource",
    "SoftwareSigningKey",
    "keystore_format_for",
    "load_jks_key",
    "load_pkcs12_key",
    "no_rsa_key",
]
