"""
Hardware-backed keys through PKCS#11 (python-pkcs11, optional 'hsm' extra).

The configuration blob uses SunPKCS11 syntax, e.g.

    name = Luna
    library = /usr/lib/libCryptoki2_64.so
    slotListIndex = 0

Supported keys: name, library, slot, slotListIndex, tokenLabel. The blob may be
inline, '--'-prefixed inline, or a path to a file holding it.

Loaded libraries are registered process-wide; registering the same library
again returns the existing handle.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..core.errors import ConfigurationError, KeyStoreError, SigningError
from .keys import RSA, no_rsa_key
from .passwords import KEYSTORE_PASSWORD, PasswordProvider, obtain

logger = logging.getLogger(__name__)

_REGISTRY: Dict[str, Any] = {}
_REGISTRY_LOCK = threading.Lock()


@dataclass(frozen=True)
class Pkcs11Config:
    library: str
    name: str = ""
    slot: Optional[int] = None
    slot_list_index: Optional[int] = None
    token_label: Optional[str] = None


def _int_value(key: str, value: str) -> int:
    try:
        return int(value, 0)
    except ValueError as exc:
        raise ConfigurationError(f"pkcs11 config: {key} must be an integer, got {value!r}") from exc


def parse_pkcs11_config(blob: str) -> Pkcs11Config:
    """Parse an inline blob, a '--'-prefixed inline blob, or a config file path."""
    text = blob.strip()
    if text.startswith("--"):
        text = text[2:]
    elif "\n" not in text and "=" not in text:
        path = Path(text)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"pkcs11 config file not readable: {path}") from exc

    values: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            raise ConfigurationError(f"pkcs11 config: malformed line {raw!r}")
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip().strip('"')

    library = values.get("library")
    if not library:
        raise ConfigurationError("pkcs11 config: 'library' is required")
    return Pkcs11Config(
        library=library,
        name=values.get("name", ""),
        slot=_int_value("slot", values["slot"]) if "slot" in values else None,
        slot_list_index=_int_value("slotListIndex", values["slotListIndex"]) if "slotListIndex" in values else None,
        token_label=values.get("tokenLabel"),
    )


def _load_library(path: str) -> Any:
    try:
        import pkcs11
    except ImportError as exc:
        raise ConfigurationError("Hardware keys require the 'hsm' extra (python-pkcs11)") from exc
    try:
        return pkcs11.lib(path)
    except Exception as exc:
        raise KeyStoreError(f"Could not load PKCS#11 library {path}: {exc}") from exc


def register_provider(config: Pkcs11Config, loader: Optional[Callable[[str], Any]] = None) -> Any:
    """Load config.library once per process; later calls return the same handle."""
    with _REGISTRY_LOCK:
        lib = _REGISTRY.get(config.library)
        if lib is None:
            logger.info("Registering PKCS#11 provider %s (%s)", config.name or "-", config.library)
            lib = (loader or _load_library)(config.library)
            _REGISTRY[config.library] = lib
        return lib


def registered_providers() -> Dict[str, Any]:
    with _REGISTRY_LOCK:
        return dict(_REGISTRY)


def _select_token(lib: Any, config: Pkcs11Config) -> Any:
    if config.token_label:
        return lib.get_token(token_label=config.token_label)
    slots = list(lib.get_slots(token_present=True))
    if config.slot is not None:
        for s in slots:
            if s.slot_id == config.slot:
                return s.get_token()
        raise ConfigurationError(f"pkcs11 config: no token in slot {config.slot}")
    index = config.slot_list_index or 0
    if index >= len(slots):
        raise ConfigurationError(f"pkcs11 config: slotListIndex {index} out of range ({len(slots)} slots)")
    return slots[index].get_token()


class HardwareSigningKey:
    """Handle to a private key inside a token. Only sign operations, no export."""

    algorithm = RSA

    def __init__(self, alias: str, session: Any, key: Any, mechanism: Any) -> None:
        self.alias = alias
        self._session = session
        self._key = key
        self._mechanism = mechanism

    def sign(self, data: bytes) -> bytes:
        try:
            return bytes(self._key.sign(data, mechanism=self._mechanism))
        except Exception as exc:
            raise SigningError(f"Token signing failed for alias '{self.alias}': {exc}") from exc

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "HardwareSigningKey":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


@dataclass(frozen=True)
class HardwareKeySource:
    """PKCS#11 token; the keystore password is the user PIN."""

    pkcs11_config: str

    def open(self, alias: str, passwords: PasswordProvider) -> HardwareSigningKey:
        config = parse_pkcs11_config(self.pkcs11_config)
        lib = register_provider(config)

        import pkcs11
        from pkcs11 import KeyType, Mechanism, ObjectClass

        pin = obtain(passwords, KEYSTORE_PASSWORD)
        try:
            token = _select_token(lib, config)
            session = token.open(user_pin=pin)
        except pkcs11.exceptions.PKCS11Error as exc:
            raise KeyStoreError(f"Could not log in to PKCS#11 token: {type(exc).__name__}") from exc

        try:
            key = session.get_key(object_class=ObjectClass.PRIVATE_KEY, label=alias)
        except (pkcs11.exceptions.NoSuchKey, pkcs11.exceptions.MultipleObjectsReturned) as exc:
            session.close()
            raise no_rsa_key(alias) from exc
        if key.key_type != KeyType.RSA:
            session.close()
            raise no_rsa_key(alias)
        return HardwareSigningKey(alias, session, key, Mechanism.SHA256_RSA_PKCS)


__all__ = [
    "HardwareKeySource",
    "HardwareSigningKey",
    "Pkcs11Config",
    "parse_pkcs11_config",
    "register_provider",
    "registered_providers",
]
