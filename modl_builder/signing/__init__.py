"""
Signing facade: key sources, password providers, signer and verifier.
Do not add exports without updating __all__.
"""

from __future__ import annotations

from .chain import load_certificate_chain
from .hsm import HardwareKeySource, parse_pkcs11_config, register_provider
from .keys import KeySource, SigningKey, SoftwareKeySource, keystore_format_for
from .passwords import (
    ConsolePasswordProvider,
    PasswordProvider,
    StaticPasswordProvider,
    default_password_provider,
)
from .signer import SIGNATURE_ENTRIES, SignatureManifest, sign_module, sign_module_file
from .verify import VerificationReport, verify_signed_module

# Do not add exports without updating __all__.
__all__ = [
    "ConsolePasswordProvider",
    "HardwareKeySource",
    "KeySource",
    "PasswordProvider",
    "SIGNATURE_ENTRIES",
    "SignatureManifest",
    "SigningKey",
    "SoftwareKeySource",
    "StaticPasswordProvider",
    "VerificationReport",
    "default_password_provider",
    "keystore_format_for",
    "load_certificate_chain",
    "parse_pkcs11_config",
    "register_provider",
    "sign_module",
    "sign_module_file",
    "verify_signed_module",
]
