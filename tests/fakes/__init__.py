"""Deterministic keys, certificates, keystores, projects and a fake token for tests (no network, no hardware)."""

from .keystores import (
    ALIAS,
    STORE_PASSWORD,
    make_ca_chain,
    make_dsa_key,
    make_rsa_key,
    make_self_signed,
    write_chain_pem,
    write_pfx,
)
from .projects import FakeResponse, FakeSession, make_raw_config, write_jar
from .tokens import FakeSlot, FakeToken, FakeTokenKey, install_fake_pkcs11

__all__ = [
    "ALIAS",
    "FakeResponse",
    "FakeSession",
    "FakeSlot",
    "FakeToken",
    "FakeTokenKey",
    "STORE_PASSWORD",
    "install_fake_pkcs11",
    "make_ca_chain",
    "make_dsa_key",
    "make_raw_config",
    "make_rsa_key",
    "make_self_signed",
    "write_chain_pem",
    "write_jar",
    "write_pfx",
]
