"""Verification: valid signature, never-signed archives, tampering and forged signatures."""

from __future__ import annotations

import json
import zipfile

import pytest

from modl_builder.core.errors import MissingSignatureError, SignatureVerificationError, TamperedArchiveError
from modl_builder.signing.keys import SoftwareKeySource
from modl_builder.signing.passwords import StaticPasswordProvider
from modl_builder.signing.signer import MANIFEST_ENTRY, SIGNATURE_ENTRY, sign_module_file
from modl_builder.signing.verify import verify_signed_module
from tests.fakes import ALIAS, STORE_PASSWORD, make_ca_chain, make_self_signed, write_chain_pem, write_pfx


def _rewrite(src, dst, replace=None, drop=(), add=None):
    """Copy src to dst, swapping or dropping entries."""
    replace = replace or {}
    with zipfile.ZipFile(src) as zin, zipfile.ZipFile(dst, "w") as zout:
        for info in zin.infolist():
            if info.filename in drop:
                continue
            zout.writestr(info, replace.get(info.filename, zin.read(info)))
        for name, data in (add or {}).items():
            zout.writestr(name, data)
    return dst


@pytest.fixture
def unsigned(tmp_path):
    path = tmp_path / "Mod-unsigned.modl"
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("module.xml", b"<modules/>")
        zf.writestr("a-1.0.jar", b"a" * 100)
    return path


@pytest.fixture
def signed(tmp_path, unsigned):
    key, cert = make_self_signed()
    pfx = write_pfx(tmp_path / "ks.pfx", key, cert)
    chain = write_chain_pem(tmp_path / "chain.pem", [cert])
    out = tmp_path / "Mod.modl"
    sign_module_file(unsigned, out, SoftwareKeySource(pfx), ALIAS, chain,
                     StaticPasswordProvider({"keystore_password": STORE_PASSWORD}))
    return out


def test_valid_signature(signed):
    report = verify_signed_module(signed)
    assert report.entry_count == 2
    assert report.chain_length == 1
    assert "Module Signer" in report.signer_subject


def test_ca_signed_module_verifies(tmp_path, unsigned):
    leaf_key, certs = make_ca_chain()
    pfx = write_pfx(tmp_path / "ca.pfx", leaf_key, certs[0])
    chain = write_chain_pem(tmp_path / "chain.pem", certs)
    out = tmp_path / "Mod.modl"
    sign_module_file(unsigned, out, SoftwareKeySource(pfx), ALIAS, chain,
                     StaticPasswordProvider({"keystore_password": STORE_PASSWORD}))
    assert verify_signed_module(out).chain_length == 3


def test_unsigned_module_reports_missing_signature(unsigned):
    with pytest.raises(MissingSignatureError):
        verify_signed_module(unsigned)


def test_modified_entry_is_tampering(tmp_path, signed):
    bad = _rewrite(signed, tmp_path / "bad.modl", replace={"a-1.0.jar": b"b" * 100})
    with pytest.raises(TamperedArchiveError) as exc_info:
        verify_signed_module(bad)
    assert exc_info.value.entry == "a-1.0.jar"


def test_added_entry_is_tampering(tmp_path, signed):
    bad = _rewrite(signed, tmp_path / "bad.modl", add={"evil.jar": b"x"})
    with pytest.raises(TamperedArchiveError):
        verify_signed_module(bad)


def test_removed_entry_is_tampering(tmp_path, signed):
    bad = _rewrite(signed, tmp_path / "bad.modl", drop=("a-1.0.jar",))
    with pytest.raises(TamperedArchiveError):
        verify_signed_module(bad)


def test_forged_signature_fails(tmp_path, signed):
    with zipfile.ZipFile(signed) as zf:
        sig = bytearray(zf.read(SIGNATURE_ENTRY))
    sig[0] ^= 0xFF
    bad = _rewrite(signed, tmp_path / "bad.modl", replace={SIGNATURE_ENTRY: bytes(sig)})
    with pytest.raises(SignatureVerificationError):
        verify_signed_module(bad)


@pytest.mark.parametrize("version", [[1], {"v": 1}])
def test_malformed_manifest_version_is_tampering(tmp_path, signed, version):
    with zipfile.ZipFile(signed) as zf:
        manifest = json.loads(zf.read(MANIFEST_ENTRY))
    manifest["version"] = version
    bad = _rewrite(signed, tmp_path / "bad.modl", replace={MANIFEST_ENTRY: json.dumps(manifest).encode("utf-8")})
    with pytest.raises(TamperedArchiveError) as exc_info:
        verify_signed_module(bad)
    assert exc_info.value.entry == MANIFEST_ENTRY
