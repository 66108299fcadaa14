"""End-to-end: config -> unsigned module -> signed module -> deploy, and stage tagging."""

from __future__ import annotations

import base64
import zipfile

import pytest
import requests
import yaml

from modl_builder.config import load_config
from modl_builder.core.errors import ArchiveIOError, ConfigurationError, KeyStoreError
from modl_builder.deploy import select_module_path
from modl_builder.descriptor import parse_module_xml
from modl_builder.pipeline import STAGE_ASSEMBLE, STAGE_DESCRIBE, run_pipeline
from modl_builder.signing.passwords import StaticPasswordProvider
from modl_builder.signing.verify import verify_signed_module
from tests.fakes import ALIAS, STORE_PASSWORD, FakeResponse, FakeSession, make_raw_config, make_self_signed, write_chain_pem, write_pfx


def _config(tmp_path, sign=False, **module_overrides):
    raw = make_raw_config(tmp_path, **module_overrides)
    if sign:
        key, cert = make_self_signed()
        write_pfx(tmp_path / "keystore.pfx", key, cert)
        write_chain_pem(tmp_path / "chain.pem", [cert])
        raw["sign"] = {"enabled": True, "keystore": "keystore.pfx", "alias": ALIAS, "chain": "chain.pem"}
    path = tmp_path / "modl.yaml"
    path.write_text(yaml.safe_dump(raw), encoding="utf-8")
    return load_config(path, environ={})


def test_unsigned_build(tmp_path):
    result = run_pipeline(_config(tmp_path))
    assert result.signed_path is None
    assert result.module_path == tmp_path.resolve() / "build" / "Turbo-Encabulator-unsigned.modl"
    with zipfile.ZipFile(result.unsigned_path) as zf:
        names = set(zf.namelist())
        descriptor = parse_module_xml(zf.read("module.xml"))
    assert names == {
        "module.xml",
        "encabulator-gateway-1.0.0.jar",
        "encabulator-client-1.0.0.jar",
        "lib-1.0.0.jar",
    }
    assert "junit-4.13.jar" not in [j.file_name for j in descriptor.jars]
    assert [(j.scope, j.file_name) for j in descriptor.jars] == [
        ("G", "encabulator-gateway-1.0.0.jar"),
        ("G", "lib-1.0.0.jar"),
        ("CD", "encabulator-client-1.0.0.jar"),
        ("CD", "lib-1.0.0.jar"),
    ]


def test_sign_and_deploy(tmp_path):
    session = FakeSession(FakeResponse(200, "ok"))
    passwords = StaticPasswordProvider({"keystore_password": STORE_PASSWORD})
    result = run_pipeline(_config(tmp_path, sign=True), deploy=True, passwords=passwords, session=session)

    assert result.signed_path == tmp_path.resolve() / "build" / "Turbo-Encabulator.modl"
    assert verify_signed_module(result.signed_path).entry_count == 4
    assert result.deploy is not None and result.deploy.ok
    (call,) = session.calls
    assert base64.b64decode(call["data"]) == result.signed_path.read_bytes()


def test_upload_failure_keeps_archives(tmp_path):
    session = FakeSession(exc=requests.ConnectionError("refused"), fail_times=1)
    result = run_pipeline(_config(tmp_path), deploy=True, session=session)
    assert result.deploy is None
    assert result.deploy_error is not None
    assert result.unsigned_path.is_file()


def test_missing_metadata_fails_before_any_output(tmp_path):
    cfg = _config(tmp_path, id=None)
    with pytest.raises(ConfigurationError) as exc_info:
        run_pipeline(cfg)
    assert exc_info.value.stage == STAGE_DESCRIBE
    assert not (tmp_path / "build").exists()


def test_missing_license_tags_assemble_stage(tmp_path):
    with pytest.raises(ArchiveIOError) as exc_info:
        run_pipeline(_config(tmp_path, license="license.html"))
    assert exc_info.value.stage == STAGE_ASSEMBLE
    assert str(exc_info.value).startswith("[assemble] ")


def test_signing_without_password_source_fails(tmp_path):
    cfg = _config(tmp_path, sign=True)
    with pytest.raises(ConfigurationError):
        run_pipeline(cfg, passwords=StaticPasswordProvider({}))
    assert not (tmp_path / "build" / "Turbo-Encabulator.modl").exists()


def test_failed_resign_does_not_leave_stale_signed_module(tmp_path):
    cfg = _config(tmp_path, sign=True)
    first = run_pipeline(cfg, passwords=StaticPasswordProvider({"keystore_password": STORE_PASSWORD}))
    assert first.signed_path.is_file()

    (tmp_path / "libs" / "lib-1.0.0.jar").write_bytes(b"patched lib")
    with pytest.raises(KeyStoreError):
        run_pipeline(cfg, passwords=StaticPasswordProvider({"keystore_password": "wrong"}))

    assert not first.signed_path.exists()
    chosen = select_module_path(cfg.project.build_dir, "Turbo Encabulator")
    assert chosen.name == "Turbo-Encabulator-unsigned.modl"
    with zipfile.ZipFile(chosen) as zf:
        assert zf.read("lib-1.0.0.jar") == b"patched lib"
