"""modl.yaml loading: defaults, env overrides, path resolution, validation."""

from __future__ import annotations

import pytest
import yaml

from modl_builder.config import build_config, get_config, load_config
from modl_builder.core.errors import ArchiveIOError, ConfigurationError
from modl_builder.deploy import DEFAULT_GATEWAY_ADDRESS
from modl_builder.descriptor import FRAMEWORK_VERSION_UNSET, JAR_SCOPE_SEPARATE
from tests.fakes import make_raw_config


def _write(tmp_path, raw):
    path = tmp_path / "modl.yaml"
    path.write_text(yaml.safe_dump(raw), encoding="utf-8")
    return path


def test_defaults_without_file():
    raw = get_config(environ={})
    assert raw["deploy"]["gateway_address"] == DEFAULT_GATEWAY_ADDRESS
    assert raw["sign"]["enabled"] is False
    assert raw["module"]["required_framework_version"] == FRAMEWORK_VERSION_UNSET


def test_load_resolves_paths_against_config_dir(tmp_path):
    cfg = load_config(_write(tmp_path, make_raw_config(tmp_path)), environ={})
    base = tmp_path.resolve()
    assert cfg.project.base_dir == base
    assert cfg.project.build_dir == base / "build"
    gateway, client = cfg.project.subprojects
    assert gateway.artifact.file == base / "gateway" / "encabulator-gateway-1.0.0.jar"
    assert gateway.artifact.scope is None
    assert [d.scope for d in gateway.dependencies] == ["compile", "test"]
    assert client.dependencies[0].file == base / "libs" / "lib-1.0.0.jar"
    assert cfg.module.jar_scope_mode == JAR_SCOPE_SEPARATE
    assert [h.hook_class for h in cfg.module.hooks] == ["com.example.GatewayHook", "com.example.ClientHook"]


def test_env_overrides_file(tmp_path):
    raw = make_raw_config(tmp_path)
    raw["sign"] = {"keystore_password": "from-file", "alias": "signer"}
    env = {
        "MODL_KEYSTORE_PASSWORD": "from-env",
        "MODL_ALIAS_PASSWORD": "alias-env",
        "MODL_GATEWAY_ADDRESS": "http://gw:9088",
        "MODL_BUILD_DIR": "out",
    }
    cfg = load_config(_write(tmp_path, raw), environ=env)
    assert cfg.sign.keystore_password == "from-env"
    assert cfg.sign.alias_password == "alias-env"
    assert cfg.sign.alias == "signer"
    assert cfg.deploy.gateway_address == "http://gw:9088"
    assert cfg.project.build_dir == tmp_path.resolve() / "out"


def test_passwords_not_in_repr(tmp_path):
    raw = make_raw_config(tmp_path)
    raw["sign"] = {"keystore_password": "hunter2"}
    cfg = load_config(_write(tmp_path, raw), environ={})
    assert "hunter2" not in repr(cfg.sign)


def test_missing_config_file(tmp_path):
    with pytest.raises(ArchiveIOError):
        load_config(tmp_path / "modl.yaml", environ={})


def test_invalid_yaml(tmp_path):
    path = tmp_path / "modl.yaml"
    path.write_text("module: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(path, environ={})


def test_framework_version_must_be_integer(tmp_path):
    raw = make_raw_config(tmp_path, required_framework_version="eight")
    with pytest.raises(ConfigurationError, match="required_framework_version"):
        build_config(raw, tmp_path)


def test_artifact_coordinates_required(tmp_path):
    raw = make_raw_config(tmp_path)
    del raw["project"]["subprojects"][0]["artifact"]["version"]
    with pytest.raises(ConfigurationError, match=r"subprojects\[0\]\.artifact\.version"):
        build_config(raw, tmp_path)


def test_sign_validation(tmp_path):
    raw = make_raw_config(tmp_path)
    raw["sign"] = {"enabled": True, "alias": "signer", "chain": "chain.pem"}
    cfg = build_config(raw, tmp_path)
    with pytest.raises(ConfigurationError, match="keystore"):
        cfg.sign.validate()
    raw["sign"]["pkcs11_config"] = "library = /opt/lib.so"
    cfg = build_config(raw, tmp_path)
    assert cfg.sign.uses_hardware
    cfg.sign.validate()
