"""
Load build configuration from modl.yaml with env overrides.
Merge order: defaults <- modl.yaml <- env. Relative paths resolve against
project.base_dir, which resolves against the config file's directory.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .artifacts import Artifact, SubProject
from .core.errors import ArchiveIOError, ConfigurationError
from .descriptor import FRAMEWORK_VERSION_UNSET, JAR_SCOPE_SEPARATE, ModuleDependency, ModuleHook, ModuleMetadata
from .deploy import DEFAULT_GATEWAY_ADDRESS, HTTP_TIMEOUT_S

DEFAULT_CONFIG_FILE = "modl.yaml"

_DEFAULTS: Dict[str, Any] = {
    "module": {
        "description": "",
        "required_framework_version": FRAMEWORK_VERSION_UNSET,
        "license": None,
        "documentation": None,
        "jar_scope_mode": JAR_SCOPE_SEPARATE,
        "depends": [],
        "hooks": [],
    },
    "project": {
        "base_dir": ".",
        "build_dir": "build",
        "scopes": {},
        "subprojects": [],
    },
    "sign": {
        "enabled": False,
        "keystore": None,
        "keystore_password": None,
        "alias": None,
        "alias_password": None,
        "chain": None,
        "pkcs11_config": None,
    },
    "deploy": {
        "enabled": False,
        "gateway_address": DEFAULT_GATEWAY_ADDRESS,
        "strict": False,
        "timeout_s": HTTP_TIMEOUT_S,
        "retries": 1,
    },
}


@dataclass
class ProjectConfig:
    base_dir: Path
    build_dir: Path
    scopes: Dict[str, Any]
    subprojects: List[SubProject]


@dataclass
class SignConfig:
    enabled: bool = False
    keystore: Optional[Path] = None
    keystore_password: Optional[str] = field(default=None, repr=False)
    alias: Optional[str] = None
    alias_password: Optional[str] = field(default=None, repr=False)
    chain: Optional[Path] = None
    pkcs11_config: Optional[str] = None

    @property
    def uses_hardware(self) -> bool:
        return bool(self.pkcs11_config)

    def validate(self) -> None:
        if not self.alias:
            raise ConfigurationError("sign.alias is required")
        if self.chain is None:
            raise ConfigurationError("sign.chain is required")
        if not self.uses_hardware and self.keystore is None:
            raise ConfigurationError("sign.keystore is required unless sign.pkcs11_config is set")


@dataclass
class DeployConfig:
    enabled: bool = False
    gateway_address: str = DEFAULT_GATEWAY_ADDRESS
    strict: bool = False
    timeout_s: float = HTTP_TIMEOUT_S
    retries: int = 1


@dataclass
class BuildConfig:
    module: ModuleMetadata
    project: ProjectConfig
    sign: SignConfig
    deploy: DeployConfig
    source: Optional[Path] = None


def _deep_merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _load_yaml(path: Path) -> dict:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ArchiveIOError(f"Cannot read config {path}: {exc}", path) from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at top level")
    return data


def _env_overrides(environ: Mapping[str, str]) -> dict:
    overrides: dict = {}
    value = environ.get("MODL_KEYSTORE_PASSWORD")
    if value:
        overrides.setdefault("sign", {})["keystore_password"] = value
    value = environ.get("MODL_ALIAS_PASSWORD")
    if value:
        overrides.setdefault("sign", {})["alias_password"] = value
    value = environ.get("MODL_GATEWAY_ADDRESS")
    if value:
        overrides.setdefault("deploy", {})["gateway_address"] = value
    value = environ.get("MODL_BUILD_DIR")
    if value:
        overrides.setdefault("project", {})["build_dir"] = value
    return overrides


def get_config(path: Optional[str | Path] = None, environ: Optional[Mapping[str, str]] = None) -> dict:
    """Return merged raw config: defaults <- yaml (if path given) <- env."""
    merged = dict(_DEFAULTS)
    if path is not None:
        merged = _deep_merge(merged, _load_yaml(Path(path)))
    return _deep_merge(merged, _env_overrides(os.environ if environ is None else environ))


def _resolve(base: Path, value: Optional[Any]) -> Optional[Path]:
    if value is None or value == "":
        return None
    p = Path(str(value))
    return p if p.is_absolute() else base / p


def _artifact(raw: Any, base_dir: Path, where: str, default_scope: Optional[str]) -> Artifact:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{where} must be a mapping")
    for key in ("group", "name", "version"):
        if not raw.get(key):
            raise ConfigurationError(f"{where}.{key} is required")
    return Artifact(
        group=str(raw["group"]),
        name=str(raw["name"]),
        version=str(raw["version"]),
        classifier=str(raw["classifier"]) if raw.get("classifier") else None,
        file=_resolve(base_dir, raw.get("file")),
        scope=raw.get("scope", default_scope),
    )


def _subprojects(raw: Any, base_dir: Path) -> List[SubProject]:
    if not isinstance(raw, list):
        raise ConfigurationError("project.subprojects must be a list")
    out = []
    for i, item in enumerate(raw):
        where = f"project.subprojects[{i}]"
        if not isinstance(item, dict) or not item.get("name"):
            raise ConfigurationError(f"{where}.name is required")
        own = _artifact(item.get("artifact"), base_dir, f"{where}.artifact", None)
        # a project's own artifact has no build scope
        own = Artifact(own.group, own.name, own.version, own.classifier, file=own.file, scope=None)
        deps = tuple(
            _artifact(d, base_dir, f"{where}.dependencies[{j}]", "compile")
            for j, d in enumerate(item.get("dependencies") or [])
        )
        out.append(SubProject(name=str(item["name"]), artifact=own, dependencies=deps))
    return out


def _module(raw: dict) -> ModuleMetadata:
    fw = raw.get("required_framework_version")
    try:
        fw_value = FRAMEWORK_VERSION_UNSET if fw is None else int(fw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"module.required_framework_version must be an integer, got {fw!r}") from exc
    return ModuleMetadata(
        id=raw.get("id"),
        name=raw.get("name"),
        version=None if raw.get("version") is None else str(raw.get("version")),
        required_ignition_version=(
            None if raw.get("required_ignition_version") is None else str(raw.get("required_ignition_version"))
        ),
        description=raw.get("description") or "",
        required_framework_version=fw_value,
        license=raw.get("license"),
        documentation=raw.get("documentation"),
        depends=[ModuleDependency(str(d.get("scope", "")), str(d.get("module_id", ""))) for d in raw.get("depends") or []],
        hooks=[ModuleHook(str(h.get("scope", "")), str(h.get("class", ""))) for h in raw.get("hooks") or []],
        jar_scope_mode=str(raw.get("jar_scope_mode") or JAR_SCOPE_SEPARATE),
    )


def build_config(raw: dict, config_dir: Optional[Path] = None) -> BuildConfig:
    """Turn a merged raw mapping into typed config. Does not touch artifact files."""
    config_dir = config_dir or Path.cwd()
    project_raw = raw.get("project") or {}
    base_dir = _resolve(config_dir, project_raw.get("base_dir") or ".") or config_dir
    build_dir = _resolve(base_dir, project_raw.get("build_dir") or "build") or base_dir / "build"

    scopes = project_raw.get("scopes") or {}
    if not isinstance(scopes, dict):
        raise ConfigurationError("project.scopes must map sub-project names to scope codes")

    sign_raw = raw.get("sign") or {}
    deploy_raw = raw.get("deploy") or {}
    return BuildConfig(
        module=_module(raw.get("module") or {}),
        project=ProjectConfig(
            base_dir=base_dir,
            build_dir=build_dir,
            scopes=dict(scopes),
            subprojects=_subprojects(project_raw.get("subprojects") or [], base_dir),
        ),
        sign=SignConfig(
            enabled=bool(sign_raw.get("enabled")),
            keystore=_resolve(base_dir, sign_raw.get("keystore")),
            keystore_password=sign_raw.get("keystore_password"),
            alias=sign_raw.get("alias"),
            alias_password=sign_raw.get("alias_password"),
            chain=_resolve(base_dir, sign_raw.get("chain")),
            pkcs11_config=sign_raw.get("pkcs11_config"),
        ),
        deploy=DeployConfig(
            enabled=bool(deploy_raw.get("enabled")),
            gateway_address=str(deploy_raw.get("gateway_address") or DEFAULT_GATEWAY_ADDRESS),
            strict=bool(deploy_raw.get("strict")),
            timeout_s=float(deploy_raw.get("timeout_s") or HTTP_TIMEOUT_S),
            retries=int(deploy_raw.get("retries") or 1),
        ),
    )


def load_config(path: Optional[str | Path] = None, environ: Optional[Mapping[str, str]] = None) -> BuildConfig:
    """Load modl.yaml (or path), apply env overrides, return typed BuildConfig."""
    cfg_path = Path(path) if path is not None else Path(DEFAULT_CONFIG_FILE)
    if not cfg_path.is_file():
        raise ArchiveIOError(f"Config file not found: {cfg_path}", cfg_path)
    raw = get_config(cfg_path, environ)
    cfg = build_config(raw, cfg_path.resolve().parent)
    cfg.source = cfg_path
    return cfg
