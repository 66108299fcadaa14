"""
Packaging pipeline: resolve -> describe -> assemble -> sign -> deploy.

Strictly sequential. Every stage either completes or aborts the run with its
name attached to the error. Deploy is the exception: an upload failure is
recorded on the result and never undoes the packaged archives.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

import requests

from .artifacts import signed_module_path
from .assembly import build_unsigned_module
from .config import BuildConfig
from .core.errors import ArchiveIOError, ModlBuilderError, UploadError
from .core.hashing import compute_file_sha256
from .deploy import DeployResult, post_module, select_module_path
from .descriptor import ModuleDescriptor, build_descriptor
from .resilience import RetryConfig
from .scopes import ScopeSets, resolve_scopes
from .signing.hsm import HardwareKeySource
from .signing.keys import KeySource, SoftwareKeySource
from .signing.passwords import PasswordProvider, default_password_provider
from .signing.signer import sign_module_file

logger = logging.getLogger(__name__)

STAGE_RESOLVE = "resolve"
STAGE_DESCRIBE = "describe"
STAGE_ASSEMBLE = "assemble"
STAGE_SIGN = "sign"
STAGE_DEPLOY = "deploy"


@dataclass
class PackagingResult:
    scope_sets: ScopeSets
    descriptor: ModuleDescriptor
    unsigned_path: Path
    signed_path: Optional[Path] = None
    deploy: Optional[DeployResult] = None
    deploy_error: Optional[UploadError] = None

    @property
    def module_path(self) -> Path:
        """The archive a deployer should pick up."""
        return self.signed_path or self.unsigned_path


@contextmanager
def stage(name: str) -> Iterator[None]:
    """Tag package errors with the stage; wrap stray OS errors as I/O errors."""
    logger.info("== stage: %s", name)
    try:
        yield
    except ModlBuilderError as exc:
        if exc.stage is None:
            exc.stage = name
        raise
    except OSError as exc:
        raise ArchiveIOError(f"{exc}", getattr(exc, "filename", None), stage=name) from exc


def key_source_for(cfg: BuildConfig) -> KeySource:
    if cfg.sign.uses_hardware:
        return HardwareKeySource(str(cfg.sign.pkcs11_config))
    return SoftwareKeySource(Path(cfg.sign.keystore))


def _discard_stale_signed(cfg: BuildConfig) -> None:
    """A signed archive from an earlier build no longer matches the new unsigned one."""
    stale = signed_module_path(cfg.project.build_dir, str(cfg.module.name))
    if stale.exists():
        logger.info("Removing signed module from a previous build: %s", stale)
        stale.unlink()


def package_module(cfg: BuildConfig) -> PackagingResult:
    """Resolve scopes, build the descriptor and write the unsigned archive."""
    with stage(STAGE_RESOLVE):
        scope_sets = resolve_scopes(cfg.project.subprojects, cfg.project.scopes)
        logger.info(
            "Scope sets: client=%d designer=%d gateway=%d",
            len(scope_sets.client), len(scope_sets.designer), len(scope_sets.gateway),
        )
    with stage(STAGE_DESCRIBE):
        descriptor = build_descriptor(scope_sets, cfg.module)
    with stage(STAGE_ASSEMBLE):
        unsigned = build_unsigned_module(
            scope_sets, descriptor, cfg.module, cfg.project.base_dir, cfg.project.build_dir
        )
        logger.info("Unsigned module %s sha256=%s", unsigned, compute_file_sha256(unsigned))
        _discard_stale_signed(cfg)
    return PackagingResult(scope_sets=scope_sets, descriptor=descriptor, unsigned_path=unsigned)


def sign_packaged_module(
    cfg: BuildConfig,
    unsigned_path: Path,
    passwords: Optional[PasswordProvider] = None,
) -> Path:
    with stage(STAGE_SIGN):
        cfg.sign.validate()
        module_name = str(cfg.module.name)
        signed = signed_module_path(cfg.project.build_dir, module_name)
        provider = passwords or default_password_provider(cfg.sign.keystore_password, cfg.sign.alias_password)
        sign_module_file(unsigned_path, signed, key_source_for(cfg), str(cfg.sign.alias), Path(cfg.sign.chain), provider)
        logger.info("Signed module %s sha256=%s", signed, compute_file_sha256(signed))
    return signed


def deploy_module(cfg: BuildConfig, module_path: Optional[Path] = None, session=None) -> DeployResult:
    with stage(STAGE_DEPLOY):
        path = module_path or select_module_path(cfg.project.build_dir, str(cfg.module.name))
        return post_module(
            path,
            cfg.deploy.gateway_address,
            strict=cfg.deploy.strict,
            timeout_s=cfg.deploy.timeout_s,
            retry_config=_deploy_retry(cfg),
            session=session,
        )


def _deploy_retry(cfg: BuildConfig) -> RetryConfig:
    return RetryConfig(max_attempts=cfg.deploy.retries, retry_on=(requests.ConnectionError,))


def run_pipeline(
    cfg: BuildConfig,
    *,
    sign: Optional[bool] = None,
    deploy: Optional[bool] = None,
    passwords: Optional[PasswordProvider] = None,
    session=None,
) -> PackagingResult:
    """
    Full run. sign/deploy default to the config's enabled flags.
    Raises on any packaging or signing failure; upload failures land in result.deploy_error.
    """
    do_sign = cfg.sign.enabled if sign is None else sign
    do_deploy = cfg.deploy.enabled if deploy is None else deploy

    result = package_module(cfg)
    if do_sign:
        result.signed_path = sign_packaged_module(cfg, result.unsigned_path, passwords)
    else:
        logger.info("Signing skipped; module is unsigned: %s", result.unsigned_path)

    if do_deploy:
        try:
            result.deploy = deploy_module(cfg, result.module_path, session=session)
        except UploadError as exc:
            logger.error("%s", exc)
            result.deploy_error = exc
    return result


__all__ = [
    "PackagingResult",
    "deploy_module",
    "key_source_for",
    "package_module",
    "run_pipeline",
    "sign_packaged_module",
    "stage",
]
