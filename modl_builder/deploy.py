"""
Gateway deployer: POST the base64-encoded module to a running gateway's
developer module-loading servlet.

  POST {gateway_address}/main/system/DeveloperModuleLoadingServlet

The response body is logged only. Non-2xx responses are a warning unless strict
mode is on. Upload failures never touch the produced archives.
"""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import requests

from .artifacts import signed_module_path, unsigned_module_path
from .core.errors import ArchiveIOError, UploadError
from .resilience import RetryConfig, resilient_call

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_ADDRESS = "http://localhost:8088"
MODULE_POST_PATH = "/main/system/DeveloperModuleLoadingServlet"
HTTP_TIMEOUT_S = 30.0


@dataclass(frozen=True)
class DeployResult:
    url: str
    module_path: Path
    status_code: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def module_post_url(gateway_address: Optional[str] = None) -> str:
    base = (gateway_address or DEFAULT_GATEWAY_ADDRESS).rstrip("/")
    return base + MODULE_POST_PATH


def select_module_path(build_dir: str | Path, module_name: str) -> Path:
    """Signed module if it exists, else the unsigned one."""
    signed = signed_module_path(build_dir, module_name)
    if signed.is_file():
        return signed
    unsigned = unsigned_module_path(build_dir, module_name)
    if unsigned.is_file():
        return unsigned
    raise ArchiveIOError(f"No module archive to deploy in {build_dir} (looked for {signed.name}, {unsigned.name})", signed)


def encode_module(module_path: str | Path) -> str:
    path = Path(module_path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ArchiveIOError(f"Cannot read module {path}: {exc}", path) from exc
    encoded = base64.b64encode(data).decode("ascii")
    logger.debug("Successfully encoded %s.", path)
    return encoded


def post_module(
    module_path: str | Path,
    gateway_address: Optional[str] = None,
    *,
    strict: bool = False,
    timeout_s: float = HTTP_TIMEOUT_S,
    retry_config: Optional[RetryConfig] = None,
    session: Optional[Any] = None,
) -> DeployResult:
    """Upload one module. Raises UploadError on network failure, or on non-2xx when strict."""
    module_path = Path(module_path)
    url = module_post_url(gateway_address)
    payload = encode_module(module_path)
    http = session or requests
    logger.info("Installing %s to gateway.", module_path)
    logger.info("Deploying to %s", url)

    cfg = retry_config or RetryConfig(retry_on=(requests.ConnectionError,))
    try:
        resp = resilient_call(
            http.post,
            url,
            data=payload,
            headers={"Content-Type": "multipart/form-data"},
            timeout=timeout_s,
            allow_redirects=True,
            retry_config=cfg,
        )
    except requests.RequestException as exc:
        raise UploadError(f"Could not post module to gateway {url}: {exc}") from exc

    result = DeployResult(url=url, module_path=module_path, status_code=resp.status_code, body=resp.text or "")
    logger.debug("Gateway response %s: %s", resp.status_code, result.body[:2000])
    if not result.ok:
        msg = f"Gateway {url} answered HTTP {resp.status_code}"
        if strict:
            raise UploadError(msg)
        logger.warning("%s; response is advisory only (enable deploy.strict to fail)", msg)
    return result


__all__ = [
    "DEFAULT_GATEWAY_ADDRESS",
    "DeployResult",
    "MODULE_POST_PATH",
    "encode_module",
    "module_post_url",
    "post_module",
    "select_module_path",
]
