"""Gateway deploy: URL, base64 body, advisory vs strict responses, module selection, retries."""

from __future__ import annotations

import base64

import pytest
import requests

from modl_builder.core.errors import ArchiveIOError, UploadError
from modl_builder.deploy import module_post_url, post_module, select_module_path
from modl_builder.resilience import RetryConfig, resilient_call
from tests.fakes import FakeResponse, FakeSession


@pytest.fixture
def module_file(tmp_path):
    path = tmp_path / "Turbo-Encabulator.modl"
    path.write_bytes(b"PK\x03\x04 module bytes \xff\x00")
    return path


def test_default_url():
    assert module_post_url() == "http://localhost:8088/main/system/DeveloperModuleLoadingServlet"
    assert module_post_url("https://gw:8043/") == "https://gw:8043/main/system/DeveloperModuleLoadingServlet"


def test_post_sends_base64_body(module_file):
    session = FakeSession(FakeResponse(200, "installed"))
    result = post_module(module_file, "http://gw:8088", session=session)
    assert result.ok
    assert result.body == "installed"
    (call,) = session.calls
    assert call["url"] == "http://gw:8088/main/system/DeveloperModuleLoadingServlet"
    assert base64.b64decode(call["data"]) == module_file.read_bytes()
    assert call["headers"] == {"Content-Type": "multipart/form-data"}
    assert call["allow_redirects"] is True


def test_non_2xx_is_advisory_by_default(module_file, caplog):
    session = FakeSession(FakeResponse(500, "boom"))
    with caplog.at_level("WARNING"):
        result = post_module(module_file, session=session)
    assert result.status_code == 500
    assert not result.ok
    assert "HTTP 500" in caplog.text


def test_non_2xx_fails_in_strict_mode(module_file):
    with pytest.raises(UploadError, match="HTTP 403"):
        post_module(module_file, strict=True, session=FakeSession(FakeResponse(403, "denied")))


def test_connection_failure_is_upload_error(module_file):
    session = FakeSession(exc=requests.ConnectionError("refused"), fail_times=5)
    with pytest.raises(UploadError, match="Could not post module"):
        post_module(module_file, session=session)
    assert len(session.calls) == 1


def test_missing_module_is_io_error(tmp_path):
    with pytest.raises(ArchiveIOError):
        post_module(tmp_path / "missing.modl", session=FakeSession())


def test_select_prefers_signed(tmp_path):
    unsigned = tmp_path / "Turbo-Encabulator-unsigned.modl"
    unsigned.write_bytes(b"u")
    assert select_module_path(tmp_path, "Turbo Encabulator") == unsigned
    signed = tmp_path / "Turbo-Encabulator.modl"
    signed.write_bytes(b"s")
    assert select_module_path(tmp_path, "Turbo Encabulator") == signed


def test_select_without_archives(tmp_path):
    with pytest.raises(ArchiveIOError):
        select_module_path(tmp_path, "Turbo Encabulator")


def test_resilient_call_retries_then_succeeds():
    session = FakeSession(FakeResponse(200), exc=requests.ConnectionError("starting"), fail_times=2)
    delays = []
    cfg = RetryConfig(max_attempts=3, base_delay_s=0.5, retry_on=(requests.ConnectionError,))
    resp = resilient_call(session.post, "http://gw", retry_config=cfg, sleep=delays.append)
    assert resp.status_code == 200
    assert len(session.calls) == 3
    assert delays == [0.5, 1.0]


def test_resilient_call_does_not_retry_other_errors():
    session = FakeSession(exc=ValueError("bad"), fail_times=5)
    cfg = RetryConfig(max_attempts=3, retry_on=(requests.ConnectionError,))
    with pytest.raises(ValueError):
        resilient_call(session.post, "http://gw", retry_config=cfg, sleep=lambda s: None)
    assert len(session.calls) == 1


def test_retry_delay_is_capped():
    cfg = RetryConfig(base_delay_s=1.0, backoff_factor=10.0, max_delay_s=5.0)
    assert cfg.delay_for(1) == 1.0
    assert cfg.delay_for(3) == 5.0
