"""
Canonical hashing primitives: SHA-256 of bytes/files and stable JSON bytes.
Do not change JSON encoding semantics; signed manifests depend on them.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

_CHUNK = 65536


def sha256_hex(data: bytes) -> str:
    """Return SHA-256 hex digest of data."""
    return hashlib.sha256(data).hexdigest()


def compute_file_sha256(path: str | Path) -> str:
    """Return SHA-256 hex digest of a file. Raises OSError if unreadable."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def canonical_json_bytes(obj: Any) -> bytes:
    """Deterministic JSON: sorted keys, compact separators, ASCII only, UTF-8 bytes."""
    blob = json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return blob.encode("utf-8")


__all__ = ["canonical_json_bytes", "compute_file_sha256", "sha256_hex"]
