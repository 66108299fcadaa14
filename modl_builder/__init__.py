"""
Top-level public API surface. Stable facades only.
Canonical entrypoint: import modl_builder; use modl_builder.pipeline, modl_builder.signing, etc.
Does not import cli.
"""

from __future__ import annotations

from . import artifacts, core, descriptor, scopes, signing
from ._version import __version__

# Do not add exports without updating __all__.
__all__ = [
    "__version__",
    "artifacts",
    "core",
    "descriptor",
    "scopes",
    "signing",
]
