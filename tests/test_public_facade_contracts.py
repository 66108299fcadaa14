"""
Public facade contract tests: explicit __all__, export availability, no circular imports.
"""

from __future__ import annotations

import subprocess
import sys

PUBLIC_FACADES = [
    "modl_builder",
    "modl_builder.core",
    "modl_builder.signing",
    "modl_builder.descriptor",
    "modl_builder.scopes",
    "modl_builder.assembly",
    "modl_builder.deploy",
    "modl_builder.pipeline",
]


def test_each_facade_has_explicit_non_empty_all():
    for module_name in PUBLIC_FACADES:
        mod = __import__(module_name, fromlist=[""])
        assert hasattr(mod, "__all__"), f"{module_name} must have __all__"
        assert len(mod.__all__) > 0, f"{module_name}.__all__ must be non-empty"


def test_each_facade_all_names_are_exported():
    for module_name in PUBLIC_FACADES:
        mod = __import__(module_name, fromlist=[""])
        for name in mod.__all__:
            assert hasattr(mod, name), f"{module_name} must export {name!r} (in __all__)"


def test_top_level_does_not_import_cli():
    r = subprocess.run(
        [sys.executable, "-c", "import sys, modl_builder; print('modl_builder.cli' in sys.modules)"],
        capture_output=True,
        text=True,
        timeout=30,
    )
    assert r.stdout.strip() == "False", r.stderr


def test_facade_import_order():
    """Facades import in any order without circular import errors."""
    import modl_builder.pipeline
    import modl_builder.signing
    import modl_builder.core

    assert modl_builder.pipeline.run_pipeline is not None
    assert modl_builder.signing.sign_module is not None
    assert modl_builder.core.ModlBuilderError is not None
