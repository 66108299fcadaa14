"""Allow python -m modl_builder to run the CLI."""
from __future__ import annotations

from modl_builder.cli.main import main

if __name__ == "__main__":
    raise SystemExit(main())
