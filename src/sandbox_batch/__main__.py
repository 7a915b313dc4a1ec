"""Module entrypoint for ``python -m sandbox_batch``."""

from __future__ import annotations

from sandbox_batch.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
