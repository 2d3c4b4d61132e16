"""Pytest configuration for test isolation.

Runs take an on-disk lock under ``LEDGER_TIDY_LOCK_DIR`` and read their
settings from ``LEDGER_TIDY_*`` variables. A developer's shell (or ``.env``)
may set those, so every test gets a private lock directory and a clean
configuration environment.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir is on sys.path so `ledger_tidy` is importable,
# and the repo root so `tests.helpers` resolves.
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop ambient ``LEDGER_TIDY_*`` settings and use a per-test lock dir."""

    for key in list(os.environ):
        if key.startswith("LEDGER_TIDY_"):
            monkeypatch.delenv(key, raising=False)
    lock_root = tmp_path / "locks"
    lock_root.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("LEDGER_TIDY_LOCK_DIR", os.fspath(lock_root))
