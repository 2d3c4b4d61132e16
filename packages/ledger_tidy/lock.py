"""Advisory run lock: one cleanup run per backing store at a time.

The lock is a small JSON file created with ``O_CREAT | O_EXCL`` under the
lock directory (``LEDGER_TIDY_LOCK_DIR``, default ``./.cache/locks``). A lock
older than ``stale_after`` seconds is considered abandoned and replaced.
"""

from __future__ import annotations

import hashlib
import json
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from .logging_setup import get_logger

DEFAULT_STALE_AFTER_SEC = 3600.0

_logger = get_logger("ledger_tidy.lock")


class RunLockedError(RuntimeError):
    """Another run currently holds the lock for this store."""


def _lock_root(lock_dir: str | os.PathLike[str] | None) -> Path:
    if lock_dir is not None:
        return Path(lock_dir)
    root = os.getenv("LEDGER_TIDY_LOCK_DIR")
    if root and root.strip():
        return Path(root).expanduser()
    return Path.cwd() / ".cache" / "locks"


def lock_path(key: str, lock_dir: str | os.PathLike[str] | None = None) -> Path:
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
    return _lock_root(lock_dir) / f"run-{digest}.lock"


def _read_lock(path: Path) -> dict[str, object] | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    return data if isinstance(data, dict) else None


@contextmanager
def run_lock(
    key: str,
    *,
    lock_dir: str | os.PathLike[str] | None = None,
    stale_after: float = DEFAULT_STALE_AFTER_SEC,
) -> Iterator[Path]:
    """Hold the run lock for ``key`` for the duration of the ``with`` block.

    Raises :class:`RunLockedError` when a fresh lock is already held.
    """

    path = lock_path(key, lock_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps({"key": key, "pid": os.getpid(), "acquired_at": time.time()})

    for _ in range(2):
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            held = _read_lock(path) or {}
            acquired_at = held.get("acquired_at")
            age = time.time() - acquired_at if isinstance(acquired_at, (int, float)) else None
            if age is not None and age < stale_after:
                raise RunLockedError(
                    f"another run holds the lock for {key!r} (pid={held.get('pid')}, "
                    f"age={age:.0f}s)"
                ) from None
            _logger.warning("lock:stale_replaced key=%s path=%s", key, path)
            path.unlink(missing_ok=True)
            continue
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
        break
    else:
        raise RunLockedError(f"could not acquire the lock for {key!r}")

    _logger.debug("lock:acquired key=%s path=%s", key, path)
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)
        _logger.debug("lock:released key=%s", key)
