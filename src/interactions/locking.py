"""Per-key exclusive locks and atomic JSON writes for file-backed records.

Locks are ``fcntl.flock`` locks on a sidecar ``.lock`` file, so they exclude
both threads (each acquisition opens its own file description) and Gunicorn
worker processes on the same host.
"""

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Any, Iterator

logger = logging.getLogger(__name__)


@contextmanager
def exclusive_lock(lock_path: str) -> Iterator[None]:
    """Hold an exclusive lock on ``lock_path`` for the duration of the block.

    If the lock file is unlinked by another holder while we wait (rate limit
    sweeps remove stale lock files), the lock is re-acquired on the new file.
    """
    while True:
        handle = open(lock_path, "a")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                current = os.stat(lock_path)
                same_file = current.st_ino == os.fstat(handle.fileno()).st_ino
            except FileNotFoundError:
                same_file = False
        except BaseException:
            handle.close()
            raise
        if same_file:
            break
        handle.close()

    try:
        yield
    finally:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()


def write_json_atomic(path: str, data: Any, **dump_kwargs: Any) -> None:
    """Write ``data`` as JSON to ``path`` via a temp file and ``os.replace``.

    Readers see either the previous document or the new one, never a partial
    write.
    """
    directory = os.path.dirname(path) or "."
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, **dump_kwargs)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


def read_json(path: str, default: Any) -> Any:
    """Read a JSON file, returning ``default`` if it is missing or corrupt."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return default
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        logger.error(f"Failed to read JSON record {path}: {e}")
        return default
