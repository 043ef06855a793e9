"""
Crash-safe JSON files for the strategy store.

Writes go to a sibling temp file that is fsynced and renamed over the
target, so a reader never sees a half-written strategy file. Reads take a
shared flock on a .lock sibling so they do not interleave with another
process rewriting the file.

    atomic_json_write(path, records)
    data = read_json(path)                   # raises on missing/corrupt
    data = read_json_or_default(path, [])    # logs and falls back
"""

import fcntl
import json
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("companion.store.file_io")


def atomic_json_write(path: Path, data: Any, *, mode: int = 0o644) -> None:
    """Serialize data and atomically replace path with it."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")

    payload = json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")
    fd = os.open(str(tmp_path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    try:
        os.write(fd, payload)
        os.fsync(fd)
    finally:
        os.close(fd)

    os.replace(str(tmp_path), str(path))


@contextmanager
def _shared_lock(path: Path):
    lock_path = path.with_name(path.name + ".lock")
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with open(lock_path, "w") as lock_fd:
        fcntl.flock(lock_fd, fcntl.LOCK_SH)
        try:
            yield
        finally:
            fcntl.flock(lock_fd, fcntl.LOCK_UN)


def read_json(path: Path) -> Any:
    """Parse a JSON file under a shared lock.

    Raises:
        FileNotFoundError: path does not exist
        OSError: the file or its lock could not be opened
        json.JSONDecodeError: the content is not valid JSON
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(str(path))
    with _shared_lock(path):
        return json.loads(path.read_text(encoding="utf-8"))


def read_json_or_default(path: Path, default: Any = None) -> Any:
    """Like read_json, but a missing or corrupt file yields default."""
    try:
        return read_json(path)
    except FileNotFoundError:
        return default
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning(f"Corrupt JSON in {path}: {e}")
        return default
    except OSError as e:
        logger.error(f"Failed to lock/read {path}: {e}")
        return default


def file_mtime(path: Path) -> Optional[float]:
    """Modification time, or None when the file is absent."""
    try:
        return os.stat(path).st_mtime
    except FileNotFoundError:
        return None
