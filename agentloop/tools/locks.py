"""Per-path locks for tools that modify files.

Parallel batch entries may target the same file; writers serialize on the
resolved path.  Different paths never contend.  A path's lock lives only as
long as someone holds a reference to it.
"""

from __future__ import annotations

import threading
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

_registry_lock = threading.Lock()
_path_locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _registry_lock:
        lock = _path_locks.get(key)
        if lock is None:
            lock = _path_locks[key] = threading.Lock()
        return lock


@contextmanager
def path_lock(path: str | Path) -> Iterator[None]:
    lock = _lock_for(Path(path))
    with lock:
        yield
