"""
Lock de ejecución.

Dos runs concurrentes del Reconciler contra el mismo host no son seguros
(apt y systemd son de un solo escritor). Quien llama debe envolver el run
completo en run_lock().
"""

import fcntl
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from hostplane.core.errors import HostplaneError


class RunLocked(HostplaneError):
    """Otro run ya tiene el lock."""

    def __init__(self, path: Path):
        super().__init__(f"Ya hay un run en curso (lock: {path})")
        self.path = path


@contextmanager
def run_lock(path: Path) -> Iterator[Path]:
    """Lock exclusivo no bloqueante sobre `path` durante todo el run."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise RunLocked(path)
        try:
            f.write(str(os.getpid()))
            f.flush()
            yield path
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
