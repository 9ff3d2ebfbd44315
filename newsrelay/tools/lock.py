from __future__ import annotations

from pathlib import Path
import os


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class RunLock:
    """One worker per stage: <lock_dir>/<stage>.lock holds the owner's pid."""

    def __init__(self, stage: str, lock_dir: str | Path = "data/locks"):
        self.path = Path(lock_dir) / f"{stage}.lock"

    def __enter__(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)

        if self.path.exists():
            try:
                owner = int(self.path.read_text(encoding="utf-8").strip() or "0")
            except ValueError:
                owner = 0
            if owner and owner != os.getpid() and _pid_alive(owner):
                raise RuntimeError(f"Another '{self.path.stem}' worker is already running (pid {owner}).")
            # stale lock
            self.path.unlink(missing_ok=True)

        self.path.write_text(str(os.getpid()), encoding="utf-8")
        return self

    def __exit__(self, exc_type, exc, tb):
        self.path.unlink(missing_ok=True)
