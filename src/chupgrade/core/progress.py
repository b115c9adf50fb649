from __future__ import annotations

import os
import tempfile
from pathlib import Path

from chupgrade.core.errors import PersistenceError, StaleCheckpointError

_FINGERPRINT_PREFIX = "plan="


class ProgressStore:
    """Single integer checkpoint kept in a plain-text file.

    The first line holds the decimal index of the last processed plan entry.
    When the store is bound to a plan fingerprint, a second ``plan=<sha256>``
    line ties the index to the plan that produced it. Files holding only an
    index are still accepted.

    Only one orchestrator may use a given path at a time; there is no locking.
    """

    def __init__(self, path: Path, *, fingerprint: str | None = None):
        self.path = Path(path)
        self.fingerprint = fingerprint
        _check_writable(self.path)

    @property
    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> int:
        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return 0
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        if not lines:
            return 0
        try:
            index = int(lines[0])
        except ValueError:
            return 0
        if index < 0:
            return 0
        stored = _stored_fingerprint(lines[1:])
        if stored and self.fingerprint and stored != self.fingerprint:
            raise StaleCheckpointError(
                f"Checkpoint {self.path} was written for a different plan "
                "(stages, sites or flags changed since the interrupted run)."
            )
        return index

    def save(self, index: int) -> None:
        payload = f"{index}\n"
        if self.fingerprint:
            payload = f"{payload}{_FINGERPRINT_PREFIX}{self.fingerprint}\n"
        tmp_name: str | None = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"Failed to write checkpoint {self.path}: {exc}") from exc

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise PersistenceError(f"Failed to remove checkpoint {self.path}: {exc}") from exc


def _check_writable(path: Path) -> None:
    if not path.exists():
        parent = path.parent
        if not parent.is_dir() or not os.access(parent, os.W_OK):
            raise PersistenceError(f"The {parent} directory is not writable.")
        return
    if path.is_dir() or not os.access(path, os.W_OK):
        raise PersistenceError(f"The {path} file is not writable.")


def _stored_fingerprint(lines: list[str]) -> str | None:
    for line in lines:
        if line.startswith(_FINGERPRINT_PREFIX):
            return line[len(_FINGERPRINT_PREFIX):]
    return None
