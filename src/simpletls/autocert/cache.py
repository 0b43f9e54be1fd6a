"""Persistent certificate cache backed by a directory.

Each entry is one file named after its key.  Writes go to a temporary
file in the same directory and are moved into place with
:func:`os.replace`, so readers never see a half-written entry.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

log = logging.getLogger(__name__)

_DIR_MODE = 0o700
_FILE_MODE = 0o600


class CacheMiss(KeyError):
    """Raised by :meth:`DirCache.get` when an entry does not exist."""


class DirCache:
    """Store certificate bundles as files below *directory*.

    The directory is created (mode ``0700``) on first write.  Entry
    files are written with mode ``0600`` since they hold private keys.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path(self, name: str) -> Path:
        """Return the file path used for entry *name*."""
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            msg = f"invalid cache entry name {name!r}"
            raise ValueError(msg)
        return self.directory / name

    def get(self, name: str) -> bytes:
        """Return the content of entry *name* or raise :class:`CacheMiss`."""
        try:
            return self.path(name).read_bytes()
        except FileNotFoundError as exc:
            raise CacheMiss(name) from exc

    def put(self, name: str, data: bytes) -> None:
        """Atomically store *data* under *name*."""
        target = self.path(name)
        self.directory.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            dir=self.directory,
            prefix=f".{name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.chmod(tmp_name, _FILE_MODE)  # noqa: PTH101
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        log.debug("Cache entry %s written to %s", name, target)

    def delete(self, name: str) -> None:
        """Remove entry *name*; a missing entry is not an error."""
        self.path(name).unlink(missing_ok=True)

    def __repr__(self) -> str:
        return f"<DirCache {self.directory}>"
