"""
certd_core.storage.writer
-------------------------
Write-to-temp-then-rename persistence.

The temporary file lives in the destination directory so the final
``os.replace`` never crosses a filesystem boundary. Readers opening the
destination see either the old or the new content, never a mix.
"""

from __future__ import annotations
import os
import tempfile
from pathlib import Path

from certd_core.constants import TEMP_SUFFIX


class AtomicWriter:
    def __init__(self, fsync: bool = True) -> None:
        self.fsync = fsync

    def commit(self, path: Path, data: bytes) -> os.stat_result:
        """Atomically replace ``path`` with ``data``.

        Returns the stat of the committed file. Callers hold the entry lock,
        so no other writer can replace it in between.
        """
        # exist_ok makes concurrent first writers to one shard safe
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=TEMP_SUFFIX,
        )
        try:
            with os.fdopen(fd, "wb") as tmp_handle:
                tmp_handle.write(data)
                tmp_handle.flush()
                if self.fsync:
                    os.fsync(tmp_handle.fileno())
                os.fchmod(tmp_handle.fileno(), 0o644)
            os.replace(tmp_path, path)
        except BaseException:
            # Clean up the temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        if self.fsync:
            self._fsync_dir(path.parent)
        return os.stat(path)

    def discard_stale(self, path: Path) -> int:
        """Remove temp files a killed writer left beside ``path``.

        Only safe while holding the entry lock: temp files for an entry are
        created under that lock, so any that exist now are orphans.
        """
        removed = 0
        for tmp in path.parent.glob(f".{path.name}.*{TEMP_SUFFIX}"):
            try:
                tmp.unlink()
            except FileNotFoundError:
                continue
            removed += 1
        return removed

    @staticmethod
    def _fsync_dir(directory: Path) -> None:
        dir_fd = os.open(directory, os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
