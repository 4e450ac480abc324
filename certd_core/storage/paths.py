"""
certd_core.storage.paths
------------------------
Maps validated keys to locations in the store's directory tree.

Structure:
    base/trust-root
    base/ab/cdef0123...      (fingerprint abcdef0123...)
"""

from __future__ import annotations
from pathlib import Path
from typing import Iterator, Optional

from certd_core.constants import HEX_DIGITS, LOCK_SUFFIX, SHARD_PREFIX_LENGTH
from certd_core.naming import Fingerprint, Key, SpecialName, is_fingerprint


class PathResolver:
    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)

    def resolve(self, key: Key) -> Path:
        if isinstance(key, SpecialName):
            return self.base_dir / key.value
        # Use first chars as subdirectory to bound directory fan-out
        return self.base_dir / key[:SHARD_PREFIX_LENGTH] / key[SHARD_PREFIX_LENGTH:]

    def lock_path(self, key: Key) -> Path:
        path = self.resolve(key)
        return path.with_name(path.name + LOCK_SUFFIX)

    def fingerprint_for(self, path: Path) -> Optional[Fingerprint]:
        """Inverse of ``resolve`` for shard entries; None for anything else."""
        shard, name = path.parent.name, path.name
        if path.parent.parent != self.base_dir:
            return None
        if not _is_hex(shard, SHARD_PREFIX_LENGTH):
            return None
        candidate = shard + name
        # entries are always written lowercase
        if candidate != candidate.lower() or not is_fingerprint(candidate):
            return None
        return Fingerprint(candidate)

    def iter_entry_paths(self) -> Iterator[Path]:
        """Walk the shard tree lazily, yielding only well-formed entry files."""
        try:
            shards = sorted(self.base_dir.iterdir())
        except FileNotFoundError:
            return
        for shard in shards:
            if not _is_hex(shard.name, SHARD_PREFIX_LENGTH) or not shard.is_dir():
                continue
            try:
                names = sorted(shard.iterdir())
            except FileNotFoundError:
                # shard removed underneath us
                continue
            for path in names:
                if self.fingerprint_for(path) is not None and path.is_file():
                    yield path


def _is_hex(name: str, length: int) -> bool:
    if len(name) != length:
        return False
    return bool(name) and set(name) <= HEX_DIGITS
