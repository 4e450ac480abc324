"""
certd_core.storage.tags
-----------------------
Change-detection tags for conditional reads.

Two modes:
- ``metadata``: hash of (dev, inode, size, mtime_ns). Commits
  always create a new inode while the previous version still exists, so
  consecutive versions never share a tag.
- ``digest``: SHA-256 of the payload. Strictly content-derived.

An absent entry has the tag ``ABSENT_TAG``.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Optional

from certd_core.constants import ABSENT_TAG, DEFAULT_TAG_MODE, TAG_MODES
from certd_core.utils import sha256


class TagEngine:
    def __init__(self, mode: str = DEFAULT_TAG_MODE) -> None:
        if mode not in TAG_MODES:
            raise ValueError(f"Unknown tag mode: {mode!r} (expected one of {TAG_MODES})")
        self.mode = mode

    def current_tag(self, path: Path) -> str:
        if self.mode == "digest":
            try:
                return self.digest_tag(path.read_bytes())
            except FileNotFoundError:
                return ABSENT_TAG
        try:
            return self.stat_tag(os.stat(path))
        except FileNotFoundError:
            return ABSENT_TAG

    def tag_for(self, st: os.stat_result, data: bytes) -> str:
        """Tag for content already read from a descriptor with stat ``st``."""
        if self.mode == "digest":
            return self.digest_tag(data)
        return self.stat_tag(st)

    @staticmethod
    def stat_tag(st: os.stat_result) -> str:
        raw = f"{st.st_dev}:{st.st_ino}:{st.st_size}:{st.st_mtime_ns}"
        return sha256(raw.encode("ascii"))

    @staticmethod
    def digest_tag(data: bytes) -> str:
        return sha256(data)

    @staticmethod
    def matches(supplied: Optional[str], current: str) -> bool:
        # No tag supplied means the caller holds nothing yet
        return supplied is not None and supplied == current
