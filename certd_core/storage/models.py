# certd_core/storage/models.py
from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Callable, Optional, Tuple


@dataclass(frozen=True)
class Certificate:
    """
    Storage-level view of a certificate.

    ``data`` is the opaque encoded certificate; the store never interprets
    it. ``fingerprint`` is whatever the reader reported for it and ``tag``
    identifies the on-disk state the object was read from or written to.
    """
    data: bytes
    fingerprint: str
    tag: Optional[str] = None
    user_ids: Tuple[str, ...] = field(default=())

    def with_tag(self, tag: Optional[str]) -> "Certificate":
        return replace(self, tag=tag)


# Parses raw bytes; raises BadDataError / ValueError on malformed input.
CertificateReader = Callable[[bytes], Certificate]

# (existing or None, incoming) -> merged. Raises BadDataError / ValueError to reject.
MergeCallback = Callable[[Optional[Certificate], Certificate], Certificate]
