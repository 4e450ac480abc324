from __future__ import annotations


class CertStoreError(Exception):
    pass


class NamingError(CertStoreError, ValueError):
    """Malformed fingerprint or unknown special name."""


class BadDataError(CertStoreError, ValueError):
    """Unparseable certificate data, key mismatch, or merge rejection."""


class NotFoundError(CertStoreError, KeyError):
    """No entry is stored under the requested key."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class LockError(CertStoreError):
    pass


class WouldBlockError(LockError, BlockingIOError):
    """Non-blocking insert found the entry locked."""


class LockInterruptedError(LockError, InterruptedError):
    """Blocking insert was cancelled (or timed out) while waiting for the lock."""
