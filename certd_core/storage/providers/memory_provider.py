from __future__ import annotations
import threading
import time
from typing import Dict, Iterator, Optional

from certd_core.constants import ABSENT_TAG, DEFAULT_LOCK_POLL_INTERVAL
from certd_core.errors import (
    BadDataError,
    LockInterruptedError,
    NamingError,
    NotFoundError,
    WouldBlockError,
)
from certd_core.naming import Key, SpecialName, key_label, validate_fingerprint, validate_special_name
from certd_core.storage.merge import InputData, apply_merge, check_key, parse, read_input
from certd_core.storage.models import Certificate, CertificateReader, MergeCallback
from certd_core.storage.provider import CertificateDirectory, RestartableIterable


class InMemoryCertificateDirectory(CertificateDirectory):
    """Process-local directory with the same naming, merge and tag rules.

    Tags are per-entry revision counters. Intended as a test double for
    code that consumes a CertificateDirectory.
    """

    def __init__(self, reader: CertificateReader, lock_poll_interval: float = DEFAULT_LOCK_POLL_INTERVAL):
        self.reader = reader
        self.lock_poll_interval = lock_poll_interval
        self.entries: Dict[Key, Certificate] = {}
        self.revisions: Dict[Key, int] = {}
        self._locks: Dict[Key, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    # lookups
    def get_by_fingerprint(self, fingerprint: str) -> Certificate:
        return self._get(validate_fingerprint(fingerprint))

    def get_by_special_name(self, special_name) -> Certificate:
        return self._get(validate_special_name(special_name))

    def get_by_fingerprint_if_changed(self, fingerprint: str, tag: Optional[str]) -> Optional[Certificate]:
        return self._get_if_changed(validate_fingerprint(fingerprint), tag)

    def get_by_special_name_if_changed(self, special_name, tag: Optional[str]) -> Optional[Certificate]:
        return self._get_if_changed(validate_special_name(special_name), tag)

    def _get(self, key: Key) -> Certificate:
        cert = self.entries.get(key)
        if cert is None:
            raise NotFoundError(f"No certificate stored for {key_label(key)}")
        return cert

    def _get_if_changed(self, key: Key, tag: Optional[str]) -> Optional[Certificate]:
        cert = self.entries.get(key)
        current = cert.tag if cert is not None else ABSENT_TAG
        if tag is not None and tag == current:
            return None
        return self._get(key)

    # inserts
    def insert(self, data: InputData, merge: MergeCallback, cancel=None, timeout=None) -> Certificate:
        raw = read_input(data)
        return self._insert(self._key_for(raw), raw, merge, True, cancel, timeout)

    def try_insert(self, data: InputData, merge: MergeCallback) -> Certificate:
        raw = read_input(data)
        return self._insert(self._key_for(raw), raw, merge, False, None, None)

    def insert_with_special_name(self, special_name, data: InputData, merge: MergeCallback,
                                 cancel=None, timeout=None) -> Certificate:
        key = validate_special_name(special_name)
        return self._insert(key, read_input(data), merge, True, cancel, timeout)

    def try_insert_with_special_name(self, special_name, data: InputData, merge: MergeCallback) -> Certificate:
        key = validate_special_name(special_name)
        return self._insert(key, read_input(data), merge, False, None, None)

    def _key_for(self, raw: bytes) -> Key:
        cert = parse(self.reader, raw, "incoming data")
        try:
            return validate_fingerprint(cert.fingerprint)
        except NamingError as e:
            raise BadDataError(f"Certificate reports an invalid fingerprint: {e}") from e

    def _insert(self, key: Key, raw: bytes, merge: MergeCallback, blocking: bool, cancel, timeout) -> Certificate:
        lock = self._lock_for(key)
        self._acquire(lock, key, blocking, cancel, timeout)
        try:
            existing = self.entries.get(key)
            incoming = parse(self.reader, raw, "incoming data")
            check_key(key, incoming, "Incoming certificate")
            merged = apply_merge(merge, existing, incoming)
            check_key(key, merged, "Merge result")
            if existing is not None and merged.data == existing.data:
                return existing
            revision = self.revisions.get(key, 0) + 1
            stored = merged.with_tag(f"rev-{revision}")
            self.revisions[key] = revision
            self.entries[key] = stored
            return stored
        finally:
            lock.release()

    def _lock_for(self, key: Key) -> threading.Lock:
        with self._registry_lock:
            return self._locks.setdefault(key, threading.Lock())

    def _acquire(self, lock: threading.Lock, key: Key, blocking: bool, cancel, timeout) -> None:
        if not blocking:
            if not lock.acquire(blocking=False):
                raise WouldBlockError(f"Entry is locked: {key_label(key)}")
            return
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if cancel is not None and cancel.is_set():
                raise LockInterruptedError(f"Cancelled while waiting for {key_label(key)}")
            wait = self.lock_poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise LockInterruptedError(f"Timed out waiting for {key_label(key)}")
                wait = min(wait, remaining)
            if lock.acquire(timeout=wait):
                return

    # enumeration
    def items(self) -> RestartableIterable:
        return RestartableIterable(self._iter_items)

    def fingerprints(self) -> RestartableIterable:
        return RestartableIterable(self._iter_fingerprints)

    def _iter_fingerprints(self) -> Iterator[str]:
        for key in sorted(k for k in list(self.entries) if not isinstance(k, SpecialName)):
            yield str(key)

    def _iter_items(self) -> Iterator[Certificate]:
        for fingerprint in self._iter_fingerprints():
            cert = self.entries.get(fingerprint)
            if cert is not None:
                yield cert
