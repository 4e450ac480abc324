"""
certd_core.storage.merge
------------------------
The write path.

    NO_LOCK -> LOCKED -> READ_EXISTING -> MERGED -> COMMITTED

Any failure after LOCKED releases the lock and leaves the entry exactly
as it was. The merge callback alone decides how existing and incoming
material combine; the store only checks that the result still belongs
under the key it is written to.
"""

from __future__ import annotations
import os
import threading
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Optional, Tuple, Union

from certd_core.errors import BadDataError, CertStoreError
from certd_core.logger import child_logger
from certd_core.naming import Fingerprint, Key, SpecialName, key_label
from certd_core.storage.locking import LockManager
from certd_core.storage.models import Certificate, CertificateReader, MergeCallback
from certd_core.storage.paths import PathResolver
from certd_core.storage.tags import TagEngine
from certd_core.storage.writer import AtomicWriter

log = child_logger("storage.merge")

InputData = Union[bytes, bytearray, memoryview, BinaryIO]


class InsertState(str, Enum):
    NO_LOCK = "no_lock"
    LOCKED = "locked"
    READ_EXISTING = "read_existing"
    MERGED = "merged"
    COMMITTED = "committed"


def read_input(data: InputData) -> bytes:
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if hasattr(data, "read"):
        raw = data.read()
        if not isinstance(raw, (bytes, bytearray)):
            raise BadDataError("Certificate stream must be opened in binary mode")
        return bytes(raw)
    raise BadDataError(f"Unsupported certificate input: {type(data).__name__}")


def parse(reader: CertificateReader, raw: bytes, source: str) -> Certificate:
    try:
        cert = reader(raw)
    except CertStoreError:
        raise
    except ValueError as e:
        raise BadDataError(f"Malformed certificate ({source}): {e}") from e
    if not isinstance(cert, Certificate):
        raise BadDataError(f"Reader returned {type(cert).__name__}, not a Certificate ({source})")
    return cert


def check_key(key: Key, cert: Certificate, what: str) -> None:
    # Special-name entries may hold any certificate
    if isinstance(key, SpecialName):
        return
    if cert.fingerprint.lower() != key:
        raise BadDataError(f"{what} has fingerprint {cert.fingerprint}, expected {key}")


def apply_merge(merge: MergeCallback, existing: Optional[Certificate], incoming: Certificate) -> Certificate:
    try:
        merged = merge(existing, incoming)
    except BadDataError:
        log.warning("Merge rejected data for %s", incoming.fingerprint)
        raise
    except ValueError as e:
        log.warning("Merge rejected data for %s: %s", incoming.fingerprint, e)
        raise BadDataError(f"Merge rejected certificate {incoming.fingerprint}: {e}") from e
    if not isinstance(merged, Certificate):
        raise BadDataError(f"Merge callback returned {type(merged).__name__}, not a Certificate")
    return merged


class MergeOrchestrator:
    def __init__(
        self,
        resolver: PathResolver,
        reader: CertificateReader,
        locks: Optional[LockManager] = None,
        tags: Optional[TagEngine] = None,
        writer: Optional[AtomicWriter] = None,
    ) -> None:
        self.resolver = resolver
        self.reader = reader
        self.locks = locks or LockManager()
        self.tags = tags or TagEngine()
        self.writer = writer or AtomicWriter()

    # -------------------------
    # Reads (never take locks)
    # -------------------------
    def read_raw(self, path: Path) -> Optional[Tuple[bytes, str]]:
        """Return (payload, tag) observed through one descriptor, or None."""
        try:
            with open(path, "rb") as fh:
                st = os.fstat(fh.fileno())
                data = fh.read()
        except FileNotFoundError:
            return None
        return data, self.tags.tag_for(st, data)

    def read(self, key: Key) -> Optional[Certificate]:
        path = self.resolver.resolve(key)
        found = self.read_raw(path)
        if found is None:
            return None
        data, tag = found
        cert = parse(self.reader, data, f"stored entry {path}")
        if isinstance(key, Fingerprint) and cert.fingerprint.lower() != key:
            raise BadDataError(
                f"Entry {path} holds certificate {cert.fingerprint}, expected {key}"
            )
        return cert.with_tag(tag)

    # -------------------------
    # Write path
    # -------------------------
    def insert(
        self,
        key: Key,
        data: InputData,
        merge: MergeCallback,
        blocking: bool = True,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> Certificate:
        """Merge ``data`` into the entry for ``key`` and return what is stored.

        ``key`` must already be validated. Raises WouldBlockError (non-blocking)
        or LockInterruptedError (blocking) if the lock is not obtained, and
        BadDataError for malformed data, key mismatch or merge rejection.
        """
        raw = read_input(data)
        state = InsertState.NO_LOCK
        try:
            with self.locks.acquire(
                self.resolver.lock_path(key),
                blocking=blocking,
                cancel=cancel if blocking else None,
                timeout=timeout if blocking else None,
            ):
                state = InsertState.LOCKED
                path = self.resolver.resolve(key)
                if self.writer.discard_stale(path):
                    log.warning("Removed stale temp files for %s", key_label(key))
                existing = self.read(key)
                state = InsertState.READ_EXISTING

                incoming = parse(self.reader, raw, "incoming data")
                check_key(key, incoming, "Incoming certificate")

                merged = apply_merge(merge, existing, incoming)
                check_key(key, merged, "Merge result")
                state = InsertState.MERGED

                if existing is not None and merged.data == existing.data:
                    log.debug("No change for %s", key_label(key))
                    return existing

                st = self.writer.commit(path, merged.data)
                state = InsertState.COMMITTED
                log.info("Committed %s (%d bytes)", key_label(key), len(merged.data))
                return merged.with_tag(self.tags.tag_for(st, merged.data))
        except BaseException as e:
            if state is not InsertState.COMMITTED:
                log.debug("Insert for %s failed in state %s: %s", key_label(key), state.value, e)
            raise
