from __future__ import annotations
import threading
from pathlib import Path
from typing import Iterator, Optional

from certd_core.constants import DEFAULT_LOCK_POLL_INTERVAL, DEFAULT_TAG_MODE
from certd_core.errors import BadDataError, NamingError, NotFoundError
from certd_core.logger import child_logger
from certd_core.naming import Key, classify_name, key_label, validate_fingerprint, validate_special_name
from certd_core.storage.locking import LockManager
from certd_core.storage.merge import InputData, MergeOrchestrator, parse, read_input
from certd_core.storage.models import Certificate, CertificateReader, MergeCallback
from certd_core.storage.paths import PathResolver
from certd_core.storage.provider import CertificateDirectory, RestartableIterable
from certd_core.storage.tags import TagEngine
from certd_core.storage.writer import AtomicWriter

log = child_logger("storage.filesystem")


class FilesystemCertificateDirectory(CertificateDirectory):
    """
    Shared certificate directory on the local filesystem.

    Reads never lock; writers to one entry serialize on that entry's
    lock file and writers to different entries run in parallel.
    """

    def __init__(
        self,
        base_dir,
        reader: CertificateReader,
        tag_mode: str = DEFAULT_TAG_MODE,
        lock_poll_interval: float = DEFAULT_LOCK_POLL_INTERVAL,
        fsync: bool = True,
    ):
        self.base_dir = Path(base_dir).expanduser()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.resolver = PathResolver(self.base_dir)
        self.tags = TagEngine(tag_mode)
        self.orchestrator = MergeOrchestrator(
            self.resolver,
            reader,
            locks=LockManager(lock_poll_interval),
            tags=self.tags,
            writer=AtomicWriter(fsync=fsync),
        )
        log.debug("Opened certificate directory at %s", self.base_dir)

    # --- lookups ---

    def get_by_fingerprint(self, fingerprint: str) -> Certificate:
        return self._get(validate_fingerprint(fingerprint))

    def get_by_special_name(self, special_name) -> Certificate:
        return self._get(validate_special_name(special_name))

    def get_by_fingerprint_if_changed(self, fingerprint: str, tag: Optional[str]) -> Optional[Certificate]:
        return self._get_if_changed(validate_fingerprint(fingerprint), tag)

    def get_by_special_name_if_changed(self, special_name, tag: Optional[str]) -> Optional[Certificate]:
        return self._get_if_changed(validate_special_name(special_name), tag)

    def current_tag(self, name) -> str:
        return self.tags.current_tag(self.resolver.resolve(classify_name(name)))

    def _get(self, key: Key) -> Certificate:
        cert = self.orchestrator.read(key)
        if cert is None:
            raise NotFoundError(f"No certificate stored for {key_label(key)}")
        return cert

    def _get_if_changed(self, key: Key, tag: Optional[str]) -> Optional[Certificate]:
        current = self.tags.current_tag(self.resolver.resolve(key))
        if self.tags.matches(tag, current):
            return None
        # Returned tag comes from the read itself, so it may be newer than `current`
        return self._get(key)

    # --- inserts ---

    def insert(
        self,
        data: InputData,
        merge: MergeCallback,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> Certificate:
        raw = read_input(data)
        key = self._key_for(raw)
        return self.orchestrator.insert(key, raw, merge, blocking=True, cancel=cancel, timeout=timeout)

    def try_insert(self, data: InputData, merge: MergeCallback) -> Certificate:
        raw = read_input(data)
        key = self._key_for(raw)
        return self.orchestrator.insert(key, raw, merge, blocking=False)

    def insert_with_special_name(
        self,
        special_name,
        data: InputData,
        merge: MergeCallback,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> Certificate:
        key = validate_special_name(special_name)
        return self.orchestrator.insert(key, data, merge, blocking=True, cancel=cancel, timeout=timeout)

    def try_insert_with_special_name(self, special_name, data: InputData, merge: MergeCallback) -> Certificate:
        key = validate_special_name(special_name)
        return self.orchestrator.insert(key, data, merge, blocking=False)

    def _key_for(self, raw: bytes) -> Key:
        # The fingerprint-keyed entry point trusts the certificate's own claim
        cert = parse(self.orchestrator.reader, raw, "incoming data")
        try:
            return validate_fingerprint(cert.fingerprint)
        except NamingError as e:
            raise BadDataError(f"Certificate reports an invalid fingerprint: {e}") from e

    # --- enumeration ---

    def items(self) -> RestartableIterable:
        return RestartableIterable(self._iter_items)

    def fingerprints(self) -> RestartableIterable:
        return RestartableIterable(self._iter_fingerprints)

    def _iter_fingerprints(self) -> Iterator[str]:
        for path in self.resolver.iter_entry_paths():
            yield str(self.resolver.fingerprint_for(path))

    def _iter_items(self) -> Iterator[Certificate]:
        for fingerprint in self._iter_fingerprints():
            try:
                cert = self.orchestrator.read(validate_fingerprint(fingerprint))
            except BadDataError as e:
                log.warning("Skipping unreadable entry %s: %s", fingerprint, e)
                continue
            # None: removed since the directory was listed
            if cert is not None:
                yield cert
