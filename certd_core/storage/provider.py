# certd_core/storage/provider.py
from __future__ import annotations
import threading
from typing import Iterable, Iterator, Optional

from certd_core.storage.models import Certificate, MergeCallback


class CertificateDirectory:
    """
    Interface shared by every certificate directory provider.

    Lookups raise NotFoundError when nothing is stored under the key.
    Conditional lookups return None when the supplied tag is current.
    """

    def get_by_fingerprint(self, fingerprint: str) -> Certificate: ...
    def get_by_special_name(self, special_name: str) -> Certificate: ...
    def get_by_fingerprint_if_changed(self, fingerprint: str, tag: Optional[str]) -> Optional[Certificate]: ...
    def get_by_special_name_if_changed(self, special_name: str, tag: Optional[str]) -> Optional[Certificate]: ...

    def insert(
        self,
        data,
        merge: MergeCallback,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> Certificate: ...

    def try_insert(self, data, merge: MergeCallback) -> Certificate: ...

    def insert_with_special_name(
        self,
        special_name: str,
        data,
        merge: MergeCallback,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> Certificate: ...

    def try_insert_with_special_name(self, special_name: str, data, merge: MergeCallback) -> Certificate: ...

    def items(self) -> Iterable[Certificate]: ...
    def fingerprints(self) -> Iterable[str]: ...


class RestartableIterable:
    """Finite lazy sequence; each ``iter()`` starts a fresh traversal."""

    def __init__(self, factory) -> None:
        self._factory = factory

    def __iter__(self) -> Iterator:
        return iter(self._factory())
