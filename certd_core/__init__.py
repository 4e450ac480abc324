"""
CertD Core Package
==================
Shared, file-system backed certificate directory.

Provides:
- Fingerprint / special-name validation
- Sharded on-disk layout with per-entry locks and atomic commits
- Change-detection tags for conditional lookups
- A small Ed25519 key-bundle codec usable as reader and merge callback
"""

from .errors import (
    CertStoreError,
    NamingError,
    BadDataError,
    NotFoundError,
    LockError,
    WouldBlockError,
    LockInterruptedError,
)
from .naming import SpecialName
from .storage import (
    Certificate,
    CertificateDirectory,
    FilesystemCertificateDirectory,
    InMemoryCertificateDirectory,
    load_certificate_directory,
)

__all__ = [
    "CertStoreError",
    "NamingError",
    "BadDataError",
    "NotFoundError",
    "LockError",
    "WouldBlockError",
    "LockInterruptedError",
    "SpecialName",
    "Certificate",
    "CertificateDirectory",
    "FilesystemCertificateDirectory",
    "InMemoryCertificateDirectory",
    "load_certificate_directory",
]
