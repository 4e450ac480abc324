# certd_core/storage/__init__.py

from .models import Certificate, CertificateReader, MergeCallback
from .provider import CertificateDirectory
from .providers.filesystem_provider import FilesystemCertificateDirectory
from .providers.memory_provider import InMemoryCertificateDirectory
from certd_core.constants import (
    DEFAULT_LOCK_POLL_INTERVAL,
    DEFAULT_PROVIDER,
    DEFAULT_TAG_MODE,
    STORE_DIRNAME,
)
from pathlib import Path
import os

import platformdirs


def default_base_dir() -> Path:
    """Platform default location of the shared certificate directory."""
    return Path(platformdirs.user_data_dir(STORE_DIRNAME, appauthor=False, roaming=True))


def resolve_base_dir(config: dict | None = None) -> Path:
    config = config or {}
    raw = (
        config.get("base_dir")
        or os.getenv("CERTD_BASE_DIR")
        or os.getenv("PGP_CERT_D")
    )
    if raw:
        return Path(raw).expanduser()
    return default_base_dir()


def load_certificate_directory(reader: CertificateReader | None = None, config: dict | None = None) -> CertificateDirectory:
    """
    Factory resolver for the runtime certificate directory.

    For now:
        - filesystem (default)
        - memory

    ``reader`` defaults to the key-bundle codec.
    """
    config = config or {}
    if reader is None:
        from certd_core.bundle import read_bundle
        reader = read_bundle

    provider = config.get("provider") or os.getenv("CERTD_STORAGE_PROVIDER", DEFAULT_PROVIDER)
    poll_interval = float(
        config.get("lock_poll_interval")
        or os.getenv("CERTD_LOCK_POLL_INTERVAL", DEFAULT_LOCK_POLL_INTERVAL)
    )

    if provider == "memory":
        return InMemoryCertificateDirectory(reader, lock_poll_interval=poll_interval)

    if provider == "filesystem":
        tag_mode = config.get("tag_mode") or os.getenv("CERTD_TAG_MODE", DEFAULT_TAG_MODE)
        return FilesystemCertificateDirectory(
            resolve_base_dir(config),
            reader,
            tag_mode=tag_mode,
            lock_poll_interval=poll_interval,
        )
    raise ValueError(f"Unknown storage provider: {provider}")


__all__ = [
    "Certificate",
    "CertificateReader",
    "MergeCallback",
    "CertificateDirectory",
    "FilesystemCertificateDirectory",
    "InMemoryCertificateDirectory",
    "default_base_dir",
    "resolve_base_dir",
    "load_certificate_directory",
]
