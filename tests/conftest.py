import pytest

from certd_core.bundle import ed25519_generate, fingerprint_of, make_bundle, read_bundle
from certd_core.storage import FilesystemCertificateDirectory


@pytest.fixture
def store(tmp_path):
    return FilesystemCertificateDirectory(tmp_path / "certd", read_bundle, fsync=False, lock_poll_interval=0.01)


@pytest.fixture
def digest_store(tmp_path):
    return FilesystemCertificateDirectory(
        tmp_path / "certd-digest", read_bundle, tag_mode="digest", fsync=False, lock_poll_interval=0.01
    )


@pytest.fixture
def key():
    """(fingerprint, bundle factory) for a fresh Ed25519 key."""
    _, pub = ed25519_generate()

    def bundle(*user_ids):
        return make_bundle(pub, user_ids)

    return fingerprint_of(pub), bundle
