import io
import logging

import pytest

from certd_core.bundle import ed25519_generate, fingerprint_of, keep_incoming, make_bundle, read_bundle
from certd_core.errors import BadDataError, WouldBlockError
from certd_core.naming import SpecialName, validate_fingerprint
from certd_core.storage.merge import MergeOrchestrator, read_input
from certd_core.storage.models import Certificate
from certd_core.storage.paths import PathResolver
from certd_core.storage.writer import AtomicWriter


@pytest.fixture
def orchestrator(tmp_path):
    return MergeOrchestrator(PathResolver(tmp_path), read_bundle, writer=AtomicWriter(fsync=False))


def _entry(orchestrator, fp):
    return orchestrator.resolver.resolve(validate_fingerprint(fp))


def test_first_insert_sees_no_existing(orchestrator, key):
    fp, bundle = key
    seen = []

    def merge(existing, incoming):
        seen.append(existing)
        return incoming

    cert = orchestrator.insert(validate_fingerprint(fp), bundle("alice"), merge)
    assert seen == [None]
    assert cert.fingerprint == fp
    assert cert.tag is not None
    assert _entry(orchestrator, fp).read_bytes() == bundle("alice")


def test_incoming_fingerprint_must_match_key(orchestrator, key):
    _, bundle = key
    _, other_pub = ed25519_generate()
    other = validate_fingerprint(fingerprint_of(other_pub))
    with pytest.raises(BadDataError):
        orchestrator.insert(other, bundle("alice"), keep_incoming)
    assert not orchestrator.resolver.resolve(other).exists()


def test_merge_result_must_match_key(orchestrator, key):
    fp, bundle = key
    _, other_pub = ed25519_generate()

    def hijack(existing, incoming):
        return read_bundle(make_bundle(other_pub, ["mallory"]))

    with pytest.raises(BadDataError):
        orchestrator.insert(validate_fingerprint(fp), bundle("alice"), hijack)
    assert not _entry(orchestrator, fp).exists()


def test_malformed_data_fails_before_merge(orchestrator, key):
    fp, _ = key
    called = []

    def merge(existing, incoming):
        called.append(True)
        return incoming

    with pytest.raises(BadDataError):
        orchestrator.insert(validate_fingerprint(fp), b"{not json", merge)
    assert called == []


def test_value_error_from_merge_becomes_bad_data(orchestrator, key, caplog):
    fp, bundle = key
    orchestrator.insert(validate_fingerprint(fp), bundle("alice"), keep_incoming)
    before = _entry(orchestrator, fp).read_bytes()

    def reject(existing, incoming):
        raise ValueError("revoked upstream")

    with caplog.at_level(logging.WARNING, logger="certd"):
        with pytest.raises(BadDataError, match="revoked upstream"):
            orchestrator.insert(validate_fingerprint(fp), bundle("bob"), reject)
    assert _entry(orchestrator, fp).read_bytes() == before
    assert "Merge rejected" in caplog.text


def test_merge_must_return_certificate(orchestrator, key):
    fp, bundle = key
    with pytest.raises(BadDataError):
        orchestrator.insert(validate_fingerprint(fp), bundle("alice"), lambda e, i: i.data)


def test_unchanged_merge_skips_commit(orchestrator, key):
    fp, bundle = key
    first = orchestrator.insert(validate_fingerprint(fp), bundle("alice"), keep_incoming)
    again = orchestrator.insert(validate_fingerprint(fp), bundle("alice"), keep_incoming)
    assert again.tag == first.tag


def test_special_name_accepts_any_fingerprint(orchestrator, key):
    fp, bundle = key
    cert = orchestrator.insert(SpecialName.TRUST_ROOT, bundle("root"), keep_incoming)
    assert cert.fingerprint == fp
    assert orchestrator.read(SpecialName.TRUST_ROOT).data == bundle("root")


def test_non_blocking_insert_when_locked(orchestrator, key):
    fp, bundle = key
    k = validate_fingerprint(fp)
    with orchestrator.locks.acquire(orchestrator.resolver.lock_path(k)):
        with pytest.raises(WouldBlockError):
            orchestrator.insert(k, bundle("alice"), keep_incoming, blocking=False)
    assert not _entry(orchestrator, fp).exists()


def test_commit_is_logged(orchestrator, key, caplog):
    fp, bundle = key
    with caplog.at_level(logging.INFO, logger="certd"):
        orchestrator.insert(validate_fingerprint(fp), bundle("alice"), keep_incoming)
    assert f"Committed {fp}" in caplog.text


def test_read_input_accepts_streams():
    assert read_input(io.BytesIO(b"abc")) == b"abc"
    assert read_input(bytearray(b"abc")) == b"abc"
    with pytest.raises(BadDataError):
        read_input(io.StringIO("abc"))
    with pytest.raises(BadDataError):
        read_input(123)


def test_reader_must_return_certificate(tmp_path, key):
    fp, bundle = key
    o = MergeOrchestrator(PathResolver(tmp_path), lambda raw: {"data": raw}, writer=AtomicWriter(fsync=False))
    with pytest.raises(BadDataError):
        o.insert(validate_fingerprint(fp), bundle("alice"), keep_incoming)


def test_stored_entry_for_wrong_key_is_bad_data(orchestrator, key):
    fp, bundle = key
    _, other_pub = ed25519_generate()
    other = validate_fingerprint(fingerprint_of(other_pub))
    AtomicWriter(fsync=False).commit(orchestrator.resolver.resolve(other), bundle("alice"))
    with pytest.raises(BadDataError):
        orchestrator.read(other)


def test_certificate_is_immutable():
    cert = Certificate(data=b"x", fingerprint="ab" * 20)
    with pytest.raises(AttributeError):
        cert.data = b"y"
    assert cert.with_tag("t").tag == "t"
    assert cert.tag is None


def test_insert_removes_orphaned_temp_files(orchestrator, key, caplog):
    fp, bundle = key
    entry = _entry(orchestrator, fp)
    entry.parent.mkdir(parents=True)
    orphan = entry.parent / f".{entry.name}.dead01.tmp"
    orphan.write_bytes(b"interrupted write")

    with caplog.at_level(logging.WARNING, logger="certd"):
        orchestrator.insert(validate_fingerprint(fp), bundle("alice"), keep_incoming)
    assert not orphan.exists()
    assert entry.read_bytes() == bundle("alice")
    assert "Removed stale temp files" in caplog.text
