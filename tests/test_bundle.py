import hashlib
import json

import pytest

from certd_core.bundle import (
    KeyBundle,
    ed25519_generate,
    fingerprint_of,
    keep_incoming,
    make_bundle,
    merge_bundles,
    read_bundle,
)
from certd_core.errors import BadDataError
from certd_core.naming import is_fingerprint
from certd_core.utils import b64e


def test_fingerprint_is_sha256_of_raw_key():
    _, pub = ed25519_generate()
    fp = fingerprint_of(pub)
    assert fp == hashlib.sha256(pub).hexdigest()
    assert is_fingerprint(fp)


def test_read_bundle():
    _, pub = ed25519_generate()
    cert = read_bundle(make_bundle(pub, ["alice"]))
    assert cert.fingerprint == fingerprint_of(pub)
    assert cert.user_ids == ("alice",)
    assert cert.tag is None


def test_read_bundle_canonicalizes():
    _, pub = ed25519_generate()
    loose = json.dumps({"user_ids": ["a"], "pubkey": b64e(pub)}, indent=2).encode()
    assert read_bundle(loose).data == make_bundle(pub, ["a"])


@pytest.mark.parametrize("raw", [
    b"",
    b"[]",
    b'{"user_ids": []}',
    b'{"pubkey": "!!!"}',
    b'{"pubkey": "AAAA"}',
])
def test_malformed_bundles(raw):
    with pytest.raises(BadDataError):
        read_bundle(raw)


def test_rejects_other_key_types_and_bad_user_ids():
    _, pub = ed25519_generate()
    doc = KeyBundle.make(pub).to_dict()
    with pytest.raises(BadDataError):
        KeyBundle.from_dict({**doc, "key_type": "rsa"})
    with pytest.raises(BadDataError):
        KeyBundle.from_dict({**doc, "user_ids": "alice"})
    with pytest.raises(BadDataError):
        KeyBundle.make(b"short")


def test_merge_bundles_unions_user_ids():
    _, pub = ed25519_generate()
    a = read_bundle(make_bundle(pub, ["alice", "al"]))
    b = read_bundle(make_bundle(pub, ["bob", "alice"]))
    assert merge_bundles(a, b).user_ids == ("alice", "al", "bob")
    assert merge_bundles(None, b) is b


def test_merge_bundles_rejects_other_key():
    _, pub1 = ed25519_generate()
    _, pub2 = ed25519_generate()
    with pytest.raises(BadDataError):
        merge_bundles(read_bundle(make_bundle(pub1)), read_bundle(make_bundle(pub2)))


def test_keep_incoming():
    _, pub = ed25519_generate()
    a = read_bundle(make_bundle(pub, ["alice"]))
    b = read_bundle(make_bundle(pub, ["bob"]))
    assert keep_incoming(a, b) is b
