"""
certd_core.bundle
-----------------
Minimal certificate format for the shared directory:

- Ed25519 public key (base64) identifying the certificate
- User IDs bound to the key
- Canonical JSON encoding, so equal bundles are equal bytes

``read_bundle`` is a CertificateReader and ``merge_bundles`` a
MergeCallback. Parsing checks that the key decodes as an Ed25519 public
key; no signatures are involved.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple
import binascii, json

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ed25519

from .constants import BUNDLE_KEY_TYPE, BUNDLE_VERSION
from .errors import BadDataError
from .storage.models import Certificate
from .utils import b64d, b64e, canonical_json


# --------- Ed25519 key material ----------
def ed25519_generate() -> Tuple[bytes, bytes]:
    sk = ed25519.Ed25519PrivateKey.generate()
    pk = sk.public_key()
    return sk.private_bytes_raw(), pk.public_bytes_raw()


def fingerprint_of(pub_raw: bytes) -> str:
    """
    Fingerprint of an Ed25519 public key: SHA-256 over the raw key,
    hex-encoded (64 chars).
    """
    digest = hashes.Hash(hashes.SHA256())
    digest.update(pub_raw)
    return digest.finalize().hex()


def load_public_key(pub_raw: bytes) -> ed25519.Ed25519PublicKey:
    try:
        return ed25519.Ed25519PublicKey.from_public_bytes(pub_raw)
    except ValueError as e:
        raise BadDataError(f"Not an Ed25519 public key: {e}") from e


# --------- Bundle ----------
@dataclass
class KeyBundle:
    pubkey_b64: str
    user_ids: List[str] = field(default_factory=list)
    version: str = BUNDLE_VERSION
    key_type: str = BUNDLE_KEY_TYPE

    @property
    def pubkey_raw(self) -> bytes:
        return b64d(self.pubkey_b64)

    @property
    def fingerprint(self) -> str:
        return fingerprint_of(self.pubkey_raw)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "key_type": self.key_type,
            "pubkey": self.pubkey_b64,
            "user_ids": list(self.user_ids),
        }

    def to_bytes(self) -> bytes:
        return canonical_json(self.to_dict())

    def to_certificate(self) -> Certificate:
        return Certificate(
            data=self.to_bytes(),
            fingerprint=self.fingerprint,
            user_ids=tuple(self.user_ids),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeyBundle":
        if not isinstance(data, dict):
            raise BadDataError("Key bundle must be a JSON object")
        if data.get("key_type", BUNDLE_KEY_TYPE) != BUNDLE_KEY_TYPE:
            raise BadDataError(f"Unsupported key type: {data.get('key_type')!r}")
        pubkey = data.get("pubkey")
        if not isinstance(pubkey, str):
            raise BadDataError("Key bundle is missing 'pubkey'")
        user_ids = data.get("user_ids", [])
        if not isinstance(user_ids, list) or not all(isinstance(u, str) for u in user_ids):
            raise BadDataError("'user_ids' must be a list of strings")
        try:
            raw = b64d(pubkey)
        except (binascii.Error, ValueError) as e:
            raise BadDataError(f"'pubkey' is not valid base64: {e}") from e
        load_public_key(raw)
        return cls(
            pubkey_b64=pubkey,
            user_ids=list(user_ids),
            version=str(data.get("version", BUNDLE_VERSION)),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "KeyBundle":
        try:
            decoded = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BadDataError(f"Key bundle is not valid JSON: {e}") from e
        return cls.from_dict(decoded)

    @staticmethod
    def make(pub_raw: bytes, user_ids: Iterable[str] = ()) -> "KeyBundle":
        """Factory to create a bundle for a raw Ed25519 public key."""
        load_public_key(pub_raw)
        return KeyBundle(pubkey_b64=b64e(pub_raw), user_ids=list(user_ids))


def make_bundle(pub_raw: bytes, user_ids: Iterable[str] = ()) -> bytes:
    return KeyBundle.make(pub_raw, user_ids).to_bytes()


# --------- Reader / merge callbacks ----------
def read_bundle(data: bytes) -> Certificate:
    return KeyBundle.from_bytes(data).to_certificate()


def keep_incoming(existing: Optional[Certificate], incoming: Certificate) -> Certificate:
    return incoming


def merge_bundles(existing: Optional[Certificate], incoming: Certificate) -> Certificate:
    """Union of user IDs, existing order first. Rejects a different key."""
    if existing is None:
        return incoming
    if existing.fingerprint != incoming.fingerprint:
        raise BadDataError(
            f"Cannot merge certificate {incoming.fingerprint} into {existing.fingerprint}"
        )
    old = KeyBundle.from_bytes(existing.data)
    new = KeyBundle.from_bytes(incoming.data)
    merged_ids = list(old.user_ids)
    merged_ids.extend(uid for uid in new.user_ids if uid not in merged_ids)
    old.user_ids = merged_ids
    return old.to_certificate()
