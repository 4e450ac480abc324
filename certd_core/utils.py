"""
certd_core.utils
----------------
Lightweight helpers for base64, hashing and canonical JSON serialization.
Canonical JSON keeps stored bundles byte-stable across merges.
"""

from __future__ import annotations
import base64, json, hashlib
from typing import Any, Dict


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")


def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"), validate=True)


def canonical_json(obj: Dict[str, Any]) -> bytes:
    # Deterministic, minimal JSON
    return json.dumps(obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False).encode("utf-8")


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
