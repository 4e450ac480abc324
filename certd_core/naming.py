"""
certd_core.naming
-----------------
Classification of lookup keys. Pure functions, no I/O.

A key is either a fingerprint (lowercase hex of an exact supported
length) or one of the reserved special names.
"""

from __future__ import annotations
from enum import Enum
from typing import Union

from .constants import FINGERPRINT_LENGTHS, HEX_DIGITS
from .errors import NamingError


class SpecialName(Enum):
    TRUST_ROOT = "trust-root"


class Fingerprint(str):
    """A validated, lowercase fingerprint."""
    __slots__ = ()


Key = Union[Fingerprint, SpecialName]


def is_fingerprint(value: object) -> bool:
    if not isinstance(value, str):
        return False
    lowered = value.lower()
    return len(lowered) in FINGERPRINT_LENGTHS and set(lowered) <= HEX_DIGITS


def validate_fingerprint(value: object) -> Fingerprint:
    if not isinstance(value, str):
        raise NamingError(f"Fingerprint must be a string, got {type(value).__name__}")
    if len(value) not in FINGERPRINT_LENGTHS:
        raise NamingError(
            f"Fingerprint has length {len(value)}, expected one of {FINGERPRINT_LENGTHS}: {value!r}"
        )
    lowered = value.lower()
    if not set(lowered) <= HEX_DIGITS:
        raise NamingError(f"Fingerprint contains non-hex characters: {value!r}")
    return Fingerprint(lowered)


def validate_special_name(value: object) -> SpecialName:
    if isinstance(value, SpecialName):
        return value
    if isinstance(value, str):
        try:
            return SpecialName(value)
        except ValueError:
            pass
    raise NamingError(f"Unknown special name: {value!r}")


def classify_name(value: object) -> Key:
    """Return a Fingerprint or SpecialName for ``value``.

    Special names win over fingerprints, though no reserved name is hex.
    """
    if isinstance(value, SpecialName):
        return value
    if isinstance(value, str) and value in SpecialName._value2member_map_:
        return SpecialName(value)
    return validate_fingerprint(value)


def key_label(key: Key) -> str:
    return key.value if isinstance(key, SpecialName) else str(key)
