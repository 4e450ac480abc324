# certd_core/constants.py

# Fingerprint formats: v4 (SHA-1, 160 bit) and v6 (SHA-256, 256 bit)
FINGERPRINT_LENGTHS = (40, 64)
HEX_DIGITS = frozenset("0123456789abcdef")

# Changing this invalidates every existing store layout.
SHARD_PREFIX_LENGTH = 2

LOCK_SUFFIX = ".lock"
TEMP_SUFFIX = ".tmp"

ABSENT_TAG = "absent"
TAG_MODES = ("metadata", "digest")
DEFAULT_TAG_MODE = "metadata"
DEFAULT_LOCK_POLL_INTERVAL = 0.05

DEFAULT_PROVIDER = "filesystem"
STORE_DIRNAME = "pgp.cert.d"

BUNDLE_VERSION = "1.0"
BUNDLE_KEY_TYPE = "ed25519"
