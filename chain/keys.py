"""Private key format checks.

Only the textual format is verified here (base58 payload and checksum where
it can be computed with ``hashlib`` sha256). Signing itself is delegated to
the wallet daemon.
"""

import hashlib

import base58

LEGACY_WIF_VERSION = 0x80
K1_PREFIX = "PVT_K1_"


def _is_valid_legacy_wif(key: str) -> bool:
    try:
        raw = base58.b58decode(key)
    except ValueError:
        return False
    if len(raw) != 37 or raw[0] != LEGACY_WIF_VERSION:
        return False
    payload, checksum = raw[:-4], raw[-4:]
    digest = hashlib.sha256(hashlib.sha256(payload).digest()).digest()
    return digest[:4] == checksum


def _is_valid_k1(key: str) -> bool:
    try:
        raw = base58.b58decode(key[len(K1_PREFIX):])
    except ValueError:
        return False
    # 32 byte secret + 4 byte ripemd160 checksum
    return len(raw) == 36


def is_valid_private_key(key: str) -> bool:
    """Return ``True`` for a well-formed legacy WIF or ``PVT_K1_`` key."""
    if not key or not isinstance(key, str):
        return False
    key = key.strip()
    if key.startswith(K1_PREFIX):
        return _is_valid_k1(key)
    return _is_valid_legacy_wif(key)
