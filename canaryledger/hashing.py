"""
Canonical encoding and hashing helpers for the canary ledger.

Canonical JSON (sorted keys, no whitespace, UTF-8) is the byte form that
event-log entries and signature challenges are hashed and signed over.
"""

import base64
import hashlib
import hmac
import json
from typing import Any, Optional, Union


def canonicalize(obj: Any) -> bytes:
    """
    Convert object to canonical JSON bytes.

    Canonical JSON:
    - Lexicographically sorted keys
    - No whitespace
    - UTF-8 encoded
    """
    s = json.dumps(obj, sort_keys=True, separators=(',', ':'), ensure_ascii=False)
    return s.encode('utf-8')


def sha256_hex(data: Union[bytes, str]) -> str:
    """Compute SHA-256 hash and return as hex string."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def chain_entry_hash(prev_entry_hash: Optional[str], payload_hash: str) -> str:
    """
    Compute the hash chain entry hash.

    Links an entry to its predecessor; the first entry links to the empty
    string.

    Args:
        prev_entry_hash: Hash of the previous entry (or None for first)
        payload_hash: Hash of the current payload

    Returns:
        SHA-256 hex of the concatenated hashes
    """
    data = (prev_entry_hash or "").encode("utf-8") + payload_hash.encode("utf-8")
    return sha256_hex(data)


def b64e(b: bytes) -> str:
    """Base64 encode bytes to string."""
    return base64.b64encode(b).decode('ascii')


def b64d(s: str) -> bytes:
    """Base64 decode string to bytes (strict)."""
    return base64.b64decode(s.encode('ascii'), validate=True)


def constant_time_compare(a: Union[str, bytes], b: Union[str, bytes]) -> bool:
    """Compare two strings/bytes in constant time."""
    if isinstance(a, str):
        a = a.encode('utf-8')
    if isinstance(b, str):
        b = b.encode('utf-8')
    return hmac.compare_digest(a, b)


def mask_sensitive(value: Union[str, bytes], visible_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only the last N characters.
    Bytes are rendered as hex first. Useful for logging.
    """
    if isinstance(value, bytes):
        value = value.hex()
    if len(value) <= visible_chars:
        return '*' * len(value)
    return '*' * (len(value) - visible_chars) + value[-visible_chars:]
