"""FNV-1a 64-bit hashing of strings and single bytes."""

from __future__ import annotations

OFFSET64 = 14695981039346656037
PRIME64 = 1099511628211
_MASK64 = 0xFFFFFFFFFFFFFFFF


def _to_bytes(text: str | bytes) -> bytes:
    if isinstance(text, (bytes, bytearray)):
        return bytes(text)
    try:
        return text.encode("utf-8", "surrogateescape")
    except UnicodeEncodeError:
        return text.encode("utf-8", "surrogatepass")


def hash_new() -> int:
    """Return the initial FNV-1a 64-bit hash value."""
    return OFFSET64


def hash_add(h: int, s: str | bytes) -> int:
    """Fold the UTF-8 bytes of ``s`` into the hash ``h``."""
    for byte in _to_bytes(s):
        h = ((h ^ byte) * PRIME64) & _MASK64
    return h


def hash_add_byte(h: int, b: int) -> int:
    """Fold a single byte into the hash ``h``."""
    return ((h ^ (b & 0xFF)) * PRIME64) & _MASK64