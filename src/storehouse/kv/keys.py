"""
Key path encoding for the Redis-backed key-value store.

A key path is a tuple of string segments, e.g. ("users", "u1") or
("users", "email", "a@x.com"). Each segment is percent-encoded so the
separator and glob characters never appear inside a segment, so every key
under a prefix falls in one contiguous lexicographic range. Order across
sibling keys follows the encoded strings, not tuple order: ("a-",) sorts
before ("a", "x").
"""

from typing import Iterable
from urllib.parse import quote, unquote

from storehouse.repository import KeyPath

SEPARATOR = ":"
# First character after SEPARATOR; upper bound of a prefix range.
SEPARATOR_END = chr(ord(SEPARATOR) + 1)


def key_path(segments: Iterable[object]) -> KeyPath:
    """Normalize any sequence of segments into a KeyPath."""
    path = tuple(str(s) for s in segments)
    if not path:
        raise ValueError("Key path must have at least one segment")
    if any(s == "" for s in path):
        raise ValueError(f"Key path segments must not be empty: {path!r}")
    return path


def encode_key(path: Iterable[object]) -> str:
    """Encode a key path into its flat string form."""
    return SEPARATOR.join(quote(s, safe="") for s in key_path(path))


def decode_key(encoded: str | bytes) -> KeyPath:
    """Decode a flat string (or bytes from Redis) back into a key path."""
    if isinstance(encoded, bytes):
        encoded = encoded.decode()
    return tuple(unquote(s) for s in encoded.split(SEPARATOR))


def prefix_range(prefix: Iterable[object]) -> tuple[str, str]:
    """
    Return the ZRANGEBYLEX bounds covering every key strictly under prefix.

    An empty prefix covers the whole keyspace.
    """
    segments = tuple(prefix)
    if not segments:
        return "-", "+"
    encoded = encode_key(segments)
    return f"[{encoded}{SEPARATOR}", f"({encoded}{SEPARATOR_END}"


def starts_with(path: KeyPath, prefix: KeyPath) -> bool:
    return path[: len(prefix)] == prefix
