"""20-byte SHA-1 info hashes (BitTorrent v1)."""

from __future__ import annotations

import binascii
import hashlib
from dataclasses import dataclass

SIZE = 20


@dataclass(frozen=True)
class InfoHash:
    """A 20-byte hash used for info dictionaries and pieces."""

    digest: bytes = bytes(SIZE)

    def __post_init__(self) -> None:
        if len(self.digest) != SIZE:
            raise ValueError(f"info hash must be {SIZE} bytes, got {len(self.digest)}")

    def __bytes__(self) -> bytes:
        return self.digest

    def __str__(self) -> str:
        return self.hex()

    def hex(self) -> str:
        """Return the lower-case hexadecimal form of the hash."""
        return self.digest.hex()

    def is_zero(self) -> bool:
        """Return True if every byte of the hash is zero."""
        return not any(self.digest)


def parse_infohash(text: str) -> InfoHash:
    """Decode a 40-character hex string, raising ValueError if it is malformed."""
    if len(text) != 2 * SIZE:
        raise ValueError(f"hash hex string has bad length: {len(text)}")
    try:
        digest = binascii.unhexlify(text)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid hex in hash string: {exc}") from exc
    return InfoHash(digest)


def from_hex_string(text: str) -> InfoHash:
    """Decode a hex string, returning the zero hash when it is malformed."""
    try:
        return parse_infohash(text)
    except ValueError:
        return InfoHash()


def hash_bytes(data: bytes) -> InfoHash:
    """Return the SHA-1 hash of ``data``."""
    return InfoHash(hashlib.sha1(data).digest())


def hash_bytes_v2(data: bytes) -> InfoHash:
    """Return the SHA-256 hash of ``data`` truncated to 20 bytes."""
    return InfoHash(hashlib.sha256(data).digest()[:SIZE])