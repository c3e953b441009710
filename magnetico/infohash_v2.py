"""32-byte SHA2-256 info hashes (BitTorrent v2)."""

from __future__ import annotations

import binascii
import hashlib
from dataclasses import dataclass

from magnetico.infohash import SIZE as SHORT_SIZE
from magnetico.infohash import InfoHash

SIZE = 32

_SHA2_256_CODE = 0x12
_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


@dataclass(frozen=True)
class InfoHashV2:
    """A 32-byte SHA2-256 hash."""

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

    def to_short(self) -> InfoHash:
        """Truncate to 20 bytes for DHT and tracker use."""
        return InfoHash(self.digest[:SHORT_SIZE])

    def to_multihash(self) -> bytes:
        """Encode the hash as a SHA2-256 multihash."""
        return bytes((_SHA2_256_CODE, SIZE)) + self.digest


def parse_infohash_v2(text: str) -> InfoHashV2:
    """Decode a 64-character hex string, raising ValueError if it is malformed."""
    if len(text) != 2 * SIZE:
        raise ValueError(f"hash hex string has bad length: {len(text)}")
    try:
        digest = binascii.unhexlify(text)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid hex in hash string: {exc}") from exc
    return InfoHashV2(digest)


def from_hex_string(text: str) -> InfoHashV2:
    """Decode a hex string, returning the zero hash when it is malformed."""
    try:
        return parse_infohash_v2(text)
    except ValueError:
        return InfoHashV2()


def hash_bytes(data: bytes) -> InfoHashV2:
    """Return the SHA-256 hash of ``data``."""
    return InfoHashV2(hashlib.sha256(data).digest())


def base58_encode(data: bytes) -> str:
    """Encode bytes with the Bitcoin base58 alphabet."""
    stripped = data.lstrip(b"\x00")
    leading_zeros = len(data) - len(stripped)
    number = int.from_bytes(stripped, "big")
    digits = []
    while number:
        number, remainder = divmod(number, 58)
        digits.append(_BASE58_ALPHABET[remainder])
    return "1" * leading_zeros + "".join(reversed(digits))