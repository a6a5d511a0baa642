import base64
import hashlib
from typing import Protocol


class DigestAdapter(Protocol):
    """Digest capability consumed by the filter.

    Two operations are needed: a printable canonical encoding used to turn
    raw identifiers into storage keys, and a fixed-width wide digest used to
    derive bit offsets from (key, salt) pairs.
    """
    def canonical_encode(self, data: bytes) -> str: ...

    def wide_digest(self, data: bytes) -> bytes: ...


class Sha1Digest:
    """SHA-1 adapter: 160-bit wide digest, unpadded base64 canonical keys

    Example:
        >>> len(Sha1Digest().canonical_encode(b"a@example.com"))
        27
    """
    digest_size = 20

    def canonical_encode(self, data: bytes) -> str:
        return base64.b64encode(hashlib.sha1(data).digest()).rstrip(b"=").decode("ascii")

    def wide_digest(self, data: bytes) -> bytes:
        return hashlib.sha1(data).digest()


def normalize_key(key: str, digest: DigestAdapter) -> str:
    """Raw identifiers (anything with an "@") become their canonical digest
    encoding, everything else is taken as already canonical"""
    if "@" in key:
        return digest.canonical_encode(key.encode("utf-8"))
    return key
