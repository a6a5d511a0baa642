import math
import numpy as np
import pyarrow as pa

from data_structures.errors import ConfigurationError


def required_length(k: int, n: int, error_rate: float) -> float:
    """Bits needed to hold n items with k hash functions at error_rate
    m = -k*n / ln(1 - c^(1/k))
    """
    return (-1 * k * n) / math.log1p(-(error_rate ** (1 / k)))


def optimal_sizing(n: int, error_rate: float, salt_count: int) -> tuple:
    """Pick the salt count that needs the shortest filter
    Args:
    n: Number of distinct stored items
    error_rate: Target false positive rate 0 < c < 1
    salt_count: Size of the available salt pool
    Returns:
    (raw_length, k) where raw_length = floor(min m) + 1
    """
    if not error_rate:
        raise ConfigurationError("Error rate not set")
    if not n:
        raise ConfigurationError("No items to size the filter for")
    if not salt_count:
        raise ConfigurationError("No salts have been set")

    min_m = None
    opt_k = None
    for k in range(1, salt_count + 1):
        m = required_length(k, n, error_rate)
        # strict comparison keeps the smallest k on ties
        if min_m is None or m < min_m:
            min_m = m
            opt_k = k
    return int(min_m) + 1, opt_k


def resolve_filter_length(raw_length: int, min_length: int, previous: int) -> int:
    """Grow the filter to raw_length, never below min_length or previous"""
    if raw_length > min_length:
        return max(raw_length, previous)
    return max(min_length, previous)


def _as_bytes(value) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


def fold_digest(digest: bytes) -> int:
    """XOR-fold a digest into one 32-bit integer

    The digest is read as consecutive big-endian 32-bit words, so a
    160-bit SHA-1 digest yields five words.
    """
    words = np.frombuffer(digest, dtype=">u4")
    return int(np.bitwise_xor.reduce(words)) if len(words) else 0


class SaltedHasher:
    """Salted hash family mapping keys to bit offsets of a fixed-width filter.

    Every active salt stands in for one hash function: the wide digest of
    key + salt is XOR-folded to 32 bits and reduced modulo the filter
    length. A key's fingerprint is the set of those offsets, so building
    and checking cost one digest per salt per key.

    Attributes:
        salts (tuple): Active salts, one bit is set per salt.
        filter_length (int): Width of the filter in bits.
        digest: Adapter providing wide_digest().

    Example:
        >>> hasher = SaltedHasher(["s1", "s2", "s3"], 1000, Sha1Digest())
        >>> bits = hasher.build_array(["key-1", "key-2"])
        >>> hasher.contains("key-1", bits)
        True

    """
    def __init__(self, salts, filter_length: int, digest):
        if not filter_length or filter_length <= 0:
            raise ConfigurationError("Filter length is undefined")
        if not salts:
            raise ConfigurationError("No salts found, cannot make bitmask")
        self.salts = tuple(_as_bytes(salt) for salt in salts)
        self.filter_length = filter_length
        self.digest = digest

    def offsets(self, key: str) -> np.ndarray:
        """One bit offset per salt for key
        Args:
        key: Canonical key
        Returns:
        int64 array of len(salts) offsets, duplicates allowed
        """
        key_bytes = _as_bytes(key)
        return np.array([
            fold_digest(self.digest.wide_digest(key_bytes + salt)) % self.filter_length
            for salt in self.salts
        ], dtype=np.int64)

    def bitmask(self, key: str) -> pa.BooleanArray:
        """Fingerprint key as a filter_length-wide boolean array"""
        mask = np.zeros(self.filter_length, dtype=bool)
        # colliding offsets from different salts simply overlap
        mask[self.offsets(key)] = True
        return pa.array(mask, type=pa.bool_())

    def build_array(self, keys) -> np.ndarray:
        """Set every key's offsets in one all-false numpy vector
        Args:
        keys: Canonical keys to store
        Returns:
        numpy bool array of filter_length entries
        """
        bits = np.zeros(self.filter_length, dtype=bool)
        offsets = [self.offsets(key) for key in keys]
        if offsets:
            bits[np.concatenate(offsets)] = True
        return bits

    def build(self, keys) -> pa.BooleanArray:
        return pa.array(self.build_array(keys), type=pa.bool_())

    def contains(self, key: str, bits: np.ndarray) -> bool:
        """True when every bit of key's fingerprint is set in bits
        Args:
        key: Canonical key
        bits: numpy bool view of a filter built with the same salts and length
        """
        return bool(bits[self.offsets(key)].all())


def count_on_bits(vector: pa.BooleanArray) -> int:
    return int(np.count_nonzero(vector.to_numpy(zero_copy_only=False)))


def pack_bits(vector: pa.BooleanArray) -> bytes:
    """Little-endian bit packing: bit i lives in byte i // 8 at position i % 8"""
    return np.packbits(vector.to_numpy(zero_copy_only=False), bitorder="little").tobytes()


def unpack_bits(data: bytes, filter_length: int) -> np.ndarray:
    bits = np.unpackbits(np.frombuffer(data, dtype=np.uint8), bitorder="little")
    return bits[:filter_length].astype(bool)


def false_positive_rate(k: int, n: int, m: int) -> float:
    """Expected false positive rate (1 - e^(-kn/m))^k"""
    return (1 - math.exp(-k * n / m)) ** k
