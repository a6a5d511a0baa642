import enum
import logging
from collections import Counter
from dataclasses import asdict, dataclass
from typing import List, Optional

import pyarrow as pa

from algorithms import bloom_filter as bf
from data_structures.bloom_config import BloomConfig, validate_error_rate
from data_structures.digest import DigestAdapter, Sha1Digest, normalize_key
from data_structures.errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)


class FilterState(enum.Enum):
    DIRTY = "dirty"
    BUILT = "built"


@dataclass(frozen=True)
class FilterSnapshot:
    """Everything needed to repeat membership checks elsewhere.

    Attributes:
        filter_length (int): Width of the filter in bits.
        salts (tuple): Active salts the filter was built with.
        bits (bytes): Little-endian bit-packed filter vector.

    """
    filter_length: int
    salts: tuple
    bits: bytes

    def __post_init__(self):
        if len(self.bits) * 8 < self.filter_length:
            raise ValidationError(
                f"{len(self.bits)} bytes cannot hold {self.filter_length} bits"
            )

    def check_one(self, key: str, digest: Optional[DigestAdapter] = None) -> bool:
        """Test an identifier or canonical key against the snapshot"""
        digest = digest or Sha1Digest()
        hasher = bf.SaltedHasher(self.salts, self.filter_length, digest)
        bits = bf.unpack_bits(self.bits, self.filter_length)
        return hasher.contains(normalize_key(key, digest), bits)


class SaltedBloomFilter:
    """Bloom filter over registered identifiers built from a pool of salts.

    Identifiers are email addresses, arbitrary strings, or keys that are
    already canonical digests. Anything containing an "@" is hashed into its
    canonical form before it is stored, so the built filter never carries the
    raw identifier. Each active salt plays the part of one hash function:
    the wide digest of key + salt is XOR-folded to 32 bits and reduced
    modulo the filter length to pick one bit.

    The filter is rebuilt lazily. Every mutation marks it dirty, and the
    next check (or an explicit build()) resizes the filter for the current
    item count and error rate, then rehashes every stored key from scratch.
    The filter length only ever grows.

    Attributes:
        error_rate (float): Target false positive rate.
        min_length (int): Floor for the filter length.
        filter_length (int): Current filter length in bits.
        state (FilterState): DIRTY until a build succeeds.
        bit_vector (pyarrow.BooleanArray): The built filter, None before any build.

    Example:
        >>> bloom = SaltedBloomFilter(min_length=1000, error_rate=0.01)
        >>> bloom.set_salts(["s1", "s2", "s3"])
        3
        >>> bloom.add("a@example.com")
        >>> bloom.check_one("a@example.com")
        True
        >>> bloom.check_one("z@nowhere.test")
        False  # With high probability

    """
    def __init__(self, digest: Optional[DigestAdapter] = None, **options):
        config = BloomConfig.from_options(**options)
        self.digest = digest or Sha1Digest()
        self._error_rate = config.error_rate
        self._min_length = config.min_length
        self._filter_length = config.filter_length
        self._contents = Counter()
        self._available_salts = None
        self._salts = ()
        self._vector = None
        self._bits = None
        self._hasher = None
        self._built_items = 0
        self._built_k = 0
        self.state = FilterState.DIRTY

    @classmethod
    def from_config(cls, config: BloomConfig,
                    digest: Optional[DigestAdapter] = None) -> "SaltedBloomFilter":
        return cls(digest, **asdict(config))

    @property
    def error_rate(self) -> float:
        return self._error_rate

    @property
    def min_length(self) -> int:
        return self._min_length

    @property
    def filter_length(self) -> int:
        return self._filter_length

    @property
    def bit_vector(self) -> Optional[pa.BooleanArray]:
        return self._vector

    @property
    def is_dirty(self) -> bool:
        return self.state is FilterState.DIRTY

    def _mark_dirty(self):
        self.state = FilterState.DIRTY

    def set_error_rate(self, rate: float):
        """Set the target false positive rate, 0 < rate < 1"""
        self._error_rate = validate_error_rate(rate)
        logger.debug("error rate set to %s", self._error_rate)
        self._mark_dirty()

    def set_salts(self, salts) -> int:
        """Replace the salt pool; returns the number of salts"""
        if isinstance(salts, (str, bytes)):
            raise ValidationError("Salts must be a sequence of salts, not a single salt")
        salts = tuple(salts)
        self._available_salts = salts
        self._salts = salts
        logger.debug("salt pool replaced with %d salts", len(salts))
        self._mark_dirty()
        return len(salts)

    def get_salts(self) -> list:
        """Salts in use, trimmed to the optimal count after a build"""
        return list(self._salts)

    def normalize_key(self, key: str) -> str:
        """Raw identifiers become their canonical digest encoding"""
        return normalize_key(key, self.digest)

    def add(self, *keys: str):
        """Register identifiers or canonical keys"""
        if not keys:
            return
        for key in keys:
            self._contents[self.normalize_key(key)] += 1
        self._mark_dirty()

    def count(self, key: str) -> int:
        """How many times key was added"""
        return self._contents[self.normalize_key(key)]

    @property
    def total_added(self) -> int:
        return sum(self._contents.values())

    def __len__(self) -> int:
        return len(self._contents)

    def clear(self):
        """Forget every stored key and the active salts

        The salt pool and filter length are kept, so the next build picks
        its salts again from the same pool.
        """
        self._contents = Counter()
        self._salts = ()
        logger.debug("filter cleared")
        self._mark_dirty()

    def build(self) -> pa.BooleanArray:
        """Resize and rehash every stored key into a new filter vector

        Nothing is replaced unless the whole build succeeds.
        """
        if self._available_salts is None:
            raise ConfigurationError("No salts have been set")

        raw_length, k = bf.optimal_sizing(
            len(self._contents), self._error_rate, len(self._available_salts)
        )
        length = bf.resolve_filter_length(raw_length, self._min_length, self._filter_length)
        salts = self._available_salts[:k]
        hasher = bf.SaltedHasher(salts, length, self.digest)
        bits = hasher.build_array(self._contents)
        vector = pa.array(bits, type=pa.bool_())

        self._filter_length = length
        self._salts = salts
        self._hasher = hasher
        self._bits = bits
        self._vector = vector
        self._built_items = len(self._contents)
        self._built_k = k
        self.state = FilterState.BUILT
        logger.debug(
            "built filter: %d items, %d salts, %d bits", len(self._contents), k, length
        )
        return vector

    def check_all(self, *keys: str) -> List[bool]:
        """Membership of each key, in input order"""
        if self.is_dirty or self._vector is None:
            self.build()
        return [self._hasher.contains(self.normalize_key(key), self._bits) for key in keys]

    def check_one(self, key: str) -> bool:
        return self.check_all(key)[0]

    def __contains__(self, key: str) -> bool:
        return self.check_one(key)

    def on_bits(self) -> Optional[int]:
        """Number of set bits in the built filter, None before any build"""
        if self._vector is None:
            return None
        return bf.count_on_bits(self._vector)

    def to_bytes(self) -> Optional[bytes]:
        if self._vector is None:
            return None
        return bf.pack_bits(self._vector)

    def estimated_false_positive_rate(self) -> Optional[float]:
        """Expected false positive rate of the built filter"""
        if self._vector is None:
            return None
        return bf.false_positive_rate(self._built_k, self._built_items, self._filter_length)

    def snapshot(self) -> FilterSnapshot:
        """Build if needed and capture length, salts and bits together"""
        if self.is_dirty or self._vector is None:
            self.build()
        return FilterSnapshot(self._filter_length, self._salts, bf.pack_bits(self._vector))
