import pytest
import pyarrow as pa
import numpy as np
from hypothesis import given, strategies as st

from algorithms.bloom_filter import (
    SaltedHasher, count_on_bits, fold_digest, pack_bits, unpack_bits,
)
from data_structures.digest import Sha1Digest
from data_structures.errors import ConfigurationError


def word(n: int) -> bytes:
    return n.to_bytes(4, "big")


class CountingDigest(Sha1Digest):
    def __init__(self):
        self.calls = 0

    def wide_digest(self, data: bytes) -> bytes:
        self.calls += 1
        return super().wide_digest(data)


class TestFoldDigest:
    def test_single_word_is_big_endian(self):
        assert fold_digest(b"\x12\x34\x56\x78") == 0x12345678

    def test_words_are_xored(self):
        assert fold_digest(word(1) * 2) == 0
        assert fold_digest(word(1) * 5) == 1
        assert fold_digest(word(0xF0) + word(0x0F)) == 0xFF

    def test_sha1_digest_folds_to_32_bits(self):
        digest = Sha1Digest().wide_digest(b"hello")
        assert 0 <= fold_digest(digest) < 2**32

    def test_partial_word_rejected(self):
        with pytest.raises(ValueError):
            fold_digest(b"\x00" * 7)


class TestSaltedHasher:
    def test_one_bit_per_salt(self, tail_digest):
        mask = SaltedHasher([word(3), word(9)], 16, tail_digest).bitmask("k")
        assert isinstance(mask, pa.BooleanArray)
        assert len(mask) == 16
        assert [i for i, bit in enumerate(mask.to_pylist()) if bit] == [3, 9]

    def test_offsets_wrap_modulo_length(self, tail_digest):
        assert SaltedHasher([word(21)], 16, tail_digest).offsets("k").tolist() == [5]

    def test_colliding_salts_merge(self, tail_digest):
        mask = SaltedHasher([word(5), word(21)], 16, tail_digest).bitmask("k")
        assert count_on_bits(mask) == 1

    def test_requires_salts(self, tail_digest):
        with pytest.raises(ConfigurationError):
            SaltedHasher([], 16, tail_digest)

    @pytest.mark.parametrize("length", [None, 0])
    def test_requires_length(self, tail_digest, length):
        with pytest.raises(ConfigurationError):
            SaltedHasher([word(1)], length, tail_digest)

    @given(
        key=st.text(),
        salts=st.lists(st.text(), min_size=1, max_size=10),
        length=st.integers(1, 5000)
    )
    def test_mask_shape(self, key, salts, length):
        hasher = SaltedHasher(salts, length, Sha1Digest())
        mask = hasher.bitmask(key)
        assert len(mask) == length
        assert 1 <= count_on_bits(mask) <= len(salts)
        # same key, same salts, same fingerprint
        assert mask.equals(hasher.bitmask(key))
        assert hasher.contains(key, mask.to_numpy(zero_copy_only=False))


class TestBuild:
    def test_or_of_masks(self, tail_digest):
        vector = SaltedHasher([word(2)], 8, tail_digest).build(["a", "b"])
        assert isinstance(vector, pa.BooleanArray)
        assert vector.to_pylist() == [False, False, True] + [False] * 5

        vector = SaltedHasher([word(1), word(6)], 8, tail_digest).build(["a"])
        assert count_on_bits(vector) == 2

    def test_every_key_is_covered(self):
        hasher = SaltedHasher(["s1", "s2", "s3", "s4"], 2048, Sha1Digest())
        keys = [f"key-{i}" for i in range(200)]
        bits = hasher.build_array(keys)
        for key in keys:
            assert hasher.contains(key, bits)

    def test_build_matches_or_of_bitmasks(self):
        hasher = SaltedHasher(["s1", "s2", "s3"], 512, Sha1Digest())
        keys = [f"key-{i}" for i in range(50)]
        expected = np.zeros(512, dtype=bool)
        for key in keys:
            expected |= hasher.bitmask(key).to_numpy(zero_copy_only=False)
        assert np.array_equal(hasher.build_array(keys), expected)

    def test_cost_is_one_digest_per_salt_per_key(self):
        digest = CountingDigest()
        hasher = SaltedHasher(["s1", "s2", "s3"], 10**6, digest)
        hasher.build_array([f"key-{i}" for i in range(300)])
        assert digest.calls == 900

        digest.calls = 0
        bits = hasher.build_array(["key-1"])
        hasher.contains("key-1", bits)
        assert digest.calls == 6

    def test_empty_vector(self, tail_digest):
        vector = SaltedHasher([word(1)], 12, tail_digest).build([])
        assert len(vector) == 12
        assert count_on_bits(vector) == 0


class TestBitPacking:
    def test_little_endian_layout(self):
        vector = pa.array([False, True, False, False, False, False, False, False, True])
        assert pack_bits(vector) == b"\x02\x01"

    @given(st.lists(st.booleans(), min_size=1, max_size=300))
    def test_unpack_restores_vector(self, bits):
        vector = pa.array(bits, type=pa.bool_())
        restored = unpack_bits(pack_bits(vector), len(bits))
        assert np.array_equal(restored, np.array(bits, dtype=bool))

# --------------------------
# Running Tests
# --------------------------
#if __name__ == "__main__":
#    pytest.main([
#        "-v",
#        "--hypothesis-show-statistics",
#        "--cov=salted-bitmask",
#        "--cov-report=html:coverage"
#    ])
# --------------------------
