import pytest


class TailDigest:
    """Digest whose wide digest is the last 4 input bytes, so a 4-byte salt
    pins the bit offset to int(salt) % filter_length"""
    def canonical_encode(self, data: bytes) -> str:
        return data.hex()

    def wide_digest(self, data: bytes) -> bytes:
        return data[-4:]


@pytest.fixture
def tail_digest():
    return TailDigest()
