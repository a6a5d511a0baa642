class BloomFilterError(Exception):
    """Base class for salted Bloom filter errors"""


class ValidationError(BloomFilterError, ValueError):
    """A configuration value supplied by the caller is out of bounds"""


class ConfigurationError(BloomFilterError, RuntimeError):
    """An operation needs state that has not been established yet,
    e.g. building before any salts were set"""
