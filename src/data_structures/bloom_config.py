from dataclasses import dataclass, fields

from data_structures.errors import ValidationError


@dataclass
class BloomConfig:
    """Construction options for a salted Bloom filter.

    Attributes:
        error_rate (float): Target false positive rate, strictly between 0 and 1.
        min_length (int): Smallest filter length in bits.
        filter_length (int): Starting filter length in bits, raised to
                             min_length when smaller.

    """
    error_rate: float = 0.001
    min_length: int = 20
    filter_length: int = 20

    def __post_init__(self):
        self.validate()
        self.filter_length = max(self.filter_length, self.min_length)

    def validate(self):
        """Raise ValidationError for out of bounds values"""
        validate_error_rate(self.error_rate)
        for name in ("min_length", "filter_length"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValidationError(f"{name} must be a positive integer, got {value!r}")

    @classmethod
    def from_options(cls, **options) -> "BloomConfig":
        """Build a config from keyword overrides, rejecting unknown names"""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ValidationError(f"Unknown filter options: {', '.join(unknown)}")
        return cls(**options)


def validate_error_rate(rate) -> float:
    if isinstance(rate, bool) or not isinstance(rate, (int, float)) or not 0 < rate < 1:
        raise ValidationError(f"Out of bounds value for error rate: {rate!r}")
    return float(rate)
