"""SPINWHEEL — Error types."""


class SpinWheelError(Exception):
    """Base for all spinwheel errors."""


class PersistenceCorrupt(SpinWheelError):
    """Stored bytes under a key could not be decoded.

    Raised by the decoders and always caught inside the stores, which fall
    back to the default/empty value.
    """

    def __init__(self, key: str, reason: str):
        super().__init__(f"Corrupt value at '{key}': {reason}")
        self.key = key
        self.reason = reason


class StaleWriteError(SpinWheelError):
    """A conditional write found a newer version than the caller read."""

    def __init__(self, key: str, expected: int, actual: int):
        super().__init__(f"Stale write to '{key}': expected v{expected}, found v{actual}")
        self.key = key
        self.expected = expected
        self.actual = actual


class ConfigValidationError(SpinWheelError, ValueError):
    """An admin-supplied configuration failed validation. Nothing was saved."""
