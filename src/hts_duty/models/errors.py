"""
Error taxonomy for duty rate resolution.
"""


class DutyEngineError(Exception):
    """Base class for all engine errors."""


class InvalidCodeFormat(DutyEngineError):
    """Raised when a code carries fewer than four digits or names chapter 00."""

    def __init__(self, raw_code: str, reason: str = "need at least 4 digits"):
        self.raw_code = raw_code
        self.reason = reason
        super().__init__(f"Invalid HS code format: {raw_code!r} ({reason})")


class SourceUnavailable(DutyEngineError):
    """Raised when the reference workbook is missing or cannot be parsed."""


class EstimatorUnavailable(DutyEngineError):
    """Raised inside the AI adapter on network, timeout or schema failures."""


class StoreUnavailable(DutyEngineError):
    """Raised when the persistent key/value store cannot be read or written."""
