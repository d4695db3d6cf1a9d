"""Models module."""
from .duty_models import (
    Tier,
    Confidence,
    Provenance,
    DutyQuery,
    DutyRateRecord,
    UnresolvedResult,
    DETERMINISTIC_TIERS,
)
from .errors import (
    DutyEngineError,
    InvalidCodeFormat,
    SourceUnavailable,
    EstimatorUnavailable,
    StoreUnavailable,
)

__all__ = [
    'Tier', 'Confidence', 'Provenance', 'DutyQuery', 'DutyRateRecord',
    'UnresolvedResult', 'DETERMINISTIC_TIERS',
    'DutyEngineError', 'InvalidCodeFormat', 'SourceUnavailable',
    'EstimatorUnavailable', 'StoreUnavailable',
]
