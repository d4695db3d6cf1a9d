"""
HTS duty rate engine.

Resolves import duty rates for HS codes through a tiered cascade: persistent
cache, curated overrides, the tariff schedule workbook, a chapter-level
statistical fallback and finally an AI estimate.
"""
from hts_duty.classifier.duty_classifier import DutyClassifier
from hts_duty.models import (
    Confidence,
    DutyEngineError,
    DutyQuery,
    DutyRateRecord,
    InvalidCodeFormat,
    Provenance,
    Tier,
    UnresolvedResult,
)
from hts_duty.utils.common import normalize_hts_code
from hts_duty.preprocessor.rate_parser import parse_rate

__version__ = "0.1.0"

__all__ = [
    'DutyClassifier', 'DutyQuery', 'DutyRateRecord', 'UnresolvedResult', 'Provenance',
    'Tier', 'Confidence', 'DutyEngineError', 'InvalidCodeFormat',
    'normalize_hts_code', 'parse_rate',
]
