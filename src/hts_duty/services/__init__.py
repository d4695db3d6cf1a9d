"""Services module."""
from .cache_service import SQLiteDutyStore, CacheService
from .override_service import OverrideService, build_override_record
from .fallback_service import ChapterFallbackService
from .gpt_service import GPTDutyEstimator, AIDutyEstimate

__all__ = [
    'SQLiteDutyStore', 'CacheService', 'OverrideService', 'build_override_record',
    'ChapterFallbackService', 'GPTDutyEstimator', 'AIDutyEstimate',
]
