"""Utils module."""
from .common import (
    CodeVariations,
    normalize_hts_code,
    code_variations,
    chapter_of,
    extract_digits,
    extract_chapter_info,
    validate_hts_code_format,
    exponential_backoff_delay,
)
from .logging_utils import setup_logger, log_resolution_attempt, log_tier_hit, log_tier_miss

__all__ = [
    'CodeVariations',
    'normalize_hts_code',
    'code_variations',
    'chapter_of',
    'extract_digits',
    'extract_chapter_info',
    'validate_hts_code_format',
    'exponential_backoff_delay',
    'setup_logger',
    'log_resolution_attempt',
    'log_tier_hit',
    'log_tier_miss',
]
