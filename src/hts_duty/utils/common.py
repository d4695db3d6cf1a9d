"""
Common utility functions used across the HTS duty engine.
"""
import re
from dataclasses import dataclass
from typing import Dict, Tuple

from hts_duty.models.errors import InvalidCodeFormat

_NON_DIGITS = re.compile(r'\D')


@dataclass(frozen=True)
class CodeVariations:
    """Lookup forms of a canonical code, most specific first."""
    dotted: str
    digits: str
    heading: str
    heading_dotted: str

    @property
    def full_code(self) -> Tuple[str, str]:
        return (self.dotted, self.digits)

    @property
    def heading_prefix(self) -> Tuple[str, str]:
        return (self.heading_dotted, self.heading)

    def all(self) -> Tuple[str, ...]:
        return self.full_code + self.heading_prefix


def extract_digits(code: str) -> str:
    """Strip every non-digit character."""
    return _NON_DIGITS.sub('', str(code or ''))


def normalize_hts_code(code: str) -> str:
    """
    Normalize an HS-code-like string to canonical ``NNNN.NN.NN`` form.

    Eight or more digits keep the first eight, six or seven keep the
    subheading and pad the statistical suffix with ``00``, four or five keep
    the heading and pad with ``00.00``.

    Raises:
        InvalidCodeFormat: fewer than four digits are present, or the
            chapter is 00 (chapters run 01 to 99)
    """
    digits = extract_digits(code)

    if len(digits) >= 8:
        digits = digits[:8]
    elif len(digits) >= 6:
        digits = digits[:6] + '00'
    elif len(digits) >= 4:
        digits = digits[:4] + '0000'
    else:
        raise InvalidCodeFormat(str(code))

    if digits[:2] == '00':
        raise InvalidCodeFormat(str(code), "chapter 00 does not exist")

    return f"{digits[:4]}.{digits[4:6]}.{digits[6:8]}"


def code_variations(canonical_code: str) -> CodeVariations:
    """Build the variation set used to match loosely formatted source cells."""
    dotted = normalize_hts_code(canonical_code)
    digits = extract_digits(dotted)
    return CodeVariations(
        dotted=dotted,
        digits=digits,
        heading=digits[:6],
        heading_dotted=f"{digits[:4]}.{digits[4:6]}",
    )


def chapter_of(canonical_code: str) -> int:
    """Two-digit chapter of a canonical code."""
    return int(extract_digits(canonical_code)[:2])


def extract_chapter_info(hts_code: str) -> Dict[str, str]:
    """Extract chapter and heading information from HTS code."""
    digits = extract_digits(hts_code)
    return {
        'chapter': digits[:2] if len(digits) >= 2 else '',
        'heading': digits[:4] if len(digits) >= 4 else '',
        'subheading': digits[:6] if len(digits) >= 6 else ''
    }


def validate_hts_code_format(hts_code: str) -> bool:
    """Check whether a code can be normalized."""
    try:
        normalize_hts_code(hts_code)
    except InvalidCodeFormat:
        return False
    return True


def exponential_backoff_delay(retry_count: int, base_delay: float = 1.0) -> float:
    """Calculate exponential backoff delay."""
    return base_delay * (2 ** retry_count)
