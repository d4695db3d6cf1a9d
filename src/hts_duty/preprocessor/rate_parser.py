"""
Duty rate text parsing.

Turns human-readable rate text from the tariff schedule ("17.6%", "Free",
"2.1¢/kg", "$1.50/doz") into a canonical ad-valorem fraction. Cent and
dollar amounts have no value or weight basis at parse time, so they are
converted with a flat ``N/100`` proxy and flagged as estimates.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from hts_duty.config.settings import Config


class RateKind(str, Enum):
    FREE = "free"
    AD_VALOREM = "ad_valorem"
    CENTS_PROXY = "cents_proxy"
    DOLLAR_PROXY = "dollar_proxy"


@dataclass(frozen=True)
class ParsedRate:
    """Canonical form of a rate cell."""
    text: str
    percentage: float
    kind: RateKind

    @property
    def is_estimate(self) -> bool:
        return self.kind in (RateKind.CENTS_PROXY, RateKind.DOLLAR_PROXY)


_FREE = re.compile(r'\bfree(?![\w-])', re.IGNORECASE)
_PERCENT = re.compile(r'(\d+(?:\.\d+)?)\s*%')
_CENTS = re.compile(r'(\d+(?:\.\d+)?)\s*¢')
_DOLLARS = re.compile(r'\$\s*(\d+(?:\.\d+)?)')

# A rate cell starts with its rate token; prose that merely mentions a
# percentage ("containing 85% or more by weight") does not.
_RATE_CELL = re.compile(
    r'^\s*(?:free(?![\w-])|\d+(?:\.\d+)?\s*[%¢]|\$\s*\d)',
    re.IGNORECASE,
)


def parse_rate(text: str) -> Optional[ParsedRate]:
    """
    Parse rate text into a fraction.

    Recognized in priority order: "free", ``N%``, ``N¢`` and ``$N``.

    Returns:
        ParsedRate, or None when no rate could be extracted
    """
    if text is None:
        return None
    text = str(text).strip()
    if not text:
        return None

    if _FREE.search(text):
        return ParsedRate(text, 0.0, RateKind.FREE)

    match = _PERCENT.search(text)
    if match:
        return ParsedRate(text, round(float(match.group(1)) / 100, 6), RateKind.AD_VALOREM)

    match = _CENTS.search(text)
    if match:
        return ParsedRate(text, round(float(match.group(1)) / 100, 6), RateKind.CENTS_PROXY)

    match = _DOLLARS.search(text)
    if match:
        return ParsedRate(text, round(float(match.group(1)) * 0.01, 6), RateKind.DOLLAR_PROXY)

    return None


def looks_like_rate(text: str, max_length: int = Config.MAX_RATE_CELL_LENGTH) -> bool:
    """Check whether a whole cell reads as rate text."""
    if not text or len(text) > max_length:
        return False
    return bool(_RATE_CELL.match(text))


def parse_rate_cell(text: str, max_length: int = Config.MAX_RATE_CELL_LENGTH) -> Optional[ParsedRate]:
    """Parse a workbook cell only if it reads as rate text."""
    if not looks_like_rate(text, max_length):
        return None
    return parse_rate(text)
