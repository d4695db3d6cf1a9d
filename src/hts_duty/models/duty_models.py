"""
Data models for HTS duty rate resolution.
"""
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional, Dict, Any


class Tier(str, Enum):
    """Resolution tier that produced a record."""
    CACHE = "Cache"
    OVERRIDE = "Override"
    REFERENCE = "Reference"
    STATISTICAL_FALLBACK = "StatisticalFallback"
    AI_ESTIMATE = "AIEstimate"


class Confidence(str, Enum):
    """Provenance-based trust level."""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


DETERMINISTIC_TIERS = frozenset({Tier.OVERRIDE, Tier.REFERENCE})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Provenance:
    """Location of a Reference-tier hit in the source workbook."""
    sheet_name: str
    row_number: int


@dataclass(frozen=True)
class DutyQuery:
    """Inbound resolution request."""
    code: Optional[str] = None
    description: Optional[str] = None
    origin_country: Optional[str] = None
    destination_country: Optional[str] = None


@dataclass(frozen=True)
class DutyRateRecord:
    """Model for a resolved duty rate."""
    code: str
    description: str
    rate_text: str
    rate_percentage: float
    chapter: int
    tier: Tier
    confidence: Confidence
    provenance: Optional[Provenance] = None
    resolved_at: datetime = field(default_factory=utc_now)
    rate_is_estimate: bool = False
    source_tier: Optional[Tier] = None
    reasoning: Optional[str] = None
    suggested_code: Optional[str] = None
    special_rate_text: Optional[str] = None
    unit_of_quantity: Optional[str] = None

    is_resolved = True

    @property
    def origin_tier(self) -> Tier:
        """Tier that originally produced this record, looking through the cache."""
        return self.source_tier or self.tier

    def as_cached(self) -> 'DutyRateRecord':
        """Copy of this record as served from the Cache tier."""
        return replace(self, tier=Tier.CACHE, source_tier=self.origin_tier)

    def duty_amount(self, customs_value: float) -> float:
        """
        Duty owed on a declared customs value, rounded half-up to cents.

        Non-positive or non-finite values owe nothing.
        """
        if customs_value is None or not math.isfinite(customs_value) or customs_value <= 0:
            return 0.0
        amount = Decimal(str(customs_value)) * Decimal(str(self.rate_percentage))
        return float(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            'code': self.code,
            'description': self.description,
            'rate_text': self.rate_text,
            'rate_percentage': self.rate_percentage,
            'chapter': self.chapter,
            'tier': self.tier.value,
            'confidence': self.confidence.value,
            'provenance': (
                {'sheet_name': self.provenance.sheet_name, 'row_number': self.provenance.row_number}
                if self.provenance else None
            ),
            'resolved_at': self.resolved_at.isoformat(),
            'rate_is_estimate': self.rate_is_estimate,
            'source_tier': self.source_tier.value if self.source_tier else None,
            'reasoning': self.reasoning,
            'suggested_code': self.suggested_code,
            'special_rate_text': self.special_rate_text,
            'unit_of_quantity': self.unit_of_quantity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DutyRateRecord':
        """Create DutyRateRecord from dictionary."""
        provenance = data.get('provenance')
        source_tier = data.get('source_tier')
        resolved_at = data.get('resolved_at')
        return cls(
            code=data['code'],
            description=data['description'],
            rate_text=data['rate_text'],
            rate_percentage=float(data['rate_percentage']),
            chapter=int(data['chapter']),
            tier=Tier(data['tier']),
            confidence=Confidence(data['confidence']),
            provenance=Provenance(provenance['sheet_name'], int(provenance['row_number'])) if provenance else None,
            resolved_at=datetime.fromisoformat(resolved_at) if isinstance(resolved_at, str) else (resolved_at or utc_now()),
            rate_is_estimate=bool(data.get('rate_is_estimate', False)),
            source_tier=Tier(source_tier) if source_tier else None,
            reasoning=data.get('reasoning'),
            suggested_code=data.get('suggested_code'),
            special_rate_text=data.get('special_rate_text'),
            unit_of_quantity=data.get('unit_of_quantity'),
        )


@dataclass(frozen=True)
class UnresolvedResult:
    """Terminal outcome when no tier produced a rate."""
    code: Optional[str] = None
    description: Optional[str] = None
    attempted_tiers: List[Tier] = field(default_factory=list)

    is_resolved = False
