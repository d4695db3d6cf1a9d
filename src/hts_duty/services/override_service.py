"""
Curated override table.

Hand-verified entries for codes where the reference workbook is known to be
wrong or ambiguous. Overrides live in the same SQLite file as the cache.
"""
import json
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional

from loguru import logger

from hts_duty.models.duty_models import Confidence, DutyRateRecord, Tier, utc_now
from hts_duty.models.errors import InvalidCodeFormat
from hts_duty.preprocessor.rate_parser import parse_rate
from hts_duty.services.cache_service import OVERRIDE_TABLE, SQLiteDutyStore
from hts_duty.utils.common import chapter_of, normalize_hts_code


def build_override_record(code: str, rate_text: str, description: str = None,
                          rate_percentage: float = None) -> DutyRateRecord:
    """
    Create an Override record from curated rate text.

    Raises:
        InvalidCodeFormat: code has fewer than four digits or is in chapter 00
        ValueError: rate text cannot be parsed and no percentage was given
    """
    canonical = normalize_hts_code(code)
    parsed = parse_rate(rate_text)
    if rate_percentage is None:
        if parsed is None:
            raise ValueError(f"Unrecognized rate text for {canonical}: {rate_text!r}")
        rate_percentage = parsed.percentage

    return DutyRateRecord(
        code=canonical,
        description=description or f"Product under HS {canonical}",
        rate_text=rate_text,
        rate_percentage=float(rate_percentage),
        chapter=chapter_of(canonical),
        tier=Tier.OVERRIDE,
        confidence=Confidence.HIGH,
        rate_is_estimate=bool(parsed and parsed.is_estimate),
    )


def as_override(code: str, record: DutyRateRecord) -> DutyRateRecord:
    """Promote any record into an Override record for ``code``."""
    canonical = normalize_hts_code(code)
    return replace(
        record,
        code=canonical,
        chapter=chapter_of(canonical),
        tier=Tier.OVERRIDE,
        confidence=Confidence.HIGH,
        source_tier=None,
        resolved_at=utc_now(),
    )


class OverrideService:
    """Service for the curated override table."""

    def __init__(self, store: SQLiteDutyStore = None):
        self.store = store or SQLiteDutyStore()

    async def get(self, code: str) -> Optional[DutyRateRecord]:
        return await self.store.get(OVERRIDE_TABLE, code)

    async def upsert(self, record: DutyRateRecord) -> bool:
        """Write a curated entry, replacing any previous curation for the code."""
        if record.tier != Tier.OVERRIDE:
            record = as_override(record.code, record)
        logger.info(f"Override curated for {record.code}: {record.rate_text}")
        return await self.store.upsert(OVERRIDE_TABLE, record)

    async def all(self) -> List[DutyRateRecord]:
        return await self.store.select(OVERRIDE_TABLE)

    async def search_by_description(self, term: str) -> List[DutyRateRecord]:
        """Curated entries whose description contains ``term``."""
        term = (term or '').strip().lower()
        if not term:
            return []
        return [record for record in await self.all() if term in record.description.lower()]

    async def seed_from_file(self, seed_file: Path) -> int:
        """
        Load curated entries from a JSON list of ``{code, rate_text, description}``.

        Seeding never replaces an entry that is already in the table.

        Returns:
            Number of entries inserted
        """
        seed_file = Path(seed_file)
        if not seed_file.exists():
            logger.info(f"No override seed file at {seed_file}")
            return 0

        with open(seed_file, 'r', encoding='utf-8') as f:
            entries: List[Dict] = json.load(f)

        inserted = 0
        for entry in entries:
            try:
                record = build_override_record(
                    entry['code'],
                    entry['rate_text'],
                    description=entry.get('description'),
                    rate_percentage=entry.get('rate_percentage'),
                )
            except (KeyError, ValueError, InvalidCodeFormat) as e:
                logger.warning(f"Skipping invalid override seed entry {entry!r}: {str(e)}")
                continue

            if await self.store.upsert(OVERRIDE_TABLE, record, replace_existing=False):
                inserted += 1

        logger.info(f"Seeded {inserted} override entries from {seed_file}")
        return inserted
