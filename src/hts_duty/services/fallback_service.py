"""
Chapter-level statistical fallback over cached deterministic rates.
"""
from typing import Optional

import pandas as pd
from loguru import logger

from hts_duty.models.duty_models import Confidence, DutyRateRecord, Tier
from hts_duty.services.cache_service import CacheService
from hts_duty.utils.common import chapter_of


class ChapterFallbackService:
    """Estimate a rate from cached entries sharing the query's 2-digit chapter."""

    def __init__(self, cache_service: CacheService):
        self.cache_service = cache_service

    async def estimate(self, canonical_code: str) -> Optional[DutyRateRecord]:
        """
        Mean rate of the chapter's cached entries.

        Returns:
            Low-confidence StatisticalFallback record, or None when the
            chapter has no cached entries
        """
        chapter = chapter_of(canonical_code)
        records = await self.cache_service.records_for_chapter(chapter)
        if not records:
            logger.debug(f"No cached entries for chapter {chapter:02d}")
            return None

        frame = pd.DataFrame(
            [{'rate_text': r.rate_text, 'rate_percentage': r.rate_percentage} for r in records]
        )
        mean_rate = float(frame['rate_percentage'].mean())
        # mode() is sorted, so ties resolve to the lexically first text
        display_text = str(frame['rate_text'].mode().iloc[0])

        logger.info(f"Chapter {chapter:02d} fallback for {canonical_code}: "
                    f"{mean_rate:.4f} from {len(records)} cached entries")

        return DutyRateRecord(
            code=canonical_code,
            description=f"Estimated from {len(records)} cached chapter {chapter:02d} entries",
            rate_text=display_text,
            rate_percentage=round(mean_rate, 6),
            chapter=chapter,
            tier=Tier.STATISTICAL_FALLBACK,
            confidence=Confidence.LOW,
            rate_is_estimate=True,
        )
