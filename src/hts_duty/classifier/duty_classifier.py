import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from loguru import logger

from hts_duty.config.settings import Config
from hts_duty.data_loader.workbook_loader import ReferenceIndexProvider, get_reference_index_provider
from hts_duty.models.duty_models import DutyQuery, DutyRateRecord, Tier, UnresolvedResult
from hts_duty.models.errors import DutyEngineError, StoreUnavailable
from hts_duty.services.cache_service import CacheService, SQLiteDutyStore
from hts_duty.services.fallback_service import ChapterFallbackService
from hts_duty.services.gpt_service import GPTDutyEstimator
from hts_duty.services.override_service import OverrideService, as_override
from hts_duty.utils.common import normalize_hts_code
from hts_duty.utils.logging_utils import log_resolution_attempt, log_tier_hit, log_tier_miss

Resolution = Union[DutyRateRecord, UnresolvedResult]


class DutyClassifier:
    """
    Tiered duty rate resolution.

    Tiers are tried in order Cache, Override, Reference, StatisticalFallback,
    AIEstimate and the first hit wins. Only Override and Reference hits are
    written back to the cache; fallback and AI estimates are recomputed on
    every query.
    """

    def __init__(self, store: SQLiteDutyStore = None,
                 cache_service: CacheService = None,
                 override_service: OverrideService = None,
                 index_provider: ReferenceIndexProvider = None,
                 fallback_service: ChapterFallbackService = None,
                 estimator: GPTDutyEstimator = None,
                 batch_concurrency: int = None):
        """Initialize the classifier; collaborators default to the configured ones."""
        store = store or SQLiteDutyStore()
        self.cache_service = cache_service or CacheService(store)
        self.override_service = override_service or OverrideService(store)
        self.index_provider = index_provider or get_reference_index_provider()
        self.fallback_service = fallback_service or ChapterFallbackService(self.cache_service)
        self.estimator = estimator or GPTDutyEstimator()
        self.batch_concurrency = batch_concurrency or Config.BATCH_CONCURRENCY

    async def initialize(self, seed_file: Path = None, warm_index: bool = False) -> None:
        """Seed curated overrides and optionally build the reference index up front."""
        await self.override_service.seed_from_file(seed_file or Config.OVERRIDE_SEED_FILE)
        if warm_index:
            await self.index_provider.get_index()

    async def resolve(self, code: Optional[str] = None, description: Optional[str] = None,
                      origin_country: Optional[str] = None, destination_country: Optional[str] = None,
                      timeout: Optional[float] = None) -> Resolution:
        """Resolve a duty rate from a code, a description or both."""
        query = DutyQuery(code=code, description=description,
                          origin_country=origin_country, destination_country=destination_country)
        return await self.resolve_query(query, timeout=timeout)

    async def resolve_query(self, query: DutyQuery, timeout: Optional[float] = None) -> Resolution:
        """
        Run the tier cascade for one query.

        Args:
            query: Code and/or description plus trade route
            timeout: Time budget for the AI estimator

        Returns:
            The first tier's record, or UnresolvedResult

        Raises:
            InvalidCodeFormat: a code was given with fewer than four digits or chapter 00
            SourceUnavailable: the reference workbook cannot be loaded
        """
        log_resolution_attempt(query.code, query.description)

        code = normalize_hts_code(query.code) if query.code and query.code.strip() else None
        if code is None and not query.description:
            logger.warning("Query carries neither a code nor a description")
            return UnresolvedResult()

        attempted: List[Tier] = []

        if code:
            attempted.append(Tier.CACHE)
            record = await self._from_cache(code)
            if record:
                return record

            attempted.append(Tier.OVERRIDE)
            record = await self._from_override(code)
            if record:
                await self._write_back(record)
                return record

            attempted.append(Tier.REFERENCE)
            record = await self._from_reference(code)
            if record:
                await self._write_back(record)
                return record

            attempted.append(Tier.STATISTICAL_FALLBACK)
            record = await self._from_fallback(code)
            if record:
                return record

        attempted.append(Tier.AI_ESTIMATE)
        record = await self.estimator.estimate(
            query.description, code_hint=code,
            origin_country=query.origin_country,
            destination_country=query.destination_country,
            timeout=timeout,
        )
        if record:
            log_tier_hit(Tier.AI_ESTIMATE.value, record.code, record.rate_text)
            return record

        logger.info(f"Unresolved: code={code or '-'}")
        return UnresolvedResult(code=code, description=query.description, attempted_tiers=attempted)

    async def resolve_batch(self, queries: Sequence[DutyQuery],
                            timeout: Optional[float] = None) -> List[Union[Resolution, DutyEngineError]]:
        """
        Resolve many queries concurrently.

        Results keep the input order. A query that raises a DutyEngineError
        yields that error in its slot instead of failing the batch. Any other
        exception cancels the queries still running and is re-raised once they
        have finished.
        """
        semaphore = asyncio.Semaphore(self.batch_concurrency)

        async def _resolve_one(query: DutyQuery) -> Union[Resolution, DutyEngineError]:
            async with semaphore:
                try:
                    return await self.resolve_query(query, timeout=timeout)
                except DutyEngineError as e:
                    logger.warning(f"Batch item {query.code or query.description!r} failed: {str(e)}")
                    return e

        tasks = [asyncio.ensure_future(_resolve_one(query)) for query in queries]
        try:
            return list(await asyncio.gather(*tasks))
        except Exception as e:
            pending = [task for task in tasks if not task.done()]
            logger.error(f"Batch failed: {str(e)}; cancelling {len(pending)} pending queries")
            for task in pending:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def promote_to_override(self, code: str, record: DutyRateRecord) -> DutyRateRecord:
        """Curate a record into the override table and refresh its cache entry."""
        override = as_override(code, record)
        await self.override_service.upsert(override)
        await self._write_back(override)
        return override

    async def stats(self) -> Dict[str, Any]:
        """Cache, override and reference index statistics."""
        stats: Dict[str, Any] = {}
        try:
            stats['cache'] = await self.cache_service.stats()
            stats['overrides'] = len(await self.override_service.all())
        except StoreUnavailable as e:
            stats['store_error'] = str(e)
        index = self.index_provider.index
        stats['reference_index'] = index.stats() if index else None
        return stats

    async def _from_cache(self, code: str) -> Optional[DutyRateRecord]:
        try:
            record = await self.cache_service.get(code)
        except StoreUnavailable as e:
            log_tier_miss(Tier.CACHE.value, code, f"store unavailable: {e}")
            return None
        if record is None:
            log_tier_miss(Tier.CACHE.value, code)
            return None
        log_tier_hit(Tier.CACHE.value, code, record.rate_text)
        return record.as_cached()

    async def _from_override(self, code: str) -> Optional[DutyRateRecord]:
        try:
            record = await self.override_service.get(code)
        except StoreUnavailable as e:
            log_tier_miss(Tier.OVERRIDE.value, code, f"store unavailable: {e}")
            return None
        if record is None:
            log_tier_miss(Tier.OVERRIDE.value, code)
            return None
        log_tier_hit(Tier.OVERRIDE.value, code, record.rate_text)
        return record

    async def _from_reference(self, code: str) -> Optional[DutyRateRecord]:
        index = await self.index_provider.get_index()
        record = index.search(code)
        if record is None:
            log_tier_miss(Tier.REFERENCE.value, code)
            return None
        log_tier_hit(Tier.REFERENCE.value, code, record.rate_text)
        return record

    async def _from_fallback(self, code: str) -> Optional[DutyRateRecord]:
        try:
            record = await self.fallback_service.estimate(code)
        except StoreUnavailable as e:
            log_tier_miss(Tier.STATISTICAL_FALLBACK.value, code, f"store unavailable: {e}")
            return None
        if record is None:
            log_tier_miss(Tier.STATISTICAL_FALLBACK.value, code)
            return None
        log_tier_hit(Tier.STATISTICAL_FALLBACK.value, code, record.rate_text)
        return record

    async def _write_back(self, record: DutyRateRecord) -> None:
        try:
            await self.cache_service.upsert(record)
        except StoreUnavailable as e:
            logger.warning(f"Cache write-back skipped for {record.code}: {str(e)}")
