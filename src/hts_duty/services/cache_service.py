"""
Persistent duty rate store and the cache built on it.
"""
import asyncio
import json
import sqlite3
from contextlib import closing
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from hts_duty.config.settings import Config
from hts_duty.models.duty_models import DETERMINISTIC_TIERS, DutyRateRecord, Tier, utc_now
from hts_duty.models.errors import StoreUnavailable

CACHE_TABLE = "duty_cache"
OVERRIDE_TABLE = "duty_overrides"
_TABLES = (CACHE_TABLE, OVERRIDE_TABLE)


class SQLiteDutyStore:
    """Key/value store of duty rate records keyed by canonical code."""

    def __init__(self, db_path: Path = None):
        self.db_path = Path(db_path or Config.CACHE_DB_PATH)
        self._schema_ready = False

    def _connect(self) -> sqlite3.Connection:
        if not self._schema_ready:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        if not self._schema_ready:
            with conn:
                for table in _TABLES:
                    conn.execute(f'''
                        CREATE TABLE IF NOT EXISTS {table} (
                            code TEXT PRIMARY KEY,
                            chapter INTEGER NOT NULL,
                            tier TEXT NOT NULL,
                            record TEXT NOT NULL,
                            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )
                    ''')
                    conn.execute(f'CREATE INDEX IF NOT EXISTS idx_{table}_chapter ON {table} (chapter)')
            self._schema_ready = True
        return conn

    async def _run(self, fn: Callable, *args) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            logger.warning(f"Duty store error ({self.db_path}): {str(e)}")
            raise StoreUnavailable(str(e)) from e

    @staticmethod
    def _decode(raw: str) -> Optional[DutyRateRecord]:
        try:
            return DutyRateRecord.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Invalid stored record, ignoring: {str(e)}")
            return None

    def _get(self, table: str, code: str) -> Optional[DutyRateRecord]:
        with closing(self._connect()) as conn:
            row = conn.execute(f'SELECT record FROM {table} WHERE code = ?', (code,)).fetchone()
        return self._decode(row[0]) if row else None

    def _write(self, conn: sqlite3.Connection, table: str, record: DutyRateRecord,
               replace_existing: bool, keep_override: bool = False) -> bool:
        verb = 'INSERT' if replace_existing else 'INSERT OR IGNORE'
        suffix = ''
        if replace_existing:
            suffix = '''
                ON CONFLICT(code) DO UPDATE SET
                    chapter = excluded.chapter,
                    tier = excluded.tier,
                    record = excluded.record,
                    updated_at = excluded.updated_at
            '''
            if keep_override:
                # Checked in the same statement as the write
                suffix += f" WHERE {table}.tier != '{Tier.OVERRIDE.value}' OR excluded.tier = '{Tier.OVERRIDE.value}'"
        cursor = conn.execute(
            f'{verb} INTO {table} (code, chapter, tier, record, updated_at) VALUES (?, ?, ?, ?, ?){suffix}',
            (record.code, record.chapter, record.tier.value,
             json.dumps(record.to_dict()), utc_now().isoformat())
        )
        return cursor.rowcount > 0

    def _upsert(self, table: str, record: DutyRateRecord, replace_existing: bool = True) -> bool:
        with closing(self._connect()) as conn, conn:
            return self._write(conn, table, record, replace_existing)

    def _upsert_unless_override(self, table: str, record: DutyRateRecord) -> bool:
        with closing(self._connect()) as conn, conn:
            written = self._write(conn, table, record, replace_existing=True, keep_override=True)
        if not written:
            logger.debug(f"Keeping stored override for {record.code}")
        return written

    def _select(self, table: str, where: str = '', params: tuple = ()) -> List[DutyRateRecord]:
        with closing(self._connect()) as conn:
            rows = conn.execute(f'SELECT record FROM {table} {where} ORDER BY code', params).fetchall()
        return [record for record in (self._decode(row[0]) for row in rows) if record is not None]

    def _tier_counts(self, table: str) -> Dict[str, int]:
        with closing(self._connect()) as conn:
            rows = conn.execute(f'SELECT tier, COUNT(*) FROM {table} GROUP BY tier').fetchall()
        return {tier: count for tier, count in rows}

    async def get(self, table: str, code: str) -> Optional[DutyRateRecord]:
        return await self._run(self._get, table, code)

    async def upsert(self, table: str, record: DutyRateRecord, replace_existing: bool = True) -> bool:
        return await self._run(self._upsert, table, record, replace_existing)

    async def upsert_unless_override(self, table: str, record: DutyRateRecord) -> bool:
        return await self._run(self._upsert_unless_override, table, record)

    async def select(self, table: str, where: str = '', params: tuple = ()) -> List[DutyRateRecord]:
        return await self._run(self._select, table, where, params)

    async def tier_counts(self, table: str) -> Dict[str, int]:
        return await self._run(self._tier_counts, table)


class CacheService:
    """Durable cache of deterministic resolutions."""

    def __init__(self, store: SQLiteDutyStore = None):
        self.store = store or SQLiteDutyStore()

    async def get(self, code: str) -> Optional[DutyRateRecord]:
        """Cached record for a canonical code, carrying its originating tier."""
        return await self.store.get(CACHE_TABLE, code)

    async def upsert(self, record: DutyRateRecord) -> bool:
        """
        Write a resolved record back to the cache.

        Only Override and Reference records are accepted, and a cached
        Override record is never replaced by a Reference one.

        Returns:
            True when the record was written
        """
        stored = replace(record, tier=record.origin_tier, source_tier=None)
        if stored.tier not in DETERMINISTIC_TIERS:
            logger.debug(f"Refusing to cache {stored.tier.value} record for {stored.code}")
            return False
        return await self.store.upsert_unless_override(CACHE_TABLE, stored)

    async def records_for_chapter(self, chapter: int) -> List[DutyRateRecord]:
        return await self.store.select(CACHE_TABLE, 'WHERE chapter = ?', (chapter,))

    async def stats(self) -> Dict[str, Any]:
        counts = await self.store.tier_counts(CACHE_TABLE)
        return {'total_entries': sum(counts.values()), 'entries_by_tier': counts}
