"""
Reference index over the multi-sheet tariff schedule workbook.

The workbook is kept as raw ``(sheet, row, cells)`` data rather than a
pre-parsed rate table: row layouts vary between sheets and the rate for a
code often sits one or two rows below the code cell, so rates are
extracted on demand at search time.
"""
import asyncio
import re
import time
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd
from loguru import logger

from hts_duty.config.settings import Config
from hts_duty.models.duty_models import Confidence, DutyRateRecord, Provenance, Tier
from hts_duty.models.errors import SourceUnavailable
from hts_duty.preprocessor.rate_parser import ParsedRate, looks_like_rate, parse_rate_cell
from hts_duty.preprocessor.text_processor import clean_cell_text, format_code_cell
from hts_duty.utils.common import CodeVariations, chapter_of, code_variations
from hts_duty.utils.logging_utils import log_index_build

WorkbookSource = Union[str, Path, BinaryIO]

_CODE_LIKE = re.compile(r'^[\d.\s]+$')


@dataclass(frozen=True)
class Sheet:
    """One named sheet of the reference document."""
    name: str
    rows: Tuple[Tuple[str, ...], ...]


class ReferenceIndex:
    """Immutable, read-only index over every sheet of the tariff schedule."""

    def __init__(self, sheets: Sequence[Sheet],
                 code_columns: int = Config.CODE_COLUMNS,
                 row_lookahead: int = Config.ROW_LOOKAHEAD,
                 max_rate_cell_length: int = Config.MAX_RATE_CELL_LENGTH,
                 unit_column: int = Config.UNIT_COLUMN,
                 special_rate_column: int = Config.SPECIAL_RATE_COLUMN):
        self._sheets = tuple(sheets)
        self.code_columns = code_columns
        self.row_lookahead = row_lookahead
        self.max_rate_cell_length = max_rate_cell_length
        self.unit_column = unit_column
        self.special_rate_column = special_rate_column

    @property
    def sheets(self) -> Tuple[Sheet, ...]:
        return self._sheets

    @classmethod
    def from_rows(cls, sheets: Iterable[Tuple[str, Iterable[Iterable[Any]]]], **kwargs) -> 'ReferenceIndex':
        """Build an index from in-memory ``(sheet_name, rows)`` pairs."""
        built = [
            Sheet(name=str(name), rows=tuple(tuple(clean_cell_text(cell) for cell in row) for row in rows))
            for name, rows in sheets
        ]
        return cls(built, **kwargs)

    @classmethod
    def from_workbook(cls, source: WorkbookSource, **kwargs) -> 'ReferenceIndex':
        """
        Parse every sheet of an .xlsx workbook.

        Args:
            source: Path to the workbook or an open binary file handle

        Raises:
            SourceUnavailable: the workbook is missing, unreadable or empty
        """
        if isinstance(source, (str, Path)) and not Path(source).exists():
            raise SourceUnavailable(f"Reference workbook not found: {source}")

        try:
            frames: Dict[str, pd.DataFrame] = pd.read_excel(
                source, sheet_name=None, header=None, dtype=object, engine="openpyxl"
            )
        except Exception as e:
            logger.error(f"Error loading reference workbook: {str(e)}")
            raise SourceUnavailable(f"Reference workbook could not be parsed: {e}") from e

        if not frames:
            raise SourceUnavailable("Reference workbook contains no sheets")

        code_columns = kwargs.get('code_columns', Config.CODE_COLUMNS)
        sheets = [
            (name, [
                [format_code_cell(cell) if column < code_columns else cell for column, cell in enumerate(row)]
                for row in frame.fillna('').itertuples(index=False, name=None)
            ])
            for name, frame in frames.items()
        ]
        return cls.from_rows(sheets, **kwargs)

    def search(self, canonical_code: str) -> Optional[DutyRateRecord]:
        """
        Find the duty rate for a canonical code.

        The full code is looked for across every sheet before the 6-digit
        heading prefix is tried. Within a pass sheets are scanned in
        workbook order and the first candidate row with an extractable rate
        wins; ties across sheets carry no semantic ranking.
        """
        variations = code_variations(canonical_code)

        for needles in (variations.full_code, variations.heading_prefix):
            patterns = self._boundary_patterns(needles)
            for sheet in self._sheets:
                record = self._search_sheet(sheet, needles, patterns, variations)
                if record is not None:
                    logger.debug(f"Reference hit for {variations.dotted} in {sheet.name}, "
                                 f"row {record.provenance.row_number}")
                    return record

        logger.debug(f"HS code {variations.dotted} not found in any sheet")
        return None

    def stats(self) -> Dict[str, Any]:
        """Summary of the loaded workbook."""
        return {
            'total_sheets': len(self._sheets),
            'total_rows': sum(len(sheet.rows) for sheet in self._sheets),
            'sheet_names': [sheet.name for sheet in self._sheets[:10]],
        }

    def _search_sheet(self, sheet: Sheet, needles: Tuple[str, ...],
                      patterns: List[re.Pattern], variations: CodeVariations) -> Optional[DutyRateRecord]:
        for index, row in enumerate(sheet.rows):
            if not self._is_candidate(row, needles, patterns):
                continue

            found = self._find_rate(sheet.rows, index)
            if found is None:
                continue
            rate_row, rate = found
            unit = self._cell(row, self.unit_column) or self._cell(rate_row, self.unit_column)

            return DutyRateRecord(
                code=variations.dotted,
                description=self._pick_description(row, variations, exclude=unit),
                rate_text=rate.text,
                rate_percentage=rate.percentage,
                chapter=chapter_of(variations.dotted),
                tier=Tier.REFERENCE,
                confidence=Confidence.HIGH,
                provenance=Provenance(sheet_name=sheet.name, row_number=index + 1),
                rate_is_estimate=rate.is_estimate,
                special_rate_text=self._special_rate(rate_row, rate),
                unit_of_quantity=unit,
            )
        return None

    @staticmethod
    def _boundary_patterns(needles: Tuple[str, ...]) -> List[re.Pattern]:
        digit_forms = {needle.replace('.', '') for needle in needles}
        return [re.compile(rf'\b{re.escape(form)}\b') for form in sorted(digit_forms)]

    def _is_candidate(self, row: Tuple[str, ...], needles: Tuple[str, ...],
                      patterns: List[re.Pattern]) -> bool:
        for cell in row[:self.code_columns]:
            if not cell:
                continue
            if any(cell == needle or needle in cell for needle in needles):
                return True
            # "4202.9231" or "4202 92 31" style cells
            compact = cell.replace('.', '').replace(' ', '')
            if any(pattern.search(compact) for pattern in patterns):
                return True
        return False

    def _find_rate(self, rows: Tuple[Tuple[str, ...], ...],
                   index: int) -> Optional[Tuple[Tuple[str, ...], ParsedRate]]:
        last = min(len(rows) - 1, index + self.row_lookahead)
        for row in rows[index:last + 1]:
            for cell in row:
                parsed = parse_rate_cell(cell, self.max_rate_cell_length)
                if parsed is not None:
                    return row, parsed
        return None

    @staticmethod
    def _cell(row: Tuple[str, ...], column: int) -> Optional[str]:
        if column < len(row) and row[column] and not _CODE_LIKE.match(row[column]):
            return row[column]
        return None

    def _special_rate(self, rate_row: Tuple[str, ...], general: ParsedRate) -> Optional[str]:
        text = self._cell(rate_row, self.special_rate_column)
        if text is None or text == general.text:
            return None
        return text

    def _pick_description(self, row: Tuple[str, ...], variations: CodeVariations,
                          exclude: Optional[str] = None) -> str:
        candidates = [
            cell for cell in row
            if cell
            and cell != exclude
            and not _CODE_LIKE.match(cell)
            and not looks_like_rate(cell, self.max_rate_cell_length)
            and not any(form in cell for form in variations.all())
        ]
        if not candidates:
            return f"Product under HS {variations.dotted}"
        return max(candidates, key=len)


class ReferenceIndexProvider:
    """
    Single-flight accessor for the reference index.

    The first caller starts the build and publishes the pending task; every
    concurrent caller awaits that same task. Callers await through
    ``asyncio.shield`` so cancelling one request never cancels the shared
    build. A failed build is not remembered, so the next caller retries.
    """

    def __init__(self, loader: Optional[Callable[[], ReferenceIndex]] = None,
                 source: Optional[WorkbookSource] = None):
        if loader is None:
            loader = partial(ReferenceIndex.from_workbook, source or Config.REFERENCE_WORKBOOK_PATH)
        self._loader = loader
        self._index: Optional[ReferenceIndex] = None
        self._pending: Optional[asyncio.Future] = None
        self.build_count = 0

    @property
    def index(self) -> Optional[ReferenceIndex]:
        return self._index

    @property
    def is_built(self) -> bool:
        return self._index is not None

    async def get_index(self) -> ReferenceIndex:
        if self._index is not None:
            return self._index

        loop = asyncio.get_running_loop()
        if self._pending is None or self._pending.get_loop() is not loop:
            self._pending = asyncio.ensure_future(self._build())
            self._pending.add_done_callback(_consume_exception)

        return await asyncio.shield(self._pending)

    async def _build(self) -> ReferenceIndex:
        self.build_count += 1
        started = time.perf_counter()
        logger.info("Loading reference workbook...")

        try:
            index = await asyncio.to_thread(self._loader)
        except SourceUnavailable as e:
            self._pending = None
            logger.error(f"Reference index unavailable: {str(e)}")
            raise
        except Exception as e:
            self._pending = None
            logger.error(f"Reference index build failed: {str(e)}")
            raise SourceUnavailable(f"Reference index build failed: {e}") from e

        self._index = index
        stats = index.stats()
        log_index_build(stats['total_sheets'], stats['total_rows'], time.perf_counter() - started)
        return index


def _consume_exception(future: asyncio.Future) -> None:
    # Waiters that were cancelled never read the build error.
    if not future.cancelled():
        future.exception()


_default_provider: Optional[ReferenceIndexProvider] = None


def get_reference_index_provider() -> ReferenceIndexProvider:
    """Process-wide reference index provider."""
    global _default_provider
    if _default_provider is None:
        _default_provider = ReferenceIndexProvider()
    return _default_provider
