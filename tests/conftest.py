"""
Pytest fixtures for the HTS duty engine tests.

Provides:
- SQLite-backed store, cache and override fixtures in a temp directory
- In-memory reference index fixtures and a counting index loader
- Stub AI estimator and a mock AsyncOpenAI client
"""

import json
import time
from types import SimpleNamespace
from typing import Optional
from unittest.mock import AsyncMock, Mock

import pytest

from hts_duty.classifier.duty_classifier import DutyClassifier
from hts_duty.data_loader.workbook_loader import ReferenceIndex, ReferenceIndexProvider
from hts_duty.models.duty_models import Confidence, DutyRateRecord, Provenance, Tier
from hts_duty.services.cache_service import CacheService, SQLiteDutyStore
from hts_duty.services.override_service import OverrideService
from hts_duty.utils.common import chapter_of


# ============================================================================
# Reference Index Fixtures
# ============================================================================

class CountingIndex(ReferenceIndex):
    """Reference index that counts search calls."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.search_calls = 0

    def search(self, canonical_code):
        self.search_calls += 1
        return super().search(canonical_code)


class CountingLoader:
    """Index loader double that counts builds and can be slowed down."""

    def __init__(self, index: ReferenceIndex = None, delay: float = 0.0, error: Exception = None):
        self.index = index
        self.delay = delay
        self.error = error
        self.calls = 0

    def __call__(self) -> ReferenceIndex:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.index


def table_1_rows():
    """'Table 1' with 4202.92.31 on row 120."""
    rows = [["Heading/Subheading", "Article Description", "General Rate of Duty"]]
    rows += [[f"Note {i}", "See general notes", ""] for i in range(2, 120)]
    rows.append(["4202.92.31", "With outer surface of textile materials: Of man-made fibers", "17.6%"])
    rows.append(["4202.92.33", "Other", "17.6%"])
    rows.append(["6109.10.00", "T-shirts, singlets, tank tops, of cotton", "16.5%"])
    return rows


@pytest.fixture
def reference_sheets():
    return [
        ("Cover", [["Harmonized Tariff Schedule of the United States (2025)"]]),
        ("Table 1", table_1_rows()),
    ]


@pytest.fixture
def reference_index(reference_sheets):
    return CountingIndex.from_rows(reference_sheets)


@pytest.fixture
def counting_loader(reference_index):
    return CountingLoader(reference_index)


# ============================================================================
# Store Fixtures
# ============================================================================

@pytest.fixture
def store(tmp_path):
    return SQLiteDutyStore(tmp_path / "duty_cache.db")


@pytest.fixture
def broken_store(tmp_path):
    """Store whose database path is a directory, so every call fails."""
    return SQLiteDutyStore(tmp_path)


@pytest.fixture
def cache_service(store):
    return CacheService(store)


@pytest.fixture
def override_service(store):
    return OverrideService(store)


def make_record(code: str, rate_text: str, rate_percentage: float,
                tier: Tier = Tier.REFERENCE, **kwargs) -> DutyRateRecord:
    fields = dict(
        code=code,
        description=f"Product under HS {code}",
        rate_text=rate_text,
        rate_percentage=rate_percentage,
        chapter=chapter_of(code),
        tier=tier,
        confidence=Confidence.HIGH,
    )
    if tier == Tier.REFERENCE:
        fields['provenance'] = Provenance("Table 1", 10)
    fields.update(kwargs)
    return DutyRateRecord(**fields)


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def seed_file(tmp_path):
    def _write(entries):
        path = tmp_path / "overrides.json"
        path.write_text(json.dumps(entries), encoding='utf-8')
        return path
    return _write


# ============================================================================
# AI Estimator Fixtures
# ============================================================================

class StubEstimator:
    """Estimator double returning a fixed record."""

    def __init__(self, record: Optional[DutyRateRecord] = None):
        self.record = record
        self.calls = []

    async def estimate(self, description, code_hint=None, origin_country=None,
                       destination_country=None, timeout=None):
        self.calls.append({
            'description': description,
            'code_hint': code_hint,
            'origin_country': origin_country,
            'destination_country': destination_country,
        })
        if self.record is None:
            return None
        return self.record


@pytest.fixture
def ai_record():
    return make_record("9503.00.00", "4%", 0.04, tier=Tier.AI_ESTIMATE,
                       confidence=Confidence.MEDIUM, rate_is_estimate=True,
                       reasoning="Toys of heading 9503 are generally low-duty")


def chat_response(content: Optional[str]):
    """Shape of an AsyncOpenAI chat completion carrying ``content``."""
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.fixture
def mock_openai_client():
    """Mock AsyncOpenAI client; set ``create.return_value`` or ``side_effect`` per test."""
    client = Mock()
    client.chat.completions.create = AsyncMock(return_value=chat_response(json.dumps({
        "suggested_code": "4202.92.31",
        "duty_rate_percentage": 15.5,
        "confidence": 0.9,
        "reasoning": "Handbags with outer surface of man-made fibers",
    })))
    return client


# ============================================================================
# Classifier Fixtures
# ============================================================================

@pytest.fixture
def make_classifier(store):
    """Build a classifier over the temp store with injectable tiers."""
    def _make(loader=None, estimator=None, classifier_store=None, **kwargs):
        provider = ReferenceIndexProvider(loader=loader)
        return DutyClassifier(
            store=classifier_store or store,
            index_provider=provider,
            estimator=estimator or StubEstimator(),
            **kwargs,
        )
    return _make
