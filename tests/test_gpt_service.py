"""
AI Estimator Tests

The OpenAI client is replaced with a mock; no network calls are made.
"""

import asyncio
import json

import httpx
import pytest
from openai import APIConnectionError, RateLimitError

from conftest import chat_response
from hts_duty.config.settings import Config
from hts_duty.models.duty_models import Confidence, Tier
from hts_duty.services.gpt_service import GPTDutyEstimator, confidence_level

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


def estimate_payload(**overrides):
    payload = {
        "suggested_code": "4202.92.31",
        "duty_rate_percentage": 15.5,
        "confidence": 0.9,
        "reasoning": "Handbags with outer surface of man-made fibers",
    }
    payload.update(overrides)
    return json.dumps(payload)


def rate_limit_error():
    request = httpx.Request("POST", OPENAI_URL)
    response = httpx.Response(429, request=request)
    return RateLimitError("Rate limit reached", response=response, body=None)


class TestEstimate:
    """Successful estimates."""

    def test_estimate_with_code_hint(self, mock_openai_client):
        estimator = GPTDutyEstimator(client=mock_openai_client)

        record = asyncio.run(estimator.estimate("nylon handbag", code_hint="4202.92.31",
                                                origin_country="CN", destination_country="US"))

        assert record.tier == Tier.AI_ESTIMATE
        assert record.code == "4202.92.31"
        assert record.rate_text == "15.5%"
        assert record.rate_percentage == pytest.approx(0.155)
        assert record.confidence == Confidence.HIGH
        assert record.rate_is_estimate
        assert record.reasoning == "Handbags with outer surface of man-made fibers"
        assert record.suggested_code == "4202.92.31"
        assert record.chapter == 42

    def test_description_only_uses_suggested_code(self, mock_openai_client):
        mock_openai_client.chat.completions.create.return_value = chat_response(
            estimate_payload(suggested_code="6109100004"))
        estimator = GPTDutyEstimator(client=mock_openai_client)

        record = asyncio.run(estimator.estimate("cotton t-shirt"))

        assert record.code == "6109.10.00"
        assert record.chapter == 61

    def test_code_hint_kept_over_suggestion(self, mock_openai_client):
        mock_openai_client.chat.completions.create.return_value = chat_response(
            estimate_payload(suggested_code="4202.22.15"))
        estimator = GPTDutyEstimator(client=mock_openai_client)

        record = asyncio.run(estimator.estimate("handbag", code_hint="4202.92.31"))

        assert record.code == "4202.92.31"
        assert record.suggested_code == "4202.22.15"

    def test_prompt_carries_route_and_context(self, mock_openai_client):
        estimator = GPTDutyEstimator(client=mock_openai_client, model="gpt-test")

        asyncio.run(estimator.estimate("nylon handbag", code_hint="4202.92.31",
                                       origin_country="CN", destination_country="US"))

        kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
        prompt = kwargs['messages'][1]['content']
        assert kwargs['model'] == "gpt-test"
        assert kwargs['response_format'] == {"type": "json_object"}
        assert "Origin Country: CN" in prompt
        assert "Destination Country: US" in prompt
        assert "Articles of leather" in prompt
        assert "nylon handbag" in prompt

    @pytest.mark.parametrize("score,expected", [
        (0.95, Confidence.HIGH),
        (0.8, Confidence.HIGH),
        (0.6, Confidence.MEDIUM),
        (0.5, Confidence.MEDIUM),
        (0.2, Confidence.LOW),
    ])
    def test_confidence_levels(self, score, expected):
        assert confidence_level(score) == expected

    def test_confidence_clamped(self, mock_openai_client):
        mock_openai_client.chat.completions.create.return_value = chat_response(
            estimate_payload(confidence=1.7))
        estimator = GPTDutyEstimator(client=mock_openai_client)

        record = asyncio.run(estimator.estimate("handbag", code_hint="4202.92.31"))
        assert record.confidence == Confidence.HIGH


class TestEstimatorMisses:
    """Failures are reported as a miss, never raised."""

    @pytest.mark.parametrize("content", [
        "not json at all",
        "",
        None,
        json.dumps(["4202.92.31", 15.5]),
        json.dumps({"suggested_code": "4202.92.31", "confidence": 0.9, "reasoning": "x"}),
        estimate_payload(duty_rate_percentage=250),
        estimate_payload(duty_rate_percentage="lots"),
        estimate_payload(reasoning=""),
    ])
    def test_malformed_response(self, mock_openai_client, content):
        mock_openai_client.chat.completions.create.return_value = chat_response(content)
        estimator = GPTDutyEstimator(client=mock_openai_client)

        assert asyncio.run(estimator.estimate("handbag", code_hint="4202.92.31")) is None

    def test_unusable_code_without_hint(self, mock_openai_client):
        mock_openai_client.chat.completions.create.return_value = chat_response(
            estimate_payload(suggested_code="N/A"))
        estimator = GPTDutyEstimator(client=mock_openai_client)

        assert asyncio.run(estimator.estimate("mystery item")) is None

    def test_timeout(self, mock_openai_client):
        async def slow_create(**kwargs):
            await asyncio.sleep(5)

        mock_openai_client.chat.completions.create.side_effect = slow_create
        estimator = GPTDutyEstimator(client=mock_openai_client)

        assert asyncio.run(estimator.estimate("handbag", timeout=0.05)) is None

    def test_connection_error(self, mock_openai_client):
        mock_openai_client.chat.completions.create.side_effect = APIConnectionError(
            request=httpx.Request("POST", OPENAI_URL))
        estimator = GPTDutyEstimator(client=mock_openai_client)

        assert asyncio.run(estimator.estimate("handbag")) is None

    def test_rate_limit_retried(self, mock_openai_client):
        mock_openai_client.chat.completions.create.side_effect = [
            rate_limit_error(),
            chat_response(estimate_payload()),
        ]
        estimator = GPTDutyEstimator(client=mock_openai_client, base_delay=0)

        record = asyncio.run(estimator.estimate("handbag"))

        assert record is not None
        assert mock_openai_client.chat.completions.create.await_count == 2

    def test_rate_limit_exhausted(self, mock_openai_client):
        mock_openai_client.chat.completions.create.side_effect = rate_limit_error()
        estimator = GPTDutyEstimator(client=mock_openai_client, max_retries=3, base_delay=0)

        assert asyncio.run(estimator.estimate("handbag")) is None
        assert mock_openai_client.chat.completions.create.await_count == 3

    def test_nothing_to_estimate(self, mock_openai_client):
        estimator = GPTDutyEstimator(client=mock_openai_client)

        assert asyncio.run(estimator.estimate(None)) is None
        mock_openai_client.chat.completions.create.assert_not_called()

    def test_disabled_without_api_key(self, monkeypatch):
        monkeypatch.setattr(Config, "OPENAI_API_KEY", None)
        estimator = GPTDutyEstimator()

        assert not estimator.enabled
        assert asyncio.run(estimator.estimate("handbag")) is None
