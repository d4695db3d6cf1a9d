"""
GPT service for last-resort duty rate estimation.
"""
import asyncio
import json
from typing import Optional

from loguru import logger
from openai import AsyncOpenAI, APIError, RateLimitError
from pydantic import BaseModel, Field, ValidationError, field_validator

from hts_duty.config.settings import Config, DutyMappings
from hts_duty.models.duty_models import Confidence, DutyRateRecord, Tier
from hts_duty.models.errors import EstimatorUnavailable, InvalidCodeFormat
from hts_duty.preprocessor.text_processor import clean_description
from hts_duty.utils.common import chapter_of, exponential_backoff_delay, extract_chapter_info, normalize_hts_code

SYSTEM_PROMPT = (
    "You are a customs and international trade expert. Estimate import duty rates "
    "from HS codes, product descriptions and the trade route. Always respond in JSON format."
)


class AIDutyEstimate(BaseModel):
    """Structured response required from the model."""
    suggested_code: str = Field(min_length=1, description="Suggested or confirmed HS code")
    duty_rate_percentage: float = Field(ge=0, le=100, description="Ad-valorem duty rate in percent, e.g. 15.5")
    confidence: float = Field(description="Confidence in the estimate on a 0-1 scale")
    reasoning: str = Field(min_length=1, description="Short justification")

    @field_validator('confidence')
    @classmethod
    def clamp_confidence(cls, value: float) -> float:
        return min(max(value, 0.0), 1.0)


def confidence_level(score: float) -> Confidence:
    """Map a 0-1 score onto the confidence scale."""
    if score >= Config.HIGH_CONFIDENCE_THRESHOLD:
        return Confidence.HIGH
    if score >= Config.MEDIUM_CONFIDENCE_THRESHOLD:
        return Confidence.MEDIUM
    return Confidence.LOW


class GPTDutyEstimator:
    """Service for GPT-based duty rate estimates."""

    def __init__(self, client: AsyncOpenAI = None, model: str = None,
                 max_retries: int = None, base_delay: float = None):
        """
        Initialize the estimator.

        Args:
            client: Pre-built async client; created lazily from OPENAI_API_KEY otherwise
            model: Chat model name
            max_retries: Attempts on rate-limit errors
            base_delay: Base back-off delay in seconds
        """
        self._client = client
        self.model = model or Config.OPENAI_CHAT_MODEL
        self.max_retries = max_retries if max_retries is not None else Config.MAX_RETRIES
        self.base_delay = base_delay if base_delay is not None else Config.BASE_DELAY

    @property
    def enabled(self) -> bool:
        return self._client is not None or bool(Config.OPENAI_API_KEY)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=Config.OPENAI_API_KEY)
        return self._client

    async def estimate(self, description: Optional[str], code_hint: Optional[str] = None,
                       origin_country: Optional[str] = None, destination_country: Optional[str] = None,
                       timeout: Optional[float] = None) -> Optional[DutyRateRecord]:
        """
        Ask the model for a code and duty rate.

        Network failures, timeouts and malformed responses are reported as a
        miss, never raised.

        Args:
            description: Free-text product description
            code_hint: Canonical HS code supplied by the caller, if any
            origin_country: Country of origin
            destination_country: Importing country
            timeout: Overall time budget in seconds, including retries

        Returns:
            AIEstimate record, or None on a miss
        """
        if not description and not code_hint:
            return None
        if not self.enabled:
            logger.warning("AI estimator disabled: OPENAI_API_KEY not configured")
            return None

        timeout = timeout if timeout is not None else Config.AI_TIMEOUT_SECONDS
        prompt = self._build_estimate_prompt(description, code_hint, origin_country, destination_country)

        try:
            estimate = await asyncio.wait_for(self._request_estimate(prompt), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"AI estimate timed out after {timeout}s")
            return None
        except EstimatorUnavailable as e:
            logger.warning(f"AI estimator unavailable: {str(e)}")
            return None

        return self._to_record(estimate, code_hint)

    async def _request_estimate(self, prompt: str) -> AIDutyEstimate:
        client = self._get_client()
        retry_count = 0

        while True:
            try:
                response = await client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt}
                    ],
                    response_format={"type": "json_object"},
                    temperature=0.2,
                    max_tokens=Config.OPENAI_MAX_TOKENS
                )
                content = response.choices[0].message.content
            except RateLimitError as e:
                retry_count += 1
                if retry_count >= self.max_retries:
                    raise EstimatorUnavailable("Max retries reached for rate limit") from e
                delay = exponential_backoff_delay(retry_count, self.base_delay)
                logger.warning(f"Rate limit hit, retrying in {delay} seconds...")
                await asyncio.sleep(delay)
                continue
            except APIError as e:
                raise EstimatorUnavailable(f"OpenAI API error: {str(e)}") from e
            except (AttributeError, IndexError) as e:
                raise EstimatorUnavailable(f"Unexpected response shape: {str(e)}") from e

            return self._parse_response(content)

    def _parse_response(self, content: Optional[str]) -> AIDutyEstimate:
        try:
            payload = json.loads(content or '')
        except ValueError as e:
            raise EstimatorUnavailable(f"Non-JSON response: {(content or '')[:100]!r}") from e

        if not isinstance(payload, dict):
            raise EstimatorUnavailable("Response is not a JSON object")

        try:
            return AIDutyEstimate.model_validate(payload)
        except ValidationError as e:
            raise EstimatorUnavailable(f"Response failed validation: {e.error_count()} errors") from e

    def _to_record(self, estimate: AIDutyEstimate, code_hint: Optional[str]) -> Optional[DutyRateRecord]:
        try:
            suggested = normalize_hts_code(estimate.suggested_code)
        except InvalidCodeFormat:
            suggested = None

        code = code_hint or suggested
        if code is None:
            logger.warning(f"AI response carried no usable code: {estimate.suggested_code!r}")
            return None

        percentage = round(estimate.duty_rate_percentage / 100, 6)
        logger.info(f"AI estimate for {code}: {estimate.duty_rate_percentage}% "
                    f"(confidence {estimate.confidence:.2f})")

        return DutyRateRecord(
            code=code,
            description=f"AI estimate for HS {code}",
            rate_text=f"{estimate.duty_rate_percentage:g}%",
            rate_percentage=percentage,
            chapter=chapter_of(code),
            tier=Tier.AI_ESTIMATE,
            confidence=confidence_level(estimate.confidence),
            rate_is_estimate=True,
            reasoning=estimate.reasoning,
            suggested_code=suggested,
        )

    def _build_estimate_prompt(self, description: Optional[str], code_hint: Optional[str],
                               origin_country: Optional[str], destination_country: Optional[str]) -> str:
        """Build the estimation prompt for GPT."""
        context_info = ""
        if code_hint:
            info = extract_chapter_info(code_hint)
            context = DutyMappings.CHAPTER_CONTEXTS.get(info['chapter'], "")
            subcontext = DutyMappings.HEADING_CONTEXTS.get(info['heading'], "")
            category = " - ".join(part for part in (context, subcontext) if part)
            if category:
                context_info = f"\nProduct Category: {category}"

        return f"""Estimate the import duty rate for the following product.

Product Information:
- Description: {clean_description(description) or 'Not provided'}
- HS Code: {code_hint or 'Not provided - please suggest the appropriate HS code'}{context_info}

Trade Route:
- Origin Country: {origin_country or 'Unknown'}
- Destination Country: {destination_country or 'Unknown'}

Base the estimate on the general (most-favoured-nation) duty rate for the HS code and any trade agreement between these countries. Do not include VAT, GST or other taxes.

Respond in JSON format with this exact structure:
{{
  "suggested_code": "HS code you used, e.g. 4202.92.31",
  "duty_rate_percentage": number (percentage, e.g. 15.5 for 15.5%),
  "confidence": number (0-1 scale of estimate accuracy),
  "reasoning": "brief explanation of the rate"
}}
"""
