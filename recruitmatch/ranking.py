"""Rank one batch of candidates against a job description with Gemini."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Sequence

from recruitmatch.gemini_client import (
    RESPONSE_MIME_JSON,
    GeminiClient,
    LLMResponse,
    extract_model_text,
    generation_config,
)
from recruitmatch.errors import LLMRequestError
from recruitmatch.models import UNEXTRACTED_NAME, CandidateSummary, RankedCandidate
from recruitmatch.prompts import render_match_prompt
from recruitmatch.retry import (
    AttemptOutcome,
    RetryController,
    RetryPolicy,
    Sleep,
    parse_retry_delay,
)
from recruitmatch.sanitizer import (
    coerce_int,
    coerce_years,
    safe_json_parse,
    sanitize_string,
    sanitize_string_array,
)
from recruitmatch.settings import Settings

logger = logging.getLogger(__name__)

REASONING_MAX_LEN = 150
FIELD_MAX_LEN = 256
DEFAULT_MATCH_SCORE = 50
DEFAULT_REASONING = "Analyzed"


def fallback_batch(batch: Sequence[CandidateSummary]) -> List[RankedCandidate]:
    """Deterministic zero-score records for every candidate of a failed batch."""
    return [RankedCandidate.fallback(summary.index) for summary in batch]


def _clamp_score(value: Any) -> int:
    score = coerce_int(value)
    if score is None:
        return DEFAULT_MATCH_SCORE
    return max(0, min(100, score))


def shape_ranked_candidate(raw: Any) -> Optional[RankedCandidate]:
    """
    Convert one model-returned entry into a RankedCandidate.

    Every field goes through the sanitizer; entries without a usable
    ``candidateIndex`` are rejected.
    """
    if not isinstance(raw, dict):
        return None
    index = coerce_int(raw.get("candidateIndex"))
    if index is None or index < 0:
        return None

    return RankedCandidate(
        candidate_index=index,
        full_name=sanitize_string(raw.get("fullName"), FIELD_MAX_LEN) or UNEXTRACTED_NAME,
        email=sanitize_string(raw.get("email"), FIELD_MAX_LEN),
        phone=sanitize_string(raw.get("phone"), FIELD_MAX_LEN),
        location=sanitize_string(raw.get("location"), FIELD_MAX_LEN),
        job_title=sanitize_string(raw.get("jobTitle"), FIELD_MAX_LEN),
        years_of_experience=coerce_years(raw.get("yearsOfExperience")),
        match_score=_clamp_score(raw.get("matchScore")),
        reasoning=sanitize_string(raw.get("reasoning"), REASONING_MAX_LEN) or DEFAULT_REASONING,
        strengths=sanitize_string_array(raw.get("strengths")) or [],
        concerns=sanitize_string_array(raw.get("concerns")) or [],
    )


def align_to_batch(
    ranked: Sequence[RankedCandidate],
    batch: Sequence[CandidateSummary],
    backfill_missing: bool = True,
) -> List[RankedCandidate]:
    """
    Keep one record per batch member.

    Entries pointing outside the batch and repeated indices are discarded.
    With ``backfill_missing`` every member the model skipped gets a fallback.
    """
    expected = {summary.index for summary in batch}
    seen = set()
    aligned: List[RankedCandidate] = []
    for candidate in ranked:
        index = candidate.candidate_index
        if index not in expected:
            logger.warning("Discarding ranking for index %d outside the batch", index)
            continue
        if index in seen:
            logger.warning("Discarding duplicate ranking for index %d", index)
            continue
        seen.add(index)
        aligned.append(candidate)

    if backfill_missing:
        missing = [summary for summary in batch if summary.index not in seen]
        if missing:
            logger.warning(
                "Model skipped %d of %d candidates; substituting fallbacks",
                len(missing),
                len(batch),
            )
            aligned.extend(fallback_batch(missing))
    return aligned


def _parse_batch_response(response: LLMResponse) -> AttemptOutcome[List[Any]]:
    """Classify a 2xx body: success with raw entries, or a logical failure."""
    try:
        envelope = response.json()
    except ValueError:
        return AttemptOutcome.failure("Gemini response was not JSON")
    model_text = extract_model_text(envelope)
    if model_text is None:
        return AttemptOutcome.failure("Gemini response had no model text")

    parsed = safe_json_parse(model_text)
    if not isinstance(parsed, dict) or not isinstance(parsed.get("candidates"), list):
        return AttemptOutcome.failure("Model output lacked a candidates array")
    return AttemptOutcome.success(parsed["candidates"])


class BatchRanker:
    """Drives the retry controller for one batch and shapes the result."""

    def __init__(self, client: GeminiClient, settings: Settings, sleep: Sleep = asyncio.sleep):
        self._client = client
        self._settings = settings
        self._controller = RetryController(
            RetryPolicy(
                max_attempts=settings.max_attempts,
                default_rate_limit_delay=settings.rate_limit_default_delay_seconds,
                backoff_base=settings.backoff_base_seconds,
            ),
            sleep=sleep,
        )

    async def _attempt(self, prompt: str) -> AttemptOutcome[List[Any]]:
        try:
            response = await self._client.generate(
                [{"text": prompt}],
                generation_config(
                    temperature=self._settings.match_temperature,
                    max_output_tokens=self._settings.match_max_output_tokens,
                    response_mime_type=RESPONSE_MIME_JSON,
                ),
                model=self._settings.gemini_match_model,
                timeout=self._settings.match_timeout_seconds,
            )
        except LLMRequestError as exc:
            return AttemptOutcome.failure(str(exc))

        if response.rate_limited:
            return AttemptOutcome.rate_limited(
                parse_retry_delay(response.text),
                error=f"Gemini API error: {response.status_code}",
            )
        if not response.ok:
            return AttemptOutcome.failure(f"Gemini API error: {response.status_code}")
        return _parse_batch_response(response)

    async def rank(
        self,
        job_description: str,
        batch: Sequence[CandidateSummary],
        batch_number: int = 1,
    ) -> List[RankedCandidate]:
        """Rank ``batch``; never raises for AI failures, falling back instead."""
        label = f"Batch {batch_number}"
        logger.info("Processing %s (%d candidates)", label, len(batch))
        prompt = render_match_prompt(job_description, batch)

        result = await self._controller.run(lambda attempt: self._attempt(prompt), label=label)
        if not result.succeeded:
            logger.warning("Creating fallback results for %s: %s", label, "; ".join(result.errors))
            return fallback_batch(batch)

        shaped: List[RankedCandidate] = []
        for raw in result.value or []:
            candidate = shape_ranked_candidate(raw)
            if candidate is None:
                logger.warning("%s: dropping unusable entry %r", label, raw)
                continue
            shaped.append(candidate)

        ranked = align_to_batch(shaped, batch, self._settings.backfill_missing_candidates)
        logger.info("Successfully processed %s (%d candidates)", label, len(ranked))
        return ranked
