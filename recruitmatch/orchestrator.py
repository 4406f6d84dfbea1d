"""End-to-end ranking run: fetch, batch, rank, reconcile, persist."""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from recruitmatch.batching import build_summaries, partition, run_in_waves
from recruitmatch.gemini_client import GeminiClient
from recruitmatch.models import (
    CandidateProfile,
    CandidateSummary,
    PersistenceReport,
    RankedCandidate,
    RankingResult,
)
from recruitmatch.profile_store import ProfileStore, apply_updates
from recruitmatch.ranking import BatchRanker, fallback_batch
from recruitmatch.reconciler import build_result, reconcile
from recruitmatch.retry import Sleep
from recruitmatch.settings import Settings

logger = logging.getLogger(__name__)

NO_CANDIDATES_MESSAGE = "No candidates found in database"


class CandidateRanker:
    """
    Ranks the stored candidate pool against a job description.

    Every candidate of the pool ends up with exactly one ranked record per
    run: a real verdict, or a zero-score fallback when its batch could not
    be analysed. Only the analysed ones are returned to callers.
    """

    def __init__(
        self,
        settings: Settings,
        client: GeminiClient,
        store: ProfileStore,
        sleep: Sleep = asyncio.sleep,
    ):
        self.settings = settings
        self.store = store
        self._sleep = sleep
        self._batch_ranker = BatchRanker(client, settings, sleep=sleep)

    async def rank_profiles(
        self, job_description: str, profiles: Sequence[CandidateProfile]
    ) -> List[RankedCandidate]:
        """Rank an already-fetched pool; returns ranked records in completion order."""
        summaries = build_summaries(profiles, self.settings.resume_snippet_chars)
        batches = partition(summaries, self.settings.batch_size)
        logger.info(
            "Processing %d candidates in %d batches (wave width %d)",
            len(summaries),
            len(batches),
            self.settings.wave_width,
        )

        async def _worker(batch_number: int, batch: List[CandidateSummary]) -> List[RankedCandidate]:
            return await self._batch_ranker.rank(job_description, batch, batch_number)

        def _on_error(batch: List[CandidateSummary], exc: BaseException) -> List[RankedCandidate]:
            return fallback_batch(batch)

        per_batch = await run_in_waves(
            batches,
            _worker,
            _on_error,
            wave_width=self.settings.wave_width,
            inter_wave_delay=self.settings.inter_wave_delay_seconds,
            sleep=self._sleep,
        )
        return [candidate for batch_result in per_batch for candidate in batch_result]

    async def rank(self, job_description: str, limit: Optional[int] = None) -> RankingResult:
        """
        Run the full pipeline for ``job_description``.

        Raises:
            ProfileFetchError: the pool could not be read; nothing is ranked
        """
        profiles = tuple(await self.store.fetch_profiles(limit or self.settings.profile_fetch_limit))
        if not profiles:
            logger.info("No profiles to rank")
            return RankingResult(matches=[], total=0, message=NO_CANDIDATES_MESSAGE)

        ranked = await self.rank_profiles(job_description, profiles)
        logger.info("Total results: %d", len(ranked))

        reconciliation = reconcile(ranked, profiles)
        persistence = PersistenceReport()
        if reconciliation.updates:
            persistence = await apply_updates(self.store, reconciliation.updates)

        result = build_result(reconciliation, total=len(profiles), persistence=persistence)
        logger.info(
            "Ranking complete: %d matched, %d fallback, %d total",
            len(result.matches),
            result.fallback_count,
            result.total,
        )
        return result
