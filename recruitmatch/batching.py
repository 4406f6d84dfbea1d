"""Split the candidate pool into batches and run them in bounded waves."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence, TypeVar

from recruitmatch.models import CandidateProfile, CandidateSummary
from recruitmatch.retry import Sleep

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

SNIPPET_ELLIPSIS = "..."


def truncate_resume(text: str | None, max_chars: int) -> str:
    """Cut resume text to ``max_chars`` and mark the cut with an ellipsis."""
    text = str(text or "")
    if len(text) > max_chars:
        return text[:max_chars] + SNIPPET_ELLIPSIS
    return text


def build_summaries(profiles: Sequence[CandidateProfile], snippet_chars: int) -> List[CandidateSummary]:
    """One summary per profile, indexed by its position in the pool."""
    return [
        CandidateSummary(index=position, resume_snippet=truncate_resume(profile.resume_text, snippet_chars))
        for position, profile in enumerate(profiles)
    ]


def partition(items: Sequence[T], batch_size: int) -> List[List[T]]:
    """Consecutive fixed-size batches; the last one may be short."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]


def group_waves(batches: Sequence[T], wave_width: int) -> List[List[T]]:
    """Group batches into waves of at most ``wave_width`` concurrent batches."""
    return partition(batches, wave_width)


async def run_in_waves(
    batches: Sequence[T],
    worker: Callable[[int, T], Awaitable[R]],
    on_error: Callable[[T, BaseException], R],
    *,
    wave_width: int = 1,
    inter_wave_delay: float = 0.0,
    sleep: Sleep = asyncio.sleep,
) -> List[R]:
    """
    Run ``worker(batch_number, batch)`` for every batch, ``wave_width`` at a time.

    A wave is fully settled before the next one starts. An exception escaping
    a worker is turned into a result by ``on_error`` so it never reaches the
    sibling batches or later waves. Results come back in completion order.
    """
    results: List[R] = []
    waves = group_waves(list(enumerate(batches, start=1)), wave_width)

    for wave_number, wave in enumerate(waves, start=1):
        logger.info(
            "Starting wave %d/%d (%d batches)", wave_number, len(waves), len(wave)
        )
        completed: List[R] = []

        async def _run(batch_number: int, batch: T) -> None:
            try:
                outcome = await worker(batch_number, batch)
            except Exception as exc:
                logger.exception("Batch %d failed outside the retry loop", batch_number)
                outcome = on_error(batch, exc)
            completed.append(outcome)

        await asyncio.gather(*(_run(batch_number, batch) for batch_number, batch in wave))
        results.extend(completed)

        if wave_number < len(waves) and inter_wave_delay > 0:
            logger.debug("Waiting %.1fs before next wave", inter_wave_delay)
            await sleep(inter_wave_delay)

    return results
