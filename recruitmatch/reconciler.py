"""Merge ranked candidates with their profiles into one ordered result."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from recruitmatch.models import (
    UNEXTRACTED_NAME,
    CandidateProfile,
    Match,
    PersistenceReport,
    ProfileUpdate,
    RankedCandidate,
    RankingResult,
)

logger = logging.getLogger(__name__)


@dataclass
class Reconciliation:
    matches: List[Match] = field(default_factory=list)
    updates: List[ProfileUpdate] = field(default_factory=list)
    fallback_count: int = 0
    success_count: int = 0
    dropped: List[int] = field(default_factory=list)


def _staged_fields(candidate: RankedCandidate) -> Dict[str, Any]:
    """Profile columns the model extracted, keeping only truthy values."""
    fields = {
        "full_name": candidate.full_name,
        "email": candidate.email,
        "phone_number": candidate.phone,
        "location": candidate.location,
        "job_title": candidate.job_title,
        "years_of_experience": candidate.years_of_experience,
    }
    return {key: value for key, value in fields.items() if value}


def _merge(profile: CandidateProfile, candidate: RankedCandidate) -> Match:
    # Extracted values win over stored ones, stored ones fill the gaps
    return Match(
        id=profile.id,
        resume_file_url=profile.resume_file_url,
        resume_text=profile.resume_text,
        created_at=profile.created_at,
        full_name=candidate.full_name or profile.full_name or UNEXTRACTED_NAME,
        email=candidate.email or profile.email,
        phone_number=candidate.phone or profile.phone_number,
        location=candidate.location or profile.location,
        job_title=candidate.job_title or profile.job_title,
        years_of_experience=(
            candidate.years_of_experience
            if candidate.years_of_experience is not None
            else profile.years_of_experience
        ),
        match_score=0 if candidate.is_fallback else candidate.match_score,
        reasoning=candidate.reasoning,
        strengths=list(candidate.strengths),
        concerns=list(candidate.concerns),
        is_fallback=candidate.is_fallback,
    )


def _lookup(profiles: Sequence[CandidateProfile], index: int) -> Optional[CandidateProfile]:
    if 0 <= index < len(profiles):
        return profiles[index]
    return None


def reconcile(ranked: Sequence[RankedCandidate], profiles: Sequence[CandidateProfile]) -> Reconciliation:
    """
    Sort every ranked candidate by score and attach its profile.

    The sort is stable, so equal scores keep the order in which batches
    completed. Indices with no profile are logged and dropped.
    """
    ordered = sorted(ranked, key=lambda candidate: candidate.match_score or 0, reverse=True)
    result = Reconciliation()

    for candidate in ordered:
        profile = _lookup(profiles, candidate.candidate_index)
        if profile is None:
            logger.error("No profile found for candidate index %d", candidate.candidate_index)
            result.dropped.append(candidate.candidate_index)
            continue

        result.matches.append(_merge(profile, candidate))
        if candidate.is_fallback:
            result.fallback_count += 1
            continue

        result.success_count += 1
        if candidate.full_name and candidate.full_name != UNEXTRACTED_NAME:
            fields = _staged_fields(candidate)
            if fields:
                result.updates.append(ProfileUpdate(profile_id=profile.id, fields=fields))

    logger.info(
        "Reconciled %d candidates: %d analysed, %d fallback, %d dropped",
        len(ranked),
        result.success_count,
        result.fallback_count,
        len(result.dropped),
    )
    return result


def build_result(
    reconciliation: Reconciliation,
    total: int,
    persistence: Optional[PersistenceReport] = None,
) -> RankingResult:
    """Public result: analysed matches only, in score order."""
    matches = [match for match in reconciliation.matches if not match.is_fallback]
    return RankingResult(
        matches=matches,
        total=total,
        message=f"Successfully matched {len(matches)} candidates",
        fallback_count=reconciliation.fallback_count,
        success_count=reconciliation.success_count,
        persistence=persistence or PersistenceReport(),
    )
