"""Pydantic models for candidate ranking and resume ingestion."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

FALLBACK_REASONING = "Analysis failed - manual review needed"
FALLBACK_CONCERN = "Automated analysis unavailable"
UNEXTRACTED_NAME = "Not extracted"


# =============================================================================
# PROFILE STORE
# =============================================================================

class CandidateProfile(BaseModel):
    """A row of the profiles table. Identity fields never change during a run."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    created_at: Optional[datetime] = None
    resume_file_url: Optional[str] = None
    resume_text: Optional[str] = None

    full_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    location: Optional[str] = None
    job_title: Optional[str] = None
    years_of_experience: Optional[int] = None

    # Filled by resume ingestion only
    sector: Optional[str] = None
    skills: Optional[List[str]] = None
    experience: Optional[str] = None
    education: Optional[str] = None


class ProfileUpdate(BaseModel):
    """Partial update for one profile. ``fields`` never holds empty values."""
    profile_id: str
    fields: Dict[str, Any]


class PersistenceReport(BaseModel):
    """Outcome of the best-effort profile writes issued after a ranking run."""
    attempted: int = 0
    succeeded: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)


# =============================================================================
# RANKING
# =============================================================================

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CandidateSummary(_CamelModel):
    """What a batch prompt sees of one candidate."""
    index: int
    resume_snippet: str


class RankedCandidate(_CamelModel):
    """One scored candidate, pointing back into the pool by position."""
    candidate_index: int
    full_name: str = UNEXTRACTED_NAME
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    job_title: Optional[str] = None
    years_of_experience: Optional[int] = None
    match_score: int = Field(0, ge=0, le=100)
    reasoning: str = ""
    strengths: List[str] = Field(default_factory=list)
    concerns: List[str] = Field(default_factory=list)
    is_fallback: bool = False

    @classmethod
    def fallback(cls, index: int) -> "RankedCandidate":
        """Zero-score placeholder used when analysis of ``index`` could not complete."""
        return cls(
            candidate_index=index,
            full_name=f"Candidate {index + 1}",
            match_score=0,
            reasoning=FALLBACK_REASONING,
            strengths=[],
            concerns=[FALLBACK_CONCERN],
            is_fallback=True,
        )


class Match(BaseModel):
    """Profile fields merged with the ranking verdict, as returned to callers."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    resume_file_url: Optional[str] = None
    resume_text: Optional[str] = None
    created_at: Optional[datetime] = None
    full_name: str = UNEXTRACTED_NAME
    email: Optional[str] = None
    phone_number: Optional[str] = None
    location: Optional[str] = None
    job_title: Optional[str] = None
    years_of_experience: Optional[int] = None
    match_score: int = Field(0, alias="matchScore")
    reasoning: str = ""
    strengths: List[str] = Field(default_factory=list)
    concerns: List[str] = Field(default_factory=list)
    is_fallback: bool = Field(False, alias="isFallback")


class RankingResult(BaseModel):
    """Full outcome of a ranking run."""
    matches: List[Match]
    total: int
    message: str
    fallback_count: int = 0
    success_count: int = 0
    persistence: PersistenceReport = Field(default_factory=PersistenceReport)


# =============================================================================
# API
# =============================================================================

class MatchRequest(BaseModel):
    job_description: Optional[str] = Field(None, alias="jobDescription")


class MatchResponse(BaseModel):
    matches: List[Dict[str, Any]]
    total: int
    message: str


class ErrorResponse(BaseModel):
    error: str
