"""RecruitMatch public API surface."""

from recruitmatch.orchestrator import CandidateRanker
from recruitmatch.settings import Settings, get_settings

__version__ = "0.1.0"

__all__ = ["CandidateRanker", "Settings", "get_settings"]
