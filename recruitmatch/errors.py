"""Exception types raised across the matching and ingestion pipelines."""
from __future__ import annotations

from typing import Optional


class RecruitMatchError(Exception):
    """Base class for every error raised by recruitmatch."""


class ConfigurationError(RecruitMatchError):
    """A required credential or endpoint is missing. Fatal to the whole run."""


class ProfileFetchError(RecruitMatchError):
    """The profile store could not be read; no ranking is attempted."""


class ProfileUpdateError(RecruitMatchError):
    """A single profile write failed."""

    def __init__(self, profile_id: str, reason: str):
        self.profile_id = profile_id
        self.reason = reason
        super().__init__(f"Failed to update profile {profile_id}: {reason}")


class LLMRequestError(RecruitMatchError):
    """The generative-text request never produced an HTTP response."""


class LLMTimeoutError(LLMRequestError):
    """The generative-text request exceeded its wall-clock budget."""

    def __init__(self, timeout: Optional[float]):
        self.timeout = timeout
        super().__init__(f"Gemini request timed out after {timeout}s")


class ResumeExtractionError(RecruitMatchError):
    """Structured fields could not be extracted from a resume."""
