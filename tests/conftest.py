"""
Shared fixtures and fakes for the recruitmatch test suite.
"""
import json
import re
from typing import Any, Callable, Dict, List, Optional

import pytest

from recruitmatch.errors import ProfileFetchError, ProfileUpdateError
from recruitmatch.gemini_client import LLMResponse
from recruitmatch.models import CandidateProfile
from recruitmatch.settings import Settings

CANDIDATE_LABEL_RE = re.compile(r"^Candidate (\d+):", re.MULTILINE)


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from any .env file on the machine running the tests."""
    values = {"gemini_api_key": "test-key", "database_url": None}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_profiles(count: int) -> List[CandidateProfile]:
    return [
        CandidateProfile(
            id=f"profile-{i}",
            resume_text=f"Resume of candidate {i}. Python, SQL, {i} years.",
            full_name=f"Stored Name {i}",
        )
        for i in range(count)
    ]


def gemini_envelope(payload: Any) -> str:
    """A generateContent response body whose model text is ``payload`` as JSON."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return json.dumps({"candidates": [{"content": {"parts": [{"text": text}]}}]})


def ok_response(payload: Any) -> LLMResponse:
    return LLMResponse(status_code=200, text=gemini_envelope(payload))


def rate_limited_response(retry_delay: Optional[str] = None) -> LLMResponse:
    details = [{"@type": "type.googleapis.com/google.rpc.RetryInfo", "metadata": {"retryDelay": retry_delay}}] if retry_delay else []
    body = {"error": {"code": 429, "status": "RESOURCE_EXHAUSTED", "details": details}}
    return LLMResponse(status_code=429, text=json.dumps(body))


def ranking_entry(index: int, score: int = 70, **extra: Any) -> Dict[str, Any]:
    entry = {
        "candidateIndex": index,
        "fullName": f"Extracted Name {index}",
        "email": f"candidate{index}@example.com",
        "matchScore": score,
        "reasoning": "Solid overlap with the required stack",
        "strengths": ["Python"],
        "concerns": [],
    }
    entry.update(extra)
    return entry


def prompt_indices(parts: List[Dict[str, Any]]) -> List[int]:
    """Candidate indices labelled in a ranking prompt."""
    return [int(i) for i in CANDIDATE_LABEL_RE.findall(parts[0]["text"])]


class SleepRecorder:
    """Awaitable stand-in for asyncio.sleep that only records delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeGeminiClient:
    """
    Replays scripted responses. ``responder`` may be a list consumed in
    order or a callable receiving the request parts.
    """

    def __init__(self, responder: Any):
        self.responder = responder
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def generate(self, parts, config, *, model=None, timeout=None, safety_settings=None) -> LLMResponse:
        self.calls.append(
            {"parts": parts, "config": config, "model": model, "timeout": timeout, "safety_settings": safety_settings}
        )
        if callable(self.responder):
            outcome = self.responder(parts)
        else:
            outcome = self.responder.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True


class InMemoryProfileStore:
    """Profile store backed by a list; records every write."""

    def __init__(self, profiles: Optional[List[CandidateProfile]] = None, fail_ids=(), fetch_error: bool = False):
        self.profiles = list(profiles or [])
        self.fail_ids = set(fail_ids)
        self.fetch_error = fetch_error
        self.updates: Dict[str, Dict[str, Any]] = {}
        self.inserted: List[Dict[str, Any]] = []
        self.fetch_limits: List[int] = []

    async def fetch_profiles(self, limit: int) -> List[CandidateProfile]:
        self.fetch_limits.append(limit)
        if self.fetch_error:
            raise ProfileFetchError("Failed to fetch profiles")
        return self.profiles[:limit]

    async def update_profile(self, profile_id: str, fields: Dict[str, Any]) -> None:
        if profile_id in self.fail_ids:
            raise ProfileUpdateError(profile_id, "connection reset")
        self.updates[profile_id] = dict(fields)

    async def insert_profile(self, fields: Dict[str, Any]) -> CandidateProfile:
        self.inserted.append(dict(fields))
        return CandidateProfile(id=f"new-{len(self.inserted)}", **{k: v for k, v in fields.items() if v is not None})


def batch_responder(score_for: Callable[[int], int] = lambda index: 100 - index % 100) -> Callable:
    """Responder that ranks every candidate labelled in the prompt."""

    def _respond(parts):
        return ok_response({"candidates": [ranking_entry(i, score_for(i)) for i in prompt_indices(parts)]})

    return _respond


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()
