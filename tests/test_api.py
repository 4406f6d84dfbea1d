"""
Test cases for the HTTP API
"""
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import FakeGeminiClient, InMemoryProfileStore, make_profiles, make_settings, ok_response
from recruitmatch.api import app, get_ranker_factory, get_resume_parser_factory
from recruitmatch.errors import ConfigurationError, ProfileFetchError
from recruitmatch.models import RankedCandidate, RankingResult
from recruitmatch.reconciler import build_result, reconcile
from recruitmatch.resume_ingestion import ResumeParser
from recruitmatch.settings import get_settings


def ranker_factory(ranker):
    @asynccontextmanager
    async def open_ranker():
        yield ranker

    return open_ranker


@pytest.fixture
def ranker():
    mock_ranker = MagicMock()
    mock_ranker.rank = AsyncMock()
    return mock_ranker


@pytest.fixture
def client(ranker):
    app.dependency_overrides[get_settings] = lambda: make_settings()
    app.dependency_overrides[get_ranker_factory] = lambda: ranker_factory(ranker)
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestMatchCandidates:
    """Test cases for POST /match-candidates"""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "model": "gemini-2.0-flash-exp"}

    @pytest.mark.parametrize(
        "body",
        [{}, {"jobDescription": ""}, {"jobDescription": "   "}, {"jobDescription": 42}, {"jobDescription": ["a"]}],
    )
    def test_job_description_required(self, client, ranker, body):
        response = client.post("/match-candidates", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": "Job description is required"}
        ranker.rank.assert_not_called()

    def test_body_is_not_json(self, client, ranker):
        response = client.post(
            "/match-candidates", content=b"not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Job description is required"}
        ranker.rank.assert_not_called()

    def test_blank_description_checked_before_configuration(self, client):
        """Without an API key a blank description is still a client error"""
        app.dependency_overrides[get_settings] = lambda: make_settings(gemini_api_key=None)
        del app.dependency_overrides[get_ranker_factory]

        response = client.post("/match-candidates", json={"jobDescription": " "})

        assert response.status_code == 400
        assert response.json() == {"error": "Job description is required"}

    def test_missing_api_key(self, client):
        app.dependency_overrides[get_settings] = lambda: make_settings(
            gemini_api_key=None, database_url="postgresql://localhost/recruitmatch"
        )
        del app.dependency_overrides[get_ranker_factory]

        response = client.post("/match-candidates", json={"jobDescription": "Python engineer"})

        assert response.status_code == 500
        assert response.json() == {"error": "GEMINI_API_KEY not configured"}

    def test_ranked_matches(self, client, ranker):
        reconciliation = reconcile(
            [
                RankedCandidate(candidate_index=0, full_name="Ada", match_score=70),
                RankedCandidate(candidate_index=1, full_name="Grace", match_score=95),
                RankedCandidate.fallback(2),
            ],
            make_profiles(3),
        )
        ranker.rank.return_value = build_result(reconciliation, total=3)

        response = client.post("/match-candidates", json={"jobDescription": "Python engineer"})

        assert response.status_code == 200
        payload = response.json()
        assert payload["total"] == 3
        assert payload["message"] == "Successfully matched 2 candidates"
        assert [m["full_name"] for m in payload["matches"]] == ["Grace", "Ada"]
        assert payload["matches"][0]["matchScore"] == 95
        assert payload["matches"][0]["id"] == "profile-1"
        ranker.rank.assert_awaited_once_with("Python engineer")

    def test_empty_pool(self, client, ranker):
        ranker.rank.return_value = RankingResult(matches=[], total=0, message="No candidates found in database")
        response = client.post("/match-candidates", json={"jobDescription": "Python engineer"})
        assert response.status_code == 200
        assert response.json() == {"matches": [], "total": 0, "message": "No candidates found in database"}

    def test_fetch_failure(self, client, ranker):
        ranker.rank.side_effect = ProfileFetchError("connection refused")
        response = client.post("/match-candidates", json={"jobDescription": "Python engineer"})
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch profiles"}

    def test_unexpected_failure(self, client, ranker):
        ranker.rank.side_effect = RuntimeError("kaboom")
        response = client.post("/match-candidates", json={"jobDescription": "Python engineer"})
        assert response.status_code == 500
        assert response.json() == {"error": "kaboom"}

    def test_missing_configuration(self, client):
        def unconfigured():
            raise ConfigurationError("DATABASE_URL not configured")

        app.dependency_overrides[get_ranker_factory] = lambda: unconfigured
        response = client.post("/match-candidates", json={"jobDescription": "Python engineer"})
        assert response.status_code == 500
        assert response.json() == {"error": "DATABASE_URL not configured"}


class TestParseResume:
    """Test cases for POST /parse-resume"""

    def test_streams_events(self, client):
        gemini = FakeGeminiClient([ok_response({"full_name": "Jane Doe", "email": "jane@example.com"})])
        store = InMemoryProfileStore()
        app.dependency_overrides[get_resume_parser_factory] = lambda: lambda: ResumeParser(make_settings(), gemini, store)

        response = client.post(
            "/parse-resume",
            files={"file": ("jane.txt", b"Jane Doe\njane@example.com", "text/plain")},
            data={"fileName": "jane.txt"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert "event: progress" in response.text
        assert "event: complete" in response.text
        assert store.inserted[0]["full_name"] == "Jane Doe"
        assert gemini.closed

    def test_docx_rejected(self, client):
        gemini = FakeGeminiClient([])
        app.dependency_overrides[get_resume_parser_factory] = lambda: lambda: ResumeParser(make_settings(), gemini, InMemoryProfileStore())

        response = client.post(
            "/parse-resume",
            files={"file": ("jane.docx", b"PK\x03\x04", "application/octet-stream")},
        )

        assert response.status_code == 400
        assert "DOCX" in response.json()["error"]
        assert gemini.calls == []

    def test_missing_file(self, client):
        gemini = FakeGeminiClient([])
        app.dependency_overrides[get_resume_parser_factory] = lambda: lambda: ResumeParser(make_settings(), gemini, InMemoryProfileStore())

        response = client.post("/parse-resume", data={"fileName": "jane.txt"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request"}

    def test_missing_database_opens_no_client(self, client):
        """A store that cannot be configured fails before any Gemini client exists"""
        with patch("recruitmatch.api.GeminiClient") as client_cls:
            response = client.post(
                "/parse-resume",
                files={"file": ("jane.txt", b"Jane Doe", "text/plain")},
            )

        assert response.status_code == 500
        assert response.json() == {"error": "DATABASE_URL not set"}
        client_cls.assert_not_called()
