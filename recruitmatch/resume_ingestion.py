"""
Resume ingestion: extract profile fields from an uploaded resume with Gemini,
store the profile and report progress as server-sent events.
"""
from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from recruitmatch.errors import LLMRequestError, LLMTimeoutError, ResumeExtractionError
from recruitmatch.gemini_client import GeminiClient, extract_model_text, generation_config
from recruitmatch.profile_store import ProfileStore
from recruitmatch.prompts import (
    RESUME_SAFETY_SETTINGS,
    render_resume_file_prompt,
    render_resume_text_prompt,
)
from recruitmatch.sanitizer import (
    coerce_years,
    safe_json_parse,
    sanitize_string,
    sanitize_string_array,
)
from recruitmatch.settings import Settings

logger = logging.getLogger(__name__)

MIME_PDF = "application/pdf"
MIME_TEXT = "text/plain"
MIME_DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

TOTAL_STEPS = 4


@dataclass(frozen=True)
class ResumeUpload:
    file_name: str
    content_type: str
    data: bytes
    file_url: Optional[str] = None

    @property
    def is_docx(self) -> bool:
        return self.content_type == MIME_DOCX or self.file_name.lower().endswith(".docx")

    @property
    def inline_mime_type(self) -> str:
        """PDF unless the upload is plain text."""
        if self.content_type == MIME_TEXT or self.file_name.lower().endswith(".txt"):
            return MIME_TEXT
        return MIME_PDF


def check_supported(upload: ResumeUpload) -> None:
    """Raise ResumeExtractionError for uploads the model cannot read inline."""
    if not upload.data:
        raise ResumeExtractionError("Uploaded file is empty")
    if upload.is_docx:
        raise ResumeExtractionError("DOCX files are not supported; upload a PDF or plain-text resume")


def normalize_profile(
    parsed: Any,
    fallback_resume_text: Optional[str],
    file_url: Optional[str],
) -> Dict[str, Any]:
    """
    Map the model's JSON onto profile columns.

    Every value is sanitized; missing fields become None. ``resume_text``
    falls back to the raw model output when the model omitted it.
    """
    if not isinstance(parsed, dict):
        parsed = {}
    return {
        "full_name": sanitize_string(parsed.get("full_name")),
        "email": sanitize_string(parsed.get("email")),
        "phone_number": sanitize_string(parsed.get("phone_number")),
        "location": sanitize_string(parsed.get("location")),
        "job_title": sanitize_string(parsed.get("job_title")),
        "years_of_experience": coerce_years(parsed.get("years_of_experience")),
        "sector": sanitize_string(parsed.get("sector")),
        "skills": sanitize_string_array(parsed.get("skills")),
        "experience": sanitize_string(parsed.get("experience")),
        "education": sanitize_string(parsed.get("education")),
        "resume_text": sanitize_string(parsed.get("resume_text")) or fallback_resume_text,
        "resume_file_url": file_url,
    }


def resume_parts(upload: ResumeUpload) -> List[Dict[str, Any]]:
    """
    Request parts for one resume.

    Plain text goes into the prompt itself; PDFs are sent inline as base64
    followed by the extraction prompt.
    """
    if upload.inline_mime_type == MIME_TEXT:
        text = upload.data.decode("utf-8", errors="ignore")
        return [{"text": render_resume_text_prompt(text)}]
    return [
        {
            "inline_data": {
                "mime_type": upload.inline_mime_type,
                "data": base64.b64encode(upload.data).decode("ascii"),
            }
        },
        {"text": render_resume_file_prompt()},
    ]


def format_sse(event: str, data: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


class ResumeParser:
    """One AI extraction call per resume, then an insert into the profile store."""

    def __init__(self, settings: Settings, client: GeminiClient, store: ProfileStore):
        self.settings = settings
        self.client = client
        self.store = store

    async def extract(self, upload: ResumeUpload) -> Tuple[Any, str]:
        """
        Ask the model for structured fields. Single attempt, bounded by
        ``parse_timeout_seconds``.

        Returns:
            (parsed JSON or None, raw model text)

        Raises:
            ResumeExtractionError: timeout, HTTP error or empty model output
        """
        check_supported(upload)
        config = generation_config(
            temperature=self.settings.parse_temperature,
            max_output_tokens=self.settings.parse_max_output_tokens,
            topK=32,
            topP=0.9,
        )
        try:
            response = await self.client.generate(
                resume_parts(upload),
                config,
                model=self.settings.gemini_parse_model,
                timeout=self.settings.parse_timeout_seconds,
                safety_settings=RESUME_SAFETY_SETTINGS,
            )
        except LLMTimeoutError as exc:
            raise ResumeExtractionError(
                f"AI parsing timed out after {self.settings.parse_timeout_seconds:g}s"
            ) from exc
        except LLMRequestError as exc:
            raise ResumeExtractionError(f"AI parsing failed: {exc}") from exc

        if not response.ok:
            raise ResumeExtractionError(
                f"AI parsing failed: {response.status_code} - {response.text[:200]}"
            )

        try:
            envelope = response.json()
        except ValueError:
            envelope = None
        ai_text = extract_model_text(envelope)
        if not ai_text:
            logger.error("No text extracted from Gemini response: %s", response.text[:500])
            raise ResumeExtractionError("Failed to extract text - AI returned empty response")

        return safe_json_parse(ai_text), ai_text

    async def ingest(self, upload: ResumeUpload) -> AsyncIterator[Tuple[str, Dict[str, Any]]]:
        """
        Yield ``(event, data)`` pairs while the resume is processed.

        Events are ``log``, ``progress``, ``error`` and ``complete``. Failures
        end the stream with a single ``error`` event.
        """
        yield "log", {"level": "info", "message": f"Processing file: {upload.file_name}"}
        logger.info("Processing file: %s", upload.file_name)
        try:
            yield "progress", {"current": 1, "total": TOTAL_STEPS, "step": "Reading file..."}
            check_supported(upload)

            yield "progress", {"current": 2, "total": TOTAL_STEPS, "step": "Extracting text..."}
            yield "log", {"level": "info", "message": "Parsing resume with AI..."}
            yield "progress", {"current": 3, "total": TOTAL_STEPS, "step": "Analyzing content..."}
            parsed, ai_text = await self.extract(upload)

            yield "log", {"level": "success", "message": "AI analysis complete"}
            yield "progress", {"current": 4, "total": TOTAL_STEPS, "step": "Saving to database..."}
            profile_fields = normalize_profile(parsed, ai_text, upload.file_url)
            profile = await self.store.insert_profile(profile_fields)
        except ResumeExtractionError as exc:
            logger.warning("Resume %s rejected: %s", upload.file_name, exc)
            yield "error", {"message": str(exc)}
            return
        except Exception as exc:
            logger.exception("Error parsing resume %s", upload.file_name)
            yield "error", {"message": str(exc) or "Unknown error"}
            return

        yield "log", {"level": "success", "message": "Resume processed successfully!"}
        yield "complete", {
            "success": True,
            "profile_id": profile.id,
            "message": "Resume uploaded and parsed successfully",
        }

    async def stream(self, upload: ResumeUpload) -> AsyncIterator[str]:
        """``ingest`` rendered as server-sent event frames."""
        async for event, data in self.ingest(upload):
            yield format_sse(event, data)
