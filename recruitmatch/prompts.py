"""Prompt templates sent to Gemini."""
from __future__ import annotations

from typing import Iterable

from recruitmatch.models import CandidateSummary

MATCH_RESPONSE_SHAPE = """{
  "candidates": [
    {
      "candidateIndex": number,
      "fullName": "string",
      "email": "string or null",
      "phone": "string or null",
      "location": "string or null",
      "jobTitle": "string or null",
      "yearsOfExperience": number or null,
      "matchScore": number (0-100),
      "reasoning": "string (max 150 chars)",
      "strengths": ["array of strings"],
      "concerns": ["array of strings"]
    }
  ]
}"""

RESUME_FIELDS_SHAPE = """{
  "full_name": "string",
  "email": "string",
  "phone_number": "string",
  "location": "string",
  "job_title": "string",
  "years_of_experience": number,
  "sector": "string",
  "skills": ["array", "of", "strings"],
  "experience": "string (summary of work experience)",
  "education": "string (summary of education)",
  "resume_text": "string (full extracted text)"
}"""

CANDIDATE_SEPARATOR = "\n\n---\n\n"


def render_match_prompt(job_description: str, summaries: Iterable[CandidateSummary]) -> str:
    """Ranking prompt for one batch. Candidates are labelled with their pool index."""
    candidates = CANDIDATE_SEPARATOR.join(
        f"Candidate {summary.index}:\n{summary.resume_snippet}" for summary in summaries
    )
    return f"""You are an expert recruiter. Analyze these candidates against the job description and return ONLY a valid JSON object with a "candidates" array.

Job Description:
{job_description}

Candidates:
{candidates}

Return a JSON object with this structure:
{MATCH_RESPONSE_SHAPE}

Use the candidate number shown above as "candidateIndex" and return exactly one entry per candidate."""


def render_resume_text_prompt(resume_text: str) -> str:
    """Extraction prompt when the resume is already plain text."""
    return (
        f"Here is the text content from a resume:\n\n{resume_text}\n\n"
        f"Extract all information and return a JSON object with these fields:\n"
        f"{RESUME_FIELDS_SHAPE}\n\n"
        "Return ONLY valid JSON, no markdown or explanations."
    )


def render_resume_file_prompt() -> str:
    """Extraction prompt sent alongside an inline resume file."""
    return (
        "Extract all information from this resume and return a JSON object with these fields:\n"
        f"{RESUME_FIELDS_SHAPE}\n\n"
        "Return ONLY valid JSON, no markdown or explanations."
    )


RESUME_SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
]
