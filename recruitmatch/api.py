"""HTTP API for candidate matching and resume parsing."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Dict, Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from recruitmatch.errors import ConfigurationError, ProfileFetchError, ResumeExtractionError
from recruitmatch.gemini_client import GeminiClient
from recruitmatch.logging_config import configure_logging
from recruitmatch.models import ErrorResponse, MatchRequest, MatchResponse
from recruitmatch.orchestrator import CandidateRanker
from recruitmatch.profile_store import PostgresProfileStore
from recruitmatch.resume_ingestion import ResumeParser, ResumeUpload, check_supported
from recruitmatch.settings import Settings, get_settings

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="RecruitMatch API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return _error(500, str(exc))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected request to %s: %s", request.url.path, exc.errors())
    if request.url.path == "/match-candidates":
        return _error(400, "Job description is required")
    return _error(400, "Invalid request")


RankerFactory = Callable[[], AsyncContextManager[CandidateRanker]]


def get_ranker_factory(settings: Settings = Depends(get_settings)) -> RankerFactory:
    """Defer client construction until the request body has been checked."""

    @asynccontextmanager
    async def open_ranker() -> AsyncIterator[CandidateRanker]:
        store = PostgresProfileStore(settings.database_url)
        client = GeminiClient(settings)
        try:
            yield CandidateRanker(settings, client, store)
        finally:
            await client.aclose()

    return open_ranker


ParserFactory = Callable[[], ResumeParser]


def get_resume_parser_factory(settings: Settings = Depends(get_settings)) -> ParserFactory:
    def open_parser() -> ResumeParser:
        # The store rejects a missing URL before any HTTP client is opened.
        store = PostgresProfileStore(settings.database_url)
        return ResumeParser(settings, GeminiClient(settings), store)

    return open_parser


@app.get("/health")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    return {"status": "ok", "model": settings.gemini_match_model}


@app.post("/match-candidates", response_model=MatchResponse)
async def match_candidates(
    payload: MatchRequest,
    open_ranker: RankerFactory = Depends(get_ranker_factory),
) -> Any:
    job_description = (payload.job_description or "").strip()
    if not job_description:
        return _error(400, "Job description is required")

    logger.info("Match request received (%d chars)", len(job_description))
    try:
        async with open_ranker() as ranker:
            result = await ranker.rank(job_description)
    except ConfigurationError as exc:
        logger.error("Configuration error on /match-candidates: %s", exc)
        return _error(500, str(exc))
    except ProfileFetchError:
        return _error(500, "Failed to fetch profiles")
    except Exception as exc:
        logger.exception("Error in match-candidates")
        return _error(500, str(exc) or "Unknown error")

    return MatchResponse(
        matches=[match.model_dump(mode="json", by_alias=True) for match in result.matches],
        total=result.total,
        message=result.message,
    ).model_dump()


@app.post("/parse-resume")
async def parse_resume(
    file: UploadFile = File(...),
    fileName: Optional[str] = Form(None),
    fileUrl: Optional[str] = Form(None),
    open_parser: ParserFactory = Depends(get_resume_parser_factory),
) -> Any:
    """Stream resume processing progress as server-sent events."""
    upload = ResumeUpload(
        file_name=fileName or file.filename or "resume",
        content_type=file.content_type or "",
        data=await file.read(),
        file_url=fileUrl,
    )
    try:
        check_supported(upload)
    except ResumeExtractionError as exc:
        return _error(400, str(exc))

    parser = open_parser()

    async def _events() -> AsyncIterator[str]:
        try:
            async for frame in parser.stream(upload):
                yield frame
        finally:
            await parser.client.aclose()

    return StreamingResponse(
        _events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
