"""Console + API entry points for recruitmatch."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Sequence

from recruitmatch.errors import RecruitMatchError
from recruitmatch.gemini_client import GeminiClient
from recruitmatch.logging_config import configure_logging
from recruitmatch.orchestrator import CandidateRanker
from recruitmatch.profile_store import PostgresProfileStore
from recruitmatch.settings import get_settings

configure_logging()
logger = logging.getLogger(__name__)


async def _run_match(job_description: str, limit: int | None) -> dict:
    settings = get_settings()
    client = GeminiClient(settings)
    try:
        ranker = CandidateRanker(settings, client, PostgresProfileStore(settings.database_url))
        result = await ranker.rank(job_description, limit=limit)
    finally:
        await client.aclose()
    return result.model_dump(mode="json", by_alias=True)


async def _run_init_db() -> None:
    settings = get_settings()
    await PostgresProfileStore(settings.database_url).create_tables()


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m recruitmatch",
        description="Rank stored candidates against a job description with Gemini.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve.add_argument("--host", default=None, help="Bind host (defaults to API_BIND_HOST).")
    serve.add_argument("--port", type=int, default=None, help="Bind port (defaults to API_PORT).")
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes.")

    match = sub.add_parser("match", help="Rank the candidate pool once and print JSON.")
    match.add_argument("job_description", help="Job description text, or @path to read it from a file.")
    match.add_argument("--limit", type=int, default=None, help="Maximum profiles to fetch.")

    sub.add_parser("init-db", help="Create the profiles table if missing.")

    args = parser.parse_args(argv)

    if args.command == "serve":
        import uvicorn

        settings = get_settings()
        uvicorn.run(
            "recruitmatch.api:app",
            host=args.host or settings.api_bind_host,
            port=args.port or settings.api_port,
            reload=args.reload,
        )
        return 0

    try:
        if args.command == "init-db":
            asyncio.run(_run_init_db())
            print("profiles table ready")
            return 0

        job_description = args.job_description
        if job_description.startswith("@"):
            with open(job_description[1:], encoding="utf-8") as handle:
                job_description = handle.read()
        if not job_description.strip():
            parser.exit(status=2, message="Error: Job description is required\n")

        print(json.dumps(asyncio.run(_run_match(job_description, args.limit)), indent=2))
        return 0
    except (RecruitMatchError, OSError) as exc:
        parser.exit(status=1, message=f"Error: {exc}\n")
    return 1


if __name__ == "__main__":
    sys.exit(main())
