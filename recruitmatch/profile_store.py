"""Profile store: PostgreSQL access plus the best-effort update fan-out."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from psycopg import AsyncConnection
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from recruitmatch.errors import ConfigurationError, ProfileFetchError, ProfileUpdateError
from recruitmatch.models import CandidateProfile, PersistenceReport, ProfileUpdate

logger = logging.getLogger(__name__)


# =============================================================================
# TABLE CREATION
# =============================================================================

PROFILES_TABLE_SQL = """
CREATE EXTENSION IF NOT EXISTS pgcrypto;

CREATE TABLE IF NOT EXISTS profiles (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

    -- Source document
    resume_file_url TEXT,
    resume_text TEXT,

    -- Identity
    full_name VARCHAR(256),
    email VARCHAR(256),
    phone_number VARCHAR(64),
    location VARCHAR(256),
    job_title VARCHAR(256),
    years_of_experience INTEGER,

    -- Extracted by resume parsing
    sector VARCHAR(256),
    skills JSONB,
    experience TEXT,
    education TEXT
);

CREATE INDEX IF NOT EXISTS idx_profiles_created_at ON profiles(created_at DESC);
"""

PROFILE_COLUMNS = (
    "resume_file_url",
    "resume_text",
    "full_name",
    "email",
    "phone_number",
    "location",
    "job_title",
    "years_of_experience",
    "sector",
    "skills",
    "experience",
    "education",
)
JSON_COLUMNS = {"skills"}

SELECT_PROFILES_SQL = f"""
    SELECT id::text AS id, created_at, {', '.join(PROFILE_COLUMNS)}
    FROM profiles
    ORDER BY created_at DESC
    LIMIT %s
"""


class ProfileStore(Protocol):
    async def fetch_profiles(self, limit: int) -> List[CandidateProfile]:
        ...

    async def update_profile(self, profile_id: str, fields: Dict[str, Any]) -> None:
        ...

    async def insert_profile(self, fields: Dict[str, Any]) -> CandidateProfile:
        ...


def _column_values(fields: Dict[str, Any]) -> Tuple[List[str], List[Any]]:
    """Known, non-null columns and their adapted values."""
    cols, vals = [], []
    for key, value in fields.items():
        if key not in PROFILE_COLUMNS:
            logger.debug("Ignoring unknown profile column %s", key)
            continue
        if value is None:
            continue
        cols.append(key)
        vals.append(Jsonb(value) if key in JSON_COLUMNS else value)
    return cols, vals


class PostgresProfileStore:
    """``profiles`` table on PostgreSQL. One short-lived connection per call."""

    def __init__(self, database_url: Optional[str]):
        if not database_url:
            raise ConfigurationError("DATABASE_URL not set")
        self.database_url = database_url

    async def create_tables(self) -> bool:
        """Create the profiles table if not exists."""
        try:
            async with await AsyncConnection.connect(self.database_url) as conn:
                async with conn.cursor() as cur:
                    await cur.execute(PROFILES_TABLE_SQL)
                await conn.commit()
            logger.info("profiles table ready")
            return True
        except Exception as e:
            logger.error("Failed to create profiles table: %s", e)
            raise

    async def fetch_profiles(self, limit: int) -> List[CandidateProfile]:
        """Newest profiles first, at most ``limit`` of them."""
        try:
            async with await AsyncConnection.connect(self.database_url, row_factory=dict_row) as conn:
                async with conn.cursor() as cur:
                    await cur.execute(SELECT_PROFILES_SQL, (limit,))
                    rows = await cur.fetchall()
        except Exception as e:
            logger.error("Error fetching profiles: %s", e)
            raise ProfileFetchError("Failed to fetch profiles") from e

        logger.info("Fetched %d profiles", len(rows))
        return [CandidateProfile(**row) for row in rows]

    async def update_profile(self, profile_id: str, fields: Dict[str, Any]) -> None:
        cols, vals = _column_values(fields)
        if not cols:
            return

        set_sql = ", ".join(f"{col} = %s" for col in cols)
        query = f"UPDATE profiles SET {set_sql} WHERE id = %s"
        try:
            async with await AsyncConnection.connect(self.database_url) as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, vals + [profile_id])
                await conn.commit()
        except Exception as e:
            raise ProfileUpdateError(profile_id, str(e)) from e
        logger.debug("Updated profile %s (%s)", profile_id, ", ".join(cols))

    async def insert_profile(self, fields: Dict[str, Any]) -> CandidateProfile:
        cols, vals = _column_values(fields)
        if not cols:
            raise ValueError("insert_profile needs at least one known column")

        query = f"""
            INSERT INTO profiles ({', '.join(cols)})
            VALUES ({', '.join(['%s'] * len(cols))})
            RETURNING id::text AS id, created_at, {', '.join(PROFILE_COLUMNS)}
        """
        async with await AsyncConnection.connect(self.database_url, row_factory=dict_row) as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, vals)
                row = await cur.fetchone()
            await conn.commit()
        logger.info("Inserted profile %s", row["id"])
        return CandidateProfile(**row)


async def apply_updates(store: ProfileStore, updates: Sequence[ProfileUpdate]) -> PersistenceReport:
    """
    Issue every update concurrently and collect the outcome.

    A failed write is recorded against its profile id and never raised.
    """
    report = PersistenceReport(attempted=len(updates))
    if not updates:
        return report

    results = await asyncio.gather(
        *(store.update_profile(update.profile_id, update.fields) for update in updates),
        return_exceptions=True,
    )
    for update, outcome in zip(updates, results):
        if isinstance(outcome, BaseException):
            logger.error("Error updating profile %s: %s", update.profile_id, outcome)
            report.failed[update.profile_id] = str(outcome)
        else:
            report.succeeded.append(update.profile_id)

    logger.info(
        "Profile updates: %d succeeded, %d failed", len(report.succeeded), len(report.failed)
    )
    return report
