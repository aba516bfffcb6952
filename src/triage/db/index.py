"""Durable index of discovered builds and their file listings."""

from __future__ import annotations

import logging
from typing import List, Tuple

from psycopg import errors
from psycopg.types.json import Json

from triage.db import DatabaseManager
from triage.errors import DuplicateBuildError, NotFoundError
from triage.models import Build, BuildFiles

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS builds (
    job text NOT NULL,
    build_id text NOT NULL,
    started_at bigint NOT NULL,
    gcs_bucket text NOT NULL,
    gcs_prefix text NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS builds_idx ON builds (job, build_id);
CREATE INDEX IF NOT EXISTS builds_started_at_idx ON builds (started_at);

CREATE TABLE IF NOT EXISTS build_files (
    job text NOT NULL,
    build_id text NOT NULL,
    created_at bigint NOT NULL,
    files jsonb NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS build_files_idx ON build_files (job, build_id);
"""


def _build_from_row(row: dict) -> Build:
    return Build(
        job=row["job"],
        build_id=row["build_id"],
        gcs_bucket=row["gcs_bucket"],
        gcs_prefix=row["gcs_prefix"],
    )


class BuildIndex:
    """PostgreSQL-backed ``builds`` and ``build_files`` tables.

    ``find_builds`` (``started_at >= t``) and ``find_old_builds``
    (``started_at < t``) partition the indexed builds at any timestamp.
    """

    def __init__(self, database: DatabaseManager) -> None:
        self._db = database

    def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self._db.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA)
            conn.commit()

    def load_build(self, job: str, build_id: str) -> Tuple[Build, int]:
        """Return the build and its start time.

        Raises:
            NotFoundError: If the build is not indexed
        """
        logger.debug("Loading build %s @ %s from storage...", job, build_id)
        with self._db.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT job, build_id, started_at, gcs_bucket, gcs_prefix FROM builds WHERE job = %s AND build_id = %s",
                    (job, build_id),
                )
                row = cur.fetchone()
        if row is None:
            raise NotFoundError(f"build {job} @ {build_id}")
        return _build_from_row(row), row["started_at"]

    def save_build(self, build: Build, started_at: int) -> None:
        """Insert a new build.

        Raises:
            DuplicateBuildError: If the build is already indexed
        """
        logger.debug("Saving build %s...", build)
        with self._db.get_connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO builds (job, build_id, started_at, gcs_bucket, gcs_prefix)
                        VALUES (%s, %s, %s, %s, %s)
                        """,
                        (build.job, build.build_id, started_at, build.gcs_bucket, build.gcs_prefix),
                    )
                conn.commit()
            except errors.UniqueViolation as exc:
                conn.rollback()
                raise DuplicateBuildError(build.job, build.build_id) from exc

    def _select_builds(self, condition: str, started_at: int) -> List[Build]:
        with self._db.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT job, build_id, gcs_bucket, gcs_prefix FROM builds WHERE {condition} ORDER BY job, build_id",
                    (started_at,),
                )
                return [_build_from_row(row) for row in cur.fetchall()]

    def find_builds(self, started_after: int) -> List[Build]:
        """Builds with ``started_at >= started_after``."""
        logger.debug("Loading builds started at or after %d from storage...", started_after)
        return self._select_builds("started_at >= %s", started_after)

    def find_old_builds(self, started_before: int) -> List[Build]:
        """Builds with ``started_at < started_before``."""
        logger.debug("Loading builds started before %d from storage...", started_before)
        return self._select_builds("started_at < %s", started_before)

    def delete_build(self, job: str, build_id: str) -> None:
        logger.debug("Deleting build %s @ %s...", job, build_id)
        with self._db.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM builds WHERE job = %s AND build_id = %s", (job, build_id))
            conn.commit()

    def load_build_files(self, build: Build) -> BuildFiles:
        """
        Raises:
            NotFoundError: If no listing was saved for the build
        """
        logger.debug("Loading build files for %s @ %s from storage...", build.job, build.build_id)
        with self._db.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT files FROM build_files WHERE job = %s AND build_id = %s",
                    (build.job, build.build_id),
                )
                row = cur.fetchone()
        if row is None:
            raise NotFoundError(f"build files for {build.job} @ {build.build_id}")
        return BuildFiles(build=build, files=frozenset(row["files"]))

    def save_build_files(self, build_files: BuildFiles) -> None:
        build = build_files.build
        logger.debug("Saving build files for %s @ %s...", build.job, build.build_id)
        with self._db.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO build_files (job, build_id, created_at, files)
                    VALUES (%s, %s, extract(epoch from now())::bigint, %s)
                    ON CONFLICT (job, build_id) DO NOTHING
                    """,
                    (build.job, build.build_id, Json(sorted(build_files.files))),
                )
            conn.commit()

    def delete_build_files(self, build: Build) -> None:
        logger.debug("Deleting build files %s @ %s...", build.job, build.build_id)
        with self._db.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM build_files WHERE job = %s AND build_id = %s",
                    (build.job, build.build_id),
                )
            conn.commit()
