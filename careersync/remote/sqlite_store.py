"""SQLite-backed remote record store."""

import json
import logging
import sqlite3

from pydantic import ValidationError

from careersync.core import db
from careersync.core.schemas import Application, Job, SavedResume, utcnow
from careersync.remote.base import ApplicationRow, RemoteRecordStore, RemoteStoreError

logger = logging.getLogger(__name__)


class SqliteRemoteStore(RemoteRecordStore):
    """Remote store over the tables created by ``careersync.core.db.init_db``.

    Rows that fail validation are skipped on read, matching how the local
    cache treats corrupt records.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @property
    def store_id(self) -> str:
        return "sqlite"

    async def fetch_resumes(self, user_id: str) -> list[SavedResume]:
        try:
            rows = db.select_resumes(self._conn, user_id)
        except (sqlite3.Error, json.JSONDecodeError) as e:
            msg = f"Failed to fetch resumes: {e}"
            raise RemoteStoreError(msg) from e
        resumes: list[SavedResume] = []
        for row in rows:
            try:
                resumes.append(SavedResume(id=row["id"], created_at=row["created_at"], data=row["data"]))
            except ValidationError:
                logger.debug("Skipping invalid resume row %s", row["id"])
        return resumes

    async def fetch_jobs(self) -> list[Job]:
        try:
            rows = db.select_jobs(self._conn)
        except (sqlite3.Error, json.JSONDecodeError) as e:
            msg = f"Failed to fetch posted_jobs: {e}"
            raise RemoteStoreError(msg) from e
        jobs: list[Job] = []
        for row in rows:
            try:
                jobs.append(_job_from_row(row))
            except ValidationError:
                logger.debug("Skipping invalid posted_jobs row %s", row["id"])
        return jobs

    async def fetch_applications(self, user_id: str | None = None) -> list[ApplicationRow]:
        try:
            rows = db.select_applications(self._conn, user_id)
        except (sqlite3.Error, json.JSONDecodeError) as e:
            msg = f"Failed to fetch applications: {e}"
            raise RemoteStoreError(msg) from e
        result: list[ApplicationRow] = []
        for row in rows:
            if not row["data"]:
                continue
            try:
                application = Application.model_validate(row["data"])
            except ValidationError:
                logger.debug("Skipping invalid applications row %s", row["id"])
                continue
            result.append(ApplicationRow(user_id=row["user_id"], application=application))
        return result

    async def insert_resume(self, user_id: str, resume: SavedResume) -> None:
        try:
            db.insert_resume(self._conn, resume.id, user_id, resume.data, resume.created_at)
        except sqlite3.Error as e:
            msg = f"Failed to insert resume {resume.id}: {e}"
            raise RemoteStoreError(msg) from e

    async def insert_job(self, job: Job) -> None:
        try:
            db.insert_job(self._conn, _job_to_row(job))
        except sqlite3.Error as e:
            msg = f"Failed to insert job {job.id}: {e}"
            raise RemoteStoreError(msg) from e

    async def update_job(self, job: Job) -> None:
        try:
            db.update_job(self._conn, job.id, _job_to_row(job))
        except sqlite3.Error as e:
            msg = f"Failed to update job {job.id}: {e}"
            raise RemoteStoreError(msg) from e

    async def upsert_application(self, user_id: str, application: Application) -> None:
        try:
            db.upsert_application(
                self._conn,
                application.id,
                user_id,
                application.model_dump(mode="json", by_alias=True),
                application.updated_at or utcnow(),
            )
        except sqlite3.Error as e:
            msg = f"Failed to upsert application {application.id}: {e}"
            raise RemoteStoreError(msg) from e


def _job_from_row(row: dict) -> Job:  # type: ignore[type-arg]
    return Job(
        id=row["id"],
        employer_id=row["employer_id"],
        title=row["title"],
        company=row["company"],
        location=row["location"],
        salary=row["salary"],
        employment_type=row["type"],
        description=row["description"],
        requirements=row["requirements"] or [],
        posted_at=row["posted_at"],
    )


def _job_to_row(job: Job) -> dict:  # type: ignore[type-arg]
    return {
        "id": job.id,
        "employer_id": job.employer_id,
        "title": job.title,
        "company": job.company,
        "location": job.location,
        "salary": job.salary,
        "type": job.employment_type,
        "description": job.description,
        "requirements": list(job.requirements),
        "posted_at": job.posted_at.isoformat(),
    }
