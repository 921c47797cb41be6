"""Abstract base class for the remote record store."""

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict

from careersync.core.schemas import Application, Job, SavedResume


class RemoteStoreError(Exception):
    """A remote read or write failed. Never fatal to the caller."""


class ApplicationRow(BaseModel):
    """An application as stored remotely, together with its owning user id."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    application: Application


class RemoteRecordStore(ABC):
    """Base class every remote store backend must implement.

    Implementations raise RemoteStoreError for any backend failure. None of
    them enforce row-level authorization; callers filter by owner.
    """

    @property
    @abstractmethod
    def store_id(self) -> str:
        """Unique identifier for this backend (e.g. 'sqlite')."""

    @abstractmethod
    async def fetch_resumes(self, user_id: str) -> list[SavedResume]:
        """Return the user's resumes, newest first."""

    @abstractmethod
    async def fetch_jobs(self) -> list[Job]:
        """Return every posted job, newest first."""

    @abstractmethod
    async def fetch_applications(self, user_id: str | None = None) -> list[ApplicationRow]:
        """Return application rows, filtered to one owner when ``user_id`` is given."""

    @abstractmethod
    async def insert_resume(self, user_id: str, resume: SavedResume) -> None:
        """Insert a new resume row."""

    @abstractmethod
    async def insert_job(self, job: Job) -> None:
        """Insert a newly posted job."""

    @abstractmethod
    async def update_job(self, job: Job) -> None:
        """Update a job's mutable fields. The stored employer id is left untouched."""

    @abstractmethod
    async def upsert_application(self, user_id: str, application: Application) -> None:
        """Insert or replace an application row by id."""
