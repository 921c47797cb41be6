"""Core data models for the career sync client.

Jobs and applications serialize with camelCase keys (``employerId``,
``postedAt``, ``jobId``...) so cached ledgers and the remote ``data`` column
keep the shape the rest of the platform reads. Attributes stay snake_case.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

UserRole = Literal["candidate", "employer"]
ActivityCategory = Literal["resume", "interview", "job_match", "skills", "cover_letter"]

STATUS_NEW = "New"
STATUS_INTERVIEW = "Interview"
# Open set: any other status string is accepted and stored verbatim.
KNOWN_STATUSES = {"New", "Reviewed", "Shortlisted", "Interview", "Rejected", "Hired"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are treated as UTC so mixed sources stay comparable.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class User(BaseModel):
    """The authenticated user. Cleared from memory on sign-out."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    role: UserRole = "candidate"
    phone: str | None = None
    address: str | None = None


class Job(_CamelModel):
    """A job posting.

    ``employer_id`` is write-once: once a job is stamped with its owner no
    merge or edit may change it.
    """

    id: str
    employer_id: str | None = None
    title: str
    company: str = ""
    location: str = ""
    salary: str = ""
    employment_type: str = Field(default="", alias="type")
    description: str = ""
    requirements: list[str] = Field(default_factory=list)
    posted_at: UtcDatetime = Field(default_factory=utcnow)


class Application(_CamelModel):
    """A candidate's application to a job.

    Job display fields are snapshotted at apply time and never follow later
    edits of the job.
    """

    id: str
    job_id: str
    job_title: str = ""
    company_name: str = ""
    location: str = ""
    salary: str = ""
    candidate_name: str = ""
    candidate_email: str
    candidate_phone: str | None = None
    candidate_address: str | None = None
    match_score: float = Field(default=0.0, ge=0.0, le=100.0)
    status: str = STATUS_NEW
    timestamp: UtcDatetime = Field(default_factory=utcnow)
    interview_date: UtcDatetime | None = None
    meeting_link: str | None = None
    resume_file: Any = None
    updated_at: UtcDatetime | None = None


class SavedResume(BaseModel):
    """A stored resume analysis. The payload is opaque apart from ``score``."""

    model_config = ConfigDict(frozen=True)

    id: str
    created_at: UtcDatetime = Field(default_factory=utcnow)
    data: dict[str, Any]


class ActivityEntry(BaseModel):
    """One user-visible action in the activity log."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: ActivityCategory
    title: str
    meta: str = ""
    timestamp: UtcDatetime = Field(default_factory=utcnow)


def analysis_score(data: dict[str, Any] | None) -> float | None:
    """Return the numeric score of a resume analysis, or None when absent/corrupt."""
    if not isinstance(data, dict):
        return None
    score = data.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        return None
    return float(score)
