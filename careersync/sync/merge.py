"""Merge and role-scoping rules for reconciled records.

Merge precedence:
  Jobs          the remote list replaces the cached global list; candidates
                then union in their local-only jobs
  Applications  local ledger order; on a shared id the remote payload wins
                unless the local copy has a strictly newer ``updated_at``;
                remote-only rows are appended

Role scoping runs after merging, never before:
  EmployerJobsFilter           employer_id must equal the employer's id
  EmployerApplicationsFilter   job_id must be one of the employer's jobs
  CandidateApplicationsFilter  candidate_email must equal the candidate's email
"""

import logging
from collections.abc import Callable, Iterable
from typing import Protocol, TypeVar

from careersync.core.schemas import Application, Job, SavedResume, User, analysis_score

logger = logging.getLogger(__name__)


class _HasId(Protocol):
    @property
    def id(self) -> str: ...


R = TypeVar("R", bound=_HasId)

JobFilter = Callable[[list[Job]], list[Job]]
ApplicationFilter = Callable[[list[Application]], list[Application]]


def union_by_id(primary: Iterable[R], secondary: Iterable[R]) -> list[R]:
    """Keep every primary record, then secondary records with unseen ids.

    Duplicate ids inside either input collapse to their first occurrence.
    """
    result: list[R] = []
    seen: set[str] = set()
    for record in [*primary, *secondary]:
        if record.id not in seen:
            seen.add(record.id)
            result.append(record)
    return result


def merge_applications(
    local: list[Application],
    remote: list[Application],
) -> tuple[list[Application], int]:
    """Merge the local ledger with remote rows.

    Returns the merged list and the number of records that changed or were
    added relative to ``local``.
    """
    remote_by_id: dict[str, Application] = {}
    for app in remote:
        remote_by_id.setdefault(app.id, app)

    merged: list[Application] = []
    seen: set[str] = set()
    changed = 0
    for app in local:
        if app.id in seen:
            continue
        seen.add(app.id)
        candidate = remote_by_id.get(app.id)
        if candidate is not None and not _is_strictly_newer(app, candidate) and candidate != app:
            merged.append(candidate)
            changed += 1
        else:
            merged.append(app)
    for app_id, app in remote_by_id.items():
        if app_id not in seen:
            seen.add(app_id)
            merged.append(app)
            changed += 1
    return merged, changed


def _is_strictly_newer(local: Application, remote: Application) -> bool:
    if local.updated_at is None:
        return False
    if remote.updated_at is None:
        return True
    return local.updated_at > remote.updated_at


class EmployerJobsFilter:
    """Keep only jobs stamped with this employer's id. Unstamped jobs are denied."""

    def __init__(self, employer_id: str) -> None:
        self._employer_id = employer_id

    def __call__(self, jobs: list[Job]) -> list[Job]:
        if not self._employer_id:
            return []
        result = [j for j in jobs if j.employer_id and j.employer_id == self._employer_id]
        hidden = len(jobs) - len(result)
        if hidden:
            logger.debug("EmployerJobsFilter: hid %d jobs of other employers", hidden)
        return result


class EmployerApplicationsFilter:
    """Keep only applications that reference one of the given job ids."""

    def __init__(self, job_ids: Iterable[str]) -> None:
        self._job_ids = set(job_ids)

    def __call__(self, applications: list[Application]) -> list[Application]:
        result = [a for a in applications if a.job_id in self._job_ids]
        hidden = len(applications) - len(result)
        if hidden:
            logger.debug("EmployerApplicationsFilter: hid %d applications", hidden)
        return result


class CandidateApplicationsFilter:
    """Keep only applications submitted under this candidate's email."""

    def __init__(self, email: str) -> None:
        self._email = email

    def __call__(self, applications: list[Application]) -> list[Application]:
        if not self._email:
            return []
        result = [a for a in applications if a.candidate_email == self._email]
        hidden = len(applications) - len(result)
        if hidden:
            logger.debug("CandidateApplicationsFilter: hid %d applications", hidden)
        return result


def scope_jobs(user: User, jobs: list[Job]) -> list[Job]:
    """Return the jobs ``user`` may see. Candidates see the full set."""
    if user.role == "employer":
        return EmployerJobsFilter(user.id)(jobs)
    return list(jobs)


def scope_applications(
    user: User,
    applications: list[Application],
    visible_jobs: list[Job],
) -> list[Application]:
    """Return the applications ``user`` may see, given the jobs already scoped for them."""
    app_filter: ApplicationFilter
    if user.role == "employer":
        app_filter = EmployerApplicationsFilter(j.id for j in visible_jobs)
    else:
        app_filter = CandidateApplicationsFilter(user.email)
    return app_filter(applications)


def sort_applications(applications: Iterable[Application]) -> list[Application]:
    """Newest first; ties broken by id so the order is deterministic."""
    by_id = sorted(applications, key=lambda a: a.id, reverse=True)
    return sorted(by_id, key=lambda a: a.timestamp, reverse=True)


def sort_jobs(jobs: Iterable[Job]) -> list[Job]:
    """Newest posting first; ties broken by ascending id."""
    by_id = sorted(jobs, key=lambda j: j.id)
    return sorted(by_id, key=lambda j: j.posted_at, reverse=True)


def usable_resumes(resumes: Iterable[SavedResume]) -> list[SavedResume]:
    """Drop resumes whose analysis lacks a numeric score."""
    return [r for r in resumes if analysis_score(r.data) is not None]
