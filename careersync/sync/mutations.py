"""Mutation coordinator: optimistic local writes with background remote replication.

Every operation follows the same order:
  1. Build or validate the entity (ownership checks happen here)
  2. Dispatch it to the session store so consumers see it immediately
  3. Record an activity entry
  4. Write through to the local cache
  5. Hand the remote write to the replicator (never awaited, never rolled back)

Refused operations (no session, wrong role, foreign record) return None and
log a warning. They never raise.
"""

import logging
import random
import string
import uuid
from datetime import datetime
from typing import Any

from careersync.core.cache import LocalCache
from careersync.core.config import Settings
from careersync.core.schemas import (
    STATUS_INTERVIEW,
    STATUS_NEW,
    ActivityCategory,
    ActivityEntry,
    Application,
    Job,
    SavedResume,
    User,
    analysis_score,
    utcnow,
)
from careersync.remote.base import RemoteRecordStore
from careersync.session.state import (
    ActivityRecorded,
    AnalysisActivated,
    ApplicationAdded,
    ApplicationReplaced,
    JobAdded,
    JobReplaced,
    JobsCleared,
    ProfileRenamed,
    ResumeAdded,
    SessionStore,
)
from careersync.sync.activity import make_entry
from careersync.sync.replicator import Replicator

logger = logging.getLogger(__name__)


def generate_meeting_link(prefix: str, rng: random.Random | None = None) -> str:
    """Return ``<prefix>-abc-defg-hij`` with uniformly random lowercase segments."""
    rng = rng or random.Random()

    def segment(length: int) -> str:
        return "".join(rng.choice(string.ascii_lowercase) for _ in range(length))

    return f"{prefix}-{segment(3)}-{segment(4)}-{segment(3)}"


class MutationCoordinator:
    """Applies user actions to shared state, the cache and the remote store."""

    def __init__(
        self,
        store: SessionStore,
        cache: LocalCache,
        remote: RemoteRecordStore,
        replicator: Replicator | None = None,
        settings: Settings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._remote = remote
        self._replicator = replicator or Replicator()
        self._settings = settings or Settings()
        self._rng = rng or random.Random()

    @property
    def replicator(self) -> Replicator:
        return self._replicator

    # -- applications -----------------------------------------------------------

    async def apply_to_job(self, job: Job) -> Application | None:
        """Submit an application for the current user, snapshotting the job."""
        user = self._require_user("apply_to_job")
        if user is None:
            return None

        analysis = self._store.state.active_analysis
        now = utcnow()
        application = Application(
            id=uuid.uuid4().hex,
            job_id=job.id,
            job_title=job.title,
            company_name=job.company,
            location=job.location,
            salary=job.salary,
            candidate_name=user.name,
            candidate_email=user.email,
            candidate_phone=user.phone,
            candidate_address=user.address,
            match_score=self._match_score(analysis),
            status=STATUS_NEW,
            timestamp=now,
            resume_file=analysis.get("file") if analysis else None,
            updated_at=now,
        )

        self._store.dispatch(ApplicationAdded(application=application, owner_id=user.id))
        self.record_activity("Job Application", f"Applied to {job.company}", "job_match")

        ledger = self._cache.load_global_applications()
        self._cache.save_global_applications([application, *ledger])

        self._replicator.submit(
            "upsert_application", application.id,
            self._remote.upsert_application(user.id, application),
        )
        logger.info("Application %s submitted for job '%s'", application.id, job.id)
        return application

    async def update_application_status(
        self,
        application_id: str,
        status: str,
        interview_date: datetime | None = None,
    ) -> Application | None:
        """Change an application's status. Only the employer owning its job may do so.

        Moving to Interview assigns a meeting link once; later moves reuse it.
        """
        user = self._require_user("update_application_status", role="employer")
        if user is None:
            return None

        state = self._store.state
        current = next((a for a in state.applications if a.id == application_id), None)
        if current is None:
            logger.warning("Application '%s' is not visible to '%s'", application_id, user.id)
            return None
        own_job_ids = {j.id for j in state.jobs if j.employer_id == user.id}
        if current.job_id not in own_job_ids:
            logger.warning(
                "Refusing status change on '%s': job '%s' not owned by '%s'",
                application_id, current.job_id, user.id,
            )
            return None

        updates: dict[str, Any] = {"status": status, "updated_at": utcnow()}
        if status == STATUS_INTERVIEW:
            if interview_date is not None:
                updates["interview_date"] = interview_date
            updates["meeting_link"] = current.meeting_link or generate_meeting_link(
                self._settings.meeting.link_prefix, self._rng,
            )
        updated = Application.model_validate({**current.model_dump(), **updates})

        self._store.dispatch(ApplicationReplaced(application=updated))
        meta = f"Marked {current.candidate_name} as {status}"
        if status == STATUS_INTERVIEW and updated.interview_date is not None:
            meta += f" on {updated.interview_date.date().isoformat()}"
        category: ActivityCategory = "interview" if status == STATUS_INTERVIEW else "job_match"
        self.record_activity("Application Update", meta, category)

        ledger = self._cache.load_global_applications()
        if any(a.id == application_id for a in ledger):
            ledger = [
                Application.model_validate({**a.model_dump(), **updates})
                if a.id == application_id else a
                for a in ledger
            ]
        else:
            ledger = [updated, *ledger]
        self._cache.save_global_applications(ledger)

        owner_id = state.application_owners.get(application_id, user.id)
        self._replicator.submit(
            "upsert_application", application_id,
            self._remote.upsert_application(owner_id, updated),
        )
        logger.info("Application %s moved to %s", application_id, status)
        return updated

    # -- jobs -------------------------------------------------------------------

    async def post_job(self, job: Job) -> Job | None:
        """Publish a job owned by the current employer, whatever employer id it carries."""
        user = self._require_user("post_job", role="employer")
        if user is None:
            return None

        ledger = self._cache.load_global_jobs()
        if any(j.id == job.id for j in (*ledger, *self._store.state.jobs)):
            logger.warning("Refusing to post job '%s': id already exists", job.id)
            return None

        owned = job.model_copy(update={"employer_id": user.id})
        self._store.dispatch(JobAdded(job=owned))
        self.record_activity("Job Posted", owned.title, "job_match")

        self._cache.save_global_jobs([owned, *ledger])
        self._cache.save_user_jobs(user.id, list(self._store.state.jobs))

        self._replicator.submit("insert_job", owned.id, self._remote.insert_job(owned))
        logger.info("Job '%s' posted by '%s'", owned.id, user.id)
        return owned

    async def update_job(self, job: Job) -> Job | None:
        """Replace an owned job's fields. The stored employer id always survives."""
        user = self._require_user("update_job", role="employer")
        if user is None:
            return None

        ledger = self._cache.load_global_jobs()
        existing = next(
            (j for j in (*self._store.state.jobs, *ledger) if j.id == job.id),
            None,
        )
        if existing is None:
            logger.warning("Cannot update unknown job '%s'", job.id)
            return None
        if existing.employer_id != user.id:
            logger.warning("Refusing update of job '%s': not owned by '%s'", job.id, user.id)
            return None

        updated = job.model_copy(update={
            "employer_id": existing.employer_id,
            "posted_at": existing.posted_at,
        })
        self._store.dispatch(JobReplaced(job=updated))
        self.record_activity("Job Updated", updated.title, "job_match")

        if any(j.id == job.id for j in ledger):
            ledger = [
                updated.model_copy(update={"employer_id": j.employer_id or existing.employer_id})
                if j.id == job.id else j
                for j in ledger
            ]
            self._cache.save_global_jobs(ledger)
        self._cache.save_user_jobs(user.id, list(self._store.state.jobs))

        self._replicator.submit("update_job", updated.id, self._remote.update_job(updated))
        logger.info("Job '%s' updated", updated.id)
        return updated

    # -- resumes ----------------------------------------------------------------

    async def save_resume(self, analysis: dict[str, Any]) -> SavedResume | None:
        """Store a finished resume analysis and make it the active one."""
        user = self._require_user("save_resume")
        if user is None:
            return None
        score = analysis_score(analysis)
        if score is None:
            logger.warning("Refusing to save resume analysis without a numeric score")
            return None

        resume = SavedResume(id=uuid.uuid4().hex, data=analysis)
        self._store.dispatch(ResumeAdded(resume=resume))
        if user.role == "candidate":
            # Recommendations are regenerated for the new analysis.
            self._store.dispatch(JobsCleared())
        self.record_activity("Resume Analysis", f"Scored {score:g}/100", "resume")

        self._cache.save_resumes(user.id, list(self._store.state.resumes))

        self._replicator.submit("insert_resume", resume.id, self._remote.insert_resume(user.id, resume))
        return resume

    def load_saved_resume(self, resume: SavedResume) -> bool:
        """Make an earlier resume the active analysis. Returns False if it is unusable."""
        user = self._require_user("load_saved_resume")
        if user is None or analysis_score(resume.data) is None:
            return False
        self._store.dispatch(AnalysisActivated(analysis=resume.data))
        if user.role == "candidate":
            self._store.dispatch(JobsCleared())
        self.record_activity(
            "Resume Loaded",
            f"Loaded resume from {resume.created_at.date().isoformat()}",
            "resume",
        )
        return True

    # -- profile / activity -------------------------------------------------------

    def update_profile_name(self, name: str) -> User | None:
        if self._require_user("update_profile_name") is None:
            return None
        name = name.strip()
        if not name:
            logger.warning("Ignoring empty profile name")
            return None
        return self._store.dispatch(ProfileRenamed(name=name)).user

    def record_activity(
        self,
        title: str,
        meta: str = "",
        category: ActivityCategory | None = None,
    ) -> ActivityEntry:
        entry = make_entry(title, meta, category)
        self._store.dispatch(
            ActivityRecorded(entry=entry, max_entries=self._settings.activity.max_entries),
        )
        return entry

    # -- helpers ----------------------------------------------------------------

    def _require_user(self, operation: str, role: str | None = None) -> User | None:
        state = self._store.state
        if not state.is_active or state.user is None:
            logger.warning("%s requires an authenticated user", operation)
            return None
        if role is not None and state.user.role != role:
            logger.warning("%s requires role '%s', user is '%s'", operation, role, state.user.role)
            return None
        return state.user

    def _match_score(self, analysis: dict[str, Any] | None) -> float:
        score = analysis_score(analysis)
        if score is not None:
            return min(max(score, 0.0), 100.0)
        bounds = self._settings.match_score
        return float(self._rng.randint(bounds.min_score, bounds.max_score))
