"""Reconciliation engine: merges remote and cached records into a role-scoped view.

Data flow for one user:
  1. Fetch resumes, jobs and applications from the remote store concurrently;
     each fetch fails independently and is replaced by its cache fallback
  2. Take remote jobs as the global list (the cached list only when the
     fetch failed) and union remote rows into the application ledger
     (see ``careersync.sync.merge``)
  3. Scope jobs and applications to the user's role
  4. Order applications newest first
  5. Write the merged view back to the cache
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from careersync.core.cache import LocalCache
from careersync.core.schemas import Application, Job, SavedResume, User
from careersync.remote.base import ApplicationRow, RemoteRecordStore
from careersync.sync.merge import (
    merge_applications,
    scope_applications,
    scope_jobs,
    sort_applications,
    sort_jobs,
    union_by_id,
    usable_resumes,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncedView(BaseModel):
    """The role-scoped records produced for one user by a reconciliation."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    jobs: list[Job] = Field(default_factory=list)
    applications: list[Application] = Field(default_factory=list)
    resumes: list[SavedResume] = Field(default_factory=list)
    active_analysis: dict[str, Any] | None = None
    application_owners: dict[str, str] = Field(default_factory=dict)


class Reconciler:
    """Builds a SyncedView from a remote store and the local cache.

    Usage::

        reconciler = Reconciler(remote, cache)
        view = await reconciler.reconcile(user)
    """

    def __init__(self, remote: RemoteRecordStore, cache: LocalCache) -> None:
        self._remote = remote
        self._cache = cache

    async def reconcile(self, user: User) -> SyncedView:
        """Fetch, merge and scope all records for ``user``. Never raises on remote failure."""
        applications_filter = user.id if user.role == "candidate" else None
        remote_resumes, remote_jobs, remote_rows = await asyncio.gather(
            _fetch_or_none("resumes", self._remote.fetch_resumes(user.id)),
            _fetch_or_none("posted_jobs", self._remote.fetch_jobs()),
            _fetch_or_none("applications", self._remote.fetch_applications(applications_filter)),
        )

        resumes = self._resolve_resumes(user, remote_resumes)
        jobs = self._resolve_jobs(user, remote_jobs)
        ledger, owners = self._resolve_ledger(user, remote_rows)

        visible_jobs = scope_jobs(user, jobs)
        visible_apps = sort_applications(scope_applications(user, ledger, visible_jobs))
        visible_ids = {a.id for a in visible_apps}
        owners = {app_id: owner for app_id, owner in owners.items() if app_id in visible_ids}

        if visible_jobs:
            self._cache.save_user_jobs(user.id, visible_jobs)
        if resumes:
            self._cache.save_resumes(user.id, resumes)

        logger.info(
            "Reconciled %s '%s': %d jobs, %d applications, %d resumes",
            user.role, user.id, len(visible_jobs), len(visible_apps), len(resumes),
        )
        return SyncedView(
            user_id=user.id,
            jobs=visible_jobs,
            applications=visible_apps,
            resumes=resumes,
            active_analysis=resumes[0].data if resumes else None,
            application_owners=owners,
        )

    def _resolve_resumes(
        self,
        user: User,
        remote: list[SavedResume] | None,
    ) -> list[SavedResume]:
        if remote:
            return usable_resumes(remote)
        return usable_resumes(self._cache.load_resumes(user.id))

    def _resolve_jobs(self, user: User, remote: list[Job] | None) -> list[Job]:
        if remote is not None:
            global_jobs = sort_jobs(remote)
            self._cache.save_global_jobs(global_jobs)
        else:
            global_jobs = self._cache.load_global_jobs()
            logger.info("Using %d cached global jobs", len(global_jobs))

        if user.role == "employer":
            return global_jobs
        # Candidates also keep local-only jobs (e.g. generated recommendations).
        return union_by_id(global_jobs, self._cache.load_user_jobs(user.id))

    def _resolve_ledger(
        self,
        user: User,
        remote_rows: list[ApplicationRow] | None,
    ) -> tuple[list[Application], dict[str, str]]:
        ledger = self._cache.load_global_applications()
        if not ledger and user.role == "candidate":
            legacy = self._cache.load_legacy_applications(user.id)
            if legacy:
                logger.info("Migrating %d legacy applications for '%s'", len(legacy), user.id)
                ledger = legacy
                self._cache.save_global_applications(ledger)

        if not remote_rows:
            return ledger, {}

        if user.role == "candidate":
            remote_rows = [r for r in remote_rows if r.user_id == user.id]
        owners = {r.application.id: r.user_id for r in remote_rows}
        merged, changed = merge_applications(ledger, [r.application for r in remote_rows])
        if changed:
            logger.info("Healed %d applications from remote", changed)
            self._cache.save_global_applications(merged)
        return merged, owners


async def _fetch_or_none(label: str, fetch: Awaitable[T]) -> T | None:
    """Await a remote fetch; on any failure log it and return None."""
    try:
        return await fetch
    except Exception as e:  # noqa: BLE001
        logger.warning("Remote fetch of %s failed, using local cache: %s", label, e)
        return None
