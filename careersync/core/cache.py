"""Durable local cache: a namespaced string key-value store on SQLite.

Keys (``<ns>`` is the configured namespace):
  <ns>_resumes_<userId>      per-user saved resumes
  <ns>_jobs_<userId>         per-user job list (includes local-only jobs)
  <ns>_apps_<userId>         legacy per-user applications (migrated on read)
  <ns>_global_jobs           global job ledger
  <ns>_global_applications   global application ledger
  <ns>_pending_role          role chosen before a redirect-based sign-in

Writes are immediate and independent; there is no transaction across keys.
Reads never raise on missing keys, malformed JSON or invalid records.
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, TypeVar, get_args

from pydantic import BaseModel, ValidationError

from careersync.core.config import CacheConfig
from careersync.core.schemas import Application, Job, SavedResume, UserRole

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_KV_TABLE = """
CREATE TABLE IF NOT EXISTS kv (
    key    TEXT PRIMARY KEY,
    value  TEXT NOT NULL
);
"""


class LocalCache:
    """Per-user and global key-value persistence.

    Usage::

        cache = open_cache(settings.cache)
        jobs = cache.load_global_jobs()
        cache.save_global_jobs([new_job, *jobs])
    """

    def __init__(self, conn: sqlite3.Connection, namespace: str = "carrerx") -> None:
        self._conn = conn
        self._ns = namespace

    # -- keys ---------------------------------------------------------------

    @property
    def global_jobs_key(self) -> str:
        return f"{self._ns}_global_jobs"

    @property
    def global_applications_key(self) -> str:
        return f"{self._ns}_global_applications"

    @property
    def pending_role_key(self) -> str:
        return f"{self._ns}_pending_role"

    def resumes_key(self, user_id: str) -> str:
        return f"{self._ns}_resumes_{user_id}"

    def jobs_key(self, user_id: str) -> str:
        return f"{self._ns}_jobs_{user_id}"

    def legacy_applications_key(self, user_id: str) -> str:
        return f"{self._ns}_apps_{user_id}"

    # -- raw access -----------------------------------------------------------

    def get_item(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return None if row is None else row[0]

    def set_item(self, key: str, value: str) -> None:
        self._conn.execute(
            "INSERT INTO kv (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )
        self._conn.commit()

    def remove_item(self, key: str) -> None:
        self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    def read_json(self, key: str) -> Any:
        """Decode a stored JSON value. Missing or malformed values read as None."""
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Ignoring malformed JSON under '%s': %s", key, e)
            return None

    def write_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value))

    def read_records(self, key: str, model: type[M]) -> list[M]:
        """Read a JSON array of records, dropping entries that fail validation."""
        data = self.read_json(key)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning("Ignoring non-array value under '%s'", key)
            return []
        records: list[M] = []
        for item in data:
            try:
                records.append(model.model_validate(item))
            except ValidationError:
                continue
        dropped = len(data) - len(records)
        if dropped:
            logger.debug("Dropped %d invalid %s records under '%s'", dropped, model.__name__, key)
        return records

    def write_records(self, key: str, records: list[M]) -> None:
        self.write_json(key, [r.model_dump(mode="json", by_alias=True) for r in records])

    # -- typed helpers ----------------------------------------------------------

    def load_global_jobs(self) -> list[Job]:
        return self.read_records(self.global_jobs_key, Job)

    def save_global_jobs(self, jobs: list[Job]) -> None:
        self.write_records(self.global_jobs_key, jobs)

    def load_user_jobs(self, user_id: str) -> list[Job]:
        return self.read_records(self.jobs_key(user_id), Job)

    def save_user_jobs(self, user_id: str, jobs: list[Job]) -> None:
        self.write_records(self.jobs_key(user_id), jobs)

    def load_global_applications(self) -> list[Application]:
        return self.read_records(self.global_applications_key, Application)

    def save_global_applications(self, applications: list[Application]) -> None:
        self.write_records(self.global_applications_key, applications)

    def load_legacy_applications(self, user_id: str) -> list[Application]:
        return self.read_records(self.legacy_applications_key(user_id), Application)

    def load_resumes(self, user_id: str) -> list[SavedResume]:
        return self.read_records(self.resumes_key(user_id), SavedResume)

    def save_resumes(self, user_id: str, resumes: list[SavedResume]) -> None:
        self.write_records(self.resumes_key(user_id), resumes)

    def get_pending_role(self) -> UserRole | None:
        value = self.get_item(self.pending_role_key)
        if value in get_args(UserRole):
            return value  # type: ignore[return-value]
        if value is not None:
            logger.warning("Ignoring unknown pending role '%s'", value)
        return None

    def set_pending_role(self, role: UserRole) -> None:
        self.set_item(self.pending_role_key, role)

    def clear_pending_role(self) -> None:
        self.remove_item(self.pending_role_key)


def open_cache(config: CacheConfig) -> LocalCache:
    """Open (creating if needed) the cache database described by ``config``."""
    path = Path(config.path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.execute(_KV_TABLE)
    conn.commit()
    return LocalCache(conn, config.namespace)
