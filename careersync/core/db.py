"""SQLite layer for the remote record store: resumes, posted_jobs, applications.

The tables mirror the hosted schema one to one. No row-level authorization
exists here; callers filter by owner themselves.
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

_RESUMES_TABLE = """
CREATE TABLE IF NOT EXISTS resumes (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    data        TEXT NOT NULL,
    created_at  TEXT NOT NULL
);
"""

_POSTED_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS posted_jobs (
    id           TEXT PRIMARY KEY,
    employer_id  TEXT,
    title        TEXT NOT NULL,
    company      TEXT NOT NULL DEFAULT '',
    location     TEXT NOT NULL DEFAULT '',
    salary       TEXT NOT NULL DEFAULT '',
    type         TEXT NOT NULL DEFAULT '',
    description  TEXT NOT NULL DEFAULT '',
    requirements TEXT NOT NULL DEFAULT '[]',
    posted_at    TEXT NOT NULL
);
"""

_APPLICATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS applications (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    data        TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

# Columns an owner may change on an existing job. employer_id is write-once.
JOB_MUTABLE_COLUMNS = (
    "title", "company", "location", "salary", "type", "description", "requirements",
)


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_RESUMES_TABLE)
    conn.execute(_POSTED_JOBS_TABLE)
    conn.execute(_APPLICATIONS_TABLE)
    conn.commit()
    return conn


def select_resumes(conn: sqlite3.Connection, user_id: str) -> list[dict[str, Any]]:
    """Return a user's resume rows, newest first, with ``data`` decoded."""
    rows = conn.execute(
        "SELECT id, user_id, data, created_at FROM resumes "
        "WHERE user_id = ? ORDER BY created_at DESC",
        (user_id,),
    ).fetchall()
    return [{**dict(row), "data": json.loads(row["data"])} for row in rows]


def insert_resume(
    conn: sqlite3.Connection,
    resume_id: str,
    user_id: str,
    data: dict[str, Any],
    created_at: datetime,
) -> None:
    """Insert a resume row. Raises sqlite3.IntegrityError on a duplicate id."""
    conn.execute(
        "INSERT INTO resumes (id, user_id, data, created_at) VALUES (?, ?, ?, ?)",
        (resume_id, user_id, json.dumps(data), created_at.isoformat()),
    )
    conn.commit()


def select_jobs(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Return every posted job, newest first, with ``requirements`` decoded."""
    rows = conn.execute(
        "SELECT * FROM posted_jobs ORDER BY posted_at DESC, id ASC",
    ).fetchall()
    return [{**dict(row), "requirements": json.loads(row["requirements"])} for row in rows]


def insert_job(conn: sqlite3.Connection, row: dict[str, Any]) -> None:
    """Insert a posted job. Raises sqlite3.IntegrityError on a duplicate id."""
    conn.execute(
        """
        INSERT INTO posted_jobs
            (id, employer_id, title, company, location, salary, type,
             description, requirements, posted_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            row["id"],
            row.get("employer_id"),
            row["title"],
            row.get("company", ""),
            row.get("location", ""),
            row.get("salary", ""),
            row.get("type", ""),
            row.get("description", ""),
            json.dumps(row.get("requirements") or []),
            row["posted_at"],
        ),
    )
    conn.commit()


def update_job(conn: sqlite3.Connection, job_id: str, updates: dict[str, Any]) -> int:
    """Update mutable job columns. Returns the number of rows changed.

    Keys outside JOB_MUTABLE_COLUMNS (employer_id included) are ignored.
    """
    fields = {k: v for k, v in updates.items() if k in JOB_MUTABLE_COLUMNS}
    if not fields:
        return 0
    if "requirements" in fields:
        fields["requirements"] = json.dumps(fields["requirements"] or [])
    assignments = ", ".join(f"{column} = ?" for column in fields)
    cursor = conn.execute(
        f"UPDATE posted_jobs SET {assignments} WHERE id = ?",  # noqa: S608
        (*fields.values(), job_id),
    )
    conn.commit()
    return cursor.rowcount


def select_applications(
    conn: sqlite3.Connection,
    user_id: str | None = None,
) -> list[dict[str, Any]]:
    """Return application rows with ``data`` decoded, optionally for one owner."""
    if user_id is None:
        rows = conn.execute(
            "SELECT id, user_id, data, updated_at FROM applications",
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT id, user_id, data, updated_at FROM applications WHERE user_id = ?",
            (user_id,),
        ).fetchall()
    return [{**dict(row), "data": json.loads(row["data"])} for row in rows]


def upsert_application(
    conn: sqlite3.Connection,
    application_id: str,
    user_id: str,
    data: dict[str, Any],
    updated_at: datetime,
) -> None:
    """Insert or replace an application row by id."""
    conn.execute(
        """
        INSERT INTO applications (id, user_id, data, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(id)
        DO UPDATE SET
            user_id = excluded.user_id,
            data = excluded.data,
            updated_at = excluded.updated_at
        """,
        (application_id, user_id, json.dumps(data), updated_at.isoformat()),
    )
    conn.commit()
