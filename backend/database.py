"""
Database setup and data access for the Job Tracker
"""

import json
from datetime import datetime, timezone
from typing import Optional

import config
from config import get_db, get_logger
from query_builder import QueryBuilder

logger = get_logger(__name__)

JOB_STATUSES = ("saved", "applied", "interviewing", "offer", "rejected", "archived")

JOB_SORT_MAP = {
    "created": "created_at DESC",
    "updated": "updated_at DESC",
    "company": "company COLLATE NOCASE ASC",
    "title": "title COLLATE NOCASE ASC",
}

_JOB_COLUMNS = ("title", "company", "location", "salary", "work_mode", "status", "description", "url")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_database():
    """Create the database schema"""
    with get_db() as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT NOT NULL UNIQUE,
                name TEXT,
                current_location TEXT,
                current_country TEXT,
                filing_status TEXT DEFAULT 'single',
                created_at TEXT NOT NULL
            )
        """)

        # extracted_data holds JSON; the salary analysis lives under
        # "enhancedSalaryAnalysis" with its timestamp in "salaryAnalysisDate"
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                company TEXT NOT NULL,
                location TEXT,
                salary TEXT,
                work_mode TEXT,
                status TEXT NOT NULL DEFAULT 'saved',
                description TEXT,
                url TEXT,
                extracted_data TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_jobs_user ON jobs(user_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(user_id, status)")

    logger.info("Database created at: %s", config.DB_PATH)


# ─── Users ───────────────────────────────────────────────────────────────────


def create_user(
    email: str,
    name: Optional[str] = None,
    current_location: Optional[str] = None,
    current_country: Optional[str] = None,
    filing_status: str = "single",
) -> dict:
    with get_db() as conn:
        cursor = conn.execute(
            """INSERT INTO users (email, name, current_location, current_country, filing_status, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (email, name, current_location, current_country, filing_status, _now()),
        )
        user_id = cursor.lastrowid
    return get_user(user_id)


def get_user(user_id: int) -> Optional[dict]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    return dict(row) if row else None


# ─── Jobs ────────────────────────────────────────────────────────────────────


def _job_from_row(row) -> dict:
    job = dict(row)
    raw = job.pop("extracted_data", None)
    job["extracted_data"] = json.loads(raw) if raw else {}
    return job


def create_job(user_id: int, data: dict) -> dict:
    """Insert a job for `user_id`. `data` uses column names; unknown keys are ignored."""
    values = {col: data.get(col) for col in _JOB_COLUMNS}
    values["status"] = values["status"] or "saved"
    now = _now()
    with get_db() as conn:
        cursor = conn.execute(
            f"""INSERT INTO jobs (user_id, {', '.join(_JOB_COLUMNS)}, created_at, updated_at)
                VALUES (?, {', '.join('?' for _ in _JOB_COLUMNS)}, ?, ?)""",
            (user_id, *values.values(), now, now),
        )
        job_id = cursor.lastrowid
    logger.info("Created job %s for user %s", job_id, user_id)
    return get_job_for_user(job_id, user_id)


def list_jobs(
    user_id: int,
    company: Optional[str] = None,
    status: Optional[str] = None,
    work_mode: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = "created",
    limit: Optional[int] = None,
) -> list[dict]:
    qb = QueryBuilder("SELECT * FROM jobs")
    qb.add_filter("user_id = ?", user_id)
    qb.add_filter("company = ? COLLATE NOCASE", company)
    qb.add_filter("status = ?", status)
    qb.add_filter("work_mode = ?", work_mode)
    qb.add_search(["title", "company", "description"], search)
    qb.order_by(JOB_SORT_MAP.get(sort_by, JOB_SORT_MAP["created"]))
    qb.limit(limit)
    query, params = qb.build()

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_job_from_row(r) for r in rows]


def get_job_for_user(job_id: int, user_id: int) -> Optional[dict]:
    """The job, or None when it does not exist or belongs to another user."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM jobs WHERE id = ? AND user_id = ?", (job_id, user_id)
        ).fetchone()
    return _job_from_row(row) if row else None


def update_job_extracted_data(job_id: int, extracted_data: dict):
    with get_db() as conn:
        conn.execute(
            "UPDATE jobs SET extracted_data = ?, updated_at = ? WHERE id = ?",
            (json.dumps(extracted_data), _now(), job_id),
        )


def delete_job(job_id: int, user_id: int) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM jobs WHERE id = ? AND user_id = ?", (job_id, user_id))
        deleted = cursor.rowcount > 0
    if deleted:
        logger.info("Deleted job %s", job_id)
    return deleted


if __name__ == "__main__":
    create_database()
