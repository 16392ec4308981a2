"""SQLite persistence layer for EcoClean.

Writes are whole-record overwrites; the last writer wins. This module is
framework-agnostic so both FastAPI and scripts can reuse it.
"""

from __future__ import annotations

import logging
import os
import secrets
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from lifecycle import ReportStatus, UserRole, now_ms

logger = logging.getLogger(__name__)

DB_PATH = Path(
    os.environ.get("ECOCLEAN_DB_PATH", Path(__file__).resolve().parent / "ecoclean.db")
)

DEFAULT_ADMIN = {
    "id": "admin-1",
    "email": "admin@ecoclean.com",
    "name": "System Admin",
    "role": UserRole.ADMIN.value,
    "phone": None,
    "address": None,
}

REPORT_COLUMNS = (
    "id",
    "citizen_id",
    "citizen_name",
    "photo_url",
    "lat",
    "lng",
    "address",
    "description",
    "status",
    "ai_analysis",
    "created_at",
    "assigned_picker_id",
    "assigned_picker_name",
    "completion_proof_url",
    "completed_at",
    "collected_weight",
    "needs_reassignment",
)


def get_connection() -> sqlite3.Connection:
    """Create a SQLite connection with dictionary-like rows."""
    connection = sqlite3.connect(DB_PATH)
    connection.row_factory = sqlite3.Row
    return connection


def init_db() -> None:
    """Create tables and seed the default administrator on an empty store."""
    with get_connection() as connection:
        connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL,
                name TEXT NOT NULL,
                role TEXT NOT NULL,
                phone TEXT,
                address TEXT,
                created_at INTEGER NOT NULL
            );
            CREATE TABLE IF NOT EXISTS reports (
                id TEXT PRIMARY KEY,
                citizen_id TEXT NOT NULL,
                citizen_name TEXT,
                photo_url TEXT,
                lat REAL DEFAULT 0,
                lng REAL DEFAULT 0,
                address TEXT,
                description TEXT,
                status TEXT NOT NULL,
                ai_analysis TEXT,
                created_at INTEGER NOT NULL,
                assigned_picker_id TEXT,
                assigned_picker_name TEXT,
                completion_proof_url TEXT,
                completed_at INTEGER,
                collected_weight REAL,
                needs_reassignment INTEGER DEFAULT 0
            );
            CREATE TABLE IF NOT EXISTS feedback (
                id TEXT PRIMARY KEY,
                report_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                user_name TEXT,
                picker_id TEXT,
                rating INTEGER NOT NULL,
                comment TEXT,
                is_cleaned INTEGER NOT NULL,
                created_at INTEGER NOT NULL
            );
            CREATE TABLE IF NOT EXISTS sessions (
                token TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                created_at INTEGER NOT NULL
            );
            """
        )
        user_count = connection.execute("SELECT COUNT(*) AS total FROM users").fetchone()
        if user_count["total"] == 0:
            logger.info("Seeding default admin account %s", DEFAULT_ADMIN["email"])
            connection.execute(
                """
                INSERT INTO users (id, email, name, role, phone, address, created_at)
                VALUES (:id, :email, :name, :role, :phone, :address, :created_at)
                """,
                {**DEFAULT_ADMIN, "created_at": now_ms()},
            )
        connection.commit()


# Users


def save_user(user: Dict[str, Any]) -> None:
    with get_connection() as connection:
        connection.execute(
            """
            INSERT INTO users (id, email, name, role, phone, address, created_at)
            VALUES (:id, :email, :name, :role, :phone, :address, :created_at)
            """,
            user,
        )
        connection.commit()


def update_user(user: Dict[str, Any]) -> bool:
    """Overwrite a stored user. Returns False when the id is unknown."""
    with get_connection() as connection:
        cursor = connection.execute(
            """
            UPDATE users
            SET email = :email, name = :name, role = :role, phone = :phone, address = :address
            WHERE id = :id
            """,
            user,
        )
        connection.commit()
    return cursor.rowcount > 0


def get_user(user_id: str) -> Optional[Dict]:
    with get_connection() as connection:
        row = connection.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    return dict(row) if row else None


def get_user_by_email(email: str) -> Optional[Dict]:
    with get_connection() as connection:
        row = connection.execute(
            "SELECT * FROM users WHERE lower(email) = lower(?) ORDER BY created_at LIMIT 1",
            (email.strip(),),
        ).fetchone()
    return dict(row) if row else None


def get_users(role: Optional[str] = None) -> List[Dict]:
    query = "SELECT * FROM users"
    params: tuple = ()
    if role:
        query += " WHERE role = ?"
        params = (role,)
    with get_connection() as connection:
        rows = connection.execute(query + " ORDER BY created_at ASC", params).fetchall()
    return [dict(row) for row in rows]


# Reports


def _report_to_row(report: Dict[str, Any]) -> Dict[str, Any]:
    location = report.get("location") or {}
    row = {column: report.get(column) for column in REPORT_COLUMNS}
    row["lat"] = location.get("lat", 0.0)
    row["lng"] = location.get("lng", 0.0)
    row["address"] = location.get("address", "")
    row["needs_reassignment"] = int(bool(report.get("needs_reassignment")))
    return row


def _report_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    data = dict(row)
    data["location"] = {
        "lat": data.pop("lat"),
        "lng": data.pop("lng"),
        "address": data.pop("address"),
    }
    data["needs_reassignment"] = bool(data["needs_reassignment"])
    return data


def save_report(report: Dict[str, Any]) -> None:
    placeholders = ", ".join(f":{column}" for column in REPORT_COLUMNS)
    with get_connection() as connection:
        connection.execute(
            f"INSERT INTO reports ({', '.join(REPORT_COLUMNS)}) VALUES ({placeholders})",
            _report_to_row(report),
        )
        connection.commit()


def update_report(report: Dict[str, Any]) -> bool:
    """Overwrite every column of a stored report. Unknown ids are ignored."""
    assignments = ", ".join(f"{column} = :{column}" for column in REPORT_COLUMNS if column != "id")
    with get_connection() as connection:
        cursor = connection.execute(
            f"UPDATE reports SET {assignments} WHERE id = :id",
            _report_to_row(report),
        )
        connection.commit()
    return cursor.rowcount > 0


def get_report(report_id: str) -> Optional[Dict]:
    with get_connection() as connection:
        row = connection.execute("SELECT * FROM reports WHERE id = ?", (report_id,)).fetchone()
    return _report_from_row(row) if row else None


def get_reports(
    citizen_id: Optional[str] = None,
    picker_id: Optional[str] = None,
    status: Optional[str] = None,
) -> List[Dict]:
    """Fetch reports newest first, filtered by field equality."""
    clauses = []
    params: List[Any] = []
    if citizen_id:
        clauses.append("citizen_id = ?")
        params.append(citizen_id)
    if picker_id:
        clauses.append("assigned_picker_id = ?")
        params.append(picker_id)
    if status:
        clauses.append("status = ?")
        params.append(status)

    query = "SELECT * FROM reports"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY created_at DESC, rowid DESC"

    with get_connection() as connection:
        rows = connection.execute(query, params).fetchall()
    return [_report_from_row(row) for row in rows]


# Feedback


def _feedback_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    data = dict(row)
    data["is_cleaned"] = bool(data["is_cleaned"])
    return data


def save_feedback(feedback: Dict[str, Any]) -> None:
    with get_connection() as connection:
        connection.execute(
            """
            INSERT INTO feedback (
                id, report_id, user_id, user_name, picker_id, rating, comment, is_cleaned, created_at
            ) VALUES (
                :id, :report_id, :user_id, :user_name, :picker_id, :rating, :comment, :is_cleaned, :created_at
            )
            """,
            {**feedback, "is_cleaned": int(bool(feedback["is_cleaned"]))},
        )
        connection.commit()


def get_feedback_for_report(report_id: str) -> Optional[Dict]:
    """Most recent feedback left on a report."""
    with get_connection() as connection:
        row = connection.execute(
            """
            SELECT * FROM feedback
            WHERE report_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """,
            (report_id,),
        ).fetchone()
    return _feedback_from_row(row) if row else None


def get_feedback() -> List[Dict]:
    with get_connection() as connection:
        rows = connection.execute("SELECT * FROM feedback ORDER BY created_at ASC").fetchall()
    return [_feedback_from_row(row) for row in rows]


# Sessions


def create_session(user_id: str) -> str:
    token = secrets.token_urlsafe(24)
    with get_connection() as connection:
        connection.execute(
            "INSERT INTO sessions (token, user_id, created_at) VALUES (?, ?, ?)",
            (token, user_id, now_ms()),
        )
        connection.commit()
    return token


def get_session_user(token: str) -> Optional[Dict]:
    """Resolve a session token to the current state of its user."""
    with get_connection() as connection:
        row = connection.execute(
            """
            SELECT users.* FROM sessions
            JOIN users ON users.id = sessions.user_id
            WHERE sessions.token = ?
            """,
            (token,),
        ).fetchone()
    return dict(row) if row else None


def delete_session(token: str) -> None:
    with get_connection() as connection:
        connection.execute("DELETE FROM sessions WHERE token = ?", (token,))
        connection.commit()


# Aggregates


def get_status_counts() -> Dict[str, int]:
    counts = {status.value: 0 for status in ReportStatus}
    with get_connection() as connection:
        rows = connection.execute(
            "SELECT status, COUNT(*) AS count FROM reports GROUP BY status"
        ).fetchall()
    for row in rows:
        counts[row["status"]] = int(row["count"])
    return counts


def get_total_weight(picker_id: Optional[str] = None) -> float:
    """Kilograms collected across COMPLETED reports."""
    query = "SELECT COALESCE(SUM(collected_weight), 0) AS total FROM reports WHERE status = ?"
    params: List[Any] = [ReportStatus.COMPLETED.value]
    if picker_id:
        query += " AND assigned_picker_id = ?"
        params.append(picker_id)
    with get_connection() as connection:
        row = connection.execute(query, params).fetchone()
    return float(row["total"] if row else 0.0)


def get_completed_count(citizen_id: Optional[str] = None, picker_id: Optional[str] = None) -> int:
    query = "SELECT COUNT(*) AS total FROM reports WHERE status = ?"
    params: List[Any] = [ReportStatus.COMPLETED.value]
    if citizen_id:
        query += " AND citizen_id = ?"
        params.append(citizen_id)
    if picker_id:
        query += " AND assigned_picker_id = ?"
        params.append(picker_id)
    with get_connection() as connection:
        row = connection.execute(query, params).fetchone()
    return int(row["total"] if row else 0)


def get_average_rating(picker_id: str) -> Optional[float]:
    """Average citizen rating on cleanups done by a picker."""
    with get_connection() as connection:
        row = connection.execute(
            """
            SELECT AVG(rating) AS rating FROM feedback WHERE picker_id = ?
            """,
            (picker_id,),
        ).fetchone()
    if not row or row["rating"] is None:
        return None
    return round(float(row["rating"]), 1)


def get_monthly_collections(year: int, month: int) -> List[Dict]:
    """Return reports completed within the selected calendar month (UTC)."""
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)

    with get_connection() as connection:
        rows = connection.execute(
            """
            SELECT * FROM reports
            WHERE status = ? AND completed_at >= ? AND completed_at < ?
            ORDER BY completed_at ASC
            """,
            (
                ReportStatus.COMPLETED.value,
                int(start.timestamp() * 1000),
                int(end.timestamp() * 1000),
            ),
        ).fetchall()
    return [_report_from_row(row) for row in rows]
