"""Report lifecycle rules for EcoClean.

Records are plain dicts shaped like the database rows. Every transition
returns a new dict and leaves its input untouched.
"""

from __future__ import annotations

import logging
import time
import uuid
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

POINTS_PER_CLEANUP = 10
MIN_RATING = 1
MAX_RATING = 5


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    CITIZEN = "CITIZEN"
    PICKER = "PICKER"


class ReportStatus(str, Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class TransitionError(ValueError):
    """Raised when a report cannot move to the requested state."""


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def new_user(
    name: str,
    email: str,
    role: UserRole,
    phone: Optional[str] = None,
    address: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "id": new_id("u"),
        "email": email.strip(),
        "name": name.strip(),
        "role": UserRole(role).value,
        "phone": phone,
        "address": address,
        "created_at": now_ms(),
    }


def new_report(
    citizen: Dict[str, Any],
    photo_url: str,
    address: str,
    description: str = "",
    ai_analysis: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a fresh PENDING report filed by ``citizen``."""
    if citizen["role"] != UserRole.CITIZEN.value:
        raise TransitionError("Only citizens can file waste reports.")
    if not photo_url:
        raise TransitionError("A photo of the waste is required.")
    if not address.strip():
        raise TransitionError("A location address is required.")

    return {
        "id": new_id("rep"),
        "citizen_id": citizen["id"],
        "citizen_name": citizen["name"],
        "photo_url": photo_url,
        # No geolocation; coordinates stay at the origin.
        "location": {"lat": 0.0, "lng": 0.0, "address": address.strip()},
        "description": description,
        "status": ReportStatus.PENDING.value,
        "ai_analysis": ai_analysis,
        "created_at": now_ms(),
        "assigned_picker_id": None,
        "assigned_picker_name": None,
        "completion_proof_url": None,
        "completed_at": None,
        "collected_weight": None,
        "needs_reassignment": False,
    }


def _require_status(report: Dict[str, Any], *allowed: ReportStatus) -> None:
    if report["status"] not in {status.value for status in allowed}:
        expected = " or ".join(status.value for status in allowed)
        raise TransitionError(
            f"Report {report['id']} is {report['status']}; expected {expected}."
        )


def assign(report: Dict[str, Any], picker: Dict[str, Any]) -> Dict[str, Any]:
    """PENDING -> ASSIGNED to ``picker``."""
    if picker["role"] != UserRole.PICKER.value:
        raise TransitionError(f"User {picker['id']} is not a garbage picker.")
    _require_status(report, ReportStatus.PENDING)

    logger.info("Assigning report %s to picker %s", report["id"], picker["id"])
    return {
        **report,
        "status": ReportStatus.ASSIGNED.value,
        "assigned_picker_id": picker["id"],
        "assigned_picker_name": picker["name"],
        "needs_reassignment": False,
    }


def complete(
    report: Dict[str, Any],
    picker: Dict[str, Any],
    proof_url: str,
    weight: float,
) -> Dict[str, Any]:
    """ASSIGNED -> COMPLETED with proof photo and collected weight in kg."""
    _require_status(report, ReportStatus.ASSIGNED)
    if report["assigned_picker_id"] != picker["id"]:
        raise TransitionError(f"Report {report['id']} is not assigned to {picker['id']}.")
    if not proof_url:
        raise TransitionError("A proof photo is required to complete a task.")
    if weight <= 0:
        raise TransitionError("Collected weight must be positive.")

    logger.info("Report %s completed by %s (%.1f kg)", report["id"], picker["id"], weight)
    return {
        **report,
        "status": ReportStatus.COMPLETED.value,
        "completion_proof_url": proof_url,
        "completed_at": now_ms(),
        "collected_weight": float(weight),
    }


def can_give_feedback(report: Dict[str, Any], citizen: Dict[str, Any]) -> bool:
    return (
        report["citizen_id"] == citizen["id"]
        and report["status"] == ReportStatus.COMPLETED.value
        and not report["needs_reassignment"]
    )


def new_feedback(
    report: Dict[str, Any],
    citizen: Dict[str, Any],
    rating: int,
    comment: str = "",
    is_cleaned: bool = True,
) -> Dict[str, Any]:
    """Verification feedback from the citizen who filed ``report``."""
    if not MIN_RATING <= rating <= MAX_RATING:
        raise TransitionError(f"Rating must be between {MIN_RATING} and {MAX_RATING}.")
    if not can_give_feedback(report, citizen):
        raise TransitionError(f"Report {report['id']} is not awaiting verification.")

    return {
        "id": new_id("fb"),
        "report_id": report["id"],
        "user_id": citizen["id"],
        "user_name": citizen["name"],
        # Picker whose cleanup is being rated.
        "picker_id": report["assigned_picker_id"],
        "rating": rating,
        "comment": comment,
        "is_cleaned": is_cleaned,
        "created_at": now_ms(),
    }


def apply_feedback(report: Dict[str, Any], feedback: Dict[str, Any]) -> Dict[str, Any]:
    """Flag the report for reassignment when the citizen says it is still dirty."""
    if feedback["is_cleaned"]:
        return dict(report)

    logger.info("Report %s flagged for reassignment", report["id"])
    return {**report, "needs_reassignment": True}


def reset_for_reassignment(report: Dict[str, Any]) -> Dict[str, Any]:
    """Send a flagged report back to PENDING so it can be assigned again."""
    if not report["needs_reassignment"]:
        raise TransitionError(f"Report {report['id']} is not flagged for reassignment.")

    logger.info("Report %s reset to PENDING", report["id"])
    return {
        **report,
        "status": ReportStatus.PENDING.value,
        "assigned_picker_id": None,
        "assigned_picker_name": None,
        "needs_reassignment": False,
        "completion_proof_url": None,
        "completed_at": None,
    }


def reject(report: Dict[str, Any]) -> Dict[str, Any]:
    _require_status(report, ReportStatus.PENDING)
    logger.info("Report %s rejected", report["id"])
    return {**report, "status": ReportStatus.REJECTED.value}


def reward_points(completed_count: int) -> int:
    return completed_count * POINTS_PER_CLEANUP
