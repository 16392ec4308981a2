"""FastAPI backend for EcoClean."""

from __future__ import annotations

import csv
import io
import logging
import os
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field, StringConstraints

import database
import lifecycle
from analysis import analyze_waste_image
from lifecycle import ReportStatus, TransitionError, UserRole

logging.basicConfig(level=os.environ.get("ECOCLEAN_LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

app = FastAPI(title="EcoClean API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

LOGIN_HINT = "Invalid email or password. Hint: admin@ecoclean.com is pre-created."

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class SignupRequest(BaseModel):
    name: RequiredText
    email: Annotated[str, StringConstraints(strip_whitespace=True, min_length=3)]
    role: UserRole = UserRole.CITIZEN
    phone: Optional[str] = None
    password: str = ""


class LoginRequest(BaseModel):
    email: str
    password: str = ""


class ProfileUpdate(BaseModel):
    name: Optional[RequiredText] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class AnalyzeRequest(BaseModel):
    photo: RequiredText


class ReportRequest(BaseModel):
    photo: RequiredText
    address: RequiredText
    description: str = ""
    ai_analysis: Optional[str] = None


class AssignRequest(BaseModel):
    picker_id: str


class CompleteRequest(BaseModel):
    proof_url: str = Field(min_length=1)
    weight: float = Field(gt=0)


class FeedbackRequest(BaseModel):
    rating: int = Field(default=5, ge=1, le=5)
    comment: str = ""
    is_cleaned: bool = True


@app.on_event("startup")
def on_startup() -> None:
    database.init_db()


@app.exception_handler(TransitionError)
async def transition_error_handler(request: Request, exc: TransitionError) -> JSONResponse:
    logger.warning("Rejected transition on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def current_user(x_session_token: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    if not x_session_token:
        raise HTTPException(status_code=401, detail="Not logged in.")
    user = database.get_session_user(x_session_token)
    if not user:
        raise HTTPException(status_code=401, detail="Session expired. Please log in again.")
    return user


def require_role(user: Dict[str, Any], *roles: UserRole) -> None:
    if user["role"] not in {role.value for role in roles}:
        raise HTTPException(status_code=403, detail=f"{user['role']} cannot perform this action.")


def load_report(report_id: str) -> Dict[str, Any]:
    report = database.get_report(report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found.")
    return report


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/auth/signup")
def signup(request: SignupRequest) -> Dict[str, Any]:
    if request.role == UserRole.ADMIN:
        raise HTTPException(status_code=400, detail="Administrators cannot sign up.")
    if database.get_user_by_email(request.email):
        raise HTTPException(status_code=409, detail="An account with this email already exists.")

    user = lifecycle.new_user(request.name, request.email, request.role, phone=request.phone)
    database.save_user(user)
    logger.info("New %s account %s", user["role"], user["id"])
    return {"token": database.create_session(user["id"]), "user": user}


@app.post("/auth/login")
def login(request: LoginRequest) -> Dict[str, Any]:
    # Passwords are accepted but not checked.
    user = database.get_user_by_email(request.email)
    if not user:
        raise HTTPException(status_code=401, detail=LOGIN_HINT)
    return {"token": database.create_session(user["id"]), "user": user}


@app.post("/auth/logout")
def logout(x_session_token: Optional[str] = Header(default=None)) -> Dict[str, bool]:
    if x_session_token:
        database.delete_session(x_session_token)
    return {"logged_out": True}


@app.get("/session")
def session(user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    return {"user": user}


@app.patch("/users/me")
def update_profile(
    update: ProfileUpdate, user: Dict[str, Any] = Depends(current_user)
) -> Dict[str, Any]:
    changes = update.model_dump(exclude_none=True)
    updated = {**user, **changes}
    database.update_user(updated)
    return {"user": updated}


@app.get("/users")
def list_users(
    role: Optional[UserRole] = None, user: Dict[str, Any] = Depends(current_user)
) -> Dict[str, List[Dict[str, Any]]]:
    require_role(user, UserRole.ADMIN)
    return {"items": database.get_users(role.value if role else None)}


@app.post("/analyze")
def analyze(request: AnalyzeRequest, user: Dict[str, Any] = Depends(current_user)) -> Dict[str, str]:
    require_role(user, UserRole.CITIZEN)
    return {"analysis": analyze_waste_image(request.photo)}


@app.post("/reports")
def create_report(
    request: ReportRequest, user: Dict[str, Any] = Depends(current_user)
) -> Dict[str, Any]:
    require_role(user, UserRole.CITIZEN)
    report = lifecycle.new_report(
        user,
        photo_url=request.photo,
        address=request.address,
        description=request.description,
        ai_analysis=request.ai_analysis,
    )
    database.save_report(report)
    logger.info("Report %s filed by %s", report["id"], user["id"])
    return {"report": report}


@app.get("/reports")
def list_reports(
    status: Optional[ReportStatus] = None, user: Dict[str, Any] = Depends(current_user)
) -> Dict[str, List[Dict[str, Any]]]:
    status_value = status.value if status else None
    if user["role"] == UserRole.CITIZEN.value:
        items = database.get_reports(citizen_id=user["id"], status=status_value)
    elif user["role"] == UserRole.PICKER.value:
        items = database.get_reports(picker_id=user["id"], status=status_value)
    else:
        items = database.get_reports(status=status_value)
    return {"items": items}


@app.get("/reports/{report_id}")
def get_report(report_id: str, user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    return {"report": load_report(report_id)}


@app.post("/reports/{report_id}/assign")
def assign_report(
    report_id: str, request: AssignRequest, user: Dict[str, Any] = Depends(current_user)
) -> Dict[str, Any]:
    require_role(user, UserRole.ADMIN)
    report = load_report(report_id)
    picker = database.get_user(request.picker_id)
    if not picker:
        raise HTTPException(status_code=404, detail="Picker not found.")

    updated = lifecycle.assign(report, picker)
    database.update_report(updated)
    return {"report": updated}


@app.post("/reports/{report_id}/reject")
def reject_report(report_id: str, user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    require_role(user, UserRole.ADMIN)
    updated = lifecycle.reject(load_report(report_id))
    database.update_report(updated)
    return {"report": updated}


@app.post("/reports/{report_id}/reset")
def reset_report(report_id: str, user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    require_role(user, UserRole.ADMIN)
    updated = lifecycle.reset_for_reassignment(load_report(report_id))
    database.update_report(updated)
    return {"report": updated}


@app.post("/reports/{report_id}/complete")
def complete_report(
    report_id: str, request: CompleteRequest, user: Dict[str, Any] = Depends(current_user)
) -> Dict[str, Any]:
    require_role(user, UserRole.PICKER)
    updated = lifecycle.complete(load_report(report_id), user, request.proof_url, request.weight)
    database.update_report(updated)
    return {"report": updated}


@app.post("/reports/{report_id}/feedback")
def submit_feedback(
    report_id: str, request: FeedbackRequest, user: Dict[str, Any] = Depends(current_user)
) -> Dict[str, Any]:
    require_role(user, UserRole.CITIZEN)
    report = load_report(report_id)
    feedback = lifecycle.new_feedback(
        report, user, rating=request.rating, comment=request.comment, is_cleaned=request.is_cleaned
    )
    database.save_feedback(feedback)

    updated = lifecycle.apply_feedback(report, feedback)
    if updated["needs_reassignment"] != report["needs_reassignment"]:
        database.update_report(updated)
    return {"feedback": feedback, "report": updated}


@app.get("/reports/{report_id}/feedback")
def report_feedback(report_id: str, user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    load_report(report_id)
    return {"feedback": database.get_feedback_for_report(report_id)}


@app.get("/stats")
def stats(user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    require_role(user, UserRole.ADMIN)
    counts = database.get_status_counts()
    pickers = database.get_users(UserRole.PICKER.value)
    citizens = database.get_users(UserRole.CITIZEN.value)
    return {
        "pending": counts[ReportStatus.PENDING.value],
        "assigned": counts[ReportStatus.ASSIGNED.value],
        "completed": counts[ReportStatus.COMPLETED.value],
        "rejected": counts[ReportStatus.REJECTED.value],
        "total_users": len(pickers) + len(citizens),
        "total_weight": database.get_total_weight(),
        "picker_weights": [
            {"picker_id": p["id"], "name": p["name"], "weight": database.get_total_weight(p["id"])}
            for p in pickers
        ],
    }


@app.get("/me/summary")
def my_summary(user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    require_role(user, UserRole.CITIZEN, UserRole.PICKER)
    if user["role"] == UserRole.CITIZEN.value:
        completed = database.get_completed_count(citizen_id=user["id"])
        return {
            "reports": len(database.get_reports(citizen_id=user["id"])),
            "completed": completed,
            "reward_points": lifecycle.reward_points(completed),
        }
    return {
        "open_tasks": len(
            database.get_reports(picker_id=user["id"], status=ReportStatus.ASSIGNED.value)
        ),
        "completed": database.get_completed_count(picker_id=user["id"]),
        "total_weight": database.get_total_weight(user["id"]),
        "average_rating": database.get_average_rating(user["id"]),
    }


@app.get("/export/monthly")
def export_monthly_csv(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    user: Dict[str, Any] = Depends(current_user),
) -> StreamingResponse:
    require_role(user, UserRole.ADMIN)
    rows = database.get_monthly_collections(year=year, month=month)

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(
        [
            "id",
            "address",
            "citizen_name",
            "picker_name",
            "collected_weight",
            "created_at",
            "completed_at",
        ]
    )
    for row in rows:
        writer.writerow(
            [
                row["id"],
                row["location"]["address"],
                row["citizen_name"],
                row["assigned_picker_name"],
                row["collected_weight"],
                _iso(row["created_at"]),
                _iso(row["completed_at"]),
            ]
        )

    output = io.BytesIO(buffer.getvalue().encode("utf-8"))
    filename = f"ecoclean_collections_{year:04d}_{month:02d}.csv"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return StreamingResponse(output, media_type="text/csv", headers=headers)


def _iso(timestamp_ms: Optional[int]) -> str:
    if timestamp_ms is None:
        return ""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).isoformat(timespec="seconds")
