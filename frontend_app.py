"""Streamlit frontend for EcoClean."""

from __future__ import annotations

import base64
import datetime as dt
import os
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import plotly.graph_objects as go
import requests
import streamlit as st

from analysis import merge_analysis

API_BASE_DEFAULT = os.environ.get("ECOCLEAN_API_URL", "http://localhost:8000")
WEIGHT_OPTIONS = [(i + 1) * 5 for i in range(10)]
STATUS_COLORS = {
    "PENDING": "#f5b942",
    "ASSIGNED": "#4c9bf2",
    "COMPLETED": "#3dd68c",
    "REJECTED": "#ff5d73",
}


def inject_css() -> None:
    st.markdown(
        """
        <style>
            @import url('https://fonts.googleapis.com/css2?family=Manrope:wght@400;600;700;800&display=swap');
            html, body, [class*="css"] {
                font-family: 'Manrope', sans-serif;
            }
            .block-container {
                max-width: 1200px;
                padding-top: 1.6rem;
                padding-bottom: 2.5rem;
            }
            .glass-card {
                border: 1px solid rgba(15, 23, 42, 0.08);
                border-radius: 20px;
                padding: 1rem 1.1rem;
                margin-bottom: 1rem;
                background: #ffffff;
                box-shadow: 0 8px 28px rgba(15, 23, 42, 0.06);
            }
            .metric-value {
                font-size: 1.8rem;
                font-weight: 800;
                line-height: 1.2;
            }
            .metric-label {
                color: #64748b;
                font-size: 0.8rem;
                letter-spacing: 0.04em;
                text-transform: uppercase;
            }
            .status-badge {
                display: inline-block;
                border-radius: 999px;
                padding: 0.2rem 0.7rem;
                font-size: 0.75rem;
                font-weight: 800;
                color: #0f172a;
            }
            .flag-badge {
                display: inline-block;
                border-radius: 999px;
                padding: 0.2rem 0.7rem;
                margin-left: 0.4rem;
                font-size: 0.75rem;
                font-weight: 800;
                background: #fee2e2;
                color: #b91c1c;
            }
        </style>
        """,
        unsafe_allow_html=True,
    )


def api_call(
    method: str,
    endpoint: str,
    base_url: str,
    payload: Optional[Dict[str, Any]] = None,
    token: Optional[str] = None,
) -> Dict[str, Any]:
    url = f"{base_url.rstrip('/')}{endpoint}"
    headers = {"X-Session-Token": token} if token else {}
    try:
        if method == "GET":
            response = requests.get(url, headers=headers, timeout=15)
        elif method in ("POST", "PATCH"):
            response = requests.request(method, url, json=payload or {}, headers=headers, timeout=60)
        else:
            raise ValueError(f"Unsupported method: {method}")
        response.raise_for_status()
        return response.json()
    except requests.HTTPError as exc:
        raise RuntimeError(_error_detail(exc.response)) from exc
    except requests.RequestException as exc:
        raise RuntimeError(f"API request failed: {exc}") from exc


def _error_detail(response: requests.Response) -> str:
    try:
        detail = response.json().get("detail")
    except ValueError:
        detail = None
    if isinstance(detail, str):
        return detail
    return f"API request failed with status {response.status_code}."


def fetch_csv_report(base_url: str, token: str, year: int, month: int) -> bytes:
    url = f"{base_url.rstrip('/')}/export/monthly?year={year}&month={month}"
    response = requests.get(url, headers={"X-Session-Token": token}, timeout=25)
    response.raise_for_status()
    return response.content


def to_data_url(data: bytes, mime_type: Optional[str]) -> str:
    """Encode an uploaded image as an inline data URL."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type or 'image/jpeg'};base64,{encoded}"


def navigation_url(address: str) -> str:
    return f"https://www.google.com/maps/dir/?api=1&destination={quote(address, safe='')}"


def format_timestamp(timestamp_ms: Optional[int]) -> str:
    if not timestamp_ms:
        return "--"
    return dt.datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M")


def status_badge_html(report: Dict[str, Any], flag_label: str = "Flagged") -> str:
    color = STATUS_COLORS.get(report["status"], "#cbd5e1")
    html = f"<span class='status-badge' style='background:{color}'>{report['status']}</span>"
    if report.get("needs_reassignment"):
        html += f"<span class='flag-badge'>{flag_label}</span>"
    return html


def render_metric_cards(metrics: List[tuple]) -> None:
    columns = st.columns(len(metrics))
    for column, (label, value) in zip(columns, metrics):
        with column:
            st.markdown(
                f"""
                <div class="glass-card">
                    <div class="metric-value">{value}</div>
                    <div class="metric-label">{label}</div>
                </div>
                """,
                unsafe_allow_html=True,
            )


def store_login(result: Dict[str, Any]) -> None:
    st.session_state.token = result["token"]


def render_login(base_url: str) -> None:
    st.markdown("### Welcome back")
    with st.form("login_form"):
        email = st.text_input("Email", placeholder="you@example.com")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Login", use_container_width=True)
    if submitted:
        try:
            store_login(api_call("POST", "/auth/login", base_url, {"email": email, "password": password}))
            st.rerun()
        except RuntimeError as error:
            st.error(str(error))


def render_signup(base_url: str) -> None:
    st.markdown("### Create an account")
    with st.form("signup_form"):
        name = st.text_input("Full name")
        email = st.text_input("Email")
        role_label = st.radio("I am a", ["Citizen", "Garbage Picker"], horizontal=True)
        phone = st.text_input("Phone")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign up", use_container_width=True)
    if submitted:
        payload = {
            "name": name,
            "email": email,
            "role": "PICKER" if role_label == "Garbage Picker" else "CITIZEN",
            "phone": phone or None,
            "password": password,
        }
        try:
            store_login(api_call("POST", "/auth/signup", base_url, payload))
            st.rerun()
        except RuntimeError as error:
            st.error(str(error))


def render_citizen_dashboard(base_url: str, token: str, user: Dict[str, Any]) -> None:
    summary = api_call("GET", "/me/summary", base_url, token=token)
    render_metric_cards(
        [
            ("Reports Filed", summary["reports"]),
            ("Cleanups Completed", summary["completed"]),
            ("Reward Points (+10 / clean)", summary["reward_points"]),
        ]
    )

    notice = st.session_state.pop("notice", None)
    if notice:
        st.success(notice)

    with st.expander("Report Litter", expanded=False):
        # A new key per submitted report empties the uploader.
        upload = st.file_uploader(
            "Photo of the waste",
            type=["jpg", "jpeg", "png", "webp"],
            key=f"report_photo_{st.session_state.upload_round}",
        )
        if upload is not None:
            photo = to_data_url(upload.getvalue(), upload.type)
            if st.session_state.get("analyzed_photo") != photo:
                with st.spinner("Gemini is analyzing waste..."):
                    try:
                        analysis = api_call("POST", "/analyze", base_url, {"photo": photo}, token)["analysis"]
                    except RuntimeError as error:
                        st.error(f"Image analysis failed: {error}")
                        analysis = None
                st.session_state.analyzed_photo = photo
                st.session_state.ai_analysis = analysis
                if analysis:
                    st.session_state.report_description = merge_analysis(
                        st.session_state.get("report_description", ""), analysis
                    )
            st.image(upload, use_container_width=True)

        address = st.text_input("Location", placeholder="E.g. 123 Main St, Central Park Entrance")
        description = st.text_area(
            "Description",
            key="report_description",
            placeholder="Tell us more about the situation...",
        )
        if st.button("Submit Report", disabled=upload is None, use_container_width=True):
            if not address.strip():
                st.warning("Enter a location for the report.")
            else:
                payload = {
                    "photo": st.session_state.analyzed_photo,
                    "address": address,
                    "description": description,
                    "ai_analysis": st.session_state.get("ai_analysis"),
                }
                try:
                    api_call("POST", "/reports", base_url, payload, token)
                    st.session_state.pop("analyzed_photo", None)
                    st.session_state.pop("ai_analysis", None)
                    st.session_state.pop("report_description", None)
                    st.session_state.upload_round += 1
                    st.session_state.notice = "Report submitted."
                    st.rerun()
                except RuntimeError as error:
                    st.error(str(error))

    st.markdown("### My Recent Reports")
    reports = api_call("GET", "/reports", base_url, token=token)["items"]
    if not reports:
        st.info('You haven\'t reported any litter yet. Start by clicking "Report Litter".')
        return

    for report in reports:
        with st.container(border=True):
            left, right = st.columns([1, 2.4])
            with left:
                st.image(report["photo_url"], use_container_width=True)
            with right:
                st.markdown(status_badge_html(report), unsafe_allow_html=True)
                st.markdown(f"**{report['location']['address']}**")
                st.caption(format_timestamp(report["created_at"]))
                if report["description"]:
                    st.write(report["description"])
                if report["status"] == "COMPLETED" and not report["needs_reassignment"]:
                    render_feedback_form(base_url, token, report)


def render_feedback_form(base_url: str, token: str, report: Dict[str, Any]) -> None:
    with st.expander("Verify & Rate"):
        if report.get("completion_proof_url"):
            st.image(report["completion_proof_url"], caption="Picker's proof", use_container_width=True)
        with st.form(f"feedback_{report['id']}"):
            cleaned = st.selectbox(
                "Is the area clean now?",
                ["Yes, it is perfectly clean", "No, there is still waste remaining"],
            )
            rating = st.slider("Rating", min_value=1, max_value=5, value=5)
            comment = st.text_area("Comment", placeholder="Tell us about the cleanup quality...")
            submitted = st.form_submit_button("Submit & verify")
        if submitted:
            payload = {"rating": rating, "comment": comment, "is_cleaned": cleaned.startswith("Yes")}
            try:
                api_call("POST", f"/reports/{report['id']}/feedback", base_url, payload, token)
                st.rerun()
            except RuntimeError as error:
                st.error(str(error))


def render_admin_charts(stats: Dict[str, Any]) -> None:
    col1, col2 = st.columns(2)
    statuses = ["PENDING", "ASSIGNED", "COMPLETED", "REJECTED"]

    with col1:
        fig_status = go.Figure(
            data=[
                go.Pie(
                    labels=statuses,
                    values=[stats[status.lower()] for status in statuses],
                    hole=0.48,
                    marker=dict(colors=[STATUS_COLORS[status] for status in statuses]),
                )
            ]
        )
        fig_status.update_layout(title="Report Status", margin=dict(l=20, r=20, t=50, b=20))
        st.plotly_chart(fig_status, use_container_width=True)

    with col2:
        weights = stats.get("picker_weights", [])
        fig_weight = go.Figure()
        fig_weight.add_trace(
            go.Bar(
                x=[item["name"] for item in weights],
                y=[item["weight"] for item in weights],
                marker=dict(color="#3dd68c"),
                name="Collected (kg)",
            )
        )
        fig_weight.update_layout(title="Collected Weight per Picker", margin=dict(l=20, r=20, t=50, b=20))
        st.plotly_chart(fig_weight, use_container_width=True)


def render_admin_dashboard(base_url: str, token: str, user: Dict[str, Any]) -> None:
    stats = api_call("GET", "/stats", base_url, token=token)
    render_metric_cards(
        [
            ("Pending", stats["pending"]),
            ("Assigned", stats["assigned"]),
            ("Completed", stats["completed"]),
            ("Users", stats["total_users"]),
            ("Collected", f"{stats['total_weight']:g} kg"),
        ]
    )

    tab_reports, tab_users, tab_analytics = st.tabs(["Waste Reports", "Manage Users", "Analytics"])
    pickers = api_call("GET", "/users?role=PICKER", base_url, token=token)["items"]

    with tab_reports:
        reports = api_call("GET", "/reports", base_url, token=token)["items"]
        if not reports:
            st.info("No waste reports submitted yet.")
        for report in reports:
            render_admin_report(base_url, token, report, pickers)

    with tab_users:
        citizens = api_call("GET", "/users?role=CITIZEN", base_url, token=token)["items"]
        weights = {item["picker_id"]: item["weight"] for item in stats.get("picker_weights", [])}
        col_pickers, col_citizens = st.columns(2)
        with col_pickers:
            st.markdown(f"#### Garbage Pickers ({len(pickers)})")
            for picker in pickers:
                st.write(f"**{picker['name']}** · {picker['email']} · {weights.get(picker['id'], 0):g} kg")
        with col_citizens:
            st.markdown(f"#### Citizens ({len(citizens)})")
            for citizen in citizens:
                st.write(f"**{citizen['name']}** · {citizen['email']}")

    with tab_analytics:
        render_admin_charts(stats)
        render_export(base_url, token)


def render_admin_report(
    base_url: str, token: str, report: Dict[str, Any], pickers: List[Dict[str, Any]]
) -> None:
    with st.container(border=True):
        left, mid, right = st.columns([1, 2, 1.4])
        with left:
            st.image(report["photo_url"], use_container_width=True)
        with mid:
            st.markdown(status_badge_html(report, "Flagged for Reassignment"), unsafe_allow_html=True)
            st.markdown(f"**{report['location']['address']}**")
            st.caption(f"By {report['citizen_name']} · {format_timestamp(report['created_at'])}")
            if report.get("assigned_picker_name"):
                st.caption(f"Picker: {report['assigned_picker_name']}")
            weight = report.get("collected_weight")
            st.caption(f"Collected: {f'{weight:g} kg' if weight else '--'}")
        with right:
            try:
                if report["status"] == "PENDING":
                    picker_names = {p["name"]: p["id"] for p in pickers}
                    choice = st.selectbox(
                        "Select Picker",
                        ["--"] + list(picker_names),
                        key=f"assign_{report['id']}",
                    )
                    if choice != "--" and st.button("Assign", key=f"assign_btn_{report['id']}"):
                        api_call(
                            "POST",
                            f"/reports/{report['id']}/assign",
                            base_url,
                            {"picker_id": picker_names[choice]},
                            token,
                        )
                        st.rerun()
                    if st.button("Reject", key=f"reject_{report['id']}"):
                        api_call("POST", f"/reports/{report['id']}/reject", base_url, token=token)
                        st.rerun()
                elif report["needs_reassignment"]:
                    if st.button("Reset & Reassign", key=f"reset_{report['id']}"):
                        api_call("POST", f"/reports/{report['id']}/reset", base_url, token=token)
                        st.rerun()
            except RuntimeError as error:
                st.error(str(error))

        if report["needs_reassignment"]:
            feedback = api_call("GET", f"/reports/{report['id']}/feedback", base_url, token=token)["feedback"]
            if feedback:
                st.warning(
                    f"{feedback['user_name']} rated {'★' * feedback['rating']}: "
                    f"{feedback['comment'] or 'No comment.'}"
                )


def render_export(base_url: str, token: str) -> None:
    st.markdown("### Export Monthly Collections")
    today = dt.date.today()
    col_y, col_m = st.columns(2)
    with col_y:
        year = st.number_input("Year", min_value=2000, max_value=2100, value=today.year)
    with col_m:
        month = st.number_input("Month", min_value=1, max_value=12, value=today.month)

    if st.button("Generate CSV Report"):
        try:
            csv_bytes = fetch_csv_report(base_url, token, int(year), int(month))
            st.download_button(
                label="Download Report CSV",
                data=csv_bytes,
                file_name=f"ecoclean_collections_{int(year):04d}_{int(month):02d}.csv",
                mime="text/csv",
            )
        except requests.RequestException as error:
            st.error(f"CSV export failed: {error}")


def render_picker_dashboard(base_url: str, token: str, user: Dict[str, Any]) -> None:
    summary = api_call("GET", "/me/summary", base_url, token=token)
    rating = summary.get("average_rating")
    render_metric_cards(
        [
            ("Open Tasks", summary["open_tasks"]),
            ("Completed", summary["completed"]),
            ("Total Collected", f"{summary['total_weight']:g} kg"),
            ("Rating", f"{rating} ★" if rating is not None else "--"),
        ]
    )

    st.markdown("### Assigned Tasks")
    tasks = api_call("GET", "/reports?status=ASSIGNED", base_url, token=token)["items"]
    if not tasks:
        st.info("No pending tasks. Great job!")
        return

    for task in tasks:
        with st.container(border=True):
            left, right = st.columns([1, 2.4])
            with left:
                st.image(task["photo_url"], use_container_width=True)
            with right:
                address = task["location"]["address"]
                st.markdown(f"**{address}**")
                if task["description"]:
                    st.write(task["description"])
                st.link_button("Navigate", navigation_url(address))
                with st.expander("Mark Complete"):
                    with st.form(f"complete_{task['id']}"):
                        proof = st.file_uploader("Proof photo", type=["jpg", "jpeg", "png", "webp"])
                        weight = st.selectbox("Collected weight (kg)", WEIGHT_OPTIONS)
                        submitted = st.form_submit_button("Confirm Cleanup")
                    if submitted:
                        if proof is None:
                            st.warning("Upload a proof photo first.")
                        else:
                            payload = {"proof_url": to_data_url(proof.getvalue(), proof.type), "weight": weight}
                            try:
                                api_call("POST", f"/reports/{task['id']}/complete", base_url, payload, token)
                                st.rerun()
                            except RuntimeError as error:
                                st.error(str(error))


DASHBOARDS = {
    "ADMIN": render_admin_dashboard,
    "CITIZEN": render_citizen_dashboard,
    "PICKER": render_picker_dashboard,
}


def main() -> None:
    st.set_page_config(page_title="EcoClean", page_icon="♻", layout="wide")
    inject_css()

    if "token" not in st.session_state:
        st.session_state.token = None
    if "upload_round" not in st.session_state:
        st.session_state.upload_round = 0

    with st.sidebar:
        st.markdown("### Backend")
        base_url = st.text_input("FastAPI URL", value=API_BASE_DEFAULT)
        st.caption("Run backend with: uvicorn main:app --host 0.0.0.0 --port 8000")

    token = st.session_state.token
    if not token:
        st.title("EcoClean")
        login_tab, signup_tab = st.tabs(["Login", "Sign up"])
        with login_tab:
            render_login(base_url)
        with signup_tab:
            render_signup(base_url)
        return

    try:
        user = api_call("GET", "/session", base_url, token=token)["user"]
    except RuntimeError as error:
        st.session_state.token = None
        st.error(str(error))
        st.stop()

    with st.sidebar:
        st.markdown(f"**{user['name']}** ({user['role']})")
        if st.button("Logout"):
            try:
                api_call("POST", "/auth/logout", base_url, token=token)
                st.session_state.token = None
                st.rerun()
            except RuntimeError as error:
                st.error(str(error))

    st.title(f"{user['role'].title()} Dashboard")
    try:
        DASHBOARDS[user["role"]](base_url, token, user)
    except RuntimeError as error:
        st.error(
            "Could not reach FastAPI backend. Start it with `uvicorn main:app --reload` "
            f"and verify URL.\n\n{error}"
        )
    st.caption("© EcoClean Waste Management Platform. Empowering sustainable cities.")


if __name__ == "__main__":
    main()
