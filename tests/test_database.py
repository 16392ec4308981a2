from datetime import datetime, timezone

import lifecycle
from lifecycle import ReportStatus, UserRole

PHOTO = "data:image/jpeg;base64,/9j/4AAQSkZJRg=="


def _users(db):
    citizen = lifecycle.new_user("Ada", "ada@example.com", UserRole.CITIZEN)
    picker = lifecycle.new_user("Pat", "pat@example.com", UserRole.PICKER)
    db.save_user(citizen)
    db.save_user(picker)
    return citizen, picker


def test_init_db_seeds_default_admin_once(db) -> None:
    db.init_db()

    admins = db.get_users(UserRole.ADMIN.value)
    assert len(admins) == 1
    assert admins[0]["id"] == "admin-1"
    assert admins[0]["email"] == "admin@ecoclean.com"


def test_user_lookup_and_update(db) -> None:
    citizen, _ = _users(db)

    assert db.get_user_by_email("ADA@example.com")["id"] == citizen["id"]
    assert db.update_user({**citizen, "phone": "555-0100"}) is True
    assert db.get_user(citizen["id"])["phone"] == "555-0100"
    assert db.update_user({**citizen, "id": "u-missing"}) is False


def test_report_round_trip_keeps_location_and_flag(db) -> None:
    citizen, _ = _users(db)
    report = lifecycle.new_report(citizen, PHOTO, "1 Elm St", "Bags")
    db.save_report(report)

    stored = db.get_report(report["id"])
    assert stored == report
    assert stored["needs_reassignment"] is False


def test_update_report_overwrites_whole_record(db) -> None:
    citizen, picker = _users(db)
    report = lifecycle.new_report(citizen, PHOTO, "1 Elm St")
    db.save_report(report)

    assigned = lifecycle.assign(report, picker)
    assert db.update_report(assigned) is True
    assert db.get_report(report["id"]) == assigned
    assert db.update_report({**assigned, "id": "rep-missing"}) is False


def test_get_reports_filters_and_orders_newest_first(db) -> None:
    citizen, picker = _users(db)
    first = lifecycle.new_report(citizen, PHOTO, "First")
    second = {**lifecycle.new_report(citizen, PHOTO, "Second"), "created_at": first["created_at"] + 10}
    db.save_report(first)
    db.save_report(second)
    db.update_report(lifecycle.assign(first, picker))

    assert [r["id"] for r in db.get_reports(citizen_id=citizen["id"])] == [second["id"], first["id"]]
    assert [r["id"] for r in db.get_reports(picker_id=picker["id"])] == [first["id"]]
    assert [r["id"] for r in db.get_reports(status=ReportStatus.PENDING.value)] == [second["id"]]


def test_sessions_resolve_current_user(db) -> None:
    citizen, _ = _users(db)
    token = db.create_session(citizen["id"])

    db.update_user({**citizen, "name": "Ada Lovelace"})
    assert db.get_session_user(token)["name"] == "Ada Lovelace"

    db.delete_session(token)
    assert db.get_session_user(token) is None


def test_aggregates_count_only_completed(db) -> None:
    citizen, picker = _users(db)
    done = lifecycle.complete(
        lifecycle.assign(lifecycle.new_report(citizen, PHOTO, "A"), picker), picker, "proof", 20
    )
    open_task = lifecycle.assign(lifecycle.new_report(citizen, PHOTO, "B"), picker)
    db.save_report(done)
    db.save_report(open_task)

    assert db.get_status_counts() == {"PENDING": 0, "ASSIGNED": 1, "COMPLETED": 1, "REJECTED": 0}
    assert db.get_total_weight() == 20.0
    assert db.get_total_weight(picker["id"]) == 20.0
    assert db.get_completed_count(citizen_id=citizen["id"]) == 1


def test_feedback_latest_and_average_rating(db) -> None:
    citizen, picker = _users(db)
    done = lifecycle.complete(
        lifecycle.assign(lifecycle.new_report(citizen, PHOTO, "A"), picker), picker, "proof", 5
    )
    db.save_report(done)
    assert db.get_average_rating(picker["id"]) is None

    older = lifecycle.new_feedback(done, citizen, rating=2, is_cleaned=False)
    newer = {**lifecycle.new_feedback(done, citizen, rating=5), "created_at": older["created_at"] + 1}
    db.save_feedback(older)
    db.save_feedback(newer)

    latest = db.get_feedback_for_report(done["id"])
    assert latest["id"] == newer["id"]
    assert latest["is_cleaned"] is True
    assert db.get_average_rating(picker["id"]) == 3.5
    assert len(db.get_feedback()) == 2


def test_monthly_collections_uses_completion_month(db) -> None:
    citizen, picker = _users(db)
    done = lifecycle.complete(
        lifecycle.assign(lifecycle.new_report(citizen, PHOTO, "A"), picker), picker, "proof", 5
    )
    march = int(datetime(2024, 3, 15, tzinfo=timezone.utc).timestamp() * 1000)
    db.save_report({**done, "completed_at": march})

    assert [r["id"] for r in db.get_monthly_collections(2024, 3)] == [done["id"]]
    assert db.get_monthly_collections(2024, 4) == []
    assert db.get_monthly_collections(2023, 12) == []


def test_rating_stays_with_picker_who_did_the_cleanup(db) -> None:
    citizen, pat = _users(db)
    sam = lifecycle.new_user("Sam", "sam@example.com", UserRole.PICKER)
    db.save_user(sam)
    done = lifecycle.complete(
        lifecycle.assign(lifecycle.new_report(citizen, PHOTO, "A"), pat), pat, "proof", 5
    )
    db.save_report(done)
    feedback = lifecycle.new_feedback(done, citizen, rating=1, is_cleaned=False)
    db.save_feedback(feedback)

    reassigned = lifecycle.assign(
        lifecycle.reset_for_reassignment(lifecycle.apply_feedback(done, feedback)), sam
    )
    db.update_report(reassigned)

    assert db.get_average_rating(pat["id"]) == 1.0
    assert db.get_average_rating(sam["id"]) is None

    redone = lifecycle.complete(reassigned, sam, "proof-2", 10)
    db.update_report(redone)
    db.save_feedback(lifecycle.new_feedback(redone, citizen, rating=5))

    assert db.get_average_rating(pat["id"]) == 1.0
    assert db.get_average_rating(sam["id"]) == 5.0
