import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from models import db
from models.audit_log import AuditLog
from models.session_member import SessionMember
from models.training_session import TrainingSession
from scheduling import coordinator
from scheduling.coordinator import create_booking, persist_booking, reschedule_session, validate_only
from scheduling.errors import BadRequest, InvalidTransition, NotFound
from scheduling.requests import parse_booking_request
from scheduling.rules import validate_booking


def _actions():
    return [a.action for a in AuditLog.query.order_by(AuditLog.id.asc()).all()]


# ---------- create ----------

def test_create_writes_session_bookings_and_counter(machines, trainer, make_member, payload, at, now):
    members = [make_member(), make_member()]

    outcome = create_booking(payload(machines[0], members, at(0, 10), trainer=trainer), now=now)

    assert outcome.success
    assert outcome.status_code == 201
    assert outcome.to_dict()["message"] == "Training session created successfully"

    session = db.session.get(TrainingSession, outcome.session_id)
    assert session.status == "scheduled"
    assert session.current_participants == 2
    assert sorted(b.member_id for b in session.members) == sorted(m.id for m in members)
    assert all(b.booking_status == "confirmed" for b in session.members)
    assert "SESSION_CREATE" in _actions()


def test_rejected_attempt_writes_nothing(machines, make_member, payload, at, now):
    outcome = create_booking(payload(machines[0], [make_member()], at(0, 10), location=""), now=now)

    assert not outcome.success
    assert outcome.status_code == 422
    assert outcome.to_dict()["error_code"] == "LOCATION_REQUIRED"
    assert TrainingSession.query.count() == 0
    assert SessionMember.query.count() == 0
    assert _actions() == ["SESSION_CREATE_REJECTED"]


def test_malformed_input_raises_bad_request(machines, make_member, payload, at, now):
    data = payload(machines[0], [make_member()], at(0, 10))
    data["scheduled_start"] = "2030-03-04T10:00:00"

    with pytest.raises(BadRequest):
        create_booking(data, now=now)


def test_unknown_member_is_bad_request(machines, payload, make_member, at, now):
    data = payload(machines[0], [make_member()], at(0, 10))
    data["member_ids"].append("6f1c2d8e-0000-4000-8000-000000000000")

    with pytest.raises(BadRequest) as exc:
        create_booking(data, now=now)
    assert exc.value.details["unknown_member_ids"] == ["6f1c2d8e-0000-4000-8000-000000000000"]


def test_duplicate_member_ids_are_collapsed(machines, make_member, payload, at, now):
    member = make_member()
    data = payload(machines[0], [member, member], at(0, 10), max_participants=1)

    outcome = create_booking(data, now=now)

    assert outcome.success
    assert db.session.get(TrainingSession, outcome.session_id).current_participants == 1


def test_validate_only_matches_create_without_writing(machines, make_member, add_session, payload, at, now):
    member = make_member()
    add_session(machines[0], at(0, 10), members=[make_member()])
    data = payload(machines[0], [member], at(0, 10, 15))

    dry = validate_only(data, now=now)

    assert dry.to_dict()["error_code"] == "MACHINE_NOT_AVAILABLE"
    assert TrainingSession.query.count() == 1
    assert create_booking(data, now=now).error_code == dry.failure.code


# ---------- races ----------

def test_only_one_of_two_overlapping_requests_commits(machines, make_member, payload, at, now):
    first = parse_booking_request(payload(machines[0], [make_member()], at(0, 10)))
    second = parse_booking_request(payload(machines[0], [make_member()], at(0, 10, 15)))

    # both pass validation before either is written
    assert validate_booking(first, now=now).valid
    assert validate_booking(second, now=now).valid

    won = persist_booking(first, now=now)
    lost = persist_booking(second, now=now)

    assert won.success
    assert not lost.success
    assert lost.status_code == 409
    assert lost.error_code == "PERSISTENCE_CONFLICT"
    assert lost.details["conflict_code"] == "MACHINE_NOT_AVAILABLE"
    assert TrainingSession.query.count() == 1


def test_weekly_quota_race_is_caught_under_lock(machines, make_member, payload, at, now):
    member = make_member()
    first = parse_booking_request(payload(machines[0], [member], at(1, 10)))
    second = parse_booking_request(payload(machines[1], [member], at(3, 10)))
    assert validate_booking(second, now=now).valid

    assert persist_booking(first, now=now).success
    lost = persist_booking(second, now=now)

    assert lost.error_code == "PERSISTENCE_CONFLICT"
    assert lost.details["conflict_code"] == "WEEKLY_LIMIT_EXCEEDED"


def test_failure_after_insert_rolls_everything_back(monkeypatch, machines, make_member, payload, at, now):
    def broken(session_id):
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(coordinator, "recompute_participants", broken)

    outcome = create_booking(payload(machines[0], [make_member()], at(0, 10)), now=now)

    assert outcome.status_code == 500
    assert outcome.error_code == "INTERNAL_ERROR"
    assert TrainingSession.query.count() == 0
    assert SessionMember.query.count() == 0


def test_constraint_violation_is_a_conflict(monkeypatch, machines, make_member, payload, at, now):
    def violated(session_id):
        raise IntegrityError("INSERT", {}, Exception("exclusion constraint"))

    monkeypatch.setattr(coordinator, "recompute_participants", violated)

    outcome = create_booking(payload(machines[0], [make_member()], at(0, 10)), now=now)

    assert outcome.status_code == 409
    assert outcome.error_code == "PERSISTENCE_CONFLICT"
    assert TrainingSession.query.count() == 0


def test_lock_timeout_is_a_conflict(monkeypatch, machines, make_member, payload, at, now):
    def locked(session_id):
        raise OperationalError("UPDATE", {}, Exception("database is locked"))

    monkeypatch.setattr(coordinator, "recompute_participants", locked)

    outcome = create_booking(payload(machines[0], [make_member()], at(0, 10)), now=now)

    assert outcome.error_code == "PERSISTENCE_CONFLICT"
    assert TrainingSession.query.count() == 0


def test_other_operational_errors_are_internal(monkeypatch, machines, make_member, payload, at, now):
    def gone(session_id):
        raise OperationalError("UPDATE", {}, Exception("server closed the connection"))

    monkeypatch.setattr(coordinator, "recompute_participants", gone)

    outcome = create_booking(payload(machines[0], [make_member()], at(0, 10)), now=now)

    assert outcome.error_code == "INTERNAL_ERROR"


def test_database_fault_during_validation_is_internal(monkeypatch, machines, make_member, payload, at, now):
    def gone(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("server closed the connection unexpectedly"))

    monkeypatch.setattr("scheduling.rules.check_resource_availability", gone)

    outcome = create_booking(payload(machines[0], [make_member()], at(0, 10)), now=now)

    assert outcome.status_code == 500
    assert outcome.error_code == "INTERNAL_ERROR"
    assert TrainingSession.query.count() == 0
    assert SessionMember.query.count() == 0


def test_audit_failure_leaves_no_session_behind(monkeypatch, machines, make_member, payload, at, now):
    real_log_event = coordinator.log_event

    def failing_audit(action, *args, **kwargs):
        if action == "SESSION_CREATE":
            raise SQLAlchemyError("audit table unavailable")
        return real_log_event(action, *args, **kwargs)

    monkeypatch.setattr(coordinator, "log_event", failing_audit)

    outcome = create_booking(payload(machines[0], [make_member()], at(0, 10)), now=now)

    assert outcome.error_code == "INTERNAL_ERROR"
    assert TrainingSession.query.count() == 0
    assert SessionMember.query.count() == 0
    assert AuditLog.query.filter_by(action="SESSION_CREATE").count() == 0


def test_create_and_its_audit_row_commit_together(machines, make_member, payload, at, now):
    outcome = create_booking(payload(machines[0], [make_member()], at(0, 10)), now=now)
    db.session.rollback()

    row = AuditLog.query.filter_by(action="SESSION_CREATE").one()
    assert row.entity_id == outcome.session_id


def test_configured_studio_cap_is_serialized(app, machines, make_member, payload, at, now):
    app.config["STUDIO_MAX_SESSIONS_PER_WEEK"] = 1
    first = parse_booking_request(payload(machines[0], [make_member()], at(1, 10)))
    second = parse_booking_request(payload(machines[1], [make_member()], at(3, 10)))
    assert validate_booking(second, now=now).valid

    assert persist_booking(first, now=now).success
    db.session.expire_all()
    # with no settings row the whole machine set is locked
    assert all(m.lock_version >= 1 for m in machines)

    lost = persist_booking(second, now=now)

    assert lost.error_code == "PERSISTENCE_CONFLICT"
    assert lost.details["conflict_code"] == "STUDIO_CAPACITY_EXCEEDED"
    assert TrainingSession.query.count() == 1


# ---------- scenario ----------

def test_member_conflict_then_makeup_accepted(machines, make_member, payload, at, now):
    member = make_member("Ada")
    assert create_booking(payload(machines[0], [member], at(0, 10)), now=now).success

    clash = create_booking(payload(machines[1], [member], at(0, 10, 15)), now=now)
    makeup = create_booking(payload(machines[1], [member], at(0, 10, 15), session_type="makeup"), now=now)

    assert clash.error_code == "MEMBERS_NOT_AVAILABLE"
    assert makeup.success
    assert TrainingSession.query.count() == 2


# ---------- edit ----------

def test_reschedule_ignores_its_own_slot(machines, make_member, payload, at, now):
    member = make_member()
    created = create_booking(payload(machines[0], [member], at(0, 10)), now=now)

    outcome = reschedule_session(
        created.session_id,
        {"scheduled_start": at(0, 10, 15).isoformat(), "scheduled_end": at(0, 10, 45).isoformat()},
        now=now,
    )

    assert outcome.success
    assert outcome.status_code == 200
    session = db.session.get(TrainingSession, created.session_id)
    assert session.scheduled_start == at(0, 10, 15)
    assert session.current_participants == 1


def test_reschedule_into_a_taken_slot_is_rejected(machines, make_member, add_session, payload, at, now):
    add_session(machines[1], at(0, 12))
    created = create_booking(payload(machines[0], [make_member()], at(0, 10)), now=now)

    change = {
        "machine_id": machines[1].id,
        "scheduled_start": at(0, 12).isoformat(),
        "scheduled_end": at(0, 12, 30).isoformat(),
    }
    outcome = reschedule_session(created.session_id, change, now=now)

    assert outcome.status_code == 422
    assert outcome.error_code == "MACHINE_NOT_AVAILABLE"
    assert db.session.get(TrainingSession, created.session_id).machine_id == machines[0].id


def test_reschedule_swaps_members(machines, trainer, make_member, payload, at, now):
    ada, bea, cy = make_member("Ada"), make_member("Bea"), make_member("Cy")
    created = create_booking(payload(machines[0], [ada, bea], at(0, 10), trainer=trainer), now=now)

    outcome = reschedule_session(created.session_id, {"member_ids": [bea.id, cy.id]}, now=now)

    assert outcome.success
    db.session.expire_all()
    session = db.session.get(TrainingSession, created.session_id)
    statuses = {b.member_id: b.booking_status for b in session.members}
    assert statuses == {ada.id: "cancelled", bea.id: "confirmed", cy.id: "confirmed"}
    assert session.current_participants == 2


def test_only_scheduled_sessions_can_be_edited(machines, add_session, at, now):
    session = add_session(machines[0], at(0, 10), status="completed")

    with pytest.raises(InvalidTransition):
        reschedule_session(session.id, {"location": "Room 2"}, now=now)


def test_reschedule_unknown_session(app, now):
    with pytest.raises(NotFound):
        reschedule_session("6f1c2d8e-0000-4000-8000-000000000000", {}, now=now)
