from models import db
from models.session_member import SessionMember
from models.training_session import TrainingSession
from scheduling.coordinator import create_booking
from scheduling.lifecycle import cancel_booking, mark_attendance
from scheduling.occupancy import (
    confirmed_count,
    recompute_participants,
    recount_all,
    studio_week_usage,
    weekly_member_usage,
)


def _participants(session_id):
    db.session.expire_all()
    return db.session.get(TrainingSession, session_id).current_participants


def test_counter_follows_every_booking_change(machines, trainer, make_member, payload, at, now):
    members = [make_member(), make_member()]
    created = create_booking(payload(machines[0], members, at(0, 10), trainer=trainer), now=now)
    session = db.session.get(TrainingSession, created.session_id)
    first, second = session.members

    assert _participants(session.id) == 2

    cancel_booking(first.id, now=now)
    assert _participants(session.id) == 1

    mark_attendance(second.id, "attended")
    assert _participants(session.id) == 0

    mark_attendance(second.id, "confirmed")
    assert _participants(session.id) == 1
    assert confirmed_count(session.id) == 1


def test_recompute_does_not_commit(machines, make_member, add_session, at):
    session = add_session(machines[0], at(0, 10), members=[make_member()])
    session.current_participants = 7
    db.session.commit()

    assert recompute_participants(session.id) == 1
    db.session.rollback()

    assert _participants(session.id) == 7


def test_recount_all_repairs_drifted_counters(machines, make_member, add_session, at):
    good = add_session(machines[0], at(0, 10), members=[make_member()])
    drifted = add_session(machines[1], at(0, 10), members=[make_member(), make_member()])
    drifted.current_participants = 5
    db.session.commit()

    assert recount_all() == 1
    assert _participants(drifted.id) == 2
    assert _participants(good.id) == 1
    assert recount_all() == 0


def test_weekly_usage_is_live(machines, make_member, payload, at, now):
    member = make_member()
    created = create_booking(payload(machines[0], [member], at(1, 10)), now=now)
    booking = db.session.get(TrainingSession, created.session_id).members[0]

    assert weekly_member_usage(member.id, at(4, 0)) == 1
    assert weekly_member_usage(member.id, at(4, 0), exclude_session_id=created.session_id) == 0

    cancel_booking(booking.id, now=now)
    assert weekly_member_usage(member.id, at(4, 0)) == 0


def test_weekly_usage_counts_member_kind_only(machines, make_member, add_session, at):
    member = make_member()
    add_session(machines[0], at(1, 10), members=[member], session_type="makeup")
    add_session(machines[1], at(2, 10), members=[member], session_type="trial")

    assert weekly_member_usage(member.id, at(0, 0)) == 0


def test_studio_usage_counts_every_kind_in_the_week(machines, add_session, at):
    add_session(machines[0], at(0, 9), session_type="member")
    add_session(machines[1], at(1, 9), session_type="non_bookable")
    add_session(machines[2], at(2, 9), status="cancelled")
    add_session(machines[0], at(7, 9))

    assert studio_week_usage(at(3, 0)) == 2


def test_seeded_bookings_drive_the_counter(machines, make_member, add_session, at):
    session = add_session(machines[0], at(0, 10), members=[make_member(), make_member()])
    db.session.expire_all()

    assert SessionMember.query.filter_by(session_id=session.id).count() == 2
    assert confirmed_count(session.id) == 2
    assert _participants(session.id) == 2
