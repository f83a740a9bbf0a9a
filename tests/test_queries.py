from datetime import date, timedelta

import pytest

from models import db
from models.studio_settings import StudioSettings
from scheduling.errors import BadRequest, NotFound
from scheduling.interval import Interval
from scheduling.queries import daily_statistics, get_session, list_sessions, studio_week_status
from utils.seed import SETTINGS_EPOCH


def test_list_sessions_overlapping_window(machines, trainer, make_member, add_session, at):
    ada = make_member("Ada")
    inside = add_session(machines[0], at(0, 10), trainer=trainer, members=[ada])
    add_session(machines[1], at(0, 11), status="cancelled")
    add_session(machines[0], at(1, 10))

    rows = list_sessions(Interval(at(0, 0), at(1, 0)), status="scheduled")

    assert [r["id"] for r in rows] == [inside.id]
    row = rows[0]
    assert row["machine_number"] == 1
    assert row["trainer_name"] == "Sam Coach"
    assert row["participants"][0]["name"] == "Ada"
    assert row["current_participants"] == 1


def test_list_sessions_filters(machines, make_member, add_session, at):
    ada = make_member("Ada")
    mine = add_session(machines[0], at(0, 10), members=[ada])
    add_session(machines[1], at(0, 10), members=[make_member()])
    cancelled = add_session(machines[2], at(0, 10), status="cancelled")
    window = Interval(at(0, 0), at(1, 0))

    assert [r["id"] for r in list_sessions(window, member_id=ada.id)] == [mine.id]
    assert [r["id"] for r in list_sessions(window, machine_id=machines[2].id)] == [cancelled.id]
    assert len(list_sessions(window, status="all")) == 3


def test_list_sessions_range_is_bounded(app, at):
    with pytest.raises(BadRequest):
        list_sessions(Interval(at(0, 0), at(0, 0) + timedelta(days=90)))


def test_get_session(machines, add_session, at):
    session = add_session(machines[0], at(0, 10))

    assert get_session(session.id)["scheduled_start"] == at(0, 10).isoformat()
    with pytest.raises(NotFound):
        get_session("6f1c2d8e-0000-4000-8000-000000000000")


def test_week_status_without_cap(machines, add_session, at):
    add_session(machines[0], at(0, 10))

    status = studio_week_status(at(2, 12))

    assert status["current_count"] == 1
    assert status["max_allowed"] is None
    assert status["can_book"] is True
    assert status["percentage"] is None


def test_week_status_with_cap(machines, add_session, at):
    db.session.add(StudioSettings(version=1, max_sessions_per_week=4, effective_from=SETTINGS_EPOCH))
    db.session.commit()
    add_session(machines[0], at(0, 10))
    add_session(machines[1], at(1, 10))
    add_session(machines[2], at(2, 10), status="cancelled")

    status = studio_week_status(at(2, 12))

    assert status["current_count"] == 2
    assert status["max_allowed"] == 4
    assert status["percentage"] == 50
    assert status["can_book"] is True
    assert status["settings_version"] == 1
    assert status["week_start"] == "2030-03-02T23:00:00+00:00"


def test_daily_statistics_by_kind(machines, add_session, at):
    add_session(machines[0], at(0, 10), session_type="member")
    add_session(machines[1], at(0, 10), session_type="makeup")
    add_session(machines[2], at(0, 10), session_type="trial", status="cancelled")
    # 23:30 UTC Monday is already Tuesday in Brussels
    add_session(machines[0], at(0, 23, 30), session_type="member")

    days = daily_statistics(date(2030, 3, 4), date(2030, 3, 6))

    assert [d["date"] for d in days] == ["2030-03-04", "2030-03-05", "2030-03-06"]
    assert days[0]["total"] == 2
    assert days[0]["member"] == 1
    assert days[0]["makeup"] == 1
    assert days[0]["trial"] == 0
    assert days[1]["total"] == 1
    assert days[2]["total"] == 0


def test_daily_statistics_rejects_reversed_range(app):
    with pytest.raises(BadRequest):
        daily_statistics(date(2030, 3, 6), date(2030, 3, 4))
