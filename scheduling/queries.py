"""
Read-only views for calendar and planning screens.
"""
from datetime import date, datetime, timedelta
from typing import List, Optional

from models import db
from models.session_member import SessionMember
from models.training_session import SESSION_TYPES, TrainingSession
from scheduling.errors import BadRequest, NotFound
from scheduling.interval import Interval, day_bounds, week_bounds
from scheduling.limits import limits_for, studio_timezone
from scheduling.occupancy import studio_week_usage

MAX_RANGE_DAYS = 62


def session_to_dict(s: TrainingSession) -> dict:
    return {
        "id": s.id,
        "machine_id": s.machine_id,
        "machine_number": s.machine.machine_number if s.machine else None,
        "machine_name": s.machine.name if s.machine else None,
        "trainer_id": s.trainer_id,
        "trainer_name": s.trainer.full_name if s.trainer else None,
        "scheduled_start": s.scheduled_start.isoformat(),
        "scheduled_end": s.scheduled_end.isoformat(),
        "status": s.status,
        "session_type": s.session_type,
        "location": s.location,
        "max_participants": s.max_participants,
        "current_participants": s.current_participants,
        "notes": s.notes,
        "participants": [
            {
                "booking_id": b.id,
                "member_id": b.member_id,
                "name": b.member.full_name if b.member else None,
                "booking_status": b.booking_status,
            }
            for b in s.members
        ],
    }


def list_sessions(
    window: Interval,
    machine_id: Optional[str] = None,
    trainer_id: Optional[str] = None,
    member_id: Optional[str] = None,
    status: Optional[str] = None,
) -> List[dict]:
    if window.duration > timedelta(days=MAX_RANGE_DAYS):
        raise BadRequest(f"Date range cannot exceed {MAX_RANGE_DAYS} days")

    q = TrainingSession.query.filter(
        TrainingSession.scheduled_start < window.end,
        TrainingSession.scheduled_end > window.start,
    )
    if machine_id:
        q = q.filter(TrainingSession.machine_id == machine_id)
    if trainer_id:
        q = q.filter(TrainingSession.trainer_id == trainer_id)
    if member_id:
        q = q.filter(
            TrainingSession.id.in_(
                db.session.query(SessionMember.session_id).filter(SessionMember.member_id == member_id)
            )
        )
    if status and status != "all":
        q = q.filter(TrainingSession.status == status)

    rows = q.order_by(TrainingSession.scheduled_start.asc(), TrainingSession.id.asc()).all()
    return [session_to_dict(s) for s in rows]


def get_session(session_id: str) -> dict:
    session = db.session.get(TrainingSession, session_id)
    if session is None:
        raise NotFound("Training session not found")
    return session_to_dict(session)


def studio_week_status(instant: datetime) -> dict:
    week = week_bounds(instant, studio_timezone())
    limits = limits_for(instant)
    current = studio_week_usage(instant)
    cap = limits.max_sessions_per_week

    if cap is None:
        can_book, percentage = True, None
    elif cap <= 0:
        can_book, percentage = False, 100
    else:
        can_book = current < cap
        percentage = min(100, round(current * 100 / cap))

    return {
        "week_start": week.start.isoformat(),
        "week_end": week.end.isoformat(),
        "current_count": current,
        "max_allowed": cap,
        "can_book": can_book,
        "percentage": percentage,
        "settings_version": limits.version,
    }


def daily_statistics(start_day: date, end_day: date) -> List[dict]:
    """Per-day counts of non-cancelled sessions by kind, studio local days."""
    if end_day < start_day:
        raise BadRequest("end must not be before start")
    if (end_day - start_day).days > MAX_RANGE_DAYS:
        raise BadRequest(f"Date range cannot exceed {MAX_RANGE_DAYS} days")

    tz = studio_timezone()
    window = Interval(day_bounds(start_day, tz).start, day_bounds(end_day, tz).end)
    sessions = TrainingSession.query.filter(
        TrainingSession.status != "cancelled",
        TrainingSession.scheduled_start >= window.start,
        TrainingSession.scheduled_start < window.end,
    ).all()

    days = {}
    current = start_day
    while current <= end_day:
        days[current] = {"date": current.isoformat(), "total": 0, **{kind: 0 for kind in SESSION_TYPES}}
        current += timedelta(days=1)

    for s in sessions:
        local_day = s.scheduled_start.astimezone(tz).date()
        row = days.get(local_day)
        if row is None:
            continue
        row["total"] += 1
        row[s.session_type] += 1

    return list(days.values())
