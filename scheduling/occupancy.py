"""
Derived occupancy state.

``TrainingSession.current_participants`` is only ever written here, and
always inside the transaction of the booking write that changed it.
Weekly usage is counted live from booking rows, never cached, so a
cancellation frees quota immediately.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func

from models import db
from models.session_member import SessionMember
from models.training_session import TrainingSession
from scheduling.interval import week_bounds
from scheduling.limits import studio_timezone

log = logging.getLogger(__name__)


def confirmed_count(session_id: str) -> int:
    return (
        db.session.query(func.count(SessionMember.id))
        .filter(
            SessionMember.session_id == session_id,
            SessionMember.booking_status == "confirmed",
        )
        .scalar()
    ) or 0


def recompute_participants(session_id: str) -> int:
    """
    Set the session's participant counter from its confirmed bookings.
    Flushes but does not commit: the caller owns the transaction.
    """
    session = db.session.get(TrainingSession, session_id)
    if session is None:
        return 0

    count = confirmed_count(session_id)
    if session.current_participants != count:
        log.debug(f"session {session_id}: participants {session.current_participants} -> {count}")
    session.current_participants = count
    db.session.flush()
    return count


def weekly_member_usage(
    member_id: str, instant: datetime, exclude_session_id: Optional[str] = None
) -> int:
    """Non-cancelled ``member``-kind bookings held by the member in the week of ``instant``."""
    week = week_bounds(instant, studio_timezone())
    q = (
        db.session.query(func.count(SessionMember.id))
        .join(TrainingSession, SessionMember.session_id == TrainingSession.id)
        .filter(
            SessionMember.member_id == member_id,
            SessionMember.booking_status != "cancelled",
            TrainingSession.status != "cancelled",
            TrainingSession.session_type == "member",
            TrainingSession.scheduled_start >= week.start,
            TrainingSession.scheduled_start < week.end,
        )
    )
    if exclude_session_id:
        q = q.filter(TrainingSession.id != exclude_session_id)
    return q.scalar() or 0


def studio_week_usage(instant: datetime, exclude_session_id: Optional[str] = None) -> int:
    """Non-cancelled sessions of any kind starting in the week of ``instant``."""
    week = week_bounds(instant, studio_timezone())
    q = db.session.query(func.count(TrainingSession.id)).filter(
        TrainingSession.status != "cancelled",
        TrainingSession.scheduled_start >= week.start,
        TrainingSession.scheduled_start < week.end,
    )
    if exclude_session_id:
        q = q.filter(TrainingSession.id != exclude_session_id)
    return q.scalar() or 0


def recount_all() -> int:
    """
    Repair pass over every session. Returns how many counters were wrong.
    Commits.
    """
    counts = dict(
        db.session.query(SessionMember.session_id, func.count(SessionMember.id))
        .filter(SessionMember.booking_status == "confirmed")
        .group_by(SessionMember.session_id)
        .all()
    )

    fixed = 0
    for session in TrainingSession.query.all():
        expected = counts.get(session.id, 0)
        if session.current_participants != expected:
            session.current_participants = expected
            fixed += 1

    db.session.commit()
    if fixed:
        log.warning(f"recount_all corrected {fixed} participant counter(s)")
    return fixed
