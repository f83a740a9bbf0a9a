"""
Post-commit mutations of sessions and bookings. Every write here locks the
session row first, then commits together with the recomputed participant
counter of that session and its audit row.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.session_member import SessionMember
from models.training_session import TrainingSession
from scheduling.errors import BadRequest, InvalidTransition, NotFound
from scheduling.occupancy import recompute_participants
from utils.audit import log_event

log = logging.getLogger(__name__)

SESSION_TRANSITIONS = {
    "scheduled": {"in_progress", "cancelled"},
    "in_progress": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

# booking statuses staff can set through attendance marking
ATTENDANCE_STATUSES = {"attended", "no_show", "confirmed"}


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def lock_session_query(session_id: str):
    """Session row under FOR UPDATE, reloaded from the database with its bookings."""
    return (
        TrainingSession.query
        .filter_by(id=session_id)
        .with_for_update()
        .populate_existing()
    )


def _lock_session(session_id: str) -> TrainingSession:
    session = lock_session_query(session_id).one_or_none()
    if session is None:
        raise NotFound("Training session not found")
    return session


def _lock_booking(booking_id: str) -> SessionMember:
    """Lock the booking's session, then re-read the booking as committed."""
    booking = db.session.get(SessionMember, booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    _lock_session(booking.session_id)
    db.session.refresh(booking)
    return booking


def _commit_with_counter(session_id: str, action: str, entity: str, entity_id: str, metadata: dict) -> int:
    try:
        count = recompute_participants(session_id)
        log_event(action, entity=entity, entity_id=entity_id, metadata={**metadata, "participants": count}, commit=False)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        log.exception(f"could not persist change for session {session_id}")
        raise
    return count


def cancel_booking(booking_id: str, reason: Optional[str] = None, now: Optional[datetime] = None) -> SessionMember:
    booking = _lock_booking(booking_id)
    if booking.booking_status == "cancelled":
        db.session.rollback()
        raise InvalidTransition("Booking is already cancelled", {"booking_status": booking.booking_status})
    if booking.session.status in ("completed", "cancelled"):
        status = booking.session.status
        db.session.rollback()
        raise InvalidTransition(
            f"Bookings of a {status} session cannot be cancelled",
            {"session_status": status},
        )

    booking.booking_status = "cancelled"
    booking.cancelled_at = _now(now)
    booking.cancel_reason = (reason or "").strip()[:120] or None
    _commit_with_counter(
        booking.session_id,
        "BOOKING_CANCEL",
        "booking",
        booking.id,
        {"session_id": booking.session_id, "reason": booking.cancel_reason},
    )
    return booking


def mark_attendance(booking_id: str, status: str) -> SessionMember:
    if status not in ATTENDANCE_STATUSES:
        raise BadRequest(
            "Invalid attendance status",
            {"field": "status", "allowed": sorted(ATTENDANCE_STATUSES)},
        )

    booking = _lock_booking(booking_id)
    if booking.booking_status == "cancelled":
        db.session.rollback()
        raise InvalidTransition("Cancelled bookings cannot be marked", {"booking_status": "cancelled"})
    if booking.session.status == "cancelled":
        db.session.rollback()
        raise InvalidTransition("Session is cancelled", {"session_status": "cancelled"})

    previous = booking.booking_status
    booking.booking_status = status
    _commit_with_counter(booking.session_id, "BOOKING_ATTENDANCE", "booking", booking.id, {"from": previous, "to": status})
    return booking


def transition_session_status(session_id: str, status: str, now: Optional[datetime] = None) -> TrainingSession:
    if status not in SESSION_TRANSITIONS:
        raise BadRequest(
            "Invalid session status",
            {"field": "status", "allowed": list(SESSION_TRANSITIONS)},
        )
    if status == "cancelled":
        return cancel_session(session_id, now=now)

    session = _lock_session(session_id)
    previous = session.status
    if status not in SESSION_TRANSITIONS[previous]:
        db.session.rollback()
        raise InvalidTransition(
            f"Cannot move a {previous} session to {status}",
            {"from": previous, "to": status},
        )

    session.status = status
    _commit_with_counter(session.id, "SESSION_STATUS", "training_session", session.id, {"from": previous, "to": status})
    return session


def cancel_session(session_id: str, reason: Optional[str] = None, now: Optional[datetime] = None) -> TrainingSession:
    """Cancel the session and every confirmed booking in it."""
    session = _lock_session(session_id)
    previous = session.status
    if "cancelled" not in SESSION_TRANSITIONS[previous]:
        db.session.rollback()
        raise InvalidTransition(
            f"A {previous} session cannot be cancelled",
            {"from": previous, "to": "cancelled"},
        )

    when = _now(now)
    reason = (reason or "").strip()[:120] or "Session cancelled"
    for booking in session.members:
        if booking.booking_status in ("confirmed", "waitlisted"):
            booking.booking_status = "cancelled"
            booking.cancelled_at = when
            booking.cancel_reason = reason

    session.status = "cancelled"
    _commit_with_counter(session.id, "SESSION_CANCEL", "training_session", session.id, {"reason": reason})
    return session
