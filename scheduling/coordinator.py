"""
Atomic create / edit of training sessions.

Per attempt: parse (BadRequest on malformed input), validate (a rejected
attempt writes nothing), then persist inside one transaction. Persisting
locks the machine, trainer, member and settings rows involved, re-runs the
contended rules against what is now committed, writes the session and its
bookings, recomputes the participant counter and commits. Any failure in
that unit rolls all of it back.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import text, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from models import db
from models.machine import Machine
from models.member import Member
from models.session_member import SessionMember
from models.studio_settings import StudioSettings
from models.trainer import Trainer
from models.training_session import TrainingSession
from scheduling.errors import InvalidTransition, NotFound, PersistenceConflict
from scheduling.limits import cfg, limits_for
from scheduling.occupancy import recompute_participants
from scheduling.requests import BookingRequest, ensure_references_exist, parse_booking_request
from scheduling.rules import CONTENDED_CHECKS, ValidationResult, validate_booking
from utils.audit import log_event

log = logging.getLogger(__name__)

# postgres: serialization_failure, deadlock_detected, lock_not_available
_RETRYABLE_PGCODES = {"40001", "40P01", "55P03"}


@dataclass
class BookingOutcome:
    success: bool
    status_code: int
    session_id: Optional[str] = None
    message: Optional[str] = None
    error_code: Optional[str] = None
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "session_id": self.session_id, "message": self.message}
        return {
            "success": False,
            "error_code": self.error_code,
            "error_message": self.message,
            "details": self.details,
        }

    @classmethod
    def rejected(cls, result: ValidationResult) -> "BookingOutcome":
        f = result.failure
        return cls(False, 422, message=f.message, error_code=f.code, details=f.details)

    @classmethod
    def conflict(cls, exc: PersistenceConflict) -> "BookingOutcome":
        return cls(False, exc.status_code, message=exc.message, error_code=exc.error_code, details=exc.details)

    @classmethod
    def internal_error(cls) -> "BookingOutcome":
        return cls(
            False,
            500,
            message="The booking could not be completed. Nothing was saved; please try again.",
            error_code="INTERNAL_ERROR",
        )


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _is_retryable(exc: OperationalError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in _RETRYABLE_PGCODES:
        return True
    return "database is locked" in str(orig or exc).lower()


# ---------- dry run ----------

def validate_only(data, now: Optional[datetime] = None, exclude_session_id: Optional[str] = None) -> ValidationResult:
    """Same answer ``create_booking`` would give right now, without writing."""
    req = parse_booking_request(data)
    ensure_references_exist(req)
    return validate_booking(req, now=_now(now), exclude_session_id=exclude_session_id)


# ---------- create ----------

def create_booking(data, now: Optional[datetime] = None) -> BookingOutcome:
    req = parse_booking_request(data)
    try:
        ensure_references_exist(req)
        result = validate_booking(req, now=_now(now))
    except SQLAlchemyError:
        db.session.rollback()
        log.exception("booking validation failed")
        return BookingOutcome.internal_error()

    if not result.valid:
        log_event(
            "SESSION_CREATE_REJECTED",
            entity="machine",
            entity_id=req.machine_id,
            metadata={"error_code": result.failure.code},
        )
        return BookingOutcome.rejected(result)

    return persist_booking(req, now=now)


def persist_booking(req: BookingRequest, now: Optional[datetime] = None) -> BookingOutcome:
    """
    The write half of ``create_booking``. Assumes ``req`` already passed
    validation; only the contended rules are re-checked, under lock.
    """
    try:
        _begin_booking_unit(req)

        late = validate_booking(req, now=_now(now), checks=CONTENDED_CHECKS)
        if not late.valid:
            raise PersistenceConflict(
                "Another booking took this slot while yours was being saved. "
                "Please review availability and try again.",
                late.failure,
            )

        session = TrainingSession(
            machine_id=req.machine_id,
            trainer_id=req.trainer_id,
            scheduled_start=req.start,
            scheduled_end=req.end,
            status="scheduled",
            session_type=req.session_type,
            location=req.location,
            max_participants=req.max_participants,
            current_participants=0,
            notes=req.notes,
        )
        db.session.add(session)
        db.session.flush()

        for member_id in req.member_ids:
            db.session.add(SessionMember(session=session, member_id=member_id, booking_status="confirmed"))
        db.session.flush()

        session_id = session.id
        recompute_participants(session_id)
        log_event(
            "SESSION_CREATE",
            entity="training_session",
            entity_id=session_id,
            metadata={"machine_id": req.machine_id, "member_ids": req.member_ids, "session_type": req.session_type},
            commit=False,
        )
        db.session.commit()
    except PersistenceConflict as exc:
        db.session.rollback()
        log.info(f"late conflict on machine {req.machine_id}: {exc.details.get('conflict_code')}")
        log_event("SESSION_CREATE_CONFLICT", entity="machine", entity_id=req.machine_id, metadata=exc.details)
        return BookingOutcome.conflict(exc)
    except IntegrityError:
        # unique booking pair or the postgres exclusion constraint
        db.session.rollback()
        log.info(f"constraint conflict on machine {req.machine_id}")
        log_event("SESSION_CREATE_CONFLICT", entity="machine", entity_id=req.machine_id)
        return BookingOutcome.conflict(
            PersistenceConflict("The requested slot was taken by a concurrent booking. Please try again.")
        )
    except OperationalError as exc:
        db.session.rollback()
        if _is_retryable(exc):
            log_event("SESSION_CREATE_CONFLICT", entity="machine", entity_id=req.machine_id)
            return BookingOutcome.conflict(
                PersistenceConflict("The booking could not acquire its slot in time. Please try again.")
            )
        log.exception("booking transaction failed")
        return BookingOutcome.internal_error()
    except SQLAlchemyError:
        db.session.rollback()
        log.exception("booking transaction failed")
        return BookingOutcome.internal_error()

    log.info(f"session {session_id} created on machine {req.machine_id} for {len(req.member_ids)} member(s)")
    return BookingOutcome(True, 201, session_id=session_id, message="Training session created successfully")


# ---------- edit ----------

def session_as_payload(session: TrainingSession) -> dict:
    return {
        "machine_id": session.machine_id,
        "trainer_id": session.trainer_id,
        "member_ids": [b.member_id for b in session.members if b.booking_status == "confirmed"],
        "session_type": session.session_type,
        "scheduled_start": session.scheduled_start,
        "scheduled_end": session.scheduled_end,
        "location": session.location,
        "max_participants": session.max_participants,
        "notes": session.notes,
    }


def reschedule_session(session_id: str, data, now: Optional[datetime] = None) -> BookingOutcome:
    """
    Edit a scheduled session: any of machine, trainer, interval, kind,
    location, capacity, notes and member list. The full rule pipeline
    runs with the session itself excluded from every conflict count.
    """
    try:
        session = db.session.get(TrainingSession, session_id)
        if session is None:
            raise NotFound("Training session not found")
        if session.status != "scheduled":
            raise InvalidTransition(
                f"Only scheduled sessions can be edited (status is {session.status})",
                {"status": session.status},
            )

        req = parse_booking_request(data, base=session_as_payload(session))
        ensure_references_exist(req)
        result = validate_booking(req, now=_now(now), exclude_session_id=session_id)
    except SQLAlchemyError:
        db.session.rollback()
        log.exception("session edit validation failed")
        return BookingOutcome.internal_error()

    if not result.valid:
        log_event(
            "SESSION_EDIT_REJECTED",
            entity="training_session",
            entity_id=session_id,
            metadata={"error_code": result.failure.code},
        )
        return BookingOutcome.rejected(result)

    try:
        _begin_booking_unit(req)
        session = (
            TrainingSession.query
            .filter_by(id=session_id)
            .with_for_update()
            .populate_existing()
            .one()
        )
        if session.status != "scheduled":
            raise PersistenceConflict("The session changed while it was being edited. Please reload it.")

        late = validate_booking(req, now=_now(now), exclude_session_id=session_id, checks=CONTENDED_CHECKS)
        if not late.valid:
            raise PersistenceConflict(
                "Another booking took this slot while your change was being saved. Please try again.",
                late.failure,
            )

        session.machine_id = req.machine_id
        session.trainer_id = req.trainer_id
        session.scheduled_start = req.start
        session.scheduled_end = req.end
        session.session_type = req.session_type
        session.location = req.location
        session.max_participants = req.max_participants
        session.notes = req.notes

        _sync_members(session, req.member_ids, _now(now))
        recompute_participants(session_id)
        log_event(
            "SESSION_EDIT",
            entity="training_session",
            entity_id=session_id,
            metadata={"member_ids": req.member_ids},
            commit=False,
        )
        db.session.commit()
    except PersistenceConflict as exc:
        db.session.rollback()
        log_event("SESSION_EDIT_CONFLICT", entity="training_session", entity_id=session_id, metadata=exc.details)
        return BookingOutcome.conflict(exc)
    except IntegrityError:
        db.session.rollback()
        log_event("SESSION_EDIT_CONFLICT", entity="training_session", entity_id=session_id)
        return BookingOutcome.conflict(
            PersistenceConflict("The requested slot was taken by a concurrent booking. Please try again.")
        )
    except OperationalError as exc:
        db.session.rollback()
        if _is_retryable(exc):
            log_event("SESSION_EDIT_CONFLICT", entity="training_session", entity_id=session_id)
            return BookingOutcome.conflict(
                PersistenceConflict("The change could not acquire its slot in time. Please try again.")
            )
        log.exception("session edit transaction failed")
        return BookingOutcome.internal_error()
    except SQLAlchemyError:
        db.session.rollback()
        log.exception("session edit transaction failed")
        return BookingOutcome.internal_error()

    return BookingOutcome(True, 200, session_id=session_id, message="Training session updated successfully")


def _sync_members(session: TrainingSession, member_ids, now: datetime) -> None:
    wanted = set(member_ids)
    existing = {b.member_id: b for b in session.members}

    for member_id, booking in existing.items():
        if booking.booking_status == "confirmed" and member_id not in wanted:
            booking.booking_status = "cancelled"
            booking.cancelled_at = now
            booking.cancel_reason = "Removed from session"

    for member_id in member_ids:
        booking = existing.get(member_id)
        if booking is None:
            db.session.add(SessionMember(session=session, member_id=member_id, booking_status="confirmed"))
        elif booking.booking_status == "cancelled":
            booking.booking_status = "confirmed"
            booking.cancelled_at = None
            booking.cancel_reason = None
    db.session.flush()


# ---------- locking ----------

def _begin_booking_unit(req: BookingRequest) -> None:
    """
    Statement timeout plus row locks, always taken in the same order
    (studio cap, machine, trainer, members by id) so two writers cannot
    deadlock each other.
    """
    _apply_statement_timeout()

    limits = limits_for(req.start)
    if limits.max_sessions_per_week is not None:
        if limits.settings_id is not None:
            _bump_lock_version(StudioSettings, [limits.settings_id])
        else:
            # cap from config has no settings row; the machine set is the studio-wide lock
            _bump_lock_version(Machine, [m.id for m in Machine.query.with_entities(Machine.id)])
    _bump_lock_version(Machine, [req.machine_id])
    if req.trainer_id:
        _bump_lock_version(Trainer, [req.trainer_id])
    _bump_lock_version(Member, req.member_ids)


def _bump_lock_version(model, ids) -> None:
    # one row per statement so locks are acquired in sorted id order
    for row_id in sorted(set(ids)):
        db.session.execute(
            update(model)
            .where(model.id == row_id)
            .values(lock_version=model.lock_version + 1)
            .execution_options(synchronize_session=False)
        )


def _apply_statement_timeout() -> None:
    if db.session.get_bind().dialect.name != "postgresql":
        return
    timeout_ms = int(cfg("BOOKING_STATEMENT_TIMEOUT_MS"))
    db.session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
