"""
Conflict detection for machines, trainers and members.

Nothing here writes. "Not available" is an ordinary result: callers get an
AvailabilityResult back, never an exception.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from models import db
from models.member import Member
from models.session_member import SessionMember
from models.training_session import TrainingSession
from scheduling.interval import Interval, overlaps

log = logging.getLogger(__name__)


@dataclass
class SessionSummary:
    session_id: str
    machine_id: str
    machine_number: Optional[int]
    trainer_id: Optional[str]
    trainer_name: Optional[str]
    start: datetime
    end: datetime
    status: str
    session_type: str

    @classmethod
    def from_session(cls, s: TrainingSession) -> "SessionSummary":
        return cls(
            session_id=s.id,
            machine_id=s.machine_id,
            machine_number=s.machine.machine_number if s.machine else None,
            trainer_id=s.trainer_id,
            trainer_name=s.trainer.full_name if s.trainer else None,
            start=s.scheduled_start,
            end=s.scheduled_end,
            status=s.status,
            session_type=s.session_type,
        )

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "machine_id": self.machine_id,
            "machine_number": self.machine_number,
            "trainer_id": self.trainer_id,
            "trainer_name": self.trainer_name,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "status": self.status,
            "session_type": self.session_type,
        }


@dataclass
class AvailabilityResult:
    available: bool
    conflicts: List[SessionSummary] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "available": self.available,
            "conflicts": [c.to_dict() for c in self.conflicts],
        }


@dataclass
class MemberAvailability(AvailabilityResult):
    member_id: str = ""
    member_name: Optional[str] = None

    def to_dict(self) -> dict:
        out = super().to_dict()
        out.update(member_id=self.member_id, member_name=self.member_name)
        return out


def _active_overlapping(query, interval: Interval, exclude_session_id: Optional[str] = None):
    q = query.filter(
        TrainingSession.status != "cancelled",
        TrainingSession.scheduled_start < interval.end,
        TrainingSession.scheduled_end > interval.start,
    )
    if exclude_session_id:
        q = q.filter(TrainingSession.id != exclude_session_id)
    return q.order_by(TrainingSession.scheduled_start.asc())


def _result(sessions: Iterable[TrainingSession], interval: Interval) -> AvailabilityResult:
    conflicts = [
        SessionSummary.from_session(s)
        for s in sessions
        if overlaps(interval, Interval(s.scheduled_start, s.scheduled_end))
    ]
    conflicts.sort(key=lambda c: c.start)
    return AvailabilityResult(available=not conflicts, conflicts=conflicts)


def check_resource_availability(
    machine_id: str, interval: Interval, exclude_session_id: Optional[str] = None
) -> AvailabilityResult:
    q = _active_overlapping(
        TrainingSession.query.filter(TrainingSession.machine_id == machine_id),
        interval,
        exclude_session_id,
    )
    result = _result(q.all(), interval)
    if not result.available:
        log.debug(f"machine {machine_id} has {len(result.conflicts)} conflict(s) in {interval}")
    return result


def check_trainer_availability(
    trainer_id: str, interval: Interval, exclude_session_id: Optional[str] = None
) -> AvailabilityResult:
    q = _active_overlapping(
        TrainingSession.query.filter(TrainingSession.trainer_id == trainer_id),
        interval,
        exclude_session_id,
    )
    result = _result(q.all(), interval)
    if not result.available:
        log.debug(f"trainer {trainer_id} has {len(result.conflicts)} conflict(s) in {interval}")
    return result


def check_member_availability(
    member_ids: List[str], interval: Interval, exclude_session_id: Optional[str] = None
) -> Dict[str, MemberAvailability]:
    """
    Batch check. Only ``confirmed`` bookings on non-cancelled sessions
    block a member; cancelled, no-show and attended rows are ignored.
    """
    if not member_ids:
        return {}

    q = (
        db.session.query(SessionMember.member_id, TrainingSession)
        .join(TrainingSession, SessionMember.session_id == TrainingSession.id)
        .filter(
            SessionMember.member_id.in_(member_ids),
            SessionMember.booking_status == "confirmed",
        )
    )
    rows = _active_overlapping(q, interval, exclude_session_id).all()

    by_member: Dict[str, List[TrainingSession]] = {m: [] for m in member_ids}
    for member_id, session in rows:
        by_member[member_id].append(session)

    names = {
        m.id: m.full_name
        for m in Member.query.filter(Member.id.in_(member_ids)).all()
    }

    out = {}
    for member_id in member_ids:
        base = _result(by_member[member_id], interval)
        out[member_id] = MemberAvailability(
            available=base.available,
            conflicts=base.conflicts,
            member_id=member_id,
            member_name=names.get(member_id),
        )
    return out
