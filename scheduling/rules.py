"""
Ordered booking rules.

Each check looks at one concern and returns ``None`` (pass) or a
RuleFailure. ``validate_booking`` runs them in order and stops at the
first failure; later checks are not attempted once an earlier one fails.

The last five checks read rows other requests may be writing at the same
time. The coordinator re-runs exactly those (CONTENDED_CHECKS) after it
has locked the rows involved.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import cached_property
from typing import Callable, Optional, Sequence

from models import db
from models.machine import Machine
from models.trainer import Trainer
from scheduling.availability import (
    check_member_availability,
    check_resource_availability,
    check_trainer_availability,
)
from scheduling.interval import week_bounds
from scheduling.limits import WeeklyLimits, cfg, limits_for, studio_timezone
from scheduling.occupancy import studio_week_usage, weekly_member_usage
from scheduling.requests import BookingRequest

log = logging.getLogger(__name__)

# kinds whose members are not checked for overlapping bookings
MEMBER_CHECK_EXEMPT_TYPES = {"makeup", "multi_site", "collaboration", "non_bookable"}

WEEKLY_LIMITED_TYPES = {"member"}


@dataclass
class RuleFailure:
    code: str
    message: str
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"error_code": self.code, "error_message": self.message, "details": self.details}


@dataclass
class ValidationResult:
    valid: bool
    failure: Optional[RuleFailure] = None

    def to_dict(self) -> dict:
        if self.valid:
            return {"valid": True}
        return {"valid": False, **self.failure.to_dict()}


class RuleContext:
    """One validation run: the request plus lazily loaded lookups."""

    def __init__(self, req: BookingRequest, now: datetime, exclude_session_id: Optional[str] = None):
        self.req = req
        self.now = now
        self.exclude_session_id = exclude_session_id

    @cached_property
    def machine(self) -> Optional[Machine]:
        return db.session.get(Machine, self.req.machine_id)

    @cached_property
    def trainer(self) -> Optional[Trainer]:
        if not self.req.trainer_id:
            return None
        return db.session.get(Trainer, self.req.trainer_id)

    @cached_property
    def limits(self) -> WeeklyLimits:
        return limits_for(self.req.start)

    @cached_property
    def week(self):
        return week_bounds(self.req.start, studio_timezone())


# ---------- input-only checks ----------

def check_not_in_past(ctx: RuleContext) -> Optional[RuleFailure]:
    if ctx.req.start <= ctx.now:
        return RuleFailure(
            "PAST_BOOKING",
            "Training sessions cannot be scheduled in the past. Please choose a future date and time.",
            {"scheduled_start": ctx.req.start.isoformat(), "now": ctx.now.isoformat()},
        )
    return None


def check_duration(ctx: RuleContext) -> Optional[RuleFailure]:
    min_minutes = int(cfg("MIN_SESSION_MINUTES"))
    max_hours = int(cfg("MAX_SESSION_HOURS"))
    duration = ctx.req.interval.duration
    minutes = duration.total_seconds() / 60

    details = {"duration_minutes": minutes, "min_minutes": min_minutes, "max_minutes": max_hours * 60}
    if duration < timedelta(minutes=min_minutes):
        return RuleFailure(
            "INVALID_DURATION",
            f"Training sessions must be at least {min_minutes} minutes long",
            details,
        )
    if duration > timedelta(hours=max_hours):
        return RuleFailure(
            "INVALID_DURATION",
            f"Training sessions cannot exceed {max_hours} hours",
            details,
        )
    return None


def check_location(ctx: RuleContext) -> Optional[RuleFailure]:
    if not (ctx.req.location or "").strip():
        return RuleFailure("LOCATION_REQUIRED", "A location is required for the session")
    return None


def check_trainer_capacity(ctx: RuleContext) -> Optional[RuleFailure]:
    trainer = ctx.trainer
    if trainer is None:
        return None
    count = len(ctx.req.member_ids)
    if count > trainer.max_clients_per_session:
        return RuleFailure(
            "EXCEEDS_TRAINER_CAPACITY",
            f"{trainer.full_name} can train at most {trainer.max_clients_per_session} "
            f"member(s) per session",
            {
                "trainer_id": trainer.id,
                "member_count": count,
                "max_clients_per_session": trainer.max_clients_per_session,
            },
        )
    return None


def check_session_capacity(ctx: RuleContext) -> Optional[RuleFailure]:
    count = len(ctx.req.member_ids)
    if count > ctx.req.max_participants:
        return RuleFailure(
            "EXCEEDS_SESSION_CAPACITY",
            f"Session allows at most {ctx.req.max_participants} participant(s)",
            {"member_count": count, "max_participants": ctx.req.max_participants},
        )
    return None


# ---------- contended checks ----------

def check_machine_available(ctx: RuleContext) -> Optional[RuleFailure]:
    machine = ctx.machine
    if machine is not None and not machine.is_available:
        return RuleFailure(
            "MACHINE_NOT_AVAILABLE",
            f"Machine {machine.machine_number} is currently out of service",
            {"machine_id": machine.id, "reason": "out_of_service", "conflicts": []},
        )

    result = check_resource_availability(ctx.req.machine_id, ctx.req.interval, ctx.exclude_session_id)
    if not result.available:
        return RuleFailure(
            "MACHINE_NOT_AVAILABLE",
            f"Machine is already booked for {len(result.conflicts)} overlapping session(s)",
            {"machine_id": ctx.req.machine_id, "reason": "conflict", **result.to_dict()},
        )
    return None


def check_trainer_available(ctx: RuleContext) -> Optional[RuleFailure]:
    if not ctx.req.trainer_id:
        return None
    result = check_trainer_availability(ctx.req.trainer_id, ctx.req.interval, ctx.exclude_session_id)
    if not result.available:
        return RuleFailure(
            "TRAINER_NOT_AVAILABLE",
            f"Trainer has {len(result.conflicts)} conflicting session(s) during this time",
            {"trainer_id": ctx.req.trainer_id, **result.to_dict()},
        )
    return None


def check_members_available(ctx: RuleContext) -> Optional[RuleFailure]:
    if ctx.req.session_type in MEMBER_CHECK_EXEMPT_TYPES:
        return None

    results = check_member_availability(ctx.req.member_ids, ctx.req.interval, ctx.exclude_session_id)
    busy = [r for r in results.values() if not r.available]
    if busy:
        names = ", ".join(r.member_name or r.member_id for r in busy)
        return RuleFailure(
            "MEMBERS_NOT_AVAILABLE",
            f"Already booked during this time: {names}",
            {"members": [r.to_dict() for r in busy]},
        )
    return None


def check_weekly_limit(ctx: RuleContext) -> Optional[RuleFailure]:
    if ctx.req.session_type not in WEEKLY_LIMITED_TYPES:
        return None

    limit = ctx.limits.max_member_sessions_per_week
    over = []
    for member_id in ctx.req.member_ids:
        used = weekly_member_usage(member_id, ctx.req.start, ctx.exclude_session_id)
        if used >= limit:
            over.append({"member_id": member_id, "sessions_this_week": used})

    if over:
        return RuleFailure(
            "WEEKLY_LIMIT_EXCEEDED",
            f"Members can book at most {limit} member session(s) per week",
            {
                "limit": limit,
                "members": over,
                "week_start": ctx.week.start.isoformat(),
                "week_end": ctx.week.end.isoformat(),
            },
        )
    return None


def check_studio_capacity(ctx: RuleContext) -> Optional[RuleFailure]:
    cap = ctx.limits.max_sessions_per_week
    if cap is None:
        return None

    current = studio_week_usage(ctx.req.start, ctx.exclude_session_id)
    if current >= cap:
        return RuleFailure(
            "STUDIO_CAPACITY_EXCEEDED",
            f"The studio is fully booked for this week ({current}/{cap} sessions)",
            {
                "current_count": current,
                "max_allowed": cap,
                "week_start": ctx.week.start.isoformat(),
                "week_end": ctx.week.end.isoformat(),
            },
        )
    return None


Check = Callable[[RuleContext], Optional[RuleFailure]]

CONTENDED_CHECKS: Sequence[Check] = (
    check_machine_available,
    check_trainer_available,
    check_members_available,
    check_weekly_limit,
    check_studio_capacity,
)

BOOKING_CHECKS: Sequence[Check] = (
    check_not_in_past,
    check_duration,
    check_location,
    check_trainer_capacity,
    check_session_capacity,
    *CONTENDED_CHECKS,
)


def validate_booking(
    req: BookingRequest,
    now: Optional[datetime] = None,
    exclude_session_id: Optional[str] = None,
    checks: Sequence[Check] = BOOKING_CHECKS,
) -> ValidationResult:
    ctx = RuleContext(req, now or datetime.now(timezone.utc), exclude_session_id)
    for check in checks:
        failure = check(ctx)
        if failure is not None:
            log.info(f"booking rejected by {check.__name__}: {failure.code}")
            return ValidationResult(valid=False, failure=failure)
    return ValidationResult(valid=True)
