import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from models import db
from models.machine import Machine
from models.member import Member
from models.trainer import Trainer
from models.training_session import SESSION_TYPES
from scheduling.errors import BadRequest
from scheduling.interval import Interval, parse_instant


@dataclass(frozen=True)
class BookingRequest:
    machine_id: str
    trainer_id: Optional[str]
    member_ids: List[str]
    session_type: str
    interval: Interval
    location: str
    max_participants: int
    notes: Optional[str] = None

    @property
    def start(self) -> datetime:
        return self.interval.start

    @property
    def end(self) -> datetime:
        return self.interval.end


def parse_identifier(value, name: str, required: bool = True) -> Optional[str]:
    if value is None or value == "":
        if required:
            raise BadRequest(f"{name} is required", {"field": name})
        return None
    if not isinstance(value, str):
        raise BadRequest(f"Invalid identifier for {name}", {"field": name})
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        raise BadRequest(f"Invalid identifier for {name}", {"field": name})


def _member_ids(value) -> List[str]:
    if not isinstance(value, list) or not value:
        raise BadRequest("member_ids must be a non-empty list", {"field": "member_ids"})

    seen = []
    for raw in value:
        member_id = parse_identifier(raw, "member_ids")
        if member_id not in seen:
            seen.append(member_id)
    return seen


def _positive_int(value, name: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise BadRequest(f"{name} must be a positive integer", {"field": name})
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise BadRequest(f"{name} must be a positive integer", {"field": name})
    if number != value and not isinstance(value, str):
        raise BadRequest(f"{name} must be a positive integer", {"field": name})
    if number < 1:
        raise BadRequest(f"{name} must be a positive integer", {"field": name})
    return number


def parse_booking_request(data, base: Optional[dict] = None) -> BookingRequest:
    """
    Validate the shape of a create/validate/edit payload and normalise it:
    instants to UTC, member ids de-duplicated in submission order.

    ``base`` supplies current values for an edit, so a PATCH payload only
    needs the fields that change.
    """
    if not isinstance(data, dict):
        raise BadRequest("JSON object body required")

    merged = dict(base or {})
    merged.update({k: v for k, v in data.items() if k in _FIELDS})

    session_type = merged.get("session_type")
    if not session_type:
        raise BadRequest("session_type is required", {"field": "session_type"})
    if session_type not in SESSION_TYPES:
        raise BadRequest(
            "Invalid session_type",
            {"field": "session_type", "allowed": list(SESSION_TYPES)},
        )

    location = merged.get("location")
    if location is None:
        location = ""
    if not isinstance(location, str):
        raise BadRequest("location must be a string", {"field": "location"})

    notes = merged.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise BadRequest("notes must be a string", {"field": "notes"})

    if merged.get("max_participants") is None:
        raise BadRequest("max_participants is required", {"field": "max_participants"})

    start = parse_instant(merged.get("scheduled_start"), "scheduled_start")
    end = parse_instant(merged.get("scheduled_end"), "scheduled_end")

    return BookingRequest(
        machine_id=parse_identifier(merged.get("machine_id"), "machine_id"),
        trainer_id=parse_identifier(merged.get("trainer_id"), "trainer_id", required=False),
        member_ids=_member_ids(merged.get("member_ids")),
        session_type=session_type,
        interval=Interval(start, end),
        location=location.strip(),
        max_participants=_positive_int(merged.get("max_participants"), "max_participants"),
        notes=(notes or "").strip() or None,
    )


_FIELDS = {
    "machine_id",
    "trainer_id",
    "member_ids",
    "session_type",
    "scheduled_start",
    "scheduled_end",
    "location",
    "max_participants",
    "notes",
}


def ensure_references_exist(req: BookingRequest) -> None:
    """Unknown machine, trainer or member ids are malformed input, not rule failures."""
    if db.session.get(Machine, req.machine_id) is None:
        raise BadRequest("Machine not found", {"field": "machine_id", "machine_id": req.machine_id})

    if req.trainer_id:
        trainer = db.session.get(Trainer, req.trainer_id)
        if trainer is None or not trainer.is_active:
            raise BadRequest("Trainer not found", {"field": "trainer_id", "trainer_id": req.trainer_id})

    found = {
        m.id for m in Member.query.filter(Member.id.in_(req.member_ids)).all()
    }
    unknown = [m for m in req.member_ids if m not in found]
    if unknown:
        raise BadRequest("Member not found", {"field": "member_ids", "unknown_member_ids": unknown})
