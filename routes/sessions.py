from flask import Blueprint, request, jsonify

from scheduling.availability import (
    check_member_availability,
    check_resource_availability,
    check_trainer_availability,
)
from scheduling.coordinator import create_booking, reschedule_session, validate_only
from scheduling.errors import BadRequest
from scheduling.interval import Interval, parse_instant
from scheduling.lifecycle import cancel_session, transition_session_status
from scheduling.queries import get_session, list_sessions, session_to_dict
from scheduling.requests import parse_identifier

sessions_bp = Blueprint("sessions", __name__)


# ---------- create / dry run ----------
@sessions_bp.post("/sessions")
def create_session():
    data = request.get_json(silent=True)
    outcome = create_booking(data)
    return jsonify(outcome.to_dict()), outcome.status_code


@sessions_bp.post("/sessions/validate")
def validate_session():
    data = request.get_json(silent=True)
    exclude = request.args.get("exclude_session_id")
    result = validate_only(data, exclude_session_id=exclude)
    return jsonify(result.to_dict()), 200


# ---------- edit / lifecycle ----------
@sessions_bp.patch("/sessions/<session_id>")
def edit_session(session_id: str):
    data = request.get_json(silent=True)
    outcome = reschedule_session(session_id, data)
    return jsonify(outcome.to_dict()), outcome.status_code


@sessions_bp.post("/sessions/<session_id>/status")
def change_status(session_id: str):
    data = request.get_json(silent=True) or {}
    status = (data.get("status") or "").strip()
    if not status:
        return jsonify(error="status required"), 400

    session = transition_session_status(session_id, status)
    return jsonify(session_to_dict(session)), 200


@sessions_bp.post("/sessions/<session_id>/cancel")
def cancel(session_id: str):
    data = request.get_json(silent=True) or {}
    session = cancel_session(session_id, reason=data.get("reason"))
    return jsonify(session_to_dict(session)), 200


# ---------- calendar ----------
@sessions_bp.get("/sessions")
def calendar():
    # required: start, end (ISO with offset); optional filters
    window = Interval(
        parse_instant(request.args.get("start"), "start"),
        parse_instant(request.args.get("end"), "end"),
    )
    rows = list_sessions(
        window,
        machine_id=request.args.get("machine_id"),
        trainer_id=request.args.get("trainer_id"),
        member_id=request.args.get("member_id"),
        status=request.args.get("status"),
    )
    return jsonify(rows), 200


@sessions_bp.get("/sessions/<session_id>")
def session_detail(session_id: str):
    return jsonify(get_session(session_id)), 200


# ---------- raw availability ----------
@sessions_bp.post("/availability/check")
def availability_check():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("JSON object body required")

    interval = Interval(
        parse_instant(data.get("scheduled_start"), "scheduled_start"),
        parse_instant(data.get("scheduled_end"), "scheduled_end"),
    )
    exclude = parse_identifier(data.get("exclude_session_id"), "exclude_session_id", required=False)

    out = {}
    machine_id = parse_identifier(data.get("machine_id"), "machine_id", required=False)
    if machine_id:
        out["machine"] = check_resource_availability(machine_id, interval, exclude).to_dict()

    trainer_id = parse_identifier(data.get("trainer_id"), "trainer_id", required=False)
    if trainer_id:
        out["trainer"] = check_trainer_availability(trainer_id, interval, exclude).to_dict()

    member_ids = data.get("member_ids") or []
    if not isinstance(member_ids, list):
        raise BadRequest("member_ids must be a list", {"field": "member_ids"})
    if member_ids:
        ids = list(dict.fromkeys(parse_identifier(m, "member_ids") for m in member_ids))
        results = check_member_availability(ids, interval, exclude)
        out["members"] = {m: r.to_dict() for m, r in results.items()}

    return jsonify(out), 200
