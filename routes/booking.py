from flask import Blueprint, request, jsonify

from scheduling.lifecycle import cancel_booking, mark_attendance

booking_bp = Blueprint("booking", __name__)


def _booking_to_dict(b) -> dict:
    return {
        "id": b.id,
        "session_id": b.session_id,
        "member_id": b.member_id,
        "booking_status": b.booking_status,
        "booked_at": b.booked_at.isoformat(),
        "cancelled_at": b.cancelled_at.isoformat() if b.cancelled_at else None,
        "cancel_reason": b.cancel_reason,
        "session_participants": b.session.current_participants,
    }


# ---------- cancel one member's booking ----------
@booking_bp.post("/bookings/<booking_id>/cancel")
def cancel(booking_id: str):
    data = request.get_json(silent=True) or {}
    booking = cancel_booking(booking_id, reason=data.get("reason"))
    return jsonify(_booking_to_dict(booking)), 200


# ---------- attendance marking ----------
@booking_bp.post("/bookings/<booking_id>/attendance")
def attendance(booking_id: str):
    data = request.get_json(silent=True) or {}
    status = (data.get("status") or "").strip()
    if not status:
        return jsonify(error="status required"), 400

    booking = mark_attendance(booking_id, status)
    return jsonify(_booking_to_dict(booking)), 200
