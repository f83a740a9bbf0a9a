from datetime import date, datetime, timezone

from flask import Blueprint, request, jsonify

from scheduling.interval import parse_instant
from scheduling.limits import studio_timezone
from scheduling.queries import daily_statistics, studio_week_status

studio_bp = Blueprint("studio", __name__, url_prefix="/studio")


def _parse_day(value):
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return None


@studio_bp.get("/week")
def week_status():
    # optional: date (YYYY-MM-DD, studio local) or at (ISO instant)
    at = request.args.get("at")
    day_str = request.args.get("date")

    if at:
        instant = parse_instant(at, "at")
    elif day_str:
        day = _parse_day(day_str)
        if day is None:
            return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400
        instant = datetime(day.year, day.month, day.day, 12, tzinfo=studio_timezone())
    else:
        instant = datetime.now(timezone.utc)

    return jsonify(studio_week_status(instant)), 200


@studio_bp.get("/daily-statistics")
def statistics():
    start = _parse_day(request.args.get("start"))
    end = _parse_day(request.args.get("end"))
    if start is None or end is None:
        return jsonify(error="start and end are required. Use YYYY-MM-DD"), 400

    return jsonify(daily_statistics(start, end)), 200
