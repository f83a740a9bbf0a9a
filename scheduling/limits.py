from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app

from models.studio_settings import StudioSettings
from scheduling.interval import to_utc

_DEFAULTS = {
    "STUDIO_TIMEZONE": "Europe/Brussels",
    "MIN_SESSION_MINUTES": 15,
    "MAX_SESSION_HOURS": 8,
    "STUDIO_MAX_SESSIONS_PER_WEEK": None,
    "MEMBER_MAX_SESSIONS_PER_WEEK": 1,
    "BOOKING_STATEMENT_TIMEOUT_MS": 2000,
}


def cfg(name: str):
    try:
        return current_app.config.get(name, _DEFAULTS[name])
    except RuntimeError:
        return _DEFAULTS[name]


def studio_timezone() -> ZoneInfo:
    return ZoneInfo(cfg("STUDIO_TIMEZONE"))


@dataclass(frozen=True)
class WeeklyLimits:
    max_sessions_per_week: Optional[int]
    max_member_sessions_per_week: int
    version: Optional[int] = None
    settings_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "max_sessions_per_week": self.max_sessions_per_week,
            "max_member_sessions_per_week": self.max_member_sessions_per_week,
            "version": self.version,
        }


def limits_for(instant: datetime) -> WeeklyLimits:
    """
    Limits in force at ``instant``: the newest settings version already
    effective by then, or the configured defaults when none is.
    """
    row = (
        StudioSettings.query
        .filter(StudioSettings.effective_from <= to_utc(instant))
        .order_by(StudioSettings.version.desc())
        .first()
    )
    if row is None:
        studio_cap = cfg("STUDIO_MAX_SESSIONS_PER_WEEK")
        return WeeklyLimits(
            max_sessions_per_week=int(studio_cap) if studio_cap is not None else None,
            max_member_sessions_per_week=int(cfg("MEMBER_MAX_SESSIONS_PER_WEEK")),
        )

    return WeeklyLimits(
        max_sessions_per_week=row.max_sessions_per_week,
        max_member_sessions_per_week=row.max_member_sessions_per_week,
        version=row.version,
        settings_id=row.id,
    )
