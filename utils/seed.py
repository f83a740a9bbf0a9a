from datetime import datetime, timezone

from models import db
from models.machine import Machine
from models.studio_settings import StudioSettings

DEFAULT_MACHINES = [
    (1, "Machine 1"),
    (2, "Machine 2"),
    (3, "Machine 3"),
]

# first settings version applies to everything ever booked
SETTINGS_EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)


def seed_studio(max_sessions_per_week=None, max_member_sessions_per_week=1):
    existing = {m.machine_number for m in Machine.query.all()}
    for number, name in DEFAULT_MACHINES:
        if number not in existing:
            db.session.add(Machine(machine_number=number, name=name))

    if StudioSettings.query.first() is None:
        db.session.add(StudioSettings(
            version=1,
            max_sessions_per_week=max_sessions_per_week,
            max_member_sessions_per_week=max_member_sessions_per_week,
            effective_from=SETTINGS_EPOCH,
        ))
    db.session.commit()


def append_settings_version(max_sessions_per_week, max_member_sessions_per_week, effective_from=None):
    latest = StudioSettings.query.order_by(StudioSettings.version.desc()).first()
    row = StudioSettings(
        version=(latest.version + 1) if latest else 1,
        max_sessions_per_week=max_sessions_per_week,
        max_member_sessions_per_week=max_member_sessions_per_week,
        effective_from=effective_from or datetime.now(timezone.utc),
    )
    db.session.add(row)
    db.session.commit()
    return row
