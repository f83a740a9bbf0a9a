from models.db import db
from models.types import UTCDateTime, utcnow


class StudioSettings(db.Model):
    """
    Weekly booking limits. Append-only: a change is a new version row,
    applying from ``effective_from`` onwards.
    """

    __tablename__ = "studio_settings"

    id = db.Column(db.Integer, primary_key=True)
    version = db.Column(db.Integer, nullable=False, unique=True)

    # NULL means the studio has no weekly cap
    max_sessions_per_week = db.Column(db.Integer, nullable=True)
    max_member_sessions_per_week = db.Column(db.Integer, nullable=False, default=1)

    effective_from = db.Column(UTCDateTime, nullable=False, index=True)
    lock_version = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(UTCDateTime, default=utcnow, nullable=False)
