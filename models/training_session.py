from models.db import db
from models.types import UTCDateTime, new_id, utcnow

SESSION_STATUSES = ("scheduled", "in_progress", "completed", "cancelled")
SESSION_TYPES = (
    "member",
    "trial",
    "contractual",
    "multi_site",
    "collaboration",
    "makeup",
    "non_bookable",
)


class TrainingSession(db.Model):
    __tablename__ = "training_sessions"

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    machine_id = db.Column(db.String(36), db.ForeignKey("machines.id"), nullable=False, index=True)
    trainer_id = db.Column(db.String(36), db.ForeignKey("trainers.id"), nullable=True, index=True)

    scheduled_start = db.Column(UTCDateTime, nullable=False, index=True)
    scheduled_end = db.Column(UTCDateTime, nullable=False)

    status = db.Column(db.String(20), nullable=False, default="scheduled")
    session_type = db.Column(db.String(20), nullable=False, default="member")

    location = db.Column(db.String(160), nullable=False)
    max_participants = db.Column(db.Integer, nullable=False, default=1)

    # derived: only scheduling.occupancy writes this
    current_participants = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = db.Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    machine = db.relationship("Machine", lazy="joined")
    trainer = db.relationship("Trainer", lazy="joined")
    members = db.relationship(
        "SessionMember",
        back_populates="session",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="SessionMember.booked_at",
    )

    __table_args__ = (
        db.CheckConstraint("scheduled_end > scheduled_start", name="ck_session_interval_positive"),
        db.Index("ix_sessions_machine_window", "machine_id", "scheduled_start", "scheduled_end"),
    )
