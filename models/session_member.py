from models.db import db
from models.types import UTCDateTime, new_id, utcnow

BOOKING_STATUSES = ("confirmed", "waitlisted", "cancelled", "no_show", "attended")


class SessionMember(db.Model):
    """One member booked into one training session."""

    __tablename__ = "training_session_members"

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    session_id = db.Column(
        db.String(36),
        db.ForeignKey("training_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    member_id = db.Column(db.String(36), db.ForeignKey("members.id"), nullable=False, index=True)

    booking_status = db.Column(db.String(20), nullable=False, default="confirmed")

    booked_at = db.Column(UTCDateTime, default=utcnow, nullable=False)
    cancelled_at = db.Column(UTCDateTime, nullable=True)
    cancel_reason = db.Column(db.String(120), nullable=True)

    session = db.relationship("TrainingSession", back_populates="members")
    member = db.relationship("Member", lazy="joined")

    __table_args__ = (
        # a member appears at most once per session
        db.UniqueConstraint("session_id", "member_id", name="uq_session_member_once"),
    )
