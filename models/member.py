from models.db import db
from models.types import UTCDateTime, new_id, utcnow


class Member(db.Model):
    __tablename__ = "members"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=True, index=True)

    lock_version = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(UTCDateTime, default=utcnow, nullable=False)
