from models.db import db
from models.types import UTCDateTime, new_id, utcnow


class Trainer(db.Model):
    __tablename__ = "trainers"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    full_name = db.Column(db.String(120), nullable=False)
    max_clients_per_session = db.Column(db.Integer, default=1, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    lock_version = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(UTCDateTime, default=utcnow, nullable=False)
