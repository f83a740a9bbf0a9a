from models.db import db
from models.types import UTCDateTime, new_id, utcnow


class Machine(db.Model):
    __tablename__ = "machines"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    machine_number = db.Column(db.Integer, nullable=False, unique=True)
    name = db.Column(db.String(120), nullable=False)

    # staff can take a machine out of the planning (maintenance, repairs)
    is_available = db.Column(db.Boolean, default=True, nullable=False)

    # bumped by the booking coordinator to take a row lock
    lock_version = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(UTCDateTime, default=utcnow, nullable=False)
