from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from app import create_app
from config import TestConfig
from models import db
from models.machine import Machine
from models.member import Member
from models.session_member import SessionMember
from models.trainer import Trainer
from models.training_session import TrainingSession
from scheduling.occupancy import recompute_participants

# Monday 4 March 2030. The studio week around it (Europe/Brussels, UTC+1)
# runs from Sat 2 March 23:00 UTC to Sat 9 March 23:00 UTC.
MONDAY = datetime(2030, 3, 4, tzinfo=timezone.utc)

# fixed "now" for engine calls, in the previous week
NOW = datetime(2030, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def at():
    """at(day, hour, minute) -> aware UTC instant, day 0 being MONDAY."""
    def _at(day=0, hour=10, minute=0):
        return MONDAY + timedelta(days=day, hours=hour, minutes=minute)
    return _at


@pytest.fixture
def machines(app):
    rows = [Machine(machine_number=n, name=f"Machine {n}") for n in (1, 2, 3)]
    db.session.add_all(rows)
    db.session.commit()
    return rows


@pytest.fixture
def make_trainer(app):
    def _make(full_name="Sam Coach", max_clients=1, is_active=True):
        trainer = Trainer(full_name=full_name, max_clients_per_session=max_clients, is_active=is_active)
        db.session.add(trainer)
        db.session.commit()
        return trainer
    return _make


@pytest.fixture
def trainer(make_trainer):
    return make_trainer(max_clients=2)


@pytest.fixture
def make_member(app):
    numbers = count(1)

    def _make(full_name=None):
        member = Member(full_name=full_name or f"Member {next(numbers)}")
        db.session.add(member)
        db.session.commit()
        return member
    return _make


@pytest.fixture
def add_session(app):
    """Insert a session with bookings directly, bypassing the rules."""
    def _add(
        machine,
        start,
        minutes=30,
        trainer=None,
        members=(),
        status="scheduled",
        session_type="member",
        booking_status="confirmed",
        max_participants=2,
    ):
        session = TrainingSession(
            machine_id=machine.id,
            trainer_id=trainer.id if trainer else None,
            scheduled_start=start,
            scheduled_end=start + timedelta(minutes=minutes),
            status=status,
            session_type=session_type,
            location="Main studio",
            max_participants=max_participants,
        )
        db.session.add(session)
        for member in members:
            db.session.add(SessionMember(session=session, member_id=member.id, booking_status=booking_status))
        db.session.flush()
        recompute_participants(session.id)
        db.session.commit()
        return session
    return _add


@pytest.fixture
def payload():
    def _payload(
        machine,
        members,
        start,
        minutes=30,
        trainer=None,
        session_type="member",
        location="Main studio",
        max_participants=None,
        notes=None,
    ):
        return {
            "machine_id": machine.id,
            "trainer_id": trainer.id if trainer else None,
            "member_ids": [m.id for m in members],
            "session_type": session_type,
            "scheduled_start": start.isoformat(),
            "scheduled_end": (start + timedelta(minutes=minutes)).isoformat(),
            "location": location,
            "max_participants": max_participants or max(len(members), 1),
            "notes": notes,
        }
    return _payload
