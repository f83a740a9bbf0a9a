from .db import db
from .audit_log import AuditLog
from .machine import Machine
from .trainer import Trainer
from .member import Member
from .training_session import TrainingSession, SESSION_STATUSES, SESSION_TYPES
from .session_member import SessionMember, BOOKING_STATUSES
from .studio_settings import StudioSettings
