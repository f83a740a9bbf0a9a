import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _optional_int(name):
    value = os.getenv(name)
    return int(value) if value not in (None, "") else None


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as studio.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "studio.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # SQLite: wait this long for a competing writer before "database is locked"
    SQLITE_BUSY_TIMEOUT_SECONDS = int(os.getenv("SQLITE_BUSY_TIMEOUT_SECONDS", "5"))

    # Studio calendar: weeks run Sunday to Saturday in this timezone
    STUDIO_TIMEZONE = os.getenv("STUDIO_TIMEZONE", "Europe/Brussels")

    # Session duration bounds
    MIN_SESSION_MINUTES = int(os.getenv("MIN_SESSION_MINUTES", "15"))
    MAX_SESSION_HOURS = int(os.getenv("MAX_SESSION_HOURS", "8"))

    # Weekly limits used until a studio_settings version exists
    STUDIO_MAX_SESSIONS_PER_WEEK = _optional_int("STUDIO_MAX_SESSIONS_PER_WEEK")  # unset = no cap
    MEMBER_MAX_SESSIONS_PER_WEEK = int(os.getenv("MEMBER_MAX_SESSIONS_PER_WEEK", "1"))

    # Postgres statement timeout for the booking transaction
    BOOKING_STATEMENT_TIMEOUT_MS = int(os.getenv("BOOKING_STATEMENT_TIMEOUT_MS", "2000"))

    # Seed machines + first settings version at startup (safe & idempotent)
    SEED_ON_STARTUP = os.getenv("SEED_ON_STARTUP", "true").lower() == "true"

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SEED_ON_STARTUP = False
    STUDIO_TIMEZONE = "Europe/Brussels"
    STUDIO_MAX_SESSIONS_PER_WEEK = None
    MEMBER_MAX_SESSIONS_PER_WEEK = 1
    LOG_LEVEL = "WARNING"
