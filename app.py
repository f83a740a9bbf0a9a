import logging

import click
from flask import Flask, jsonify
from flask_migrate import Migrate
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from routes import health_bp, sessions_bp, booking_bp, machines_bp, studio_bp

from models import db
from scheduling.errors import InternalError, SchedulingError
from utils.seed import seed_studio

log = logging.getLogger(__name__)


def _engine_options(app):
    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
    if uri.startswith("sqlite"):
        connect_args = dict(options.get("connect_args") or {})
        connect_args.setdefault("timeout", app.config.get("SQLITE_BUSY_TIMEOUT_SECONDS", 5))
        options["connect_args"] = connect_args
    return options


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(app)

    logging.basicConfig(level=getattr(logging, app.config.get("LOG_LEVEL", "INFO"), logging.INFO))

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(machines_bp)
    app.register_blueprint(studio_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Seed machines and default limits at startup (safe & idempotent)
    if app.config.get("SEED_ON_STARTUP"):
        with app.app_context():
            if inspect(db.engine).has_table("machines"):
                seed_studio(
                    max_sessions_per_week=app.config.get("STUDIO_MAX_SESSIONS_PER_WEEK"),
                    max_member_sessions_per_week=app.config.get("MEMBER_MAX_SESSIONS_PER_WEEK", 1),
                )
            else:
                log.warning("schema not found, skipping seed (run `flask db upgrade`)")

    @app.errorhandler(SchedulingError)
    def _scheduling_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(SQLAlchemyError)
    def _database_error(exc):
        db.session.rollback()
        log.error("unhandled database error", exc_info=exc)
        err = InternalError()
        return jsonify(err.to_dict()), err.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------
from models.member import Member
from models.trainer import Trainer
from scheduling.occupancy import recount_all
from utils.seed import append_settings_version


def register_cli(app):
    @app.cli.command("seed-studio")
    def seed_studio_cmd():
        """Create machines 1-3 and the first settings version."""
        seed_studio(
            max_sessions_per_week=app.config.get("STUDIO_MAX_SESSIONS_PER_WEEK"),
            max_member_sessions_per_week=app.config.get("MEMBER_MAX_SESSIONS_PER_WEEK", 1),
        )
        print("Studio seeded")

    @app.cli.command("add-trainer")
    @click.argument("full_name")
    @click.option("--max-clients", default=1, show_default=True, type=click.IntRange(min=1))
    def add_trainer(full_name, max_clients):
        trainer = Trainer(full_name=full_name.strip(), max_clients_per_session=max_clients)
        db.session.add(trainer)
        db.session.commit()
        print(f"{trainer.full_name}: {trainer.id}")

    @app.cli.command("add-member")
    @click.argument("full_name")
    @click.option("--email", default=None)
    def add_member(full_name, email):
        member = Member(full_name=full_name.strip(), email=(email or "").strip().lower() or None)
        db.session.add(member)
        db.session.commit()
        print(f"{member.full_name}: {member.id}")

    @app.cli.command("set-studio-limits")
    @click.option("--max-sessions", type=click.IntRange(min=0), default=None,
                  help="Studio-wide sessions per week (omit for no cap).")
    @click.option("--max-member-sessions", type=click.IntRange(min=1), default=1, show_default=True)
    def set_studio_limits(max_sessions, max_member_sessions):
        """Append a new settings version, effective now."""
        row = append_settings_version(max_sessions, max_member_sessions)
        print(f"Studio limits version {row.version} saved")

    @app.cli.command("recount-participants")
    def recount_participants():
        """Recompute every session's participant counter from its bookings."""
        fixed = recount_all()
        print(f"{fixed} counter(s) corrected")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
