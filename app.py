import time

import click
from flask import Flask, g, jsonify, request
from flask_migrate import Migrate
from sqlalchemy import inspect

from config import Config
from models import db
from routes import (
    audit_bp,
    auth_bp,
    availability_bp,
    booking_bp,
    health_bp,
    holds_bp,
    payments_bp,
    venues_bp,
)
from services.errors import BookingError
from services.gateways import build_payment_gateway
from services.settings import BookingSettings
from utils.auth_context import load_current_user
from utils.logging_config import configure_logging, get_logger
from utils.seed import seed_roles

logger = get_logger()


def create_app(config_object=Config, payment_gateway=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    configure_logging(app)

    # frozen once; services never read app.config directly
    app.extensions["booking_settings"] = BookingSettings.from_config(app.config)
    app.extensions["payment_gateway"] = payment_gateway or build_payment_gateway(app.config)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(availability_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(holds_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(venues_bp)
    app.register_blueprint(audit_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Seed default roles at startup (safe & idempotent, skipped before the first migration)
    with app.app_context():
        if inspect(db.engine).has_table("roles"):
            seed_roles()

    @app.before_request
    def _load_user():
        g.request_started = time.perf_counter()
        load_current_user()

    @app.after_request
    def _log_request(resp):
        started = g.pop("request_started", None)
        elapsed = (time.perf_counter() - started) * 1000 if started else 0.0
        logger.info(f"{request.method} {request.path} -> {resp.status_code} ({elapsed:.1f}ms)")
        return resp

    @app.errorhandler(BookingError)
    def _booking_error(err: BookingError):
        if err.http_status >= 500:
            logger.error(f"{request.method} {request.path} failed | {err}")
        else:
            logger.warning(f"{request.method} {request.path} rejected | {err}")
        return jsonify(err.to_dict()), err.http_status

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
from models.user import User, Role
from security.session import create_session

def register_cli(app):
    @app.cli.command("seed-roles")
    def seed_roles_command():
        """Create the default roles."""
        seed_roles()
        click.echo("Roles seeded")

    @app.cli.command("create-user")
    @click.argument("email")
    @click.option("--role", "role_name", default="PLAYER", show_default=True)
    @click.option("--name", "full_name", default=None)
    def create_user(email, role_name, full_name):
        """Create (or promote) a user and print a fresh bearer token."""
        email = email.strip().lower()
        role_name = role_name.strip().upper()

        role = Role.query.filter_by(name=role_name).first()
        if not role:
            role = Role(name=role_name)
            db.session.add(role)

        user = User.query.filter_by(email=email).first()
        if not user:
            user = User(email=email, full_name=full_name)
            db.session.add(user)

        if role not in user.roles:
            user.roles.append(role)
        db.session.commit()

        token = create_session(user.id)
        click.echo(f"{user.email} ({', '.join(sorted(user.role_names()))})")
        click.echo(token)

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
