"""
commissions/__init__.py

Flask application factory for the Commission Payouts service.

Requirements:
- Clear architecture: pure core (calculator, validation, lifecycle) behind a
  service; Flask only parses requests and renders JSON.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
- UI is never trusted; server-side access control is enforced.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify
from flask_login import current_user
from werkzeug.exceptions import HTTPException

from .errors import CommissionError
from .extensions import csrf, db, login_manager, migrate
from .models import ROLE_MANAGER, User
from .security import inactive_user_guard

logger = logging.getLogger(__name__)


def _configure_logging(app: Flask) -> None:
    """Package loggers follow LOG_LEVEL; handlers are attached once."""
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    package_logger = logging.getLogger(__name__)
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        package_logger.addHandler(handler)


def register_error_handlers(app: Flask) -> None:
    """Render business and HTTP errors as JSON."""

    @app.errorhandler(CommissionError)
    def _commission_error(exc: CommissionError):
        if exc.status_code >= 409:
            logger.info("%s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        code = (exc.name or "error").lower().replace(" ", "_")
        return jsonify({"error": code, "message": exc.description}), exc.code


def create_app(config_object: str = "config.Config", test_config: dict | None = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    if test_config:
        app.config.update(test_config)

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        if not str(user_id).isdigit():
            return None
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "unauthorized", "message": "Login required."}), 401

    register_error_handlers(app)

    # ----------------------------------------------------------------------
    # GLOBAL SECURITY NET: inactive / unapproved accounts are read-only.
    # ----------------------------------------------------------------------
    @app.before_request
    def _inactive_guard_hook():
        """
        Safety net only. The lifecycle policy still checks every action.
        """
        return inactive_user_guard()

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.analytics import analytics_bp
    from .blueprints.auth import auth_bp
    from .blueprints.submissions import submissions_bp
    from .blueprints.users import users_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(submissions_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(analytics_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("init-db")
    def init_db_command():
        """Create all tables (development; use `flask db upgrade` otherwise)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Seed demo users and six months of submissions."""
        from .seed import seed_demo_data

        created = seed_demo_data()
        click.echo(f"Demo data seeded ({created} submissions).")

    @app.cli.command("create-manager")
    @click.option("--email", prompt=True)
    @click.option("--name", "full_name", prompt="Full name")
    @click.password_option()
    def create_manager_command(email: str, full_name: str, password: str):
        """Create a manager account."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            raise click.ClickException(f"A user with email {email} already exists.")

        user = User(email=email, full_name=full_name.strip(), role=ROLE_MANAGER)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        click.echo(f"Manager {email} created.")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """Service banner plus the logged-in user, if any."""
        return jsonify(
            {
                "app": app.config.get("APP_NAME"),
                "user": current_user.to_dict() if current_user.is_authenticated else None,
            }
        )

    return app
