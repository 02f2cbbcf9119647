"""
Authentication Routes

Provides:
- POST /auth/login
- POST /auth/logout
- GET  /auth/me
- GET  /auth/csrf-token
- POST /auth/seed-manager (first system bootstrap)

Rules:
- Only active and approved users may log in.
- Credentials validated via password hash.
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ...errors import FieldError, Forbidden, ValidationError
from ...extensions import db
from ...models import ROLE_MANAGER, User

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _payload():
    return request.get_json(silent=True) or request.form


# ============================================================
# LOGIN / LOGOUT
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """Authenticate a user and start a session."""
    payload = _payload()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        logger.info("failed login for %s", email)
        return jsonify({"error": "invalid_credentials", "message": "Wrong email or password."}), 401

    if not user.is_active:
        raise Forbidden("This account is deactivated.")
    if not user.is_approved:
        raise Forbidden("This account is awaiting approval.")

    login_user(user)
    return jsonify(user.to_dict())


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    logout_user()
    return jsonify({"logged_out": True})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify(current_user.to_dict())


@auth_bp.route("/csrf-token")
def csrf_token():
    """Token for the X-CSRFToken header of mutating requests."""
    return jsonify({"csrf_token": generate_csrf()})


# ============================================================
# SEED FIRST MANAGER (BOOTSTRAP)
# ============================================================

@auth_bp.route("/seed-manager", methods=["POST"])
def seed_manager():
    """
    Bootstrap the FIRST manager of the system.

    Safety rule:
    - If ANY user already exists -> block
    """
    if User.query.count() > 0:
        raise Forbidden("The system already has users.")

    payload = _payload()
    email = (payload.get("email") or "").strip().lower()
    full_name = (payload.get("full_name") or "").strip()
    password = payload.get("password") or ""

    errors = []
    if not email:
        errors.append(FieldError("email", "required", "Email is required."))
    if not full_name:
        errors.append(FieldError("full_name", "required", "Full name is required."))
    if len(password) < 8:
        errors.append(FieldError("password", "too_short", "Password must be at least 8 characters."))
    if errors:
        raise ValidationError(errors)

    user = User(email=email, full_name=full_name, role=ROLE_MANAGER)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    logger.info("bootstrap manager %s created", email)
    return jsonify(user.to_dict()), 201
