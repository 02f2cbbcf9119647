"""
Salesperson Management (Manager Only) and invitation acceptance.

Rules enforced:
- Only managers list users, change rates, toggle accounts and manage invites.
- A commission rate change applies to FUTURE submissions only; existing
  submissions keep the rate captured when they were created.
- A manager cannot deactivate their own account.
- Accepting an invite is public but requires an open (unexpired, unused) token.

Audit:
- CREATE / UPDATE logged for users and invites
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from ...audit import log_action, serialize_model
from ...calculator import to_decimal
from ...errors import Conflict, FieldError, Forbidden, NotFound, ValidationError
from ...extensions import db
from ...models import ROLE_SALESPERSON, Invite, User, utcnow
from ...security import manager_required

logger = logging.getLogger(__name__)

users_bp = Blueprint(
    "users",
    __name__,
    url_prefix="/users",
)

MIN_PASSWORD_LENGTH = 8


def _payload():
    return request.get_json(silent=True) or request.form


def _parse_rate(value, *, default=None):
    """Commission rate as a fraction in [0, 1]. Raises ValidationError."""
    if value in (None, "") and default is not None:
        value = default
    try:
        rate = to_decimal(value)
    except (ArithmeticError, ValueError):
        rate = None
    if rate is None or rate < 0 or rate > 1:
        raise ValidationError(
            FieldError("commission_rate", "out_of_range", "Commission rate must be a fraction between 0 and 1.")
        )
    return rate


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found.")
    return user


def _get_invite(invite_id: int) -> Invite:
    invite = db.session.get(Invite, invite_id)
    if invite is None:
        raise NotFound("Invite not found.")
    return invite


def _invite_payload(invite: Invite) -> dict:
    """Invite plus its token: there is no mail delivery, the manager shares the link."""
    data = invite.to_dict()
    data["token"] = invite.token
    return data


# ---------------------------------------------------------------------
# USERS
# ---------------------------------------------------------------------

@users_bp.route("/", methods=["GET"])
@login_required
@manager_required
def list_users():
    """Manager view: all users, salespeople first."""
    users = User.query.order_by(User.role.desc(), User.full_name.asc()).all()
    return jsonify({"users": [u.to_dict() for u in users]})


@users_bp.route("/<int:user_id>/commission-rate", methods=["POST"])
@login_required
@manager_required
def update_commission_rate(user_id: int):
    user = _get_user(user_id)
    if user.role != ROLE_SALESPERSON:
        raise ValidationError(FieldError("user_id", "invalid", "Only salespeople have a commission rate."))

    rate = _parse_rate(_payload().get("commission_rate"))

    before = serialize_model(user)
    user.commission_rate = rate
    user.updated_at = utcnow()
    log_action(user, "UPDATE", actor=current_user, before=before, after=serialize_model(user))
    db.session.commit()

    logger.info("commission rate of user %s set to %s by user %s", user.id, rate, current_user.id)
    return jsonify(user.to_dict())


@users_bp.route("/<int:user_id>/toggle-active", methods=["POST"])
@login_required
@manager_required
def toggle_active(user_id: int):
    user = _get_user(user_id)
    if user.id == current_user.id:
        raise Forbidden("You cannot deactivate your own account.")

    before = serialize_model(user)
    user.is_active = not user.is_active
    user.updated_at = utcnow()
    log_action(user, "UPDATE", actor=current_user, before=before, after=serialize_model(user))
    db.session.commit()

    logger.info("user %s %s by user %s", user.id, "activated" if user.is_active else "deactivated", current_user.id)
    return jsonify(user.to_dict())


# ---------------------------------------------------------------------
# INVITES
# ---------------------------------------------------------------------

@users_bp.route("/invites", methods=["GET"])
@login_required
@manager_required
def list_invites():
    """Invites not yet accepted (expired ones included, so they can be resent)."""
    invites = Invite.query.filter(Invite.accepted_at.is_(None)).order_by(Invite.invited_at.desc()).all()
    return jsonify({"invites": [_invite_payload(i) for i in invites]})


@users_bp.route("/invites", methods=["POST"])
@login_required
@manager_required
def create_invite():
    payload = _payload()
    email = (payload.get("email") or "").strip().lower()
    full_name = (payload.get("full_name") or "").strip()

    errors = []
    if not email or "@" not in email:
        errors.append(FieldError("email", "invalid", "Enter a valid email address."))
    if not full_name:
        errors.append(FieldError("full_name", "required", "Full name is required."))
    if errors:
        raise ValidationError(errors)

    rate = _parse_rate(payload.get("commission_rate"), default=current_app.config["DEFAULT_COMMISSION_RATE"])

    if User.query.filter_by(email=email).first():
        raise Conflict("A user with this email already exists.")
    now = utcnow()
    for existing in Invite.query.filter_by(email=email).all():
        if existing.is_open(now):
            raise Conflict("An open invite for this email already exists.")

    invite = Invite(email=email, full_name=full_name, commission_rate=rate, invited_by_id=current_user.id)
    invite.renew(current_app.config["INVITE_TTL_DAYS"], now)
    db.session.add(invite)
    db.session.flush()
    log_action(invite, "CREATE", actor=current_user, after=serialize_model(invite))
    db.session.commit()

    logger.info("invite %s created for %s by user %s", invite.id, email, current_user.id)
    return jsonify(_invite_payload(invite)), 201


@users_bp.route("/invites/<int:invite_id>/resend", methods=["POST"])
@login_required
@manager_required
def resend_invite(invite_id: int):
    """Issue a fresh token and expiry; the old link stops working."""
    invite = _get_invite(invite_id)
    if invite.accepted_at is not None:
        raise Conflict("This invite was already accepted.")

    before = serialize_model(invite)
    invite.token = Invite.new_token()
    invite.renew(current_app.config["INVITE_TTL_DAYS"])
    log_action(invite, "UPDATE", actor=current_user, before=before, after=serialize_model(invite))
    db.session.commit()
    return jsonify(_invite_payload(invite))


@users_bp.route("/invites/<int:invite_id>", methods=["DELETE"])
@login_required
@manager_required
def cancel_invite(invite_id: int):
    invite = _get_invite(invite_id)
    if invite.accepted_at is not None:
        raise Conflict("This invite was already accepted.")

    log_action(invite, "DELETE", actor=current_user, before=serialize_model(invite))
    db.session.delete(invite)
    db.session.commit()
    return jsonify({"deleted": invite_id})


@users_bp.route("/invites/<string:token>/accept", methods=["POST"])
def accept_invite(token: str):
    """
    Public: turn an open invite into an active salesperson account.

    The account gets the commission rate proposed in the invite.
    """
    invite = Invite.query.filter_by(token=token).first()
    if invite is None or not invite.is_open():
        raise NotFound("This invitation is invalid or has expired.")

    password = _payload().get("password") or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            FieldError("password", "too_short", f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        )
    if User.query.filter_by(email=invite.email).first():
        raise Conflict("A user with this email already exists.")

    user = User(
        email=invite.email,
        full_name=invite.full_name,
        role=ROLE_SALESPERSON,
        commission_rate=invite.commission_rate,
    )
    user.set_password(password)
    db.session.add(user)
    invite.accepted_at = utcnow()
    db.session.flush()
    log_action(user, "CREATE", actor=user, after=serialize_model(user))
    db.session.commit()

    logger.info("invite %s accepted: user %s created", invite.id, user.id)
    return jsonify(user.to_dict()), 201
