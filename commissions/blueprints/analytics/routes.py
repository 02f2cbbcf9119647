"""
Analytics Routes

- GET /analytics/summary
  Salesperson: figures over their own submissions.
  Manager: figures over all submissions, or one salesperson's with
  ?salesperson_id=<id>. Optional ?months=<n> (1-24, default 6).
"""

from datetime import date

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ...analytics import summarize
from ...errors import FieldError, ValidationError
from ...repository import SubmissionFilters
from ...services import current_service

analytics_bp = Blueprint("analytics", __name__, url_prefix="/analytics")


def _int_arg(name: str, default=None, *, low: int = 1, high: int | None = None):
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    if not raw.isdigit() or int(raw) < low or (high is not None and int(raw) > high):
        raise ValidationError(FieldError(name, "invalid", f"{name} is out of range."))
    return int(raw)


@analytics_bp.route("/summary")
@login_required
def summary():
    actor = current_user._get_current_object()
    filters = SubmissionFilters(salesperson_id=_int_arg("salesperson_id") if actor.is_manager else None)
    months = _int_arg("months", 6, high=24)

    submissions = current_service().list(actor, filters)
    return jsonify(summarize(submissions, today=date.today(), months=months))
