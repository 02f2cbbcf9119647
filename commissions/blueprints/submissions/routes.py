"""
Submission Routes (JSON API)

Provides:
- GET    /submissions/                list (salesperson: own; manager: all)
- POST   /submissions/                create (multipart, PDF in "document")
- POST   /submissions/preview         compute a commission without saving
- GET    /submissions/<id>            view
- POST   /submissions/<id>            edit (multipart, optional new "document")
- DELETE /submissions/<id>            delete
- POST   /submissions/<id>/<action>   start-review, flag, approve, reject,
                                      mark-paid (optional "receipt" file)
- GET    /submissions/<id>/document   original PDF
- GET    /submissions/<id>/receipt    payout receipt

Routes only parse the request; SubmissionService does the work and raises
CommissionError subclasses, rendered by the app's error handlers.

Writes accept the version the client last read ("version" field or If-Match
header); a stale version answers 409.
"""

import mimetypes
import os
from io import BytesIO

from flask import Blueprint, jsonify, request, send_file
from flask_login import current_user, login_required

from ...errors import FieldError, NotFound, ValidationError
from ...lifecycle import (
    ACTION_APPROVE,
    ACTION_FLAG,
    ACTION_MARK_PAID,
    ACTION_REJECT,
    ACTION_START_REVIEW,
    allowed_actions,
)
from ...repository import SubmissionFilters
from ...services import current_service
from ...validation import Upload, parse_date

submissions_bp = Blueprint("submissions", __name__, url_prefix="/submissions")

REVIEW_ACTIONS = {
    "start-review": ACTION_START_REVIEW,
    "flag": ACTION_FLAG,
    "approve": ACTION_APPROVE,
    "reject": ACTION_REJECT,
    "mark-paid": ACTION_MARK_PAID,
}


# ---------------------------------------------------------------------
# Request parsing helpers
# ---------------------------------------------------------------------

def _actor():
    return current_user._get_current_object()


def _form():
    """Form fields of a multipart request, or the JSON body."""
    if request.mimetype in ("multipart/form-data", "application/x-www-form-urlencoded"):
        return request.form.to_dict()
    return request.get_json(silent=True) or {}


def _upload(field: str):
    storage = request.files.get(field)
    if storage is None or not storage.filename:
        return None
    return Upload(filename=storage.filename, data=storage.read(), content_type=storage.mimetype)


def _expected_version(form):
    raw = form.get("version") or request.headers.get("If-Match")
    if raw in (None, ""):
        return None
    try:
        return int(str(raw).strip().strip('"'))
    except ValueError:
        raise ValidationError(FieldError("version", "invalid", "Version must be an integer."))


def _filters() -> SubmissionFilters:
    args = request.args
    errors = []

    salesperson_id = args.get("salesperson_id")
    if salesperson_id is not None:
        if salesperson_id.isdigit():
            salesperson_id = int(salesperson_id)
        else:
            errors.append(FieldError("salesperson_id", "invalid", "salesperson_id must be an integer."))
            salesperson_id = None

    dates = {}
    for field in ("start_date", "end_date"):
        try:
            dates[field] = parse_date(args.get(field))
        except ValueError:
            dates[field] = None
            errors.append(FieldError(field, "invalid", "Enter a valid date (YYYY-MM-DD)."))

    if errors:
        raise ValidationError(errors)

    return SubmissionFilters(
        salesperson_id=salesperson_id,
        status=args.get("status") or None,
        client_name=(args.get("client_name") or "").strip() or None,
        invoice_number=(args.get("invoice_number") or "").strip() or None,
        start_date=dates["start_date"],
        end_date=dates["end_date"],
    )


def _render(submission, actor):
    data = submission.to_dict()
    data["allowed_actions"] = allowed_actions(submission, actor)
    return data


def _send_blob(path: str):
    data = current_service().blob_store.get(path)
    filename = os.path.basename(path)
    mimetype = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return send_file(BytesIO(data), mimetype=mimetype, download_name=filename)


# ---------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------

@submissions_bp.route("/", methods=["GET"])
@login_required
def list_submissions():
    actor = _actor()
    submissions = current_service().list(actor, _filters())
    return jsonify({"submissions": [_render(s, actor) for s in submissions]})


@submissions_bp.route("/", methods=["POST"])
@login_required
def create_submission():
    actor = _actor()
    submission = current_service().create(actor, _form(), _upload("document"))
    return jsonify(_render(submission, actor)), 201


@submissions_bp.route("/preview", methods=["POST"])
@login_required
def preview_submission():
    """Calculator output for unsaved input, using the caller's current rate."""
    result = current_service().preview(_actor(), _form())
    return jsonify(result.as_dict())


# ---------------------------------------------------------------------
# Single submission
# ---------------------------------------------------------------------

@submissions_bp.route("/<int:submission_id>", methods=["GET"])
@login_required
def view_submission(submission_id: int):
    actor = _actor()
    return jsonify(_render(current_service().get(submission_id, actor), actor))


@submissions_bp.route("/<int:submission_id>", methods=["POST", "PUT"])
@login_required
def edit_submission(submission_id: int):
    actor = _actor()
    form = _form()
    submission = current_service().edit(
        submission_id,
        actor,
        form,
        _upload("document"),
        expected_version=_expected_version(form),
    )
    return jsonify(_render(submission, actor))


@submissions_bp.route("/<int:submission_id>", methods=["DELETE"])
@login_required
def delete_submission(submission_id: int):
    form = _form()
    current_service().delete(submission_id, _actor(), expected_version=_expected_version(form))
    return jsonify({"deleted": submission_id})


@submissions_bp.route("/<int:submission_id>/<string:action>", methods=["POST"])
@login_required
def transition_submission(submission_id: int, action: str):
    """Review, decision and payment actions."""
    lifecycle_action = REVIEW_ACTIONS.get(action)
    if lifecycle_action is None:
        raise NotFound(f"Unknown action '{action}'.")

    actor = _actor()
    form = _form()
    submission = current_service().transition(
        submission_id,
        lifecycle_action,
        actor,
        form,
        receipt=_upload("receipt"),
        expected_version=_expected_version(form),
    )
    return jsonify(_render(submission, actor))


@submissions_bp.route("/<int:submission_id>/document", methods=["GET"])
@login_required
def download_document(submission_id: int):
    submission = current_service().get(submission_id, _actor())
    if not submission.document_path:
        raise NotFound("This submission has no document.")
    return _send_blob(submission.document_path)


@submissions_bp.route("/<int:submission_id>/receipt", methods=["GET"])
@login_required
def download_receipt(submission_id: int):
    submission = current_service().get(submission_id, _actor())
    if not submission.payout_receipt_path:
        raise NotFound("This submission has no payout receipt.")
    return _send_blob(submission.payout_receipt_path)
