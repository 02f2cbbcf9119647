"""
commissions/lifecycle.py

Submission lifecycle state machine.

    pending -> under_review | flagged -> approved | rejected ; approved -> paid

rejected and paid are terminal. flagged is a pending-like state that still
needs a manager decision.

Who may do what is a single policy table keyed by (role, action); every
status change goes through apply_transition(), which consults it once.

Check order (first failure wins):
1) actor inactive/unapproved, or (role, action) not in POLICY -> Forbidden
2) owner-only action by a non-owner                            -> Forbidden
3) current status not allowed for the action                   -> InvalidTransition
4) payload incomplete                                          -> MissingRequiredField
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from .calculator import CommissionInput, compute_commission
from .errors import FieldError, Forbidden, InvalidTransition, MissingRequiredField, ValidationError
from .models import (
    ROLE_MANAGER,
    ROLE_SALESPERSON,
    STATUS_APPROVED,
    STATUS_FLAGGED,
    STATUS_PAID,
    STATUS_PENDING,
    STATUS_REJECTED,
    STATUS_UNDER_REVIEW,
    STATUSES,
    Submission,
    utcnow,
)
from .validation import SubmissionData, parse_date, validate_submission_data

logger = logging.getLogger(__name__)

ACTION_START_REVIEW = "start_review"
ACTION_FLAG = "flag"
ACTION_APPROVE = "approve"
ACTION_REJECT = "reject"
ACTION_MARK_PAID = "mark_paid"
ACTION_EDIT = "edit"
ACTION_DELETE = "delete"

# None: the record is removed
TARGET_STATUS: Dict[str, Optional[str]] = {
    ACTION_START_REVIEW: STATUS_UNDER_REVIEW,
    ACTION_FLAG: STATUS_FLAGGED,
    ACTION_APPROVE: STATUS_APPROVED,
    ACTION_REJECT: STATUS_REJECTED,
    ACTION_MARK_PAID: STATUS_PAID,
    ACTION_EDIT: STATUS_PENDING,
    ACTION_DELETE: None,
}
ACTIONS = tuple(TARGET_STATUS)

PAYMENT_METHODS = {
    "transfer": "Transfer",
    "check": "Check",
    "cash": "Cash",
}

_DECIDABLE = frozenset({STATUS_PENDING, STATUS_UNDER_REVIEW, STATUS_FLAGGED})


@dataclass(frozen=True)
class Rule:
    from_statuses: FrozenSet[str]
    owner_only: bool = False


POLICY: Dict[tuple, Rule] = {
    (ROLE_MANAGER, ACTION_START_REVIEW): Rule(frozenset({STATUS_PENDING})),
    (ROLE_MANAGER, ACTION_FLAG): Rule(frozenset({STATUS_PENDING})),
    (ROLE_MANAGER, ACTION_APPROVE): Rule(_DECIDABLE),
    (ROLE_MANAGER, ACTION_REJECT): Rule(_DECIDABLE),
    (ROLE_MANAGER, ACTION_MARK_PAID): Rule(frozenset({STATUS_APPROVED})),
    (ROLE_MANAGER, ACTION_DELETE): Rule(frozenset(STATUSES) - {STATUS_PAID}),
    (ROLE_SALESPERSON, ACTION_EDIT): Rule(frozenset({STATUS_PENDING}), owner_only=True),
    (ROLE_SALESPERSON, ACTION_DELETE): Rule(frozenset({STATUS_PENDING, STATUS_UNDER_REVIEW}), owner_only=True),
}


# ---------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------
def authorize(submission: Submission, action: str, actor) -> Rule:
    """Raise unless actor may perform action on submission in its current status."""
    if action not in TARGET_STATUS:
        raise InvalidTransition(f"Unknown action '{action}'.")

    if actor is None or not actor.can_act():
        raise Forbidden("Your account is not allowed to perform this action.")

    rule = POLICY.get((actor.role, action))
    if rule is None:
        raise Forbidden(f"A {actor.role} cannot {action.replace('_', ' ')} submissions.")

    if rule.owner_only and not submission.is_owned_by(actor):
        raise Forbidden("Only the salesperson who created the submission can do this.")

    if submission.status not in rule.from_statuses:
        raise InvalidTransition(
            f"Cannot {action.replace('_', ' ')} a submission with status '{submission.status}'.",
            details={"status": submission.status, "action": action},
        )

    return rule


def allowed_actions(submission: Submission, actor) -> List[str]:
    """Actions the actor may currently request (UI hints; apply_transition re-checks)."""
    allowed = []
    for action in ACTIONS:
        try:
            authorize(submission, action, actor)
        except (Forbidden, InvalidTransition):
            continue
        allowed.append(action)
    return allowed


# ---------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------
def commission_input(data: SubmissionData, rate) -> CommissionInput:
    return CommissionInput(
        amount_with_tax=data.amount_with_tax,
        amount_without_tax=data.amount_without_tax,
        client_requires_invoice=data.client_requires_invoice,
        document_date=data.document_date,
        client_payment_date=data.client_payment_date,
        commission_rate=rate,
        is_marketplace_sale=data.is_marketplace_sale,
        fee_sale=data.fee_sale,
        fee_shipping=data.fee_shipping,
    )


def ensure_can_submit(actor):
    if actor is None or not actor.can_act() or actor.role != ROLE_SALESPERSON:
        raise Forbidden("Only active salespeople can submit commissions.")


def create_submission(actor, data: SubmissionData, *, document_path: Optional[str] = None, now=None) -> Submission:
    """
    Build a new pending submission owned by actor.

    The actor's current commission rate is copied into the record; later
    rate changes never touch it.
    """
    ensure_can_submit(actor)

    now = now or utcnow()
    result = compute_commission(commission_input(data, actor.commission_rate))

    submission = Submission(
        salesperson_id=actor.id,
        status=STATUS_PENDING,
        document_path=document_path,
        created_at=now,
        updated_at=now,
    )
    submission.apply_data(data)
    submission.apply_commission(result)
    return submission


# ---------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------
def _edit(submission: Submission, payload: Mapping[str, Any], now):
    data = payload.get("data")
    if data is None:
        data = validate_submission_data(payload, require_document=False)

    # Full recompute with the rate captured at creation
    result = compute_commission(commission_input(data, submission.commission_rate))

    submission.apply_data(data)
    submission.apply_commission(result)
    if payload.get("document_path"):
        submission.document_path = payload["document_path"]


def _start_review(submission: Submission, payload: Mapping[str, Any], now):
    submission.status = STATUS_UNDER_REVIEW


def _flag(submission: Submission, payload: Mapping[str, Any], now):
    submission.status = STATUS_FLAGGED


def _approve(submission: Submission, payload: Mapping[str, Any], now):
    submission.status = STATUS_APPROVED
    submission.rejection_reason = None
    submission.reviewed_at = now


def _reject(submission: Submission, payload: Mapping[str, Any], now):
    reason = (payload.get("rejection_reason") or "").strip()
    if not reason:
        raise MissingRequiredField(["rejection_reason"], "A rejection reason is required.")

    submission.status = STATUS_REJECTED
    submission.rejection_reason = reason
    submission.reviewed_at = now


def _mark_paid(submission: Submission, payload: Mapping[str, Any], now):
    reference = (payload.get("payment_reference") or "").strip()
    method = (payload.get("payment_method") or "").strip().lower()
    raw_date = payload.get("payment_date")

    missing = []
    if not raw_date:
        missing.append("payment_date")
    if not reference:
        missing.append("payment_reference")
    if not method:
        missing.append("payment_method")
    if missing:
        raise MissingRequiredField(missing)

    errors = []
    if method not in PAYMENT_METHODS:
        errors.append(FieldError("payment_method", "invalid_choice", "Payment method must be transfer, check or cash."))
    try:
        payment_date = parse_date(raw_date)
    except ValueError:
        payment_date = None
        errors.append(FieldError("payment_date", "invalid", "Enter a valid date (YYYY-MM-DD)."))
    if errors:
        raise ValidationError(errors)

    lines = [
        f"Method: {PAYMENT_METHODS[method]}",
        f"Reference: {reference}",
        f"Payment date: {payment_date.isoformat()}",
    ]
    extra_notes = (payload.get("notes") or "").strip()
    if extra_notes:
        lines.append(f"Notes: {extra_notes}")

    submission.status = STATUS_PAID
    submission.paid_at = now
    submission.notes = "\n".join(lines)
    if payload.get("payout_receipt_path"):
        submission.payout_receipt_path = payload["payout_receipt_path"]


def _delete(submission: Submission, payload: Mapping[str, Any], now):
    # Removal itself is done by the repository
    pass


_HANDLERS = {
    ACTION_START_REVIEW: _start_review,
    ACTION_FLAG: _flag,
    ACTION_APPROVE: _approve,
    ACTION_REJECT: _reject,
    ACTION_MARK_PAID: _mark_paid,
    ACTION_EDIT: _edit,
    ACTION_DELETE: _delete,
}


def apply_transition(
    submission: Submission,
    action: str,
    actor,
    payload: Optional[Mapping[str, Any]] = None,
    *,
    now=None,
) -> Submission:
    """
    Apply one lifecycle action to submission (in place) and return it.

    Payload by action:
    - reject: rejection_reason
    - mark_paid: payment_date, payment_reference, payment_method,
      optional notes / payout_receipt_path
    - edit: raw submission fields (or a validated SubmissionData under
      "data"), optional document_path
    """
    authorize(submission, action, actor)

    now = now or utcnow()
    previous = submission.status
    _HANDLERS[action](submission, payload or {}, now)

    if action != ACTION_DELETE:
        submission.updated_at = now

    logger.debug(
        "submission %s: %s by user %s (%s -> %s)",
        submission.id, action, actor.id, previous, TARGET_STATUS[action] or "deleted",
    )
    return submission
