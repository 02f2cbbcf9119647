"""
commissions/services.py

Submission use-cases: create, edit, lifecycle transitions, delete, queries.

SubmissionService wires the pure core (validation, calculator, lifecycle)
to its collaborators, which are injected:
- a SubmissionRepository (persistence + optimistic concurrency)
- a BlobStore (documents and payout receipts)
- a clock

IMPORTANT:
- Authorization runs before any file is stored.
- A file stored for a write that then fails is removed again.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Mapping, Optional

from flask import current_app

from .audit import serialize_model
from .calculator import CommissionResult, compute_commission
from .errors import Conflict, Forbidden, NotFound
from .extensions import db
from .lifecycle import (
    ACTION_DELETE,
    ACTION_EDIT,
    ACTION_MARK_PAID,
    commission_input,
    apply_transition,
    authorize,
    create_submission,
    ensure_can_submit,
)
from .models import Submission, utcnow
from .repository import SqlSubmissionRepository, SubmissionFilters, SubmissionRepository
from .storage import BlobStore, LocalBlobStore
from .validation import DEFAULT_MAX_UPLOAD_BYTES, Upload, validate_submission_data, validate_upload

logger = logging.getLogger(__name__)


class SubmissionService:
    def __init__(
        self,
        repository: SubmissionRepository,
        blob_store: BlobStore,
        *,
        clock: Callable[[], Any] = utcnow,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ):
        self.repository = repository
        self.blob_store = blob_store
        self.clock = clock
        self.max_upload_bytes = max_upload_bytes

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------
    def get(self, submission_id: int, actor) -> Submission:
        submission = self.repository.get(submission_id)
        if submission is None:
            raise NotFound("Submission not found.")
        if not actor.is_manager and not submission.is_owned_by(actor):
            raise Forbidden("You can only view your own submissions.")
        return submission

    def list(self, actor, filters: Optional[SubmissionFilters] = None) -> List[Submission]:
        """Managers see everything; salespeople only their own submissions."""
        filters = filters or SubmissionFilters()
        if not actor.is_manager:
            filters = SubmissionFilters(
                salesperson_id=actor.id,
                status=filters.status,
                client_name=filters.client_name,
                invoice_number=filters.invoice_number,
                start_date=filters.start_date,
                end_date=filters.end_date,
            )
        return self.repository.list(filters)

    def preview(self, actor, data: Mapping[str, Any]) -> CommissionResult:
        """Compute the commission for unsaved input with the actor's current rate."""
        ensure_can_submit(actor)
        validated = validate_submission_data(data, require_document=False)
        return compute_commission(commission_input(validated, actor.commission_rate))

    # -----------------------------------------------------------------
    # Commands
    # -----------------------------------------------------------------
    def create(self, actor, data: Mapping[str, Any], document: Optional[Upload]) -> Submission:
        ensure_can_submit(actor)
        validated = validate_submission_data(
            data,
            document=document,
            require_document=True,
            max_upload_bytes=self.max_upload_bytes,
        )
        submission = create_submission(actor, validated, now=self.clock())

        path = self.blob_store.put(document.data, document.filename, "documents")
        submission.document_path = path
        try:
            self.repository.add(submission, actor=actor)
        except Exception:
            self.blob_store.delete(path)
            raise

        logger.info(
            "submission %s created by user %s: commission %s (factor %s)",
            submission.id, actor.id, submission.commission_amount, submission.commission_time_factor,
        )
        return submission

    def edit(
        self,
        submission_id: int,
        actor,
        data: Mapping[str, Any],
        document: Optional[Upload] = None,
        *,
        expected_version: Optional[int] = None,
    ) -> Submission:
        submission = self._load(submission_id, expected_version)
        authorize(submission, ACTION_EDIT, actor)

        validated = validate_submission_data(
            data,
            document=document,
            require_document=False,
            max_upload_bytes=self.max_upload_bytes,
        )

        old_path = submission.document_path
        new_path = None
        if document is not None:
            new_path = self.blob_store.put(document.data, document.filename, "documents")

        before = serialize_model(submission)
        try:
            apply_transition(
                submission,
                ACTION_EDIT,
                actor,
                {"data": validated, "document_path": new_path},
                now=self.clock(),
            )
            self.repository.save(submission, action="EDIT", actor=actor, before=before)
        except Exception:
            if new_path:
                self.blob_store.delete(new_path)
            raise

        if new_path and old_path:
            self.blob_store.delete(old_path)

        logger.info("submission %s edited by user %s: commission %s", submission.id, actor.id, submission.commission_amount)
        return submission

    def transition(
        self,
        submission_id: int,
        action: str,
        actor,
        payload: Optional[Mapping[str, Any]] = None,
        *,
        receipt: Optional[Upload] = None,
        expected_version: Optional[int] = None,
    ) -> Submission:
        """Review / decision / payment actions (see lifecycle.POLICY)."""
        if action in (ACTION_EDIT, ACTION_DELETE):
            raise ValueError(f"use {action}() for '{action}'")

        submission = self._load(submission_id, expected_version)
        authorize(submission, action, actor)

        payload = dict(payload or {})
        receipt_path = None
        if receipt is not None and action == ACTION_MARK_PAID:
            validate_upload(receipt, "receipt", max_upload_bytes=self.max_upload_bytes)
            receipt_path = self.blob_store.put(receipt.data, receipt.filename, "receipts")
            payload["payout_receipt_path"] = receipt_path

        before = serialize_model(submission)
        previous = submission.status
        try:
            apply_transition(submission, action, actor, payload, now=self.clock())
            self.repository.save(submission, action=action, actor=actor, before=before)
        except Exception:
            if receipt_path:
                self.blob_store.delete(receipt_path)
            raise

        logger.info("submission %s: %s -> %s by user %s", submission.id, previous, submission.status, actor.id)
        return submission

    def delete(self, submission_id: int, actor, *, expected_version: Optional[int] = None) -> None:
        submission = self._load(submission_id, expected_version)
        apply_transition(submission, ACTION_DELETE, actor, now=self.clock())

        paths = [p for p in (submission.document_path, submission.payout_receipt_path) if p]
        self.repository.delete(submission, actor=actor)

        for path in paths:
            self.blob_store.delete(path)
        logger.info("submission %s deleted by user %s", submission_id, actor.id)

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------
    def _load(self, submission_id: int, expected_version: Optional[int]) -> Submission:
        submission = self.repository.get(submission_id)
        if submission is None:
            raise NotFound("Submission not found.")
        if expected_version is not None and submission.version != expected_version:
            raise Conflict(
                "The submission was changed by someone else. Reload it and try again.",
                details={"submission_id": submission.id, "version": submission.version},
            )
        return submission


def current_service() -> SubmissionService:
    """Service bound to the request's session and the configured upload folder."""
    return SubmissionService(
        SqlSubmissionRepository(db.session),
        LocalBlobStore(current_app.config["UPLOAD_FOLDER"]),
        max_upload_bytes=current_app.config.get("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES),
    )
