from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from commissions.errors import Conflict, Forbidden, InvalidTransition, MissingRequiredField, NotFound, ValidationError
from commissions.extensions import db
from commissions.lifecycle import ACTION_APPROVE, ACTION_MARK_PAID, ACTION_START_REVIEW
from commissions.models import STATUS_APPROVED, STATUS_PAID, AuditLog, Submission, User
from commissions.repository import SqlSubmissionRepository, SubmissionFilters
from commissions.services import SubmissionService
from commissions.storage import LocalBlobStore
from commissions.validation import Upload

from conftest import PDF_BYTES

PAYMENT = {"payment_date": "2024-03-01", "payment_reference": "TRX-1", "payment_method": "check"}


def _pdf(name="invoice.pdf"):
    return Upload(name, PDF_BYTES, "application/pdf")


def _files(root, kind):
    folder = root / kind
    return sorted(p.name for p in folder.iterdir()) if folder.exists() else []


class FailingAddRepository(SqlSubmissionRepository):
    def add(self, submission, *, actor=None):
        raise RuntimeError("database unavailable")


@pytest.fixture
def blob_root(tmp_path):
    return tmp_path / "blobs"


@pytest.fixture
def service(ctx, blob_root):
    return SubmissionService(SqlSubmissionRepository(db.session), LocalBlobStore(blob_root))


@pytest.fixture
def actors(ctx, users):
    return {name: db.session.get(User, user_id) for name, user_id in users.items()}


@pytest.fixture
def created(service, actors, submission_form):
    return service.create(actors["alice"], submission_form(), _pdf())


# ---------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------
def test_create_persists_document_and_audit(created, blob_root):
    assert created.id is not None
    assert created.version == 1
    assert created.commission_amount == Decimal("300.00")
    assert created.document_path.startswith("documents/")
    assert (blob_root / created.document_path).read_bytes() == PDF_BYTES

    entry = AuditLog.query.filter_by(entity_type="Submission", entity_id=created.id).one()
    assert entry.action == "CREATE"
    assert entry.email_snapshot == "alice@example.com"


def test_create_requires_document(service, actors, submission_form, blob_root):
    with pytest.raises(ValidationError) as exc:
        service.create(actors["alice"], submission_form(), None)

    assert exc.value.fields == ["document"]
    assert _files(blob_root, "documents") == []


def test_manager_cannot_create(service, actors, submission_form):
    with pytest.raises(Forbidden):
        service.create(actors["manager"], submission_form(), _pdf())


def test_failed_create_removes_stored_document(ctx, actors, submission_form, blob_root):
    service = SubmissionService(FailingAddRepository(db.session), LocalBlobStore(blob_root))

    with pytest.raises(RuntimeError):
        service.create(actors["alice"], submission_form(), _pdf())

    assert _files(blob_root, "documents") == []


def test_preview_uses_current_rate(service, actors, submission_form):
    result = service.preview(actors["bob"], submission_form())
    assert result.commission_amount == Decimal("500.00")


# ---------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------
def test_salespeople_only_see_their_own(service, actors, created, submission_form):
    bobs = service.create(actors["bob"], submission_form(client_name="Globex"), _pdf())

    assert [s.id for s in service.list(actors["bob"])] == [bobs.id]
    assert {s.id for s in service.list(actors["manager"])} == {created.id, bobs.id}
    assert [s.id for s in service.list(actors["manager"], SubmissionFilters(client_name="glob"))] == [bobs.id]
    # A salesperson cannot widen the filter to someone else
    assert service.list(actors["bob"], SubmissionFilters(salesperson_id=actors["alice"].id)) == [bobs]

    with pytest.raises(Forbidden):
        service.get(created.id, actors["bob"])
    with pytest.raises(NotFound):
        service.get(9999, actors["manager"])


# ---------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------
def test_transition_bumps_version_and_audits(service, actors, created):
    submission = service.transition(created.id, ACTION_APPROVE, actors["manager"], expected_version=1)

    assert submission.status == STATUS_APPROVED
    assert submission.version == 2
    actions = [e.action for e in AuditLog.query.filter_by(entity_id=created.id).order_by(AuditLog.id)]
    assert actions == ["CREATE", "APPROVE"]


def test_stale_expected_version_is_conflict(service, actors, created):
    service.transition(created.id, ACTION_START_REVIEW, actors["manager"])

    with pytest.raises(Conflict):
        service.transition(created.id, ACTION_APPROVE, actors["manager"], expected_version=1)
    assert db.session.get(Submission, created.id).status == "under_review"


def test_concurrent_approvals_only_one_wins(app, service, actors, created, blob_root):
    other_session = Session(db.engine)
    try:
        other_service = SubmissionService(SqlSubmissionRepository(other_session), LocalBlobStore(blob_root))
        other_manager = other_session.get(User, actors["manager"].id)
        # Both writers have now read version 1
        assert other_session.get(Submission, created.id).version == 1

        service.transition(created.id, ACTION_APPROVE, actors["manager"])

        with pytest.raises(Conflict):
            other_service.transition(created.id, ACTION_APPROVE, other_manager)
    finally:
        other_session.close()

    db.session.expire_all()
    final = db.session.get(Submission, created.id)
    assert final.status == STATUS_APPROVED
    assert final.version == 2
    assert AuditLog.query.filter_by(entity_id=created.id, action="APPROVE").count() == 1


def test_mark_paid_stores_receipt(service, actors, created, blob_root):
    service.transition(created.id, ACTION_APPROVE, actors["manager"])
    receipt = Upload("receipt.png", b"\x89PNG...", "image/png")

    paid = service.transition(created.id, ACTION_MARK_PAID, actors["manager"], PAYMENT, receipt=receipt)

    assert paid.status == STATUS_PAID
    assert paid.payout_receipt_path.startswith("receipts/")
    assert paid.notes.splitlines()[0] == "Method: Check"
    assert len(_files(blob_root, "receipts")) == 1


def test_failed_payment_removes_receipt(service, actors, created, blob_root):
    service.transition(created.id, ACTION_APPROVE, actors["manager"])
    receipt = Upload("receipt.pdf", PDF_BYTES, "application/pdf")

    with pytest.raises(MissingRequiredField):
        service.transition(created.id, ACTION_MARK_PAID, actors["manager"], {"payment_method": "cash"}, receipt=receipt)

    assert _files(blob_root, "receipts") == []


def test_receipt_is_not_stored_for_unauthorized_actor(service, actors, created, blob_root):
    receipt = Upload("receipt.pdf", PDF_BYTES, "application/pdf")

    with pytest.raises(Forbidden):
        service.transition(created.id, ACTION_MARK_PAID, actors["alice"], PAYMENT, receipt=receipt)

    assert _files(blob_root, "receipts") == []


def test_transition_refuses_edit_and_delete(service, actors, created):
    with pytest.raises(ValueError):
        service.transition(created.id, "delete", actors["manager"])


# ---------------------------------------------------------------------
# Edit / delete
# ---------------------------------------------------------------------
def test_edit_replaces_document(service, actors, created, submission_form, blob_root):
    old_path = created.document_path

    edited = service.edit(
        created.id,
        actors["alice"],
        submission_form(amount_without_tax="5000"),
        _pdf("corrected.pdf"),
        expected_version=1,
    )

    assert edited.commission_amount == Decimal("150.00")
    assert edited.version == 2
    assert edited.document_path != old_path
    assert _files(blob_root, "documents") == [edited.document_path.split("/", 1)[1]]


def test_edit_by_other_salesperson_is_forbidden(service, actors, created, submission_form, blob_root):
    with pytest.raises(Forbidden):
        service.edit(created.id, actors["bob"], submission_form(), _pdf("other.pdf"))

    assert len(_files(blob_root, "documents")) == 1


def test_delete_removes_record_and_files(service, actors, created, blob_root):
    service.delete(created.id, actors["alice"], expected_version=1)

    assert db.session.get(Submission, created.id) is None
    assert _files(blob_root, "documents") == []
    assert AuditLog.query.filter_by(entity_id=created.id, action="DELETE").count() == 1


def test_paid_submission_cannot_be_deleted(service, actors, created):
    service.transition(created.id, ACTION_APPROVE, actors["manager"])
    service.transition(created.id, ACTION_MARK_PAID, actors["manager"], PAYMENT)

    with pytest.raises(InvalidTransition):
        service.delete(created.id, actors["manager"])
