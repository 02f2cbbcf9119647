"""
Commission Payouts – Domain Models

- User: salesperson or manager; carries the commission rate copied into
  each new submission.
- Invite: salesperson onboarding with a proposed commission rate.
- Submission: a commission claim, its computed commission fields and its
  lifecycle facts (status, review/payment timestamps).
- AuditLog: who did what to which entity.

IMPORTANT:
- Computed commission fields are written only through
  Submission.apply_commission() with a CommissionResult from the calculator.
- Submission.version is SQLAlchemy's version counter: every UPDATE/DELETE
  is guarded by it, so a stale writer fails instead of overwriting.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db

ROLE_SALESPERSON = "salesperson"
ROLE_MANAGER = "manager"
ROLES = (ROLE_SALESPERSON, ROLE_MANAGER)

STATUS_PENDING = "pending"
STATUS_UNDER_REVIEW = "under_review"
STATUS_FLAGGED = "flagged"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_PAID = "paid"
STATUSES = (
    STATUS_PENDING,
    STATUS_UNDER_REVIEW,
    STATUS_FLAGGED,
    STATUS_APPROVED,
    STATUS_REJECTED,
    STATUS_PAID,
)
TERMINAL_STATUSES = (STATUS_REJECTED, STATUS_PAID)


def utcnow() -> datetime:
    """Naive UTC timestamp (the DB columns are timezone-naive)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _fmt(value):
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """System login user (salesperson or manager)."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(255), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(20), nullable=False, default=ROLE_SALESPERSON, index=True)
    employee_id = db.Column(db.String(50), nullable=True)

    # Fraction (0.03 == 3%). Snapshotted into each new submission.
    commission_rate = db.Column(db.Numeric(6, 4), nullable=False, default=Decimal("0.03"))

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_approved = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    submissions = db.relationship("Submission", back_populates="salesperson", lazy=True)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_manager(self) -> bool:
        return self.role == ROLE_MANAGER

    @property
    def is_salesperson(self) -> bool:
        return self.role == ROLE_SALESPERSON

    def can_act(self) -> bool:
        return bool(self.is_active and self.is_approved)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "employee_id": self.employee_id,
            "commission_rate": _fmt(self.commission_rate),
            "is_active": self.is_active,
            "is_approved": self.is_approved,
            "created_at": _fmt(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"


class Invite(db.Model):
    """Pending salesperson invitation."""

    __tablename__ = "invites"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), nullable=False, index=True)
    full_name = db.Column(db.String(255), nullable=False)
    commission_rate = db.Column(db.Numeric(6, 4), nullable=False)

    token = db.Column(db.String(64), unique=True, nullable=False, index=True, default=lambda: Invite.new_token())

    invited_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    invited_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    accepted_at = db.Column(db.DateTime, nullable=True)

    invited_by = db.relationship("User", foreign_keys=[invited_by_id])

    @staticmethod
    def new_token() -> str:
        return secrets.token_urlsafe(32)

    def renew(self, ttl_days: int, now: datetime | None = None):
        now = now or utcnow()
        self.invited_at = now
        self.expires_at = now + timedelta(days=ttl_days)

    def is_open(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return self.accepted_at is None and self.expires_at > now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "commission_rate": _fmt(self.commission_rate),
            "invited_at": _fmt(self.invited_at),
            "expires_at": _fmt(self.expires_at),
            "accepted_at": _fmt(self.accepted_at),
            "invited_by": self.invited_by.full_name if self.invited_by else None,
        }


# ---------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------
class Submission(db.Model):
    __tablename__ = "submissions"

    id = db.Column(db.Integer, primary_key=True)

    salesperson_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Document facts
    document_type = db.Column(db.String(20), nullable=False, default="invoice")
    invoice_number = db.Column(db.String(100), nullable=True, index=True)
    purchase_order_number = db.Column(db.String(100), nullable=True, index=True)
    document_date = db.Column(db.Date, nullable=False, index=True)
    client_name = db.Column(db.String(255), nullable=False, index=True)
    document_path = db.Column(db.String(500), nullable=True)

    # Money facts
    amount_with_tax = db.Column(db.Numeric(12, 2), nullable=False)
    amount_without_tax = db.Column(db.Numeric(12, 2), nullable=False)
    client_requires_invoice = db.Column(db.Boolean, nullable=False, default=False)

    is_marketplace_sale = db.Column(db.Boolean, nullable=False, default=False)
    fee_sale = db.Column(db.Numeric(12, 2), nullable=True)
    fee_shipping = db.Column(db.Numeric(12, 2), nullable=True)

    # Timing facts
    client_payment_date = db.Column(db.Date, nullable=False)
    payment_days = db.Column(db.Integer, nullable=False, default=0)

    # Computed facts (calculator output only)
    commission_rate = db.Column(db.Numeric(6, 4), nullable=False)
    commission_time_factor = db.Column(db.Numeric(3, 2), nullable=False)
    commission_base_amount = db.Column(db.Numeric(12, 2), nullable=False)
    base_commission_amount = db.Column(db.Numeric(12, 2), nullable=False)
    commission_amount = db.Column(db.Numeric(12, 2), nullable=False)
    marketplace_total_fees = db.Column(db.Numeric(12, 2), nullable=True)
    net_amount_after_fees = db.Column(db.Numeric(12, 2), nullable=True)

    # Lifecycle facts
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    payout_receipt_path = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)

    version = db.Column(db.Integer, nullable=False)

    salesperson = db.relationship("User", back_populates="submissions")

    __mapper_args__ = {"version_id_col": version}

    def is_owned_by(self, user) -> bool:
        return user is not None and self.salesperson_id == getattr(user, "id", None)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def sale_value(self) -> Decimal:
        """Fiscal value of the sale (the amount the invoice flag selects)."""
        if self.client_requires_invoice:
            return Decimal(str(self.amount_without_tax or 0))
        return Decimal(str(self.amount_with_tax or 0))

    def apply_data(self, data):
        """Copy validated declared facts (SubmissionData) onto the record."""
        self.document_type = data.document_type
        self.client_name = data.client_name
        self.purchase_order_number = data.purchase_order_number
        self.invoice_number = data.invoice_number
        self.document_date = data.document_date
        self.client_payment_date = data.client_payment_date
        self.client_requires_invoice = data.client_requires_invoice
        self.is_marketplace_sale = data.is_marketplace_sale
        self.fee_sale = data.fee_sale
        self.fee_shipping = data.fee_shipping

    def apply_commission(self, result):
        """Store every derived field of a CommissionResult."""
        self.amount_with_tax = result.amount_with_tax
        self.amount_without_tax = result.amount_without_tax
        self.payment_days = result.payment_days
        self.commission_rate = result.commission_rate
        self.commission_time_factor = result.commission_time_factor
        self.commission_base_amount = result.commission_base_amount
        self.base_commission_amount = result.base_commission_amount
        self.commission_amount = result.commission_amount
        self.marketplace_total_fees = result.marketplace_total_fees
        self.net_amount_after_fees = result.net_amount_after_fees

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "salesperson_id": self.salesperson_id,
            "salesperson_name": self.salesperson.full_name if self.salesperson else None,
            "document_type": self.document_type,
            "invoice_number": self.invoice_number,
            "purchase_order_number": self.purchase_order_number,
            "document_date": _fmt(self.document_date),
            "client_payment_date": _fmt(self.client_payment_date),
            "payment_days": self.payment_days,
            "client_name": self.client_name,
            "amount_with_tax": _fmt(self.amount_with_tax),
            "amount_without_tax": _fmt(self.amount_without_tax),
            "client_requires_invoice": self.client_requires_invoice,
            "is_marketplace_sale": self.is_marketplace_sale,
            "fee_sale": _fmt(self.fee_sale),
            "fee_shipping": _fmt(self.fee_shipping),
            "marketplace_total_fees": _fmt(self.marketplace_total_fees),
            "net_amount_after_fees": _fmt(self.net_amount_after_fees),
            "commission_rate": _fmt(self.commission_rate),
            "commission_time_factor": _fmt(self.commission_time_factor),
            "commission_base_amount": _fmt(self.commission_base_amount),
            "base_commission_amount": _fmt(self.base_commission_amount),
            "commission_amount": _fmt(self.commission_amount),
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "notes": self.notes,
            "has_document": bool(self.document_path),
            "has_payout_receipt": bool(self.payout_receipt_path),
            "created_at": _fmt(self.created_at),
            "updated_at": _fmt(self.updated_at),
            "reviewed_at": _fmt(self.reviewed_at),
            "paid_at": _fmt(self.paid_at),
            "version": self.version,
        }

    def __repr__(self):
        return f"<Submission {self.id} {self.client_name} [{self.status}]>"


class AuditLog(db.Model):
    """Audit trail of mutations (before/after JSON snapshots)."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    email_snapshot = db.Column(db.String(255), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(30), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    user = db.relationship("User", backref=db.backref("audit_entries", lazy=True))
