"""
commissions/validation.py

Input checks that gate the calculator and the lifecycle.

All violations are collected and reported together as FieldError items of a
single ValidationError, so callers can surface every problem at once.

IMPORTANT:
- UI is never trusted. Create and edit always pass through
  validate_submission_data() server-side.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Mapping, Optional

from .calculator import derive_amounts, payment_days, select_base, to_decimal
from .errors import FieldError, InvalidAmount, InvalidDateOrder, ValidationError

DOCUMENT_TYPES = ("invoice", "purchase_order")

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024

# kind -> extension -> accepted content types
ALLOWED_UPLOADS = {
    "document": {
        ".pdf": {"application/pdf"},
    },
    "receipt": {
        ".pdf": {"application/pdf"},
        ".png": {"image/png"},
        ".jpg": {"image/jpeg", "image/jpg"},
        ".jpeg": {"image/jpeg", "image/jpg"},
    },
}

_TRUE_VALUES = {"1", "true", "yes", "on", "y"}


@dataclass(frozen=True)
class Upload:
    """A file received from the client, before it reaches the blob store."""

    filename: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename or "")[1].lower()


@dataclass(frozen=True)
class SubmissionData:
    """Validated, typed submission fields (input to the calculator)."""

    document_type: str
    client_name: str
    purchase_order_number: str
    invoice_number: Optional[str]
    document_date: date
    client_payment_date: date
    amount_with_tax: Optional[Decimal]
    amount_without_tax: Optional[Decimal]
    client_requires_invoice: bool
    is_marketplace_sale: bool = False
    fee_sale: Optional[Decimal] = None
    fee_shipping: Optional[Decimal] = None


# ---------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------
def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES


def parse_date(value: Any) -> Optional[date]:
    """Parse ISO date (YYYY-MM-DD or full ISO datetime). Raises ValueError."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if raw == "":
        return None
    if len(raw) > 10:
        return datetime.fromisoformat(raw).date()
    return date.fromisoformat(raw)


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ---------------------------------------------------------------------
# Submission fields
# ---------------------------------------------------------------------
def validate_submission_data(
    data: Mapping[str, Any],
    *,
    document: Optional[Upload] = None,
    require_document: bool = True,
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
) -> SubmissionData:
    """
    Validate raw create/edit input and return typed SubmissionData.

    Raises ValidationError (or InvalidAmount / InvalidDateOrder when those
    are the only problems) listing every violation.
    """
    errors: List[FieldError] = []

    document_type = _clean_text(data.get("document_type")) or "invoice"
    if document_type not in DOCUMENT_TYPES:
        errors.append(FieldError("document_type", "invalid_choice", "Document type must be invoice or purchase_order."))

    client_name = _clean_text(data.get("client_name"))
    if not client_name:
        errors.append(FieldError("client_name", "required", "Client name is required."))

    purchase_order_number = _clean_text(data.get("purchase_order_number"))
    if not purchase_order_number:
        errors.append(FieldError("purchase_order_number", "required", "Purchase order number is required."))

    client_requires_invoice = parse_bool(data.get("client_requires_invoice"))
    invoice_number = _clean_text(data.get("invoice_number"))
    if client_requires_invoice and not invoice_number:
        errors.append(FieldError("invoice_number", "required", "Invoice number is required when the client requires an invoice."))

    dates = {}
    for field in ("document_date", "client_payment_date"):
        try:
            dates[field] = parse_date(data.get(field))
        except ValueError:
            dates[field] = None
            errors.append(FieldError(field, "invalid", "Enter a valid date (YYYY-MM-DD)."))
            continue
        if dates[field] is None:
            errors.append(FieldError(field, "required", "Date is required."))

    if dates["document_date"] and dates["client_payment_date"]:
        try:
            payment_days(dates["document_date"], dates["client_payment_date"])
        except InvalidDateOrder as exc:
            errors.extend(exc.errors)

    amounts = {}
    for field in ("amount_with_tax", "amount_without_tax", "fee_sale", "fee_shipping"):
        try:
            amounts[field] = to_decimal(data.get(field))
        except (InvalidOperation, ValueError):
            amounts[field] = None
            errors.append(FieldError(field, InvalidAmount.code, "Enter a valid amount."))

    derived = None
    amount_fields_ok = not any(e.field in ("amount_with_tax", "amount_without_tax") for e in errors)
    if amount_fields_ok:
        try:
            derived = derive_amounts(amounts["amount_with_tax"], amounts["amount_without_tax"])
        except InvalidAmount as exc:
            errors.extend(exc.errors)

    is_marketplace_sale = parse_bool(data.get("is_marketplace_sale"))
    if is_marketplace_sale:
        fee_errors = [
            FieldError(field, InvalidAmount.code, "Fee cannot be negative.")
            for field in ("fee_sale", "fee_shipping")
            if amounts[field] is not None and amounts[field] < 0
        ]
        errors.extend(fee_errors)
        fee_fields_ok = not any(e.field in ("fee_sale", "fee_shipping") for e in errors)
        # Fees larger than the sale belong in the same batch
        if derived is not None and fee_fields_ok:
            with_tax, without_tax = derived
            try:
                select_base(with_tax, without_tax, client_requires_invoice, True, amounts["fee_sale"], amounts["fee_shipping"])
            except InvalidAmount as exc:
                errors.extend(exc.errors)

    if document is not None:
        errors.extend(upload_errors(document, "document", max_upload_bytes=max_upload_bytes))
    elif require_document:
        errors.append(FieldError("document", "required", "Upload the PDF document."))

    if errors:
        raise ValidationError.from_errors(errors)

    return SubmissionData(
        document_type=document_type,
        client_name=client_name,
        purchase_order_number=purchase_order_number,
        invoice_number=invoice_number,
        document_date=dates["document_date"],
        client_payment_date=dates["client_payment_date"],
        amount_with_tax=amounts["amount_with_tax"],
        amount_without_tax=amounts["amount_without_tax"],
        client_requires_invoice=client_requires_invoice,
        is_marketplace_sale=is_marketplace_sale,
        fee_sale=(amounts["fee_sale"] or Decimal("0")) if is_marketplace_sale else None,
        fee_shipping=(amounts["fee_shipping"] or Decimal("0")) if is_marketplace_sale else None,
    )


# ---------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------
def upload_errors(upload: Upload, kind: str, *, max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> List[FieldError]:
    """Type/size checks for an uploaded file. The content itself is never inspected."""
    allowed = ALLOWED_UPLOADS[kind]
    errors: List[FieldError] = []

    content_types = allowed.get(upload.extension)
    if content_types is None:
        accepted = ", ".join(sorted(allowed))
        errors.append(FieldError(kind, "invalid_file_type", f"Accepted file types: {accepted}."))
    elif upload.content_type and upload.content_type != "application/octet-stream":
        if upload.content_type.split(";")[0].strip().lower() not in content_types:
            errors.append(FieldError(kind, "invalid_file_type", "File content type does not match its extension."))

    if upload.size == 0:
        errors.append(FieldError(kind, "empty_file", "The uploaded file is empty."))
    elif upload.size > max_upload_bytes:
        limit_mb = max_upload_bytes // (1024 * 1024)
        errors.append(FieldError(kind, "file_too_large", f"File exceeds the {limit_mb} MB limit."))

    return errors


def validate_upload(upload: Upload, kind: str, *, max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> Upload:
    errors = upload_errors(upload, kind, max_upload_bytes=max_upload_bytes)
    if errors:
        raise ValidationError(errors)
    return upload
