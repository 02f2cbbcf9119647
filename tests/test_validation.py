from datetime import date
from decimal import Decimal

import pytest

from commissions.errors import InvalidAmount, InvalidDateOrder, ValidationError
from commissions.validation import (
    Upload,
    parse_bool,
    parse_date,
    upload_errors,
    validate_submission_data,
    validate_upload,
)

PDF = Upload("invoice.pdf", b"%PDF-1.4", "application/pdf")


def test_valid_input_is_typed(submission_form):
    data = validate_submission_data(submission_form(), document=PDF)

    assert data.document_type == "invoice"
    assert data.client_name == "ACME Corp"
    assert data.document_date == date(2024, 1, 1)
    assert data.client_payment_date == date(2024, 1, 31)
    assert data.amount_without_tax == Decimal("10000")
    assert data.amount_with_tax is None
    assert data.client_requires_invoice is True
    assert data.is_marketplace_sale is False
    assert data.fee_sale is None


def test_document_type_defaults_to_invoice(submission_form):
    data = validate_submission_data(submission_form(document_type=""), require_document=False)
    assert data.document_type == "invoice"


def test_every_violation_is_reported_at_once():
    with pytest.raises(ValidationError) as exc:
        validate_submission_data({"document_type": "receipt"})

    error = exc.value
    assert type(error) is ValidationError
    assert {
        "document_type",
        "client_name",
        "purchase_order_number",
        "document_date",
        "client_payment_date",
        "amount_without_tax",
        "document",
    } <= set(error.fields)
    assert error.to_dict()["error"] == "validation_error"


def test_invoice_number_required_only_when_invoiced(submission_form):
    with pytest.raises(ValidationError) as exc:
        validate_submission_data(submission_form(invoice_number=""), require_document=False)
    assert exc.value.fields == ["invoice_number"]

    data = validate_submission_data(
        submission_form(invoice_number="", client_requires_invoice="false"),
        require_document=False,
    )
    assert data.invoice_number is None


def test_date_order_only_raises_invalid_date_order(submission_form):
    with pytest.raises(InvalidDateOrder) as exc:
        validate_submission_data(
            submission_form(document_date="2024-02-01", client_payment_date="2024-01-01"),
            require_document=False,
        )
    assert exc.value.fields == ["client_payment_date"]


def test_bad_date_format_is_reported(submission_form):
    with pytest.raises(ValidationError) as exc:
        validate_submission_data(submission_form(document_date="01/02/2024"), require_document=False)
    assert exc.value.errors[0].code == "invalid"


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount_without_tax": "abc"},
        {"amount_without_tax": "-5"},
        {"amount_without_tax": "", "amount_with_tax": ""},
        {"amount_without_tax": "10000", "amount_with_tax": "12000"},
    ],
)
def test_amount_problems_raise_invalid_amount(submission_form, overrides):
    with pytest.raises(InvalidAmount):
        validate_submission_data(submission_form(**overrides), require_document=False)


def test_marketplace_fees_default_to_zero(submission_form):
    data = validate_submission_data(submission_form(is_marketplace_sale="on"), require_document=False)
    assert data.fee_sale == Decimal("0")
    assert data.fee_shipping == Decimal("0")


def test_fees_are_ignored_for_regular_sales(submission_form):
    data = validate_submission_data(submission_form(fee_sale="10"), require_document=False)
    assert data.fee_sale is None


def test_negative_marketplace_fee_is_invalid_amount(submission_form):
    with pytest.raises(InvalidAmount) as exc:
        validate_submission_data(
            submission_form(is_marketplace_sale="true", fee_shipping="-1"),
            require_document=False,
        )
    assert exc.value.fields == ["fee_shipping"]


def test_fees_exceeding_the_sale_join_the_batch(submission_form):
    with pytest.raises(ValidationError) as exc:
        validate_submission_data(
            submission_form(client_name="", is_marketplace_sale="true", fee_sale="12000"),
            require_document=False,
        )

    assert set(exc.value.fields) == {"client_name", "fee_sale"}


def test_thousands_separators_are_not_decimal_points(submission_form):
    data = validate_submission_data(
        submission_form(amount_without_tax="", amount_with_tax="11,600"),
        require_document=False,
    )
    assert data.amount_with_tax == Decimal("11600")

    with pytest.raises(InvalidAmount) as exc:
        validate_submission_data(submission_form(amount_without_tax="116,00"), require_document=False)
    assert exc.value.fields == ["amount_without_tax"]


# ---------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------
def test_document_must_be_pdf():
    errors = upload_errors(Upload("scan.png", b"x", "image/png"), "document")
    assert [e.code for e in errors] == ["invalid_file_type"]


def test_receipt_accepts_images():
    assert upload_errors(Upload("receipt.JPG", b"x", "image/jpeg"), "receipt") == []
    assert upload_errors(Upload("receipt.png", b"x", None), "receipt") == []


def test_content_type_must_match_extension():
    errors = upload_errors(Upload("invoice.pdf", b"x", "image/png"), "document")
    assert [e.code for e in errors] == ["invalid_file_type"]


def test_octet_stream_content_type_is_accepted():
    assert upload_errors(Upload("invoice.pdf", b"x", "application/octet-stream"), "document") == []


def test_empty_and_oversized_files():
    assert [e.code for e in upload_errors(Upload("a.pdf", b""), "document")] == ["empty_file"]

    errors = upload_errors(Upload("a.pdf", b"x" * 11), "document", max_upload_bytes=10)
    assert [e.code for e in errors] == ["file_too_large"]


def test_validate_upload_raises():
    with pytest.raises(ValidationError) as exc:
        validate_upload(Upload("tool.exe", b"MZ"), "receipt")
    assert exc.value.fields == ["receipt"]


def test_document_errors_join_the_batch(submission_form):
    with pytest.raises(ValidationError) as exc:
        validate_submission_data(submission_form(client_name=""), document=Upload("a.txt", b"x"))
    assert set(exc.value.fields) == {"client_name", "document"}


# ---------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------
@pytest.mark.parametrize("value", ["true", "1", "on", "YES", True])
def test_parse_bool_true(value):
    assert parse_bool(value) is True


@pytest.mark.parametrize("value", ["false", "0", "", None, False])
def test_parse_bool_false(value):
    assert parse_bool(value) is False


def test_parse_date():
    assert parse_date("2024-03-05") == date(2024, 3, 5)
    assert parse_date("2024-03-05T10:00:00") == date(2024, 3, 5)
    assert parse_date("") is None
    with pytest.raises(ValueError):
        parse_date("yesterday")
