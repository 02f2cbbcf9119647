from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation

import pytest

from commissions.calculator import (
    CommissionInput,
    compute_commission,
    derive_amounts,
    payment_days,
    select_base,
    time_factor,
    to_decimal,
)
from commissions.errors import InvalidAmount, InvalidDateOrder, ValidationError

D = Decimal
DOC_DATE = date(2024, 1, 1)


def _input(days=30, **overrides):
    values = dict(
        amount_with_tax=None,
        amount_without_tax=D("10000"),
        client_requires_invoice=True,
        document_date=DOC_DATE,
        client_payment_date=DOC_DATE + timedelta(days=days),
        commission_rate=D("0.03"),
    )
    values.update(overrides)
    return CommissionInput(**values)


# ---------------------------------------------------------------------
# Time factor
# ---------------------------------------------------------------------
@pytest.mark.parametrize(
    "days, expected",
    [
        (0, "1.00"),
        (45, "1.00"),
        (46, "0.70"),
        (60, "0.70"),
        (61, "0.50"),
        (90, "0.50"),
        (91, "0.00"),
        (400, "0.00"),
    ],
)
def test_time_factor_bands(days, expected):
    assert time_factor(days) == D(expected)


def test_time_factor_defaults_to_full_without_days():
    assert time_factor(None) == D("1.00")


def test_time_factor_rejects_negative_days():
    with pytest.raises(InvalidDateOrder):
        time_factor(-1)


# ---------------------------------------------------------------------
# Payment days
# ---------------------------------------------------------------------
def test_payment_days_counts_whole_days():
    assert payment_days(date(2024, 1, 1), date(2024, 1, 31)) == 30
    assert payment_days(date(2024, 1, 1), date(2024, 1, 1)) == 0


def test_payment_days_none_when_a_date_is_missing():
    assert payment_days(None, date(2024, 1, 1)) is None
    assert payment_days(date(2024, 1, 1), None) is None


def test_payment_days_mixes_date_and_datetime():
    assert payment_days(datetime(2024, 1, 1, 18, 30), date(2024, 1, 11)) == 10


def test_payment_before_document_is_invalid_date_order():
    with pytest.raises(InvalidDateOrder) as exc:
        payment_days(date(2024, 2, 1), date(2024, 1, 31))
    assert exc.value.fields == ["client_payment_date"]


# ---------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------
def test_derive_amount_with_tax():
    assert derive_amounts(None, D("10000")) == (D("11600.00"), D("10000.00"))


def test_derive_amount_without_tax_rounds_half_up():
    assert derive_amounts(D("100"), None) == (D("100.00"), D("86.21"))


def test_derive_accepts_consistent_pair():
    assert derive_amounts(D("11600"), D("10000")) == (D("11600.00"), D("10000.00"))


@pytest.mark.parametrize(
    "with_tax, without_tax",
    [
        (None, None),
        (None, D("-1")),
        (D("0"), D("0")),
        (D("12000"), D("10000")),
    ],
)
def test_derive_rejects_bad_amounts(with_tax, without_tax):
    with pytest.raises(InvalidAmount):
        derive_amounts(with_tax, without_tax)


# ---------------------------------------------------------------------
# Base selection
# ---------------------------------------------------------------------
def test_regular_sale_base_follows_invoice_flag():
    assert select_base(D("11600"), D("10000"), True).base == D("10000")
    assert select_base(D("11600"), D("10000"), False).base == D("11600")


def test_marketplace_base_subtracts_fees_then_backs_out_tax():
    selection = select_base(D("11600.00"), D("10000.00"), True, True, D("194.40"), D("228.00"))

    assert selection.total_fees == D("422.40")
    assert selection.net_after_fees == D("11177.60")
    assert selection.base.quantize(D("0.01")) == D("9389.18")


def test_marketplace_base_without_invoice_is_net_amount():
    selection = select_base(D("11600.00"), D("10000.00"), False, True, D("194.40"), D("228.00"))
    assert selection.base == D("11177.60")


def test_marketplace_fees_default_to_zero():
    selection = select_base(D("1160.00"), D("1000.00"), False, True)
    assert selection.total_fees == D("0")
    assert selection.base == D("1160.00")


def test_marketplace_fees_larger_than_amount_are_rejected():
    with pytest.raises(InvalidAmount):
        select_base(D("100.00"), D("86.21"), False, True, D("90"), D("20"))


def test_negative_fee_is_rejected():
    with pytest.raises(InvalidAmount) as exc:
        select_base(D("100.00"), D("86.21"), False, True, D("-1"), D("0"))
    assert exc.value.fields == ["fee_sale"]


# ---------------------------------------------------------------------
# Full computation
# ---------------------------------------------------------------------
def test_invoiced_sale_paid_on_time():
    result = compute_commission(_input(days=30))

    assert result.amount_with_tax == D("11600.00")
    assert result.payment_days == 30
    assert result.commission_base_amount == D("10000.00")
    assert result.base_commission_amount == D("300.00")
    assert result.commission_time_factor == D("1.00")
    assert result.commission_amount == D("300.00")
    assert result.marketplace_total_fees is None
    assert result.net_amount_after_fees is None


@pytest.mark.parametrize(
    "days, commission",
    [(45, "300.00"), (46, "210.00"), (60, "210.00"), (61, "150.00"), (90, "150.00"), (91, "0.00")],
)
def test_commission_decays_with_payment_days(days, commission):
    result = compute_commission(_input(days=days))
    assert result.base_commission_amount == D("300.00")
    assert result.commission_amount == D(commission)


def test_marketplace_invoiced_example():
    result = compute_commission(
        _input(
            amount_with_tax=D("11600"),
            amount_without_tax=None,
            is_marketplace_sale=True,
            fee_sale=D("194.40"),
            fee_shipping=D("228"),
        )
    )

    assert result.marketplace_total_fees == D("422.40")
    assert result.net_amount_after_fees == D("11177.60")
    assert result.commission_base_amount == D("9389.18")
    # 9389.184 x 0.03 = 281.67552
    assert result.base_commission_amount == D("281.68")
    assert result.commission_amount == D("281.68")


def test_commission_rounds_only_output_fields():
    result = compute_commission(
        _input(days=50, amount_without_tax=D("999.99"), client_requires_invoice=False, commission_rate=D("0.035"))
    )

    assert result.commission_base_amount == D("1159.99")
    assert result.base_commission_amount == D("40.60")
    assert result.commission_amount == D("28.42")


def test_time_factor_applies_to_unrounded_base_commission():
    result = compute_commission(_input(days=74, amount_without_tax=D("167.50")))

    # 167.50 x 0.03 = 5.025 ; 5.025 x 0.50 = 2.5125
    assert result.base_commission_amount == D("5.03")
    assert result.commission_amount == D("2.51")


def test_rate_must_be_a_fraction():
    with pytest.raises(ValidationError) as exc:
        compute_commission(_input(commission_rate=D("3")))
    assert exc.value.errors[0].code == "out_of_range"


def test_missing_dates_fail_before_computation():
    with pytest.raises(ValidationError) as exc:
        compute_commission(_input(client_payment_date=None))
    assert exc.value.fields == ["client_payment_date"]


def test_payment_before_document_fails_computation():
    with pytest.raises(InvalidDateOrder):
        compute_commission(_input(days=-3))


# ---------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------
def test_to_decimal():
    assert to_decimal(" 11,600 ") == D("11600")
    assert to_decimal("1,234,567.89") == D("1234567.89")
    assert to_decimal(10) == D("10")
    assert to_decimal("") is None
    assert to_decimal(None) is None


@pytest.mark.parametrize("value", ["abc", "NaN", True, "1,5", "11,60", "1,2345"])
def test_to_decimal_rejects_non_numbers(value):
    with pytest.raises(InvalidOperation):
        to_decimal(value)
