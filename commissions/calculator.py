"""
commissions/calculator.py

Commission computation engine.

Turns the money and timing facts of a sale into the payable commission:

1) Amounts: the tax-inclusive and tax-exclusive amounts are mutually derived
   at the fixed 16% rate (rounded to the cent, half-up).
2) Base selection:
   - regular sale: tax-exclusive amount if the client requires an invoice,
     tax-inclusive amount otherwise
   - marketplace sale: fees are subtracted from the tax-inclusive amount;
     if the client requires an invoice the tax is then backed out (x 0.84)
3) Time decay from the days between document date and client payment:
   0-45 -> 100%, 46-60 -> 70%, 61-90 -> 50%, 91+ -> 0%
4) base_commission = base x rate ; commission = base_commission x factor

IMPORTANT:
- Pure functions only (no I/O, no DB, no request context).
- Intermediate values keep full Decimal precision; only output fields are
  rounded to the cent.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from .errors import FieldError, InvalidAmount, InvalidDateOrder, ValidationError

TAX_RATE = Decimal("0.16")
TAX_MULTIPLIER = Decimal("1") + TAX_RATE
CENT = Decimal("0.01")
_GROUPED_NUMBER = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")

# (last day of band inclusive, factor)
TIME_FACTOR_BANDS: Tuple[Tuple[int, Decimal], ...] = (
    (45, Decimal("1.00")),
    (60, Decimal("0.70")),
    (90, Decimal("0.50")),
)
LATE_PAYMENT_FACTOR = Decimal("0.00")
DEFAULT_TIME_FACTOR = Decimal("1.00")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Convert user/DB input to Decimal.

    - None and blank strings => None (not entered)
    - Decimal/int/float/str => Decimal(str(value))
    - commas are thousands separators only ("11,600.50"); any other comma is rejected

    Raises decimal.InvalidOperation for non-numeric input.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation(f"not a number: {value!r}")
    raw = str(value).strip()
    if raw == "":
        return None
    if "," in raw:
        if not _GROUPED_NUMBER.match(raw):
            raise InvalidOperation(f"ambiguous separator: {value!r}")
        raw = raw.replace(",", "")
    result = Decimal(raw)
    if not result.is_finite():
        raise InvalidOperation(f"not a finite number: {value!r}")
    return result


def money(x: Decimal) -> Decimal:
    return x.quantize(CENT, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class CommissionInput:
    """Declared sale data plus the salesperson's rate snapshot."""

    amount_with_tax: Optional[Decimal]
    amount_without_tax: Optional[Decimal]
    client_requires_invoice: bool
    document_date: Optional[date]
    client_payment_date: Optional[date]
    commission_rate: Decimal
    is_marketplace_sale: bool = False
    fee_sale: Optional[Decimal] = None
    fee_shipping: Optional[Decimal] = None


@dataclass(frozen=True)
class BaseSelection:
    base: Decimal
    total_fees: Optional[Decimal] = None
    net_after_fees: Optional[Decimal] = None


@dataclass(frozen=True)
class CommissionResult:
    amount_with_tax: Decimal
    amount_without_tax: Decimal
    payment_days: int
    commission_rate: Decimal
    commission_time_factor: Decimal
    commission_base_amount: Decimal
    base_commission_amount: Decimal
    commission_amount: Decimal
    marketplace_total_fees: Optional[Decimal] = None
    net_amount_after_fees: Optional[Decimal] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------
def derive_amounts(
    amount_with_tax: Optional[Decimal],
    amount_without_tax: Optional[Decimal],
) -> Tuple[Decimal, Decimal]:
    """
    Return (amount_with_tax, amount_without_tax), deriving the missing one.

    When both are entered they must agree within one cent at the 16% rate.
    """
    errors: List[FieldError] = []

    if amount_with_tax is None and amount_without_tax is None:
        raise InvalidAmount(
            FieldError("amount_without_tax", InvalidAmount.code, "Enter the amount with or without tax.")
        )

    for field, value in (("amount_with_tax", amount_with_tax), ("amount_without_tax", amount_without_tax)):
        if value is not None and value < 0:
            errors.append(FieldError(field, InvalidAmount.code, "Amount cannot be negative."))
    if errors:
        raise InvalidAmount(errors)

    if amount_with_tax is None:
        amount_with_tax = money(amount_without_tax * TAX_MULTIPLIER)
    elif amount_without_tax is None:
        amount_without_tax = money(amount_with_tax / TAX_MULTIPLIER)
    elif abs(amount_without_tax * TAX_MULTIPLIER - amount_with_tax) > CENT:
        raise InvalidAmount(
            FieldError(
                "amount_with_tax",
                InvalidAmount.code,
                "Amount with tax must equal the amount without tax plus 16%.",
            )
        )

    if amount_with_tax == 0 and amount_without_tax == 0:
        raise InvalidAmount(FieldError("amount_without_tax", InvalidAmount.code, "Amount must be greater than zero."))

    return money(amount_with_tax), money(amount_without_tax)


def select_base(
    amount_with_tax: Decimal,
    amount_without_tax: Decimal,
    client_requires_invoice: bool,
    is_marketplace_sale: bool = False,
    fee_sale: Optional[Decimal] = None,
    fee_shipping: Optional[Decimal] = None,
) -> BaseSelection:
    """Pick the amount the commission rate applies to (unrounded)."""
    if not is_marketplace_sale:
        base = amount_without_tax if client_requires_invoice else amount_with_tax
        return BaseSelection(base=base)

    fee_sale = fee_sale if fee_sale is not None else Decimal("0")
    fee_shipping = fee_shipping if fee_shipping is not None else Decimal("0")

    errors = [
        FieldError(field, InvalidAmount.code, "Fee cannot be negative.")
        for field, value in (("fee_sale", fee_sale), ("fee_shipping", fee_shipping))
        if value < 0
    ]
    if errors:
        raise InvalidAmount(errors)

    total_fees = fee_sale + fee_shipping
    net_after_fees = amount_with_tax - total_fees
    if net_after_fees < 0:
        raise InvalidAmount(
            FieldError("fee_sale", InvalidAmount.code, "Marketplace fees exceed the amount with tax.")
        )

    if client_requires_invoice:
        base = net_after_fees - (net_after_fees * TAX_RATE)
    else:
        base = net_after_fees

    return BaseSelection(base=base, total_fees=total_fees, net_after_fees=net_after_fees)


# ---------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------
def payment_days(document_date: Optional[date], client_payment_date: Optional[date]) -> Optional[int]:
    """
    Whole days from document date to client payment (floor).

    Returns None when either date is missing.
    """
    if document_date is None or client_payment_date is None:
        return None

    # datetime is a date subclass; only subtract like with like
    if isinstance(document_date, datetime) != isinstance(client_payment_date, datetime):
        if isinstance(document_date, datetime):
            document_date = document_date.date()
        if isinstance(client_payment_date, datetime):
            client_payment_date = client_payment_date.date()

    days = (client_payment_date - document_date).days
    if days < 0:
        raise InvalidDateOrder(
            FieldError(
                "client_payment_date",
                InvalidDateOrder.code,
                "Client payment date cannot be earlier than the document date.",
            )
        )
    return days


def time_factor(days: Optional[int]) -> Decimal:
    """Step function of payment days. Unknown days default to 100%."""
    if days is None:
        return DEFAULT_TIME_FACTOR
    if days < 0:
        raise InvalidDateOrder(
            FieldError("client_payment_date", InvalidDateOrder.code, "Payment days cannot be negative.")
        )
    for last_day, factor in TIME_FACTOR_BANDS:
        if days <= last_day:
            return factor
    return LATE_PAYMENT_FACTOR


# ---------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------
def compute_commission(data: CommissionInput) -> CommissionResult:
    """
    Compute every derived commission field of a submission.

    Raises InvalidAmount, InvalidDateOrder or ValidationError.
    A late payment (91+ days) is not an error: it yields 0.00.
    """
    rate = data.commission_rate
    if rate is None or rate < 0 or rate > 1:
        raise ValidationError(
            FieldError("commission_rate", "out_of_range", "Commission rate must be between 0 and 1.")
        )

    missing = [
        FieldError(field, "required", "Date is required.")
        for field, value in (
            ("document_date", data.document_date),
            ("client_payment_date", data.client_payment_date),
        )
        if value is None
    ]
    if missing:
        raise ValidationError(missing)

    with_tax, without_tax = derive_amounts(data.amount_with_tax, data.amount_without_tax)
    selection = select_base(
        with_tax,
        without_tax,
        data.client_requires_invoice,
        data.is_marketplace_sale,
        data.fee_sale,
        data.fee_shipping,
    )

    days = payment_days(data.document_date, data.client_payment_date)
    factor = time_factor(days)

    raw_commission = selection.base * rate
    base_commission = money(raw_commission)
    commission = money(raw_commission * factor)

    return CommissionResult(
        amount_with_tax=with_tax,
        amount_without_tax=without_tax,
        payment_days=days,
        commission_rate=rate,
        commission_time_factor=factor,
        commission_base_amount=money(selection.base),
        base_commission_amount=base_commission,
        commission_amount=commission,
        marketplace_total_fees=money(selection.total_fees) if data.is_marketplace_sale else None,
        net_amount_after_fees=money(selection.net_after_fees) if data.is_marketplace_sale else None,
    )
