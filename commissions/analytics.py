"""
commissions/analytics.py

Dashboard figures: plain reductions over submission records.

Money totals stay Decimal and are rounded to the cent; rates and averages
are rounded for display only.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .calculator import money as _money
from .models import (
    STATUS_APPROVED,
    STATUS_PAID,
    STATUS_PENDING,
    STATUS_REJECTED,
    STATUS_UNDER_REVIEW,
    STATUSES,
)

# Commission still owed to the salesperson
OUTSTANDING_STATUSES = (STATUS_PENDING, STATUS_UNDER_REVIEW, STATUS_APPROVED)
UNPROCESSED_STATUSES = (STATUS_PENDING, STATUS_UNDER_REVIEW)
APPROVED_STATUSES = (STATUS_APPROVED, STATUS_PAID)

ZERO = Decimal("0.00")


def _ratio(numerator, denominator, scale: int = 100) -> Decimal:
    if not denominator:
        return ZERO
    return _money(Decimal(numerator) * scale / Decimal(denominator))


def _sum(items: Iterable, attr: str = "commission_amount") -> Decimal:
    total = ZERO
    for item in items:
        total += Decimal(str(getattr(item, attr) or 0))
    return total


def _sum_sales(items: Iterable) -> Decimal:
    total = ZERO
    for item in items:
        total += item.sale_value
    return total


def _month_starts(today: date, months: int) -> List[date]:
    starts = []
    year, month = today.year, today.month
    for _ in range(months):
        starts.append(date(year, month, 1))
        month -= 1
        if month == 0:
            month = 12
            year -= 1
    return list(reversed(starts))


def _salesperson_stats(submissions: List) -> List[Dict]:
    stats: "OrderedDict[int, Dict]" = OrderedDict()

    for s in submissions:
        stat = stats.setdefault(
            s.salesperson_id,
            {
                "salesperson_id": s.salesperson_id,
                "name": s.salesperson.full_name if getattr(s, "salesperson", None) else None,
                "total_commissions": ZERO,
                "paid_commissions": ZERO,
                "pending_commissions": ZERO,
                "total_sales": ZERO,
                "total_submissions": 0,
                "approved_submissions": 0,
                "rejected_submissions": 0,
                "_days": 0,
            },
        )
        amount = Decimal(str(s.commission_amount or 0))
        stat["total_commissions"] += amount
        stat["total_sales"] += s.sale_value
        stat["total_submissions"] += 1
        stat["_days"] += s.payment_days or 0

        if s.status == STATUS_PAID:
            stat["paid_commissions"] += amount
        elif s.status in OUTSTANDING_STATUSES:
            stat["pending_commissions"] += amount

        if s.status in APPROVED_STATUSES:
            stat["approved_submissions"] += 1
        elif s.status == STATUS_REJECTED:
            stat["rejected_submissions"] += 1

    result = []
    for stat in stats.values():
        days = stat.pop("_days")
        decided = stat["approved_submissions"] + stat["rejected_submissions"]
        stat["avg_payment_days"] = _ratio(days, stat["total_submissions"], scale=1)
        stat["approval_rate"] = _ratio(stat["approved_submissions"], decided)
        for key in ("total_commissions", "paid_commissions", "pending_commissions", "total_sales"):
            stat[key] = _money(stat[key])
        result.append(stat)

    result.sort(key=lambda st: st["total_commissions"], reverse=True)
    return result


def summarize(submissions: Iterable, *, today: Optional[date] = None, months: int = 6) -> Dict:
    """
    Aggregate a list of submissions for the dashboards.

    Monthly buckets cover the last `months` calendar months up to `today`
    and group submissions by created_at.
    """
    submissions = list(submissions)
    today = today or date.today()

    by_status = {status: [s for s in submissions if s.status == status] for status in STATUSES}
    total = len(submissions)
    processed = total - sum(len(by_status[s]) for s in UNPROCESSED_STATUSES)
    approved_count = sum(len(by_status[s]) for s in APPROVED_STATUSES)

    outstanding = [s for s in submissions if s.status in OUTSTANDING_STATUSES]
    total_sales = _sum_sales(submissions)

    monthly = []
    for start in _month_starts(today, months):
        bucket = [
            s for s in submissions
            if s.created_at is not None
            and s.created_at.year == start.year
            and s.created_at.month == start.month
        ]
        monthly.append(
            {
                "month": start.strftime("%Y-%m"),
                "submissions": len(bucket),
                "commissions": _money(_sum(bucket)),
                "sales": _money(_sum_sales(bucket)),
                "paid": _money(_sum(s for s in bucket if s.status == STATUS_PAID)),
                "pending": _money(_sum(s for s in bucket if s.status in OUTSTANDING_STATUSES)),
            }
        )

    return {
        "total_submissions": total,
        "status_counts": {status: len(items) for status, items in by_status.items()},
        "total_sales_value": _money(total_sales),
        "total_commissions_earned": _money(_sum(submissions)),
        "total_commissions_paid": _money(_sum(by_status[STATUS_PAID])),
        "total_commissions_pending": _money(_sum(outstanding)),
        "total_commissions_rejected": _money(_sum(by_status[STATUS_REJECTED])),
        "approval_rate": _ratio(approved_count, processed),
        "average_commission_rate": _ratio(_sum(submissions, "commission_rate"), total),
        "average_payment_days": _ratio(sum(s.payment_days or 0 for s in submissions), total, scale=1),
        "average_sale_value": _ratio(total_sales, total, scale=1),
        "average_commission": _ratio(_sum(submissions), total, scale=1),
        "salespeople": _salesperson_stats(submissions),
        "monthly": monthly,
    }
