"""
commissions/seed.py

Demo data for local development and dashboards.

Rules:
- Safe to run multiple times (idempotent): users are matched by email and
  submissions are only generated when the table is empty.
- Every generated submission goes through the calculator, so stored
  commission fields are always consistent with their inputs.
- Statuses are assigned directly (demo history), not through the lifecycle.
"""

from __future__ import annotations

import logging
import random
from datetime import date, datetime, timedelta
from decimal import Decimal

from .calculator import TAX_MULTIPLIER, compute_commission, money
from .extensions import db
from .lifecycle import commission_input
from .models import (
    ROLE_MANAGER,
    ROLE_SALESPERSON,
    STATUS_APPROVED,
    STATUS_PAID,
    STATUS_REJECTED,
    STATUSES,
    Submission,
    User,
)
from .validation import SubmissionData

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "demo-password"

DEMO_USERS = [
    ("manager@example.com", "Maria Manager", ROLE_MANAGER, "MGR-001", Decimal("0.03")),
    ("ana@example.com", "Ana Sales", ROLE_SALESPERSON, "EMP-101", Decimal("0.03")),
    ("luis@example.com", "Luis Sales", ROLE_SALESPERSON, "EMP-102", Decimal("0.04")),
    ("carla@example.com", "Carla Sales", ROLE_SALESPERSON, "EMP-103", Decimal("0.05")),
]

DEMO_CLIENTS = [
    "ABC Corporation",
    "XYZ Industries",
    "Tech Solutions Ltd",
    "Global Trading Co",
    "Innovation Partners",
]


def _month_start(today: date, offset: int) -> date:
    year, month = today.year, today.month - offset
    while month <= 0:
        month += 12
        year -= 1
    return date(year, month, 1)


def seed_demo_users() -> list:
    users = []
    for email, full_name, role, employee_id, rate in DEMO_USERS:
        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(email=email, full_name=full_name, role=role, employee_id=employee_id, commission_rate=rate)
            user.set_password(DEMO_PASSWORD)
            db.session.add(user)
        users.append(user)
    db.session.flush()
    return users


def seed_demo_submissions(salespeople: list, *, today: date | None = None, seed: int = 42) -> int:
    """Generate six months of submissions. Returns how many were created."""
    if Submission.query.count() > 0:
        return 0

    rng = random.Random(seed)
    today = today or date.today()
    created = 0

    for offset in range(5, -1, -1):
        month = _month_start(today, offset)
        for i in range(rng.randint(5, 15)):
            salesperson = rng.choice(salespeople)
            document_date = month + timedelta(days=rng.randint(0, 27))
            payment_date = document_date + timedelta(days=rng.choice([15, 30, 45, 50, 75, 95]))
            without_tax = Decimal(rng.randint(10000, 60000))
            is_marketplace = rng.random() > 0.8
            invoiced = rng.random() > 0.3

            data = SubmissionData(
                document_type=rng.choice(["invoice", "purchase_order"]),
                client_name=rng.choice(DEMO_CLIENTS),
                purchase_order_number=f"PO-{month.year}-{rng.randint(0, 9999):04d}",
                invoice_number=f"INV-{month:%Y%m}-{i + 1:04d}",
                document_date=document_date,
                client_payment_date=payment_date,
                amount_with_tax=money(without_tax * TAX_MULTIPLIER),
                amount_without_tax=without_tax,
                client_requires_invoice=invoiced,
                is_marketplace_sale=is_marketplace,
                fee_sale=Decimal(rng.randint(100, 900)) if is_marketplace else None,
                fee_shipping=Decimal(rng.randint(50, 300)) if is_marketplace else None,
            )
            result = compute_commission(commission_input(data, salesperson.commission_rate))

            created_at = datetime.combine(document_date, datetime.min.time()) + timedelta(hours=9)
            status = rng.choice(STATUSES)
            submission = Submission(
                salesperson_id=salesperson.id,
                status=status,
                document_path=None,
                created_at=created_at,
                updated_at=created_at,
            )
            submission.apply_data(data)
            submission.apply_commission(result)

            if status in (STATUS_APPROVED, STATUS_REJECTED, STATUS_PAID):
                submission.reviewed_at = created_at + timedelta(days=2)
            if status == STATUS_REJECTED:
                submission.rejection_reason = "Document does not match the purchase order."
            if status == STATUS_PAID:
                submission.paid_at = created_at + timedelta(days=35)
                submission.notes = "Method: Transfer\nReference: DEMO-{0:04d}\nPayment date: {1}".format(
                    i + 1, (created_at + timedelta(days=35)).date().isoformat()
                )

            db.session.add(submission)
            created += 1

    return created


def seed_demo_data(*, today: date | None = None) -> int:
    """Seed demo users and submissions, then commit."""
    users = seed_demo_users()
    salespeople = [u for u in users if u.role == ROLE_SALESPERSON]
    created = seed_demo_submissions(salespeople, today=today)
    db.session.commit()

    logger.info("demo data seeded: %d users, %d submissions", len(users), created)
    return created
