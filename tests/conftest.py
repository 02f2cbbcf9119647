from decimal import Decimal
from io import BytesIO

import pytest

from commissions import create_app
from commissions.extensions import db
from commissions.models import ROLE_MANAGER, ROLE_SALESPERSON, User

PASSWORD = "password123"
PDF_BYTES = b"%PDF-1.4\n% test document\n"


@pytest.fixture
def app(tmp_path):
    # File database: separate sessions (concurrency tests) must see the same data
    app = create_app(
        "config.TestingConfig",
        {
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
            "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        },
    )
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """Application context for tests that talk to the service/repository directly."""
    with app.app_context():
        yield
        db.session.remove()


def _make_user(email, full_name, role, rate="0.03", **extra):
    user = User(
        email=email,
        full_name=full_name,
        role=role,
        commission_rate=Decimal(rate),
        is_active=extra.pop("is_active", True),
        is_approved=extra.pop("is_approved", True),
        **extra,
    )
    user.set_password(PASSWORD)
    db.session.add(user)
    return user


@pytest.fixture
def users(app):
    """Ids of one manager and two salespeople."""
    with app.app_context():
        manager = _make_user("manager@example.com", "Mona Manager", ROLE_MANAGER)
        alice = _make_user("alice@example.com", "Alice Seller", ROLE_SALESPERSON, "0.03")
        bob = _make_user("bob@example.com", "Bob Seller", ROLE_SALESPERSON, "0.05")
        db.session.commit()
        return {"manager": manager.id, "alice": alice.id, "bob": bob.id}


@pytest.fixture
def client_for(app, users):
    """Logged-in test client for the given email."""

    def _client(email, password=PASSWORD):
        client = app.test_client()
        response = client.post("/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.get_json()
        return client

    return _client


@pytest.fixture
def submission_form():
    """Raw create/edit fields as a client would send them."""

    def _form(**overrides):
        form = {
            "document_type": "invoice",
            "client_name": "ACME Corp",
            "purchase_order_number": "PO-2024-0001",
            "invoice_number": "INV-0001",
            "document_date": "2024-01-01",
            "client_payment_date": "2024-01-31",
            "amount_without_tax": "10000",
            "client_requires_invoice": "true",
        }
        form.update(overrides)
        return form

    return _form


@pytest.fixture
def pdf():
    """Factory of a fresh (stream, filename) tuple for multipart uploads."""

    def _pdf(name="invoice.pdf", data=PDF_BYTES):
        return BytesIO(data), name

    return _pdf
