"""
Pytest fixtures for the EcoBin test suite.

Every test gets a fresh app on in-memory SQLite with the tables created inside
a single application context, so service calls and test-client requests share
one session. Fixture rows are committed because the error handler rolls the
session back on every WorkflowError.
"""

from __future__ import annotations

from datetime import datetime

import pytest
from flask import g
from flask_login import FlaskLoginClient

from ecobin import create_app
from ecobin.extensions import db
from ecobin.models import BinRequest, Notification, Payment, SmartBin, User
from ecobin.settings import TestingConfig
from ecobin.utils.passwords import hash_password

PASSWORD = "Secret123!"


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    app.test_client_class = FlaskLoginClient

    # The shared app context below keeps ``g`` alive across test-client
    # requests; drop Flask-Login's per-request user cache so each request
    # resolves its own session user, as it would in a fresh context.
    @app.before_request
    def _reset_login_cache():
        g.pop("_login_user", None)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(role: str = "resident", *, name: str | None = None, is_active: bool = True,
              address: str | None = None) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            name=name or f"{role.title()} {n}",
            email=f"{role}{n}@ecobin.test",
            role=role,
            is_active=is_active,
            address=address,
            password_hash=hash_password(PASSWORD),
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_bin(app):
    counter = {"n": 0}

    def _make(bin_type: str = "general", *, status: str = "available", owner: User | None = None,
              lat: float = 0.0, lng: float = 0.0, level: float = 0, address: str | None = None) -> SmartBin:
        counter["n"] += 1
        smart_bin = SmartBin(
            bin_code=f"BINTEST{counter['n']:04d}",
            bin_type=bin_type,
            capacity=120,
            current_level=level,
            latitude=lat,
            longitude=lng,
            address=address or "Depot",
            status=status,
            assigned_to_id=owner.id if owner is not None else None,
        )
        db.session.add(smart_bin)
        db.session.commit()
        return smart_bin

    return _make


@pytest.fixture
def make_bin_request(app):
    counter = {"n": 0}

    def _make(resident: User, bin_type: str = "general", *, status: str = "pending",
              coordinates: dict | None = None, address: str | None = "12 Main St",
              assigned_bin: SmartBin | None = None, preferred: datetime | None = None) -> BinRequest:
        counter["n"] += 1
        bin_request = BinRequest(
            request_code=f"BRTEST{counter['n']:04d}",
            resident_id=resident.id,
            requested_bin_type=bin_type,
            address=address,
            coordinates=coordinates,
            status=status,
            assigned_bin_id=assigned_bin.id if assigned_bin is not None else None,
            preferred_delivery_date=preferred,
        )
        db.session.add(bin_request)
        db.session.commit()
        return bin_request

    return _make


@pytest.fixture
def make_payment(app):
    def _make(user: User, *, payment_type: str = "installation-fee", status: str = "completed") -> Payment:
        payment = Payment(
            transaction_id=f"PAYTEST{user.id:04d}{payment_type[:3].upper()}{status[:3].upper()}",
            user_id=user.id,
            amount=25.0,
            payment_type=payment_type,
            payment_method="cash",
            status=status,
        )
        db.session.add(payment)
        db.session.commit()
        return payment

    return _make


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


@pytest.fixture
def resident(make_user):
    return make_user("resident", name="Rani Resident", address="12 Main St")


@pytest.fixture
def operator(make_user):
    return make_user("operator", name="Omar Operator")


@pytest.fixture
def admin(make_user):
    return make_user("admin", name="Ada Admin")


@pytest.fixture
def collector(make_user):
    return make_user("collector", name="Cole Collector")


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@pytest.fixture
def notifications_for(app):
    def _query(user: User, type_: str | None = None) -> list[Notification]:
        q = Notification.query.filter(Notification.recipient_id == user.id)
        if type_:
            q = q.filter(Notification.type == type_)
        return q.order_by(Notification.id.asc()).all()

    return _query
