"""Shared fixtures: in-memory SQLite database, API client, bearer tokens and a fake gateway."""
import json
import uuid
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from parkbooking.core.config import settings
from parkbooking.core.security import Principal
from parkbooking.db.session import Base, get_db
from parkbooking.main import app
from parkbooking.models.park import Park
from parkbooking.models.pricing import Pricing
from parkbooking.models.time_slot_instance import TimeSlotInstance
from parkbooking.services import cart_service, time_slot_service
from parkbooking.services.chargily_client import ChargilyError, get_payment_gateway

from tests.utils import WEBHOOK_SECRET

engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

OPEN_HOURS = {
    day: {"from": "09:00", "to": "19:00", "closed": False}
    for day in ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
}


class FakeGateway:
    """Stands in for Chargily: records every session request."""

    def __init__(self):
        self.calls = []
        self.fail_with = None

    def create_checkout_session(self, amount_minor: int, currency: str, success_url: str) -> dict:
        self.calls.append({"amount_minor": amount_minor, "currency": currency, "success_url": success_url})
        if self.fail_with:
            raise ChargilyError(self.fail_with)
        n = len(self.calls)
        return {"id": f"chk_test_{n}", "checkout_url": f"https://pay.example/checkout/{n}"}


@pytest.fixture(autouse=True)
def _settings(monkeypatch):
    monkeypatch.setattr(settings, "CHARGILY_API_KEY", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "INVENTORY_COMMIT_POLICY", "on_confirmation")
    monkeypatch.setattr(settings, "CHECKOUT_EXPIRY_MINUTES", 60)
    monkeypatch.setattr(settings, "INSTANCE_HORIZON_DAYS", 14)
    monkeypatch.setattr(settings, "SENDGRID_API_KEY", "")
    yield


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db, gateway):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()



@pytest.fixture
def admin():
    return Principal(id="admin-1", role="admin", email="admin@parks.test")


@pytest.fixture
def alice():
    return Principal(id="user-alice", role="user", email="alice@example.test")


@pytest.fixture
def bob():
    return Principal(id="user-bob", role="user", email="bob@example.test")


@pytest.fixture
def park(db):
    p = Park(id=str(uuid.uuid4()), name="Forest Adventure", location="Algiers",
             working_hours_json=json.dumps(OPEN_HOURS), max_booking_days=30)
    db.add(p)
    db.commit()
    return p


@pytest.fixture
def pricing(db, park):
    pr = Pricing(id=str(uuid.uuid4()), park_id=park.id, name="Adult", price=2000, additional_charge=500)
    db.add(pr)
    db.commit()
    return pr


@pytest.fixture
def template(db, park, pricing, admin):
    """Every day 10:00-12:00 for ten days from today, five tickets each."""
    today = date.today()
    return time_slot_service.create_template(db, park.id, {
        "pricing_ids": [pricing.id],
        "days_of_week": [0, 1, 2, 3, 4, 5, 6],
        "start_time": "10:00",
        "end_time": "12:00",
        "ticket_limit": 5,
        "price_adjustment": 0,
        "valid_from": today,
        "valid_until": today + timedelta(days=10),
    }, admin)


@pytest.fixture
def instance(db, template) -> TimeSlotInstance:
    tomorrow = date.today() + timedelta(days=1)
    return db.query(TimeSlotInstance).filter(
        TimeSlotInstance.template_id == template.id, TimeSlotInstance.date == tomorrow
    ).one()


@pytest.fixture
def fill_cart(db, pricing):
    def _fill(principal: Principal, instance: TimeSlotInstance, quantity: int):
        return cart_service.add_to_cart(db, principal.id, pricing.id, instance.id, quantity)
    return _fill
