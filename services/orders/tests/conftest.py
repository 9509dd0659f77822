import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.auth_local import create_access_token
from app.domain.models import Base
from app.infrastructure.db import engine, SessionLocal
from app.realtime.notifier import Connection, RealtimeNotifier


class RecordingConnection(Connection):
    """Connection that keeps every delivered event in memory."""

    def __init__(self, connection_id=None):
        super().__init__(connection_id)
        self.events = []

    def deliver(self, event, data):
        self.events.append((event, data))

    def of(self, event):
        return [data for name, data in self.events if name == event]


def order_payload(**overrides):
    payload = {
        "user_id": 1,
        "items": [{"product_id": "P1", "name": "Milk", "quantity": 2, "price": 50}],
        "delivery_address": {
            "name": "Asha",
            "street": "12 MG Road",
            "city": "Pune",
            "state": "MH",
            "postal_code": "411001",
            "phone": "9999999999",
        },
        "total_amount": 100,
    }
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RealtimeNotifier()


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_token():
    return create_access_token("admin@example.com", role="admin")


@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def customer_headers():
    return {"Authorization": f"Bearer {create_access_token('customer@example.com', role='customer')}"}


@pytest.fixture
def make_payload():
    return order_payload


@pytest.fixture
def make_connection():
    return RecordingConnection


def rider_token(rider_id=1, email="rider@example.com"):
    return create_access_token(email, role="rider", rider_id=rider_id)


@pytest.fixture
def rider_headers():
    return {"Authorization": f"Bearer {rider_token()}"}


@pytest.fixture
def make_rider_headers():
    def _headers(rider_id, email="rider@example.com"):
        return {"Authorization": f"Bearer {rider_token(rider_id, email)}"}
    return _headers
