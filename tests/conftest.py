import base64
import json
from datetime import date

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from carwash.auth import get_current_user
from carwash.config import ESEWA_SECRET_KEY
from carwash.database import Base, build_engine, enable_sqlite_savepoints, get_db
from carwash.domain.notifications.relay import resolve_channel_aliases
from carwash.domain.payments.esewa import get_status_client
from carwash.errors import NotificationDeliveryFailed
from carwash.main import app
from carwash.models import Role, Service, User, Vehicle
from carwash.realtime import get_realtime_publisher
from carwash.webhook_security import sign_fields

BOOKING_DAY = date(2099, 1, 5)


class RecordingPublisher:
    """Stands in for Redis; records every event and can fail chosen channels"""

    def __init__(self):
        self.events = []
        self.failing_channels = set()

    def trigger(self, channel, event, data):
        if channel in self.failing_channels:
            raise NotificationDeliveryFailed(channel, ConnectionError("channel down"))
        self.events.append((channel, event, data))
        return 1

    def on(self, channel):
        return [(event, data) for ch, event, data in self.events if ch == channel]

    def channels(self):
        return [ch for ch, _event, _data in self.events]


class StubStatusClient:
    def __init__(self, response=None):
        self.response = response or {"status": "PENDING"}
        self.calls = []

    def check_status(self, transaction_uuid, total_amount):
        self.calls.append((transaction_uuid, total_amount))
        return dict(self.response, transaction_uuid=transaction_uuid)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def status_client():
    return StubStatusClient()


def make_user(db, firebase_uid, email, role=Role.USER, full_name=None):
    user = User(firebase_uid=firebase_uid, email=email, role=role, full_name=full_name)
    db.add(user)
    db.flush()
    user.channel_aliases = resolve_channel_aliases(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def customer(db):
    return make_user(db, "fb-customer", "customer@example.com", full_name="Sita Customer")


@pytest.fixture
def other_customer(db):
    return make_user(db, "fb-other", "other@example.com", full_name="Ram Other")


@pytest.fixture
def admin(db):
    return make_user(db, "fb-admin", "admin@example.com", role=Role.ADMIN, full_name="Admin")


@pytest.fixture
def employee(db):
    return make_user(db, "fb-employee", "staff@example.com", role=Role.EMPLOYEE)


@pytest.fixture
def wash_service(db):
    service = Service(name="Full Wash", description="Exterior and interior", price=1000.0)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


@pytest.fixture
def vehicle(db, customer):
    vehicle = Vehicle(user_id=customer.id, make="Toyota", model="Corolla", plate_number="BA 1 PA 1")
    db.add(vehicle)
    db.commit()
    db.refresh(vehicle)
    return vehicle


@pytest.fixture
def other_vehicle(db, other_customer):
    vehicle = Vehicle(user_id=other_customer.id, make="Honda", model="City")
    db.add(vehicle)
    db.commit()
    db.refresh(vehicle)
    return vehicle


class AuthState:
    def __init__(self):
        self.user = None

    def login(self, user):
        self.user = user


@pytest.fixture
def auth():
    return AuthState()


@pytest.fixture
def client(db, publisher, status_client, auth):
    """TestClient sharing the test's session so requests see the fixtures' rows"""

    def override_get_db():
        yield db

    def override_current_user():
        if auth.user is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        return auth.user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_current_user
    app.dependency_overrides[get_realtime_publisher] = lambda: publisher
    app.dependency_overrides[get_status_client] = lambda: status_client
    yield TestClient(app)
    app.dependency_overrides.clear()


def encode_callback(fields, secret=ESEWA_SECRET_KEY, signed=True):
    """Build the base64 payload the gateway sends back after payment"""
    data = {
        "transaction_code": fields.pop("transaction_code", "000AWEO"),
        "status": fields.pop("status", "COMPLETE"),
        "total_amount": fields.pop("total_amount", "500.0"),
        "transaction_uuid": fields.pop("transaction_uuid"),
        "product_code": fields.pop("product_code", "EPAYTEST"),
        "signed_field_names": (
            "transaction_code,status,total_amount,transaction_uuid,product_code,signed_field_names"
        ),
    }
    data.update(fields)
    if signed:
        data["signature"] = sign_fields(secret, data, data["signed_field_names"].split(","))
    else:
        data["signature"] = "not-a-valid-signature"
    return base64.b64encode(json.dumps(data).encode()).decode()


@pytest.fixture
def callback_payload():
    return encode_callback
