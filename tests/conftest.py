import asyncio
import os

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-0123456789"
for key in ("SMTP_HOST", "SMTP_USER", "SMTP_PASS", "SMTP_FROM", "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN",
            "TWILIO_WHATSAPP_FROM", "TWILIO_MESSAGING_SERVICE_SID", "MEDIA_BUCKET", "MEDIA_ACCESS_KEY_ID",
            "MEDIA_SECRET_ACCESS_KEY"):
    os.environ.pop(key, None)

from dataclasses import dataclass
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from app import models
from app.auth import hash_password, token_for_user
from app.database import SessionLocal, engine
from app.main import app
from app.models import Base, UserRole
from app.services.notifications import get_email_service, get_whatsapp_service
from app.services.realtime import RealtimeHub, get_hub

PASSWORD = "secret123"
_password_hash = None


def password_hash() -> str:
    global _password_hash
    if _password_hash is None:
        _password_hash = hash_password(PASSWORD)
    return _password_hash


class RecordingEmail:
    """Stands in for EmailService; every send_* call is recorded as (method, args)."""

    def __init__(self, enabled=True):
        self.enabled = enabled
        self.sent = []

    def is_enabled(self):
        return self.enabled

    def __getattr__(self, name):
        if not name.startswith("send_"):
            raise AttributeError(name)

        async def _record(*args):
            self.sent.append((name, args))
            return True
        return _record

    def calls(self, method):
        return [args for name, args in self.sent if name == method]


class RecordingWhatsApp(RecordingEmail):
    def __getattr__(self, name):
        if not name.startswith("send_"):
            raise AttributeError(name)

        def _record(*args):
            self.sent.append((name, args))
            return "SM123"
        return _record


class FakeConnection:
    def __init__(self, user_id, role, fail=False):
        self.user_id = user_id
        self.role = role
        self.fail = fail
        self.received = []

    async def send_event(self, event, data):
        if self.fail:
            raise ConnectionError("socket gone")
        self.received.append((event, data))

    def events(self, name):
        return [data for event, data in self.received if event == name]


@dataclass
class Account:
    id: str
    email: str
    name: str
    role: UserRole
    token: str

    @property
    def headers(self):
        return {"Authorization": f"Bearer {self.token}"}


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def email_outbox():
    return RecordingEmail()


@pytest.fixture
def whatsapp_outbox():
    return RecordingWhatsApp()


@pytest.fixture
def hub():
    return RealtimeHub()


@pytest.fixture
def client(email_outbox, whatsapp_outbox, hub):
    app.dependency_overrides[get_email_service] = lambda: email_outbox
    app.dependency_overrides[get_whatsapp_service] = lambda: whatsapp_outbox
    app.dependency_overrides[get_hub] = lambda: hub
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user():
    counter = {"n": 0}

    def _make(role=UserRole.CUSTOMER, approved=True, name=None, email=None, phone=None) -> Account:
        counter["n"] += 1
        n = counter["n"]
        session = SessionLocal()
        try:
            user = models.User(
                email=email or f"{role.value}{n}@acme.io",
                hashed_password=password_hash(),
                name=name or f"{role.value.title()} {n}",
                phone=phone,
                role=role,
                approved=approved,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            return Account(user.id, user.email, user.name, user.role, token_for_user(user))
        finally:
            session.close()

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, name="Ada Admin")


@pytest.fixture
def customer(make_user):
    return make_user(UserRole.CUSTOMER, name="Carl Customer", phone="+15550001111")


@pytest.fixture
def staff(make_user):
    return make_user(UserRole.STAFF, name="Sam Staff")


@pytest.fixture
def staff2(make_user):
    return make_user(UserRole.STAFF, name="Tina Tech")


@pytest.fixture
def service_id():
    session = SessionLocal()
    try:
        service = models.Service(
            name="Network Setup",
            description="Office network configuration",
            category=models.ServiceCategory.NETWORK,
        )
        session.add(service)
        session.commit()
        return service.id
    finally:
        session.close()


@pytest.fixture
def booking(client, customer, service_id):
    """A fresh pending booking owned by `customer`: {"booking": {...}, "chat": {...}}."""
    resp = client.post("/bookings", json={"service_id": service_id, "notes": "Router keeps dropping"},
                       headers=customer.headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


def subscribe(hub, topic, connection):
    asyncio.run(hub.subscribe(topic, connection))


def fetch(model, ident) -> Optional[object]:
    """Load a row in a short-lived session so the shared test connection is released."""
    session = SessionLocal()
    try:
        obj = session.get(model, ident)
        if obj is not None:
            session.expunge(obj)
        return obj
    finally:
        session.close()


def count(model, *criteria) -> int:
    session = SessionLocal()
    try:
        return session.query(model).filter(*criteria).count()
    finally:
        session.close()
