"""Shared fixtures: in-memory database, API client and signed-in users."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MAIL_SUPPRESS_SEND"] = "1"
os.environ["SMS_API_URL"] = ""
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["TELEGRAM_ADMIN_CHAT_IDS"] = ""
os.environ["SLOTS_FAIL_OPEN"] = "1"
os.environ["ONLINE_REQUESTS_PROVIDER_SCOPED"] = "0"

from datetime import date, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from clinic import models  # noqa: E402
from clinic.database import enable_sqlite_fk, get_db  # noqa: E402
from clinic.main import app  # noqa: E402
from clinic.security import create_access_token, get_password_hash  # noqa: E402

HEALTHY = {f"q{i}": "no" for i in range(1, 11)}

# one hash for every fixture user keeps bcrypt out of the hot path
PASSWORD = "secret-pass-1"
PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture
def engine():
    """Create a fresh in-memory database for one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", enable_sqlite_fk)
    models.Base.metadata.create_all(bind=engine)
    yield engine
    models.Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    """Session for seeding and inspecting data."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """Create test client bound to the in-memory database."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, email, role=models.UserRole.PATIENT, **fields):
    fields.setdefault("first_name", email.split("@")[0].title())
    fields.setdefault("last_name", "Test")
    user = models.User(
        email=email,
        password_hash=PASSWORD_HASH,
        role=role.value,
        is_verified=True,
        **fields,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user.email})}"}


@pytest.fixture
def admin(db):
    return make_user(db, "admin@dentavis.com", models.UserRole.ADMIN)


@pytest.fixture
def staff(db):
    return make_user(db, "frontdesk@dentavis.com", models.UserRole.STAFF)


@pytest.fixture
def dentist(db):
    return make_user(db, "dr.santos@dentavis.com", models.UserRole.DENTIST, specialization="Orthodontics")


@pytest.fixture
def other_dentist(db):
    return make_user(db, "dr.reyes@dentavis.com", models.UserRole.DENTIST)


@pytest.fixture
def patient(db):
    return make_user(db, "juan@dentavis.com", phone="09171234567")


@pytest.fixture
def other_patient(db):
    return make_user(db, "maria@dentavis.com")


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def staff_headers(staff):
    return auth_headers(staff)


@pytest.fixture
def patient_headers(patient):
    return auth_headers(patient)


@pytest.fixture
def visit_day():
    """A booking date safely in the future."""
    return date.today() + timedelta(days=7)


def walk_in_payload(provider_id, day, time="10:00 - 10:30", **overrides):
    payload = {
        "category": "Cleaning (LINIS)",
        "option": "Mild to Average Deposit (Tartar)",
        "provider_id": provider_id,
        "date": day.isoformat(),
        "time": time,
        "patient_name": "Walk-in Pedro",
        "health_answers": HEALTHY,
    }
    payload.update(overrides)
    return payload


def online_payload(day, time="10:00 - 10:30", **overrides):
    payload = {
        "category": "Cleaning (LINIS)",
        "option": "Mild to Average Deposit (Tartar)",
        "date": day.isoformat(),
        "time": time,
        "payment_type": "full",
        "health_answers": HEALTHY,
    }
    payload.update(overrides)
    return payload
