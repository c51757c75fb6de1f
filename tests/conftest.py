"""pytest configuration: application, client and data factories."""
from __future__ import annotations

import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

# Ensure the project root is available on sys.path so tests can import the app package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from eclat import create_app  # noqa: E402
from eclat.auth import build_token, hash_password  # noqa: E402
from eclat.extensions import db  # noqa: E402
from eclat.models import AuthAccount, Service, Staff, User  # noqa: E402
from eclat.scheduling import Weekday, WeeklySchedule  # noqa: E402

WORKING_DAY = [
    {
        "day": "Monday",
        "startTime": "09:00",
        "endTime": "17:00",
        "breakStart": "12:00",
        "breakEnd": "13:00",
    },
    {"day": "Tuesday", "startTime": "10:00", "endTime": "14:00"},
    {"day": "Sunday", "isAvailable": False},
]


def next_weekday(name: str) -> date:
    """The next date strictly after today falling on ``name``."""
    target = list(Weekday).index(Weekday.parse(name))
    days_ahead = (target - date.today().weekday()) % 7
    if days_ahead == 0:
        days_ahead = 7
    return date.today() + timedelta(days=days_ahead)


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def create_user(app):
    """Factory returning ``(user_id, token)`` for a new account."""
    counter = {"n": 0}

    def _create(*, role: str = "user", email: str | None = None, password: str = "Secret123!"):
        counter["n"] += 1
        with app.app_context():
            user = User(
                name=f"{role.title()} {counter['n']}",
                email=email or f"{role}{counter['n']}@example.com",
                phone=f"1555000{counter['n']:04d}",
                role=role,
            )
            db.session.add(user)
            db.session.flush()
            db.session.add(AuthAccount(user_id=user.user_id, password_hash=hash_password(password)))
            db.session.commit()
            return user.user_id, build_token(user)

    return _create


@pytest.fixture
def admin_token(create_user):
    _, token = create_user(role="admin")
    return token


@pytest.fixture
def salon(app):
    """One 60 minute service performed by one staff member on the working-day schedule."""
    with app.app_context():
        service = Service(
            title="Signature Haircut",
            description="Wash, cut and blow-dry",
            category="Hair Styling",
            price_cents=6500,
            duration_minutes=60,
        )
        staff = Staff(
            name="Amelia Hart",
            email="amelia@example.com",
            phone="15550100001",
            specialization=["Hair Styling"],
            experience_years=8,
        )
        staff.services = [service]
        db.session.add_all([service, staff])
        staff.replace_schedule(WeeklySchedule.from_list(WORKING_DAY))
        db.session.commit()
        return {"service_id": service.service_id, "staff_id": staff.staff_id}
