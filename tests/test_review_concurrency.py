"""Concurrent review writes through the HTTP API against a file-backed database."""
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta

import pytest

from conftest import auth_header
from eclat import create_app
from eclat.auth import build_token, hash_password
from eclat.extensions import db
from eclat.models import Appointment, AuthAccount, Review, Service, Staff, User

COMMENT = "Lovely cut, very attentive stylist."


@pytest.fixture
def busy_salon(tmp_path):
    """A shared SQLite file with one client holding many completed appointments."""
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'eclat.db'}",
    })
    with app.app_context():
        db.create_all()
        user = User(name="Regular Client", email="regular@example.com", phone="15550009999", role="user")
        service = Service(
            title="Signature Haircut",
            description="Wash, cut and blow-dry",
            category="Hair Styling",
            price_cents=6500,
            duration_minutes=60,
        )
        staff = Staff(name="Amelia Hart", email="amelia@example.com", phone="15550100001")
        db.session.add_all([user, service, staff])
        db.session.flush()
        db.session.add(AuthAccount(user_id=user.user_id, password_hash=hash_password("Secret123!")))

        appointments = [
            Appointment(
                user_id=user.user_id,
                service_id=service.service_id,
                staff_id=staff.staff_id,
                date=date.today() - timedelta(days=day),
                time_minutes=600,
                duration_minutes=60,
                price_cents=6500,
                status="completed",
            )
            for day in range(1, 25)
        ]
        db.session.add_all(appointments)
        db.session.commit()
        context = {
            "headers": auth_header(build_token(user)),
            "staff_id": staff.staff_id,
            "appointment_ids": [appointment.appointment_id for appointment in appointments],
        }

    yield app, context

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _post_review(app, context, appointment_id, rating=5):
    response = app.test_client().post(
        "/reviews",
        json={"appointment_id": appointment_id, "rating": rating, "comment": COMMENT},
        headers=context["headers"],
    )
    assert response.status_code == 201
    return response.get_json()["review"]["id"]


def _send_together(app, context, requests):
    """Fire ``(method, url, json)`` requests from separate threads at the same moment."""
    barrier = threading.Barrier(len(requests))

    def _send(request):
        method, url, payload = request
        client = app.test_client()
        barrier.wait()
        return client.open(url, method=method, json=payload, headers=context["headers"]).status_code

    with ThreadPoolExecutor(max_workers=len(requests)) as pool:
        return list(pool.map(_send, requests))


def _assert_rating_matches_reviews(app, staff_id) -> None:
    with app.app_context():
        staff = db.session.get(Staff, staff_id)
        live = [review.rating_overall for review in Review.query.filter_by(staff_id=staff_id).all()]

        assert staff.rating_count == len(live)
        assert staff.rating_average == pytest.approx(sum(live) / len(live) if live else 0.0)


def test_mixed_review_writes_keep_rating_exact(busy_salon) -> None:
    app, context = busy_salon
    appointment_ids = context["appointment_ids"]
    review_ids = [_post_review(app, context, appointment_id) for appointment_id in appointment_ids[:10]]

    requests = (
        [("POST", "/reviews", {"appointment_id": a, "rating": 3, "comment": COMMENT}) for a in appointment_ids[10:16]]
        + [("PUT", f"/reviews/{review_id}", {"rating": 1}) for review_id in review_ids[:5]]
        + [("DELETE", f"/reviews/{review_id}", None) for review_id in review_ids[5:8]]
    )

    statuses = _send_together(app, context, requests)

    assert all(200 <= status < 300 for status in statuses), statuses
    _assert_rating_matches_reviews(app, context["staff_id"])
    with app.app_context():
        staff = db.session.get(Staff, context["staff_id"])
        assert staff.rating_count == 13
        assert staff.rating_average == pytest.approx((5 * 1 + 2 * 5 + 6 * 3) / 13)


def test_same_review_deleted_twice_at_once(busy_salon) -> None:
    app, context = busy_salon
    review_ids = [_post_review(app, context, appointment_id, rating=4) for appointment_id in context["appointment_ids"][:5]]

    for review_id in review_ids:
        statuses = _send_together(app, context, [("DELETE", f"/reviews/{review_id}", None)] * 2)

        assert sorted(statuses) == [200, 404]

    _assert_rating_matches_reviews(app, context["staff_id"])
    with app.app_context():
        assert db.session.get(Staff, context["staff_id"]).rating_count == 0


def test_same_review_edited_twice_at_once(busy_salon) -> None:
    app, context = busy_salon
    review_id = _post_review(app, context, context["appointment_ids"][0])
    _post_review(app, context, context["appointment_ids"][1], rating=4)

    statuses = _send_together(
        app,
        context,
        [("PUT", f"/reviews/{review_id}", {"rating": 1}), ("PUT", f"/reviews/{review_id}", {"rating": 3})],
    )

    assert statuses == [200, 200]
    _assert_rating_matches_reviews(app, context["staff_id"])
