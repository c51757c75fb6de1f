"""Appointment booking and review routes."""
from __future__ import annotations

from datetime import date, datetime, timezone

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .auth import admin_required, login_required
from .errors import InconsistentState, InvalidDuration, SlotConflict
from .extensions import db
from .models import (APPOINTMENT_STATUSES, PAYMENT_METHODS, PAYMENT_STATUSES, SLOT_HOLDING_STATUSES,
                     Appointment, Review, Service, Staff)
from .ratings import RatingAggregator
from .routes import free_slots, parse_include
from .scheduling import TimeOfDay, Weekday, available_slots

bp_booking = Blueprint("booking", __name__)

APPOINTMENT_INCLUDES = {"user", "service", "staff"}
REVIEW_INCLUDES = {"user", "service", "staff"}
REVIEW_TAGS = (
    "great-service",
    "friendly-staff",
    "clean-environment",
    "good-value",
    "professional",
    "recommended",
    "quick-service",
    "relaxing",
    "results-exceeded-expectations",
    "will-return",
)
SUB_RATINGS = ("service", "staff", "atmosphere", "value")


def _rating_aggregator() -> RatingAggregator:
    return current_app.extensions["rating_aggregator"]


def _locked_review(review_id: int) -> Review | None:
    """Re-read a review under the staff lock, discarding any stale copy in the session."""
    statement = (
        select(Review)
        .where(Review.review_id == review_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.session.execute(statement).scalar_one_or_none()


def _commit_booking() -> None:
    """Commit, turning a violated slot index into :class:`SlotConflict`."""
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise SlotConflict("That time slot was just booked; please choose another") from exc


def _owns(record) -> bool:
    return g.current_user.is_admin or record.user_id == g.current_user.user_id


def _check_slot(
    staff: Staff,
    target_date: date,
    start: TimeOfDay,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
) -> tuple[dict[str, str], int] | None:
    """Return an error body/status when ``start`` is not bookable."""
    if start in free_slots(staff, target_date, duration_minutes, exclude_appointment_id):
        return None
    if start in available_slots(staff.weekly_schedule, Weekday.from_date(target_date), duration_minutes):
        return SlotConflict("Staff member already has an appointment at that time").to_dict(), 409
    return (
        {"error": "slot_unavailable", "message": "Staff member is not available at that time"},
        400,
    )


# --- BEGIN: Appointments ---


@bp_booking.get("/appointments")
@login_required
def list_appointments() -> tuple[dict[str, object], int]:
    """List the caller's appointments; admins see every appointment.
    ---
    tags:
      - Appointments
    parameters:
      - name: status
        in: query
        type: string
      - name: date
        in: query
        type: string
      - name: staff_id
        in: query
        type: integer
      - name: include
        in: query
        type: string
        description: Comma separated subset of user, service, staff
    responses:
      200:
        description: List of appointments
      400:
        description: Invalid filter
      401:
        description: Missing or invalid token
      500:
        description: Database error
    """
    try:
        query = Appointment.query
        if not g.current_user.is_admin:
            query = query.filter(Appointment.user_id == g.current_user.user_id)

        status = request.args.get("status")
        if status:
            if status not in APPOINTMENT_STATUSES:
                return jsonify({"error": "invalid_payload", "message": f"unknown status: {status}"}), 400
            query = query.filter(Appointment.status == status)

        date_str = request.args.get("date")
        if date_str:
            try:
                query = query.filter(Appointment.date == date.fromisoformat(date_str))
            except ValueError:
                return jsonify({"error": "invalid_date", "message": "date must be in YYYY-MM-DD format"}), 400

        staff_id = request.args.get("staff_id", type=int)
        if staff_id:
            query = query.filter(Appointment.staff_id == staff_id)

        include = parse_include(APPOINTMENT_INCLUDES)
        appointments = query.order_by(Appointment.date.desc(), Appointment.time_minutes.desc()).all()
        return jsonify({"appointments": [a.to_dict(include) for a in appointments]}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch appointments", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_booking.get("/users/<int:user_id>/appointments")
@login_required
def list_user_appointments(user_id: int) -> tuple[dict[str, object], int]:
    if not (g.current_user.is_admin or g.current_user.user_id == user_id):
        return jsonify({"error": "forbidden", "message": "Cannot view another user's appointments"}), 403

    try:
        appointments = (
            Appointment.query.filter_by(user_id=user_id)
            .order_by(Appointment.date.desc(), Appointment.time_minutes.desc())
            .all()
        )
        include = parse_include(APPOINTMENT_INCLUDES)
        return jsonify({"appointments": [a.to_dict(include) for a in appointments]}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch user appointments", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_booking.get("/appointments/<int:appointment_id>")
@login_required
def get_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    try:
        appointment = db.session.get(Appointment, appointment_id)
        if not appointment:
            return jsonify({"error": "not_found", "message": "Appointment not found"}), 404
        if not _owns(appointment):
            return jsonify({"error": "forbidden", "message": "Cannot view another user's appointment"}), 403

        return jsonify({"appointment": appointment.to_dict(parse_include(APPOINTMENT_INCLUDES))}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_booking.post("/appointments")
@login_required
def create_appointment() -> tuple[dict[str, object], int]:
    """Book a service with a staff member.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            service_id:
              type: integer
            staff_id:
              type: integer
            date:
              type: string
              format: date
            time:
              type: string
              example: "10:30"
            comment:
              type: string
            special_instructions:
              type: string
            payment_method:
              type: string
          required:
            - service_id
            - staff_id
            - date
            - time
    responses:
      201:
        description: Appointment created successfully
      400:
        description: Invalid payload, past date or unavailable time
      404:
        description: Service or staff not found
      409:
        description: Slot already booked
      500:
        description: Server error
    """
    payload = request.get_json(silent=True) or {}

    service_id = payload.get("service_id")
    staff_id = payload.get("staff_id")
    date_str = payload.get("date")
    time_str = payload.get("time")
    comment = (payload.get("comment") or "").strip() or None
    special_instructions = (payload.get("special_instructions") or "").strip() or None
    payment_method = payload.get("payment_method") or "credit-card"

    if not all([service_id, staff_id, date_str, time_str]):
        return (
            jsonify({
                "error": "invalid_payload",
                "message": "service_id, staff_id, date, and time are required",
            }),
            400,
        )

    try:
        target_date = date.fromisoformat(date_str)
    except (TypeError, ValueError):
        return jsonify({"error": "invalid_date", "message": "date must be in YYYY-MM-DD format"}), 400

    try:
        start = TimeOfDay.parse(time_str)
    except ValueError:
        return jsonify({"error": "invalid_time", "message": "time must be in HH:MM format"}), 400

    if target_date < date.today():
        return jsonify({"error": "invalid_date", "message": "Appointment date cannot be in the past"}), 400

    if payment_method not in PAYMENT_METHODS:
        return jsonify({"error": "invalid_payload", "message": "unknown payment_method"}), 400
    for key, value in (("comment", comment), ("special_instructions", special_instructions)):
        if value and len(value) > 500:
            return jsonify({"error": "invalid_payload", "message": f"{key} cannot be more than 500 characters"}), 400

    try:
        service = db.session.get(Service, service_id)
        if not service or not service.is_active:
            return jsonify({"error": "not_found", "message": "Service not found"}), 404

        staff = db.session.get(Staff, staff_id)
        if not staff or not staff.is_available:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        if staff.services and service not in staff.services:
            return (
                jsonify({"error": "invalid_payload", "message": "Staff member does not offer this service"}),
                400,
            )

        failure = _check_slot(staff, target_date, start, service.duration_minutes)
        if failure:
            body, status = failure
            return jsonify(body), status

        appointment = Appointment(
            user_id=g.current_user.user_id,
            service_id=service.service_id,
            staff_id=staff.staff_id,
            date=target_date,
            time_minutes=start.minutes,
            duration_minutes=service.duration_minutes,
            price_cents=service.price_cents,
            payment_method=payment_method,
            comment=comment,
            special_instructions=special_instructions,
        )
        db.session.add(appointment)
        _commit_booking()

        current_app.logger.info(
            "Booked appointment %s for staff %s on %s at %s",
            appointment.appointment_id,
            staff.staff_id,
            target_date.isoformat(),
            start,
        )
        return (
            jsonify({"message": "Appointment created successfully", "appointment": appointment.to_dict()}),
            201,
        )

    except InvalidDuration as exc:
        db.session.rollback()
        return jsonify(exc.to_dict()), 400
    except SlotConflict as exc:
        current_app.logger.warning("Slot conflict booking staff %s on %s at %s", staff_id, date_str, time_str)
        return jsonify(exc.to_dict()), 409
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_booking.put("/appointments/<int:appointment_id>")
@login_required
def update_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Reschedule an appointment or edit its notes."""
    payload = request.get_json(silent=True) or {}

    try:
        appointment = db.session.get(Appointment, appointment_id)
        if not appointment:
            return jsonify({"error": "not_found", "message": "Appointment not found"}), 404
        if not _owns(appointment):
            return jsonify({"error": "forbidden", "message": "Cannot modify another user's appointment"}), 403
        if appointment.status not in SLOT_HOLDING_STATUSES:
            return (
                jsonify({
                    "error": "invalid_payload",
                    "message": f"Cannot modify an appointment that is {appointment.status}",
                }),
                400,
            )

        if "date" in payload or "time" in payload:
            try:
                new_date = date.fromisoformat(payload["date"]) if "date" in payload else appointment.date
            except (TypeError, ValueError):
                return jsonify({"error": "invalid_date", "message": "date must be in YYYY-MM-DD format"}), 400
            try:
                new_time = TimeOfDay.parse(payload["time"]) if "time" in payload else appointment.time
            except ValueError:
                return jsonify({"error": "invalid_time", "message": "time must be in HH:MM format"}), 400

            if new_date < date.today():
                return jsonify({"error": "invalid_date", "message": "Appointment date cannot be in the past"}), 400

            if (new_date, new_time.minutes) != (appointment.date, appointment.time_minutes):
                failure = _check_slot(
                    appointment.staff, new_date, new_time, appointment.duration_minutes, appointment.appointment_id
                )
                if failure:
                    body, status = failure
                    return jsonify(body), status

                appointment.original_date = appointment.date
                appointment.original_time_minutes = appointment.time_minutes
                appointment.rescheduled_at = datetime.now(timezone.utc)
                appointment.date = new_date
                appointment.time_minutes = new_time.minutes

        for key in ("comment", "special_instructions"):
            if key in payload:
                value = (payload.get(key) or "").strip() or None
                if value and len(value) > 500:
                    return (
                        jsonify({"error": "invalid_payload", "message": f"{key} cannot be more than 500 characters"}),
                        400,
                    )
                setattr(appointment, key, value)

        _commit_booking()
        return jsonify({"appointment": appointment.to_dict()}), 200

    except SlotConflict as exc:
        return jsonify(exc.to_dict()), 409
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_booking.put("/appointments/<int:appointment_id>/status")
@admin_required
def update_appointment_status(appointment_id: int) -> tuple[dict[str, object], int]:
    """Administrative status change (pending, confirmed, completed, cancelled, no-show)."""
    payload = request.get_json(silent=True) or {}
    status = payload.get("status")
    payment_status = payload.get("payment_status")

    if status not in APPOINTMENT_STATUSES:
        return (
            jsonify({
                "error": "invalid_payload",
                "message": f"status must be one of: {', '.join(APPOINTMENT_STATUSES)}",
            }),
            400,
        )
    if payment_status is not None and payment_status not in PAYMENT_STATUSES:
        return jsonify({"error": "invalid_payload", "message": "unknown payment_status"}), 400

    try:
        appointment = db.session.get(Appointment, appointment_id)
        if not appointment:
            return jsonify({"error": "not_found", "message": "Appointment not found"}), 404

        previous = appointment.status
        appointment.status = status
        if status == "cancelled" and previous != "cancelled":
            appointment.cancelled_by = "admin"
            appointment.cancelled_at = datetime.now(timezone.utc)
            appointment.cancellation_reason = (payload.get("reason") or "").strip() or None
        if payment_status is not None:
            appointment.payment_status = payment_status
        if "staff_notes" in payload:
            appointment.staff_notes = (payload.get("staff_notes") or "").strip() or None

        _commit_booking()

        current_app.logger.info("Appointment %s status %s -> %s", appointment_id, previous, status)
        return jsonify({"appointment": appointment.to_dict()}), 200

    except SlotConflict as exc:
        return jsonify(exc.to_dict()), 409
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update appointment status", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_booking.put("/appointments/<int:appointment_id>/cancel")
@login_required
def cancel_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}

    try:
        appointment = db.session.get(Appointment, appointment_id)
        if not appointment:
            return jsonify({"error": "not_found", "message": "Appointment not found"}), 404
        if not _owns(appointment):
            return jsonify({"error": "forbidden", "message": "Cannot cancel another user's appointment"}), 403
        if appointment.status not in SLOT_HOLDING_STATUSES:
            return (
                jsonify({
                    "error": "invalid_payload",
                    "message": f"Cannot cancel an appointment that is {appointment.status}",
                }),
                400,
            )

        appointment.status = "cancelled"
        appointment.cancelled_by = "admin" if g.current_user.is_admin else "client"
        appointment.cancelled_at = datetime.now(timezone.utc)
        appointment.cancellation_reason = (payload.get("reason") or "").strip() or None
        db.session.commit()

        return jsonify({"message": "Appointment cancelled successfully", "appointment": appointment.to_dict()}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


# --- END: Appointments ---


# --- BEGIN: Reviews ---


def _read_rating(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
        return None
    return value


def _read_review_ratings(payload: dict[str, object]) -> tuple[dict[str, int], str | None]:
    """Accept ``rating`` as an int (overall) or an object with sub-ratings."""
    raw = payload.get("rating")
    if not isinstance(raw, dict):
        raw = {"overall": raw}

    fields: dict[str, int] = {}
    if "overall" in raw:
        overall = _read_rating(raw.get("overall"))
        if overall is None:
            return fields, "Overall rating must be an integer between 1 and 5"
        fields["rating_overall"] = overall

    for key in SUB_RATINGS:
        if raw.get(key) is not None:
            value = _read_rating(raw.get(key))
            if value is None:
                return fields, f"{key.capitalize()} rating must be an integer between 1 and 5"
            fields[f"rating_{key}"] = value
    return fields, None


def _read_comment(payload: dict[str, object]) -> tuple[str | None, str | None]:
    comment = (payload.get("comment") or "").strip()
    if not 10 <= len(comment) <= 1000:
        return None, "Comment must be between 10 and 1000 characters"
    return comment, None


def _read_tags(payload: dict[str, object]) -> tuple[list[str] | None, str | None]:
    tags = payload.get("tags") or []
    if not isinstance(tags, list) or any(tag not in REVIEW_TAGS for tag in tags):
        return None, f"tags must be a subset of: {', '.join(REVIEW_TAGS)}"
    return tags, None


@bp_booking.get("/reviews")
def list_reviews() -> tuple[dict[str, object], int]:
    """List approved public reviews with filtering, sorting, and pagination.
    ---
    tags:
      - Reviews
    parameters:
      - name: staff_id
        in: query
        type: integer
      - name: service_id
        in: query
        type: integer
      - name: min_rating
        in: query
        type: integer
        minimum: 1
        maximum: 5
      - name: sort_by
        in: query
        type: string
        enum: [rating, date]
        default: date
      - name: order
        in: query
        type: string
        enum: [asc, desc]
        default: desc
      - name: limit
        in: query
        type: integer
        default: 10
        maximum: 100
      - name: offset
        in: query
        type: integer
        default: 0
    responses:
      200:
        description: List of reviews
      500:
        description: Server error
    """
    try:
        staff_id = request.args.get("staff_id", type=int)
        service_id = request.args.get("service_id", type=int)
        min_rating = request.args.get("min_rating", type=int)
        sort_by = request.args.get("sort_by", "date")
        order = request.args.get("order", "desc")
        limit = request.args.get("limit", default=10, type=int)
        offset = request.args.get("offset", default=0, type=int)

        if sort_by not in ["rating", "date"]:
            sort_by = "date"
        if order not in ["asc", "desc"]:
            order = "desc"
        if min_rating and (min_rating < 1 or min_rating > 5):
            min_rating = None
        limit = min(max(limit, 1), 100)
        offset = max(offset, 0)

        query = Review.query.filter(Review.is_approved.is_(True), Review.is_public.is_(True))
        if staff_id:
            query = query.filter(Review.staff_id == staff_id)
        if service_id:
            query = query.filter(Review.service_id == service_id)
        if min_rating:
            query = query.filter(Review.rating_overall >= min_rating)

        total_count = query.count()

        sort_column = Review.rating_overall if sort_by == "rating" else Review.created_at
        query = query.order_by(sort_column.asc() if order == "asc" else sort_column.desc())
        reviews = query.limit(limit).offset(offset).all()

        include = parse_include(REVIEW_INCLUDES)
        payload = {
            "reviews": [review.to_dict(include) for review in reviews],
            "pagination": {
                "limit": limit,
                "offset": offset,
                "total": total_count,
                "has_more": (offset + limit) < total_count,
            },
        }
        return jsonify(payload), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch reviews", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_booking.get("/reviews/<int:review_id>")
def get_review(review_id: int) -> tuple[dict[str, object], int]:
    try:
        review = db.session.get(Review, review_id)
        if not review:
            return jsonify({"error": "not_found", "message": "Review not found"}), 404

        return jsonify({"review": review.to_dict(parse_include(REVIEW_INCLUDES))}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch review", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_booking.post("/reviews")
@login_required
def create_review() -> tuple[dict[str, object], int]:
    """Review a completed appointment and fold its rating into the staff aggregate.
    ---
    tags:
      - Reviews
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            appointment_id:
              type: integer
            rating:
              type: object
              properties:
                overall:
                  type: integer
                  minimum: 1
                  maximum: 5
            comment:
              type: string
            tags:
              type: array
    responses:
      201:
        description: Review created successfully
      400:
        description: Invalid input or appointment not completed
      403:
        description: Appointment belongs to another user
      404:
        description: Appointment not found
      409:
        description: Appointment already reviewed
      500:
        description: Database error
    """
    payload = request.get_json(silent=True) or {}

    appointment_id = payload.get("appointment_id")
    if not appointment_id or payload.get("rating") is None:
        return (
            jsonify({"error": "invalid_payload", "message": "appointment_id and rating are required"}),
            400,
        )

    ratings, error = _read_review_ratings(payload)
    if error or "rating_overall" not in ratings:
        return jsonify({"error": "invalid_rating", "message": error or "Overall rating is required"}), 400

    comment, error = _read_comment(payload)
    if error:
        return jsonify({"error": "invalid_payload", "message": error}), 400

    tags, error = _read_tags(payload)
    if error:
        return jsonify({"error": "invalid_payload", "message": error}), 400

    try:
        appointment = db.session.get(Appointment, appointment_id)
        if not appointment:
            return jsonify({"error": "not_found", "message": "Appointment not found"}), 404
        if appointment.user_id != g.current_user.user_id:
            return jsonify({"error": "forbidden", "message": "Cannot review another user's appointment"}), 403
        if appointment.status != "completed":
            return (
                jsonify({"error": "invalid_payload", "message": "Only completed appointments can be reviewed"}),
                400,
            )
        aggregator = _rating_aggregator()
        with aggregator.locked(appointment.staff_id):
            if Review.query.filter_by(appointment_id=appointment.appointment_id).first() is not None:
                db.session.rollback()
                return jsonify({"error": "conflict", "message": "Appointment has already been reviewed"}), 409

            review = Review(
                appointment_id=appointment.appointment_id,
                user_id=g.current_user.user_id,
                staff_id=appointment.staff_id,
                service_id=appointment.service_id,
                comment=comment,
                tags=tags,
                is_verified=True,
                **ratings,
            )
            db.session.add(review)
            db.session.flush()

            # commits the review together with the new aggregate
            staff_rating = aggregator.review_created(review.staff_id, review.rating_overall)

        return jsonify({"review": review.to_dict(), "staff_rating": staff_rating.to_dict()}), 201

    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "conflict", "message": "Appointment has already been reviewed"}), 409
    except InconsistentState as exc:
        db.session.rollback()
        return jsonify(exc.to_dict()), 500
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create review", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_booking.put("/reviews/<int:review_id>")
@login_required
def update_review(review_id: int) -> tuple[dict[str, object], int]:
    """Edit a review; a changed overall rating is re-applied to the staff aggregate."""
    payload = request.get_json(silent=True) or {}

    ratings: dict[str, int] = {}
    if "rating" in payload:
        ratings, error = _read_review_ratings(payload)
        if error:
            return jsonify({"error": "invalid_rating", "message": error}), 400

    changes: dict[str, object] = dict(ratings)
    if "comment" in payload:
        comment, error = _read_comment(payload)
        if error:
            return jsonify({"error": "invalid_payload", "message": error}), 400
        changes["comment"] = comment
    if "tags" in payload:
        tags, error = _read_tags(payload)
        if error:
            return jsonify({"error": "invalid_payload", "message": error}), 400
        changes["tags"] = tags
    if "is_public" in payload:
        changes["is_public"] = bool(payload["is_public"])
    if "is_approved" in payload and g.current_user.is_admin:
        changes["is_approved"] = bool(payload["is_approved"])

    try:
        review = db.session.get(Review, review_id)
        if not review:
            return jsonify({"error": "not_found", "message": "Review not found"}), 404
        if not _owns(review):
            return jsonify({"error": "forbidden", "message": "Cannot modify another user's review"}), 403

        aggregator = _rating_aggregator()
        staff_rating = None
        with aggregator.locked(review.staff_id):
            review = _locked_review(review_id)
            if review is None:
                db.session.rollback()
                return jsonify({"error": "not_found", "message": "Review not found"}), 404

            old_overall = review.rating_overall
            for key, value in changes.items():
                setattr(review, key, value)

            if review.rating_overall != old_overall:
                staff_rating = aggregator.review_rating_changed(
                    review.staff_id, old_overall, review.rating_overall
                )
            else:
                db.session.commit()

        body = {"review": review.to_dict()}
        if staff_rating is not None:
            body["staff_rating"] = staff_rating.to_dict()
        return jsonify(body), 200

    except InconsistentState as exc:
        db.session.rollback()
        return jsonify(exc.to_dict()), 500
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update review", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_booking.delete("/reviews/<int:review_id>")
@login_required
def delete_review(review_id: int) -> tuple[dict[str, object], int]:
    try:
        review = db.session.get(Review, review_id)
        if not review:
            return jsonify({"error": "not_found", "message": "Review not found"}), 404
        if not _owns(review):
            return jsonify({"error": "forbidden", "message": "Cannot delete another user's review"}), 403

        aggregator = _rating_aggregator()
        staff_id = review.staff_id
        with aggregator.locked(staff_id):
            review = _locked_review(review_id)
            if review is None:
                db.session.rollback()
                return jsonify({"error": "not_found", "message": "Review not found"}), 404

            overall = review.rating_overall
            db.session.delete(review)
            staff_rating = aggregator.review_deleted(staff_id, overall)

        return jsonify({"message": "Review deleted successfully", "staff_rating": staff_rating.to_dict()}), 200

    except InconsistentState as exc:
        db.session.rollback()
        return jsonify(exc.to_dict()), 500
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete review", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_booking.post("/reviews/<int:review_id>/response")
@admin_required
def respond_to_review(review_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    text = (payload.get("text") or "").strip()

    if not text or len(text) > 500:
        return jsonify({"error": "invalid_payload", "message": "text must be 1-500 characters"}), 400

    try:
        review = db.session.get(Review, review_id)
        if not review:
            return jsonify({"error": "not_found", "message": "Review not found"}), 404

        review.response_text = text
        review.responded_by = g.current_user.user_id
        review.responded_at = datetime.now(timezone.utc)
        db.session.commit()

        return jsonify({"review": review.to_dict()}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to respond to review", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_booking.post("/reviews/<int:review_id>/helpful")
@login_required
def mark_review_helpful(review_id: int) -> tuple[dict[str, object], int]:
    """Count the caller once as finding the review helpful."""
    try:
        review = db.session.get(Review, review_id)
        if not review:
            return jsonify({"error": "not_found", "message": "Review not found"}), 404

        if g.current_user not in review.helpful_users:
            review.helpful_users.append(g.current_user)
            review.helpful_count += 1
            db.session.commit()

        return jsonify({"review_id": review_id, "helpful_count": review.helpful_count}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to mark review helpful", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_booking.get("/staff/<int:staff_id>/reviews")
def get_staff_reviews(staff_id: int) -> tuple[dict[str, object], int]:
    try:
        staff = db.session.get(Staff, staff_id)
        if not staff:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        reviews = (
            Review.query.filter(
                Review.staff_id == staff_id,
                Review.is_approved.is_(True),
                Review.is_public.is_(True),
            )
            .order_by(Review.created_at.desc())
            .all()
        )
        include = parse_include(REVIEW_INCLUDES)
        return (
            jsonify({
                "staff_id": staff_id,
                "rating": staff.rating.to_dict(),
                "reviews": [review.to_dict(include) for review in reviews],
            }),
            200,
        )

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch staff reviews", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp_booking.post("/staff/<int:staff_id>/rating/reconcile")
@admin_required
def reconcile_staff_rating(staff_id: int) -> tuple[dict[str, object], int]:
    """Recompute a staff rating from a full scan of its reviews."""
    try:
        staff = db.session.get(Staff, staff_id)
        if not staff:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        aggregator = _rating_aggregator()
        with aggregator.locked(staff_id):
            ratings = [row.rating_overall for row in Review.query.filter_by(staff_id=staff_id).all()]
            staff_rating = aggregator.reconcile(staff_id, ratings)

        return jsonify({"staff_id": staff_id, "rating": staff_rating.to_dict()}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to reconcile staff rating", exc_info=exc)
        return jsonify({"error": "database_error"}), 500
