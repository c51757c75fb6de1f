"""HTTP routes for the Éclat Salon backend."""
from __future__ import annotations

import re
from datetime import date, datetime, timezone

from flask import Blueprint, Flask, current_app, g, jsonify, request
from sqlalchemy import or_, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .auth import admin_required, build_token, hash_password, login_required, verify_password
from .errors import InvalidDuration, InvalidSchedule
from .extensions import db
from .models import (SERVICE_CATEGORIES, SLOT_HOLDING_STATUSES, SPECIALIZATIONS, Appointment,
                     AuthAccount, Service, Staff, User)
from .scheduling import TimeOfDay, Weekday, WeeklySchedule, available_slots, is_available_at

bp = Blueprint("api", __name__)

EMAIL_PATTERN = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$")
PHONE_PATTERN = re.compile(r"^[\+]?[1-9][\d]{0,15}$")


def parse_include(allowed: set[str]) -> set[str]:
    """Related entities the caller opted into via ``?include=a,b``."""
    requested = {part.strip() for part in (request.args.get("include") or "").split(",") if part.strip()}
    return requested & allowed


def free_slots(
    staff: Staff,
    target_date: date,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
) -> list[TimeOfDay]:
    """Engine slots for ``target_date`` minus those overlapping live bookings."""
    candidates = available_slots(staff.weekly_schedule, Weekday.from_date(target_date), duration_minutes)

    query = Appointment.query.filter(
        Appointment.staff_id == staff.staff_id,
        Appointment.date == target_date,
        Appointment.status.in_(SLOT_HOLDING_STATUSES),
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.appointment_id != exclude_appointment_id)
    taken = [(a.time_minutes, a.time_minutes + a.duration_minutes) for a in query.all()]

    return [
        slot
        for slot in candidates
        if not any(start < slot.minutes + duration_minutes and slot.minutes < end for start, end in taken)
    ]


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database."""
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


# --- BEGIN: Authentication ---


@bp.post("/auth/register")
def register_user() -> tuple[dict[str, object], int]:
    """Register a new client account and log it in.
    ---
    tags:
      - Authentication
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            name:
              type: string
            email:
              type: string
            phone:
              type: string
            password:
              type: string
          required:
            - name
            - email
            - phone
            - password
    responses:
      201:
        description: User registered successfully
      400:
        description: Invalid payload
      409:
        description: Email or phone already in use
      500:
        description: Server error
    """
    payload = request.get_json(silent=True) or {}

    name = (payload.get("name") or "").strip()
    email = (payload.get("email") or "").strip().lower()
    phone = (payload.get("phone") or "").strip()
    password = payload.get("password") or ""

    if not name or not email or not phone or not password:
        return (
            jsonify({"error": "invalid_payload", "message": "name, email, phone, and password are required"}),
            400,
        )
    if len(name) > 50:
        return jsonify({"error": "invalid_payload", "message": "name cannot be more than 50 characters"}), 400
    if not EMAIL_PATTERN.match(email):
        return jsonify({"error": "invalid_payload", "message": "please enter a valid email"}), 400
    if not PHONE_PATTERN.match(phone):
        return jsonify({"error": "invalid_payload", "message": "please enter a valid phone number"}), 400
    if len(password) < 6:
        return jsonify({"error": "invalid_payload", "message": "password must be at least 6 characters"}), 400

    if User.query.filter_by(email=email).first():
        return jsonify({"error": "conflict", "message": "email address is already in use"}), 409
    if User.query.filter_by(phone=phone).first():
        return jsonify({"error": "conflict", "message": "phone number is already in use"}), 409

    try:
        new_user = User(name=name, email=email, phone=phone, role="user")
        db.session.add(new_user)
        db.session.flush()  # Get the new user_id before creating the AuthAccount

        db.session.add(AuthAccount(user_id=new_user.user_id, password_hash=hash_password(password)))
        db.session.commit()

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to register new user", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Registered user %s", new_user.user_id)
    return jsonify({"token": build_token(new_user), "user": new_user.to_dict()}), 201


@bp.post("/auth/login")
def login() -> tuple[dict[str, object], int]:
    """Authenticate a user by email/password and return an access token.
    ---
    tags:
      - Authentication
    responses:
      200:
        description: Login successful, returns access token
      400:
        description: Missing email or password
      401:
        description: Invalid credentials
      500:
        description: Server error
    """
    payload = request.get_json(silent=True) or {}

    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return (
            jsonify({"error": "invalid_payload", "message": "email and password are required"}),
            400,
        )

    record = (
        db.session.query(User, AuthAccount)
        .join(AuthAccount, AuthAccount.user_id == User.user_id)
        .filter(User.email == email)
        .first()
    )

    if not record:
        return jsonify({"error": "unauthorized", "message": "invalid email or password"}), 401

    user, auth_account = record

    if not verify_password(auth_account.password_hash, password):
        return jsonify({"error": "unauthorized", "message": "invalid email or password"}), 401

    auth_account.last_login_at = datetime.now(timezone.utc)

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update last login timestamp", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"token": build_token(user), "user": user.to_dict()}), 200


@bp.get("/auth/me")
@login_required
def get_current_user() -> tuple[dict[str, object], int]:
    return jsonify({"user": g.current_user.to_dict()}), 200


@bp.put("/auth/password")
@login_required
def update_password() -> tuple[dict[str, object], int]:
    """Change the caller's password after checking the current one."""
    payload = request.get_json(silent=True) or {}
    current_password = payload.get("current_password") or ""
    new_password = payload.get("new_password") or ""

    if not current_password or len(new_password) < 6:
        return (
            jsonify({
                "error": "invalid_payload",
                "message": "current_password and a new_password of at least 6 characters are required",
            }),
            400,
        )

    auth_account = g.current_user.auth_account
    if auth_account is None or not verify_password(auth_account.password_hash, current_password):
        return jsonify({"error": "unauthorized", "message": "current password is incorrect"}), 401

    try:
        auth_account.password_hash = hash_password(new_password)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update password", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Password updated successfully"}), 200


# --- END: Authentication ---


# --- BEGIN: Users ---


def _can_access_user(user_id: int) -> bool:
    return g.current_user.is_admin or g.current_user.user_id == user_id


@bp.get("/users/<int:user_id>")
@login_required
def get_user(user_id: int) -> tuple[dict[str, object], int]:
    if not _can_access_user(user_id):
        return jsonify({"error": "forbidden", "message": "Cannot view another user's profile"}), 403

    user = db.session.get(User, user_id)
    if not user:
        return jsonify({"error": "not_found", "message": "User not found"}), 404

    return jsonify({"user": user.to_dict()}), 200


@bp.put("/users/<int:user_id>")
@login_required
def update_user_profile(user_id: int) -> tuple[dict[str, object], int]:
    """Update name, phone, avatar and notification preferences."""
    if not _can_access_user(user_id):
        return jsonify({"error": "forbidden", "message": "Cannot update another user's profile"}), 403

    payload = request.get_json(silent=True) or {}

    try:
        user = db.session.get(User, user_id)
        if not user:
            return jsonify({"error": "not_found", "message": "User not found"}), 404

        if "name" in payload:
            name = (payload.get("name") or "").strip()
            if not name or len(name) > 50:
                return jsonify({"error": "invalid_payload", "message": "name must be 1-50 characters"}), 400
            user.name = name

        if "phone" in payload:
            phone = (payload.get("phone") or "").strip()
            if not PHONE_PATTERN.match(phone):
                return jsonify({"error": "invalid_payload", "message": "please enter a valid phone number"}), 400
            user.phone = phone

        if "avatar" in payload:
            user.avatar = (payload.get("avatar") or "").strip()

        preferences = payload.get("preferences") or {}
        if "email_notifications" in preferences:
            user.email_notifications = bool(preferences["email_notifications"])
        if "sms_notifications" in preferences:
            user.sms_notifications = bool(preferences["sms_notifications"])

        db.session.commit()
        return jsonify({"user": user.to_dict()}), 200

    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "conflict", "message": "phone number is already in use"}), 409
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update user profile", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


# --- END: Users ---


# --- BEGIN: Services ---


def _read_service_fields(payload: dict[str, object], partial: bool) -> tuple[dict[str, object], str | None]:
    """Validate a service payload; returns (fields, error message)."""
    fields: dict[str, object] = {}

    for key, limit in (("title", 100), ("description", 1000)):
        if key in payload or not partial:
            value = (payload.get(key) or "").strip()
            if not value:
                return fields, f"{key} is required"
            if len(value) > limit:
                return fields, f"{key} cannot be more than {limit} characters"
            fields[key] = value

    if "category" in payload or not partial:
        if payload.get("category") not in SERVICE_CATEGORIES:
            return fields, f"category must be one of: {', '.join(SERVICE_CATEGORIES)}"
        fields["category"] = payload["category"]

    if "price_cents" in payload or not partial:
        price = payload.get("price_cents")
        if isinstance(price, bool) or not isinstance(price, int) or price < 0:
            return fields, "price_cents must be a non-negative integer"
        fields["price_cents"] = price

    if "duration_minutes" in payload or not partial:
        duration = payload.get("duration_minutes")
        if isinstance(duration, bool) or not isinstance(duration, int) or duration < 5:
            return fields, "duration_minutes must be an integer of at least 5"
        fields["duration_minutes"] = duration

    for key in ("short_description", "booking_notes"):
        if key in payload:
            fields[key] = (payload.get(key) or "").strip() or None
    if "image" in payload:
        fields["image"] = (payload.get("image") or "").strip()
    policy = (payload.get("cancellation_policy") or "").strip()
    if policy:
        fields["cancellation_policy"] = policy

    for key in ("is_popular", "is_active"):
        if key in payload:
            fields[key] = bool(payload[key])

    if "tags" in payload:
        tags = payload.get("tags") or []
        if not isinstance(tags, list):
            return fields, "tags must be a list"
        fields["tags"] = [str(tag).strip() for tag in tags if str(tag).strip()]

    return fields, None


@bp.get("/services")
def list_services() -> tuple[dict[str, object], int]:
    """List active services.
    ---
    tags:
      - Services
    parameters:
      - name: category
        in: query
        type: string
      - name: query
        in: query
        type: string
        description: Search title and description (case-insensitive)
      - name: popular
        in: query
        type: boolean
    responses:
      200:
        description: List of services
      500:
        description: Database error
    """
    try:
        category = (request.args.get("category") or "").strip()
        search = (request.args.get("query") or "").strip()
        popular = (request.args.get("popular") or "").lower() == "true"

        query = Service.query.filter(Service.is_active.is_(True))
        if category:
            query = query.filter(Service.category == category)
        if search:
            query = query.filter(
                or_(Service.title.ilike(f"%{search}%"), Service.description.ilike(f"%{search}%"))
            )
        if popular:
            query = query.filter(Service.is_popular.is_(True))

        include = parse_include({"staff"})
        services = query.order_by(Service.price_cents.asc()).all()
        return jsonify({"services": [service.to_dict(include) for service in services]}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch services", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/services/<int:service_id>")
def get_service(service_id: int) -> tuple[dict[str, object], int]:
    try:
        service = db.session.get(Service, service_id)
        if not service:
            return jsonify({"error": "not_found", "message": "Service not found"}), 404

        return jsonify({"service": service.to_dict(parse_include({"staff"}))}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/services")
@admin_required
def create_service() -> tuple[dict[str, object], int]:
    """Create a new service (admin only)."""
    payload = request.get_json(silent=True) or {}
    fields, error = _read_service_fields(payload, partial=False)
    if error:
        return jsonify({"error": "invalid_payload", "message": error}), 400

    try:
        service = Service(**fields)
        db.session.add(service)
        db.session.commit()

        current_app.logger.info("Created service %s", service.service_id)
        return jsonify({"service": service.to_dict()}), 201

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.put("/services/<int:service_id>")
@admin_required
def update_service(service_id: int) -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    fields, error = _read_service_fields(payload, partial=True)
    if error:
        return jsonify({"error": "invalid_payload", "message": error}), 400

    try:
        service = db.session.get(Service, service_id)
        if not service:
            return jsonify({"error": "not_found", "message": "Service not found"}), 404

        for key, value in fields.items():
            setattr(service, key, value)
        db.session.commit()

        return jsonify({"service": service.to_dict()}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.delete("/services/<int:service_id>")
@admin_required
def delete_service(service_id: int) -> tuple[dict[str, str], int]:
    """Deactivate a service; existing appointments keep referring to it."""
    try:
        service = db.session.get(Service, service_id)
        if not service:
            return jsonify({"error": "not_found", "message": "Service not found"}), 404

        service.is_active = False
        db.session.commit()

        return jsonify({"message": "Service deactivated successfully"}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


# --- END: Services ---


# --- BEGIN: Staff ---


def _read_staff_fields(payload: dict[str, object], partial: bool) -> tuple[dict[str, object], str | None]:
    """Validate a staff payload; returns (fields, error message)."""
    fields: dict[str, object] = {}

    if "name" in payload or not partial:
        name = (payload.get("name") or "").strip()
        if not name or len(name) > 50:
            return fields, "name is required and cannot be more than 50 characters"
        fields["name"] = name

    if "email" in payload or not partial:
        email = (payload.get("email") or "").strip().lower()
        if not EMAIL_PATTERN.match(email):
            return fields, "please enter a valid email"
        fields["email"] = email

    if "phone" in payload or not partial:
        phone = (payload.get("phone") or "").strip()
        if not PHONE_PATTERN.match(phone):
            return fields, "please enter a valid phone number"
        fields["phone"] = phone

    if "specialization" in payload or not partial:
        specialization = payload.get("specialization")
        if not isinstance(specialization, list) or not specialization:
            return fields, "at least one specialization is required"
        unknown = [item for item in specialization if item not in SPECIALIZATIONS]
        if unknown:
            return fields, f"unknown specialization: {', '.join(map(str, unknown))}"
        fields["specialization"] = specialization

    if "experience_years" in payload or not partial:
        experience = payload.get("experience_years")
        if isinstance(experience, bool) or not isinstance(experience, int) or experience < 0:
            return fields, "experience_years must be a non-negative integer"
        fields["experience_years"] = experience

    if "bio" in payload:
        bio = (payload.get("bio") or "").strip() or None
        if bio and len(bio) > 1000:
            return fields, "bio cannot be more than 1000 characters"
        fields["bio"] = bio

    if "notes" in payload:
        notes = (payload.get("notes") or "").strip() or None
        if notes and len(notes) > 500:
            return fields, "notes cannot be more than 500 characters"
        fields["notes"] = notes

    if "avatar" in payload:
        fields["avatar"] = (payload.get("avatar") or "").strip()

    if "languages" in payload:
        languages = payload.get("languages")
        if not isinstance(languages, list):
            return fields, "languages must be a list"
        fields["languages"] = languages

    if "is_available" in payload:
        if not isinstance(payload["is_available"], bool):
            return fields, "is_available must be true or false"
        fields["is_available"] = payload["is_available"]

    return fields, None


def _apply_staff_relations(staff: Staff, payload: dict[str, object]) -> tuple[int, dict[str, object]] | None:
    """Apply ``service_ids`` and ``schedule``; returns an error response or None."""
    if "service_ids" in payload:
        service_ids = payload.get("service_ids") or []
        if not isinstance(service_ids, list):
            return 400, {"error": "invalid_payload", "message": "service_ids must be a list"}
        services = Service.query.filter(Service.service_id.in_(service_ids)).all() if service_ids else []
        if len(services) != len(set(service_ids)):
            return 404, {"error": "not_found", "message": "One or more services not found"}
        staff.services = services

    if "schedule" in payload:
        try:
            schedule = WeeklySchedule.from_list(payload.get("schedule") or [])
        except InvalidSchedule as exc:
            return 400, exc.to_dict()
        staff.replace_schedule(schedule)

    return None


@bp.get("/staff")
def list_staff() -> tuple[dict[str, object], int]:
    """List staff, best rated first.
    ---
    tags:
      - Staff
    parameters:
      - name: specialization
        in: query
        type: string
      - name: service_id
        in: query
        type: integer
      - name: available
        in: query
        type: boolean
    responses:
      200:
        description: List of staff members
      500:
        description: Database error
    """
    try:
        query = Staff.query

        service_id = request.args.get("service_id", type=int)
        if service_id:
            query = query.filter(Staff.services.any(Service.service_id == service_id))
        if (request.args.get("available") or "").lower() == "true":
            query = query.filter(Staff.is_available.is_(True))

        staff_members = query.order_by(Staff.rating_average.desc(), Staff.name.asc()).all()

        # specialization is a JSON list, filtered in Python for portability
        specialization = (request.args.get("specialization") or "").strip()
        if specialization:
            staff_members = [member for member in staff_members if specialization in (member.specialization or [])]

        include = parse_include({"services"})
        return jsonify({"staff": [member.to_dict(include) for member in staff_members]}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch staff members", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/staff/available")
def list_available_staff() -> tuple[dict[str, object], int]:
    """Staff who perform a service and work at the given day and time."""
    service_id = request.args.get("service_id", type=int)
    day = request.args.get("day")
    at = request.args.get("time")

    if not service_id or not day or not at:
        return (
            jsonify({"error": "invalid_payload", "message": "service_id, day, and time are required"}),
            400,
        )

    try:
        weekday = Weekday.parse(day)
        moment = TimeOfDay.parse(at)
    except ValueError as exc:
        return jsonify({"error": "invalid_payload", "message": str(exc)}), 400

    try:
        candidates = Staff.query.filter(
            Staff.is_available.is_(True),
            Staff.services.any(Service.service_id == service_id),
        ).all()
        staff_members = [
            member for member in candidates if is_available_at(member.weekly_schedule, weekday, moment)
        ]
        return jsonify({"staff": [member.to_dict_basic() for member in staff_members]}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch available staff", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/staff/<int:staff_id>")
def get_staff(staff_id: int) -> tuple[dict[str, object], int]:
    try:
        staff = db.session.get(Staff, staff_id)
        if not staff:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        return jsonify({"staff": staff.to_dict(parse_include({"services"}))}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch staff member", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/staff")
@admin_required
def create_staff() -> tuple[dict[str, object], int]:
    """Create a staff member with optional services and weekly schedule.
    ---
    tags:
      - Staff
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            name:
              type: string
            email:
              type: string
            phone:
              type: string
            specialization:
              type: array
            experience_years:
              type: integer
            service_ids:
              type: array
            schedule:
              type: array
    responses:
      201:
        description: Staff member created successfully
      400:
        description: Invalid input or schedule
      409:
        description: Email already in use
      500:
        description: Database error
    """
    payload = request.get_json(silent=True) or {}
    fields, error = _read_staff_fields(payload, partial=False)
    if error:
        return jsonify({"error": "invalid_payload", "message": error}), 400

    try:
        if Staff.query.filter_by(email=fields["email"]).first():
            return jsonify({"error": "conflict", "message": "email address is already in use"}), 409

        staff = Staff(**fields)
        db.session.add(staff)

        failure = _apply_staff_relations(staff, payload)
        if failure:
            db.session.rollback()
            status, body = failure
            return jsonify(body), status

        db.session.commit()

        current_app.logger.info("Created staff member %s", staff.staff_id)
        return jsonify({"staff": staff.to_dict()}), 201

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create staff member", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.put("/staff/<int:staff_id>")
@admin_required
def update_staff(staff_id: int) -> tuple[dict[str, object], int]:
    """Update a staff profile. Rating fields are not writable here."""
    payload = request.get_json(silent=True) or {}
    fields, error = _read_staff_fields(payload, partial=True)
    if error:
        return jsonify({"error": "invalid_payload", "message": error}), 400

    try:
        staff = db.session.get(Staff, staff_id)
        if not staff:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        for key, value in fields.items():
            setattr(staff, key, value)

        failure = _apply_staff_relations(staff, payload)
        if failure:
            db.session.rollback()
            status, body = failure
            return jsonify(body), status

        db.session.commit()
        return jsonify({"staff": staff.to_dict()}), 200

    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "conflict", "message": "email address is already in use"}), 409
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update staff member", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.delete("/staff/<int:staff_id>")
@admin_required
def delete_staff(staff_id: int) -> tuple[dict[str, str], int]:
    try:
        staff = db.session.get(Staff, staff_id)
        if not staff:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        if Appointment.query.filter_by(staff_id=staff_id).first():
            return (
                jsonify({
                    "error": "conflict",
                    "message": "Staff member has appointments; mark them unavailable instead",
                }),
                409,
            )

        db.session.delete(staff)
        db.session.commit()

        return jsonify({"message": "Staff member deleted successfully"}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete staff member", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


# --- END: Staff ---


# --- BEGIN: Staff schedules and availability ---


@bp.get("/staff/<int:staff_id>/schedule")
def get_staff_schedule(staff_id: int) -> tuple[dict[str, object], int]:
    try:
        staff = db.session.get(Staff, staff_id)
        if not staff:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        return jsonify({"staff_id": staff_id, "schedule": staff.weekly_schedule.to_list()}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch schedule", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.put("/staff/<int:staff_id>/schedule")
@admin_required
def update_staff_schedule(staff_id: int) -> tuple[dict[str, object], int]:
    """Replace a staff member's weekly schedule.
    ---
    tags:
      - Staff
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            schedule:
              type: array
              items:
                type: object
                properties:
                  day:
                    type: string
                  isAvailable:
                    type: boolean
                  startTime:
                    type: string
                  endTime:
                    type: string
                  breakStart:
                    type: string
                  breakEnd:
                    type: string
    responses:
      200:
        description: Schedule replaced
      400:
        description: Invalid schedule
      404:
        description: Staff member not found
      500:
        description: Database error
    """
    payload = request.get_json(silent=True) or {}
    if "schedule" not in payload:
        return jsonify({"error": "invalid_payload", "message": "schedule is required"}), 400

    try:
        schedule = WeeklySchedule.from_list(payload.get("schedule") or [])
    except InvalidSchedule as exc:
        current_app.logger.warning("Rejected schedule for staff %s: %s", staff_id, exc)
        return jsonify(exc.to_dict()), 400

    try:
        staff = db.session.get(Staff, staff_id)
        if not staff:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        staff.replace_schedule(schedule)
        db.session.commit()

        return jsonify({"staff_id": staff_id, "schedule": staff.weekly_schedule.to_list()}), 200

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update staff schedule", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/staff/<int:staff_id>/availability")
def check_staff_availability(staff_id: int) -> tuple[dict[str, object], int]:
    """Free slot start times for a staff member on a date.
    ---
    tags:
      - Staff
    parameters:
      - name: date
        in: query
        type: string
        required: true
        description: YYYY-MM-DD
      - name: service_id
        in: query
        type: integer
        description: Use the service's duration
      - name: duration_minutes
        in: query
        type: integer
        description: Explicit duration when no service_id is given
    responses:
      200:
        description: Available slots as HH:MM strings
      400:
        description: Invalid input
      404:
        description: Staff or service not found
      500:
        description: Database error
    """
    date_str = request.args.get("date")
    service_id = request.args.get("service_id", type=int)
    duration_minutes = request.args.get("duration_minutes", type=int)

    if not date_str or (service_id is None and duration_minutes is None):
        return (
            jsonify({
                "error": "invalid_payload",
                "message": "date (YYYY-MM-DD) and service_id or duration_minutes are required",
            }),
            400,
        )

    try:
        target_date = date.fromisoformat(date_str)
    except ValueError:
        return jsonify({"error": "invalid_date", "message": "date must be in YYYY-MM-DD format"}), 400

    try:
        staff = db.session.get(Staff, staff_id)
        if not staff:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        if service_id is not None:
            service = db.session.get(Service, service_id)
            if not service:
                return jsonify({"error": "not_found", "message": "Service not found"}), 404
            duration_minutes = service.duration_minutes

        slots = free_slots(staff, target_date, duration_minutes)
        if not staff.is_available:
            slots = []

        return (
            jsonify({
                "staff_id": staff_id,
                "date": target_date.isoformat(),
                "day": Weekday.from_date(target_date).value,
                "duration_minutes": duration_minutes,
                "available_slots": [str(slot) for slot in slots],
            }),
            200,
        )

    except InvalidDuration as exc:
        return jsonify(exc.to_dict()), 400
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to check availability", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/staff/<int:staff_id>/available-at")
def check_staff_available_at(staff_id: int) -> tuple[dict[str, object], int]:
    """Whether the staff member works at a weekday and time (ignores bookings)."""
    day = request.args.get("day")
    at = request.args.get("time")
    if not day or not at:
        return jsonify({"error": "invalid_payload", "message": "day and time are required"}), 400

    try:
        weekday = Weekday.parse(day)
        moment = TimeOfDay.parse(at)
    except ValueError as exc:
        return jsonify({"error": "invalid_payload", "message": str(exc)}), 400

    try:
        staff = db.session.get(Staff, staff_id)
        if not staff:
            return jsonify({"error": "not_found", "message": "Staff member not found"}), 404

        available = bool(staff.is_available) and is_available_at(staff.weekly_schedule, weekday, moment)
        return jsonify({"staff_id": staff_id, "day": weekday.value, "time": str(moment), "available": available}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to check availability", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


# --- END: Staff schedules and availability ---


def register_routes(app: Flask) -> None:
    from .routes_booking import bp_booking

    app.register_blueprint(bp)
    app.register_blueprint(bp_booking)
