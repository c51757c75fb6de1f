"""Database models for the Éclat Salon backend."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import text
from sqlalchemy.orm import object_session

from .extensions import db
from .ratings import StaffRating
from .scheduling import DaySchedule, TimeOfDay, Weekday, WeeklySchedule


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


SERVICE_CATEGORIES = (
    "Hair Styling",
    "Nail Art",
    "Facial Treatments",
    "Massage Therapy",
    "Eyebrow & Eyelash",
    "Skincare",
    "Body Treatments",
    "Men's Grooming",
    "Wedding Services",
    "Special Occasions",
)

SPECIALIZATIONS = (
    "Hair Styling",
    "Hair Cutting",
    "Hair Coloring",
    "Nail Art",
    "Manicures",
    "Pedicures",
    "Facial Treatments",
    "Skincare",
    "Massage Therapy",
    "Relaxation Massage",
    "Therapeutic Massage",
    "Eyebrow Shaping",
    "Eyelash Extensions",
    "Eyebrow Tinting",
    "Bridal Styling",
    "Men's Grooming",
    "Body Treatments",
)

APPOINTMENT_STATUSES = ("pending", "confirmed", "completed", "cancelled", "no-show")
# Statuses that hold a slot for availability purposes.
SLOT_HOLDING_STATUSES = ("pending", "confirmed")
PAYMENT_STATUSES = ("pending", "paid", "refunded", "partially-refunded")
PAYMENT_METHODS = ("cash", "credit-card", "debit-card", "paypal", "apple-pay", "google-pay")


# Services each staff member performs.
staff_services = db.Table(
    "staff_services",
    db.Column("staff_id", db.Integer, db.ForeignKey("staff.staff_id"), primary_key=True),
    db.Column("service_id", db.Integer, db.ForeignKey("services.service_id"), primary_key=True),
)

# Users who marked a review as helpful; one mark per user.
review_helpful_marks = db.Table(
    "review_helpful_marks",
    db.Column("review_id", db.Integer, db.ForeignKey("reviews.review_id"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.user_id"), primary_key=True),
)


class User(db.Model):
    __tablename__ = "users"

    user_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    phone = db.Column(db.String(30))
    role = db.Column(
        db.Enum(
            "user",
            "admin",
            name="user_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="user",
    )
    avatar = db.Column(db.String(500), nullable=False, default="")
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    email_notifications = db.Column(db.Boolean, nullable=False, default=True)
    sms_notifications = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    auth_account = db.relationship("AuthAccount", back_populates="user", uselist=False)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "name": self.name,
            "avatar": self.avatar,
        }

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "avatar": self.avatar,
            "is_verified": bool(self.is_verified),
            "preferences": {
                "email_notifications": bool(self.email_notifications),
                "sms_notifications": bool(self.sms_notifications),
            },
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class AuthAccount(db.Model):
    __tablename__ = "auth_accounts"

    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), primary_key=True)
    password_hash = db.Column(db.String(255), nullable=False)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    user = db.relationship("User", back_populates="auth_account")


class Service(db.Model):
    """Treatments offered by the salon."""

    __tablename__ = "services"

    service_id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False)
    short_description = db.Column(db.String(200))
    category = db.Column(
        db.Enum(
            *SERVICE_CATEGORIES,
            name="service_category",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    price_cents = db.Column(db.Integer, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    image = db.Column(db.String(500), nullable=False, default="")
    is_popular = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    tags = db.Column(db.JSON, nullable=False, default=list)
    booking_notes = db.Column(db.String(500))
    cancellation_policy = db.Column(
        db.String(300),
        nullable=False,
        default="24-hour advance notice required for cancellations",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    staff = db.relationship("Staff", secondary=staff_services, back_populates="services")

    @property
    def formatted_price(self) -> str:
        return f"${self.price_cents / 100:.2f}"

    @property
    def formatted_duration(self) -> str:
        hours, minutes = divmod(self.duration_minutes, 60)
        if hours and minutes:
            return f"{hours}h {minutes}m"
        if hours:
            return f"{hours}h"
        return f"{minutes}m"

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "title": self.title,
            "category": self.category,
            "price_cents": self.price_cents,
            "duration_minutes": self.duration_minutes,
        }

    def to_dict(self, include: Iterable[str] = ()) -> dict[str, object]:
        payload = {
            "id": self.service_id,
            "title": self.title,
            "description": self.description,
            "short_description": self.short_description,
            "category": self.category,
            "price_cents": self.price_cents,
            "formatted_price": self.formatted_price,
            "duration_minutes": self.duration_minutes,
            "formatted_duration": self.formatted_duration,
            "image": self.image,
            "is_popular": bool(self.is_popular),
            "is_active": bool(self.is_active),
            "tags": self.tags or [],
            "booking_notes": self.booking_notes,
            "cancellation_policy": self.cancellation_policy,
            "staff_ids": [member.staff_id for member in self.staff],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if "staff" in include:
            payload["staff"] = [member.to_dict_basic() for member in self.staff]
        return payload


class Staff(db.Model):
    __tablename__ = "staff"

    staff_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    phone = db.Column(db.String(30), nullable=False)
    specialization = db.Column(db.JSON, nullable=False, default=list)
    bio = db.Column(db.String(1000))
    experience_years = db.Column(db.Integer, nullable=False, default=0)
    avatar = db.Column(db.String(500), nullable=False, default="")
    languages = db.Column(db.JSON, nullable=False, default=lambda: ["English"])
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    # Maintained only by the rating aggregator.
    rating_average = db.Column(db.Float, nullable=False, default=0.0)
    rating_count = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    services = db.relationship("Service", secondary=staff_services, back_populates="staff")
    schedule_entries = db.relationship(
        "StaffSchedule",
        back_populates="staff",
        cascade="all, delete-orphan",
        order_by="StaffSchedule.schedule_id",
    )

    @property
    def rating(self) -> StaffRating:
        return StaffRating(float(self.rating_average or 0.0), int(self.rating_count or 0))

    @property
    def formatted_rating(self) -> str:
        return self.rating.formatted

    @property
    def experience_text(self) -> str:
        if not self.experience_years:
            return "New Professional"
        if self.experience_years == 1:
            return "1 Year Experience"
        return f"{self.experience_years}+ Years Experience"

    @property
    def weekly_schedule(self) -> WeeklySchedule:
        return WeeklySchedule(entry.to_day_schedule() for entry in self.schedule_entries)

    def replace_schedule(self, schedule: WeeklySchedule) -> None:
        """Swap every stored day for the entries of ``schedule``."""
        self.schedule_entries.clear()
        session = object_session(self)
        if session is not None:
            # old rows must be gone before new ones hit the (staff_id, day) constraint
            session.flush()
        self.schedule_entries.extend(StaffSchedule.from_day_schedule(day) for day in schedule)

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.staff_id,
            "name": self.name,
            "specialization": self.specialization or [],
            "avatar": self.avatar,
            "experience_years": self.experience_years,
        }

    def to_dict(self, include: Iterable[str] = ()) -> dict[str, object]:
        payload = {
            "id": self.staff_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "specialization": self.specialization or [],
            "bio": self.bio,
            "experience_years": self.experience_years,
            "experience_text": self.experience_text,
            "avatar": self.avatar,
            "languages": self.languages or [],
            "is_available": bool(self.is_available),
            "rating": self.rating.to_dict(),
            "formatted_rating": self.formatted_rating,
            "schedule": self.weekly_schedule.to_list(),
            "service_ids": [service.service_id for service in self.services],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if "services" in include:
            payload["services"] = [service.to_dict_basic() for service in self.services]
        return payload


class StaffSchedule(db.Model):
    """One weekday of a staff member's working hours."""

    __tablename__ = "staff_schedules"
    __table_args__ = (db.UniqueConstraint("staff_id", "day", name="uq_staff_schedules_day"),)

    schedule_id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.staff_id"), nullable=False)
    day = db.Column(
        db.Enum(
            *(weekday.value for weekday in Weekday),
            name="weekday",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    # Minutes since midnight.
    start_minute = db.Column(db.Integer, nullable=False)
    end_minute = db.Column(db.Integer, nullable=False)
    break_start_minute = db.Column(db.Integer)
    break_end_minute = db.Column(db.Integer)

    staff = db.relationship("Staff", back_populates="schedule_entries")

    @classmethod
    def from_day_schedule(cls, day: DaySchedule) -> "StaffSchedule":
        return cls(
            day=day.day.value,
            is_available=day.is_available,
            start_minute=day.start_time.minutes,
            end_minute=day.end_time.minutes,
            break_start_minute=day.break_start.minutes if day.break_start else None,
            break_end_minute=day.break_end.minutes if day.break_end else None,
        )

    def to_day_schedule(self) -> DaySchedule:
        return DaySchedule(
            day=Weekday(self.day),
            is_available=bool(self.is_available),
            start_time=TimeOfDay(self.start_minute),
            end_time=TimeOfDay(self.end_minute),
            break_start=TimeOfDay(self.break_start_minute) if self.break_start_minute is not None else None,
            break_end=TimeOfDay(self.break_end_minute) if self.break_end_minute is not None else None,
        )


class Appointment(db.Model):
    """A booked service with one staff member."""

    __tablename__ = "appointments"
    __table_args__ = (
        # A slot can be held by one live appointment per staff member.
        db.Index(
            "uq_appointments_active_slot",
            "staff_id",
            "date",
            "time_minutes",
            unique=True,
            sqlite_where=text("status IN ('pending', 'confirmed')"),
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
    )

    appointment_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.staff_id"), nullable=False)
    date = db.Column(db.Date, nullable=False)
    time_minutes = db.Column(db.Integer, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(
        db.Enum(
            *APPOINTMENT_STATUSES,
            name="appointment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    payment_status = db.Column(
        db.Enum(
            *PAYMENT_STATUSES,
            name="payment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    payment_method = db.Column(
        db.Enum(
            *PAYMENT_METHODS,
            name="payment_method",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="credit-card",
    )
    comment = db.Column(db.String(500))
    special_instructions = db.Column(db.String(500))
    staff_notes = db.Column(db.String(500))
    cancelled_by = db.Column(db.String(20))
    cancelled_at = db.Column(db.DateTime)
    cancellation_reason = db.Column(db.String(500))
    original_date = db.Column(db.Date)
    original_time_minutes = db.Column(db.Integer)
    rescheduled_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    user = db.relationship("User")
    service = db.relationship("Service")
    staff = db.relationship("Staff")
    review = db.relationship("Review", back_populates="appointment", uselist=False)

    @property
    def time(self) -> TimeOfDay:
        return TimeOfDay(self.time_minutes)

    @property
    def end_time(self) -> str:
        # an appointment may run past midnight only in bad data; clamp the label
        end = min(self.time_minutes + self.duration_minutes, 23 * 60 + 59)
        return str(TimeOfDay(end))

    def to_dict(self, include: Iterable[str] = ()) -> dict[str, object]:
        payload = {
            "id": self.appointment_id,
            "user_id": self.user_id,
            "service_id": self.service_id,
            "staff_id": self.staff_id,
            "date": self.date.isoformat() if self.date else None,
            "day": Weekday.from_date(self.date).value if self.date else None,
            "time": str(self.time),
            "end_time": self.end_time,
            "duration_minutes": self.duration_minutes,
            "price_cents": self.price_cents,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "comment": self.comment,
            "special_instructions": self.special_instructions,
            "cancellation": {
                "cancelled_by": self.cancelled_by,
                "cancelled_at": _iso(self.cancelled_at),
                "reason": self.cancellation_reason,
            } if self.cancelled_at else None,
            "rescheduled": {
                "original_date": self.original_date.isoformat() if self.original_date else None,
                "original_time": str(TimeOfDay(self.original_time_minutes))
                if self.original_time_minutes is not None else None,
                "rescheduled_at": _iso(self.rescheduled_at),
            } if self.rescheduled_at else None,
            "review_id": self.review.review_id if self.review else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if "user" in include:
            payload["user"] = self.user.to_dict_basic() if self.user else None
        if "service" in include:
            payload["service"] = self.service.to_dict_basic() if self.service else None
        if "staff" in include:
            payload["staff"] = self.staff.to_dict_basic() if self.staff else None
        return payload


class Review(db.Model):
    """Client review of a completed appointment."""

    __tablename__ = "reviews"

    review_id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(
        db.Integer, db.ForeignKey("appointments.appointment_id"), nullable=False, unique=True
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.staff_id"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=False)
    rating_overall = db.Column(db.Integer, nullable=False)  # 1-5 stars
    rating_service = db.Column(db.Integer)
    rating_staff = db.Column(db.Integer)
    rating_atmosphere = db.Column(db.Integer)
    rating_value = db.Column(db.Integer)
    comment = db.Column(db.String(1000), nullable=False)
    tags = db.Column(db.JSON, nullable=False, default=list)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    is_approved = db.Column(db.Boolean, nullable=False, default=True)
    is_public = db.Column(db.Boolean, nullable=False, default=True)
    helpful_count = db.Column(db.Integer, nullable=False, default=0)
    response_text = db.Column(db.String(500))
    responded_by = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    responded_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    appointment = db.relationship("Appointment", back_populates="review")
    user = db.relationship("User", foreign_keys=[user_id])
    staff = db.relationship("Staff")
    service = db.relationship("Service")
    helpful_users = db.relationship("User", secondary=review_helpful_marks)

    @property
    def rating_text(self) -> str:
        return "★" * self.rating_overall + "☆" * (5 - self.rating_overall) + f" ({self.rating_overall}/5)"

    def to_dict(self, include: Iterable[str] = ()) -> dict[str, object]:
        payload = {
            "id": self.review_id,
            "appointment_id": self.appointment_id,
            "user_id": self.user_id,
            "staff_id": self.staff_id,
            "service_id": self.service_id,
            "rating": {
                "overall": self.rating_overall,
                "service": self.rating_service,
                "staff": self.rating_staff,
                "atmosphere": self.rating_atmosphere,
                "value": self.rating_value,
            },
            "rating_text": self.rating_text,
            "comment": self.comment,
            "tags": self.tags or [],
            "is_verified": bool(self.is_verified),
            "is_approved": bool(self.is_approved),
            "is_public": bool(self.is_public),
            "helpful_count": self.helpful_count,
            "response": {
                "text": self.response_text,
                "responded_by": self.responded_by,
                "responded_at": _iso(self.responded_at),
            } if self.response_text else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if "user" in include:
            payload["user"] = self.user.to_dict_basic() if self.user else None
        if "staff" in include:
            payload["staff"] = self.staff.to_dict_basic() if self.staff else None
        if "service" in include:
            payload["service"] = self.service.to_dict_basic() if self.service else None
        return payload
