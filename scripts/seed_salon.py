#!/usr/bin/env python3
"""Seed the database with an admin account, services and staff schedules."""
import os
import sys
from pathlib import Path

# Add the parent directory to the path so we can import the app
sys.path.insert(0, str(Path(__file__).parent.parent))

from eclat import create_app
from eclat.auth import hash_password
from eclat.extensions import db
from eclat.models import AuthAccount, Service, Staff, User
from eclat.scheduling import WeeklySchedule

SAMPLE_SERVICES = [
    {
        "title": "Signature Haircut",
        "description": "Consultation, wash, precision cut and blow-dry",
        "category": "Hair Styling",
        "price_cents": 6500,  # $65.00
        "duration_minutes": 60,
        "is_popular": True,
    },
    {
        "title": "Gel Manicure",
        "description": "Nail shaping, cuticle care and long-wear gel polish",
        "category": "Nail Art",
        "price_cents": 4500,  # $45.00
        "duration_minutes": 45,
    },
    {
        "title": "Hydrating Facial",
        "description": "Deep cleanse, exfoliation and hydrating mask",
        "category": "Facial Treatments",
        "price_cents": 9000,  # $90.00
        "duration_minutes": 90,
    },
    {
        "title": "Relaxation Massage",
        "description": "Full body Swedish massage",
        "category": "Massage Therapy",
        "price_cents": 11000,  # $110.00
        "duration_minutes": 60,
        "is_popular": True,
    },
]

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")

SAMPLE_STAFF = [
    {
        "name": "Amelia Hart",
        "email": "amelia@eclat.example",
        "phone": "15550100001",
        "specialization": ["Hair Styling", "Hair Cutting"],
        "experience_years": 8,
        "services": ["Signature Haircut"],
        "hours": ("09:00", "17:00", "12:00", "13:00"),
    },
    {
        "name": "Noah Kim",
        "email": "noah@eclat.example",
        "phone": "15550100002",
        "specialization": ["Nail Art", "Manicures"],
        "experience_years": 3,
        "services": ["Gel Manicure"],
        "hours": ("10:00", "18:00", None, None),
    },
    {
        "name": "Sofia Ruiz",
        "email": "sofia@eclat.example",
        "phone": "15550100003",
        "specialization": ["Facial Treatments", "Relaxation Massage"],
        "experience_years": 12,
        "services": ["Hydrating Facial", "Relaxation Massage"],
        "hours": ("09:00", "16:30", "12:30", "13:30"),
    },
]


def _weekday_schedule(start, end, break_start, break_end) -> WeeklySchedule:
    return WeeklySchedule.from_list([
        {"day": day, "startTime": start, "endTime": end, "breakStart": break_start, "breakEnd": break_end}
        for day in WEEKDAYS
    ])


def seed_salon():
    app = create_app()

    with app.app_context():
        db.create_all()

        admin_email = os.environ.get("ADMIN_EMAIL", "admin@eclat.example")
        if not User.query.filter_by(email=admin_email).first():
            admin = User(name="Salon Admin", email=admin_email, phone="15550100000", role="admin")
            db.session.add(admin)
            db.session.flush()
            db.session.add(AuthAccount(
                user_id=admin.user_id,
                password_hash=hash_password(os.environ.get("ADMIN_PASSWORD", "change-me")),
            ))
            print(f"👤 Created admin {admin_email}")

        services = {}
        for data in SAMPLE_SERVICES:
            service = Service.query.filter_by(title=data["title"]).first()
            if service:
                print(f"⏭️  Service {service.title} already exists. Skipping...")
            else:
                service = Service(**data)
                db.session.add(service)
                print(f"💇 Adding service {data['title']}")
            services[data["title"]] = service

        for data in SAMPLE_STAFF:
            if Staff.query.filter_by(email=data["email"]).first():
                print(f"⏭️  Staff member {data['name']} already exists. Skipping...")
                continue

            staff = Staff(
                name=data["name"],
                email=data["email"],
                phone=data["phone"],
                specialization=data["specialization"],
                experience_years=data["experience_years"],
            )
            staff.services = [services[title] for title in data["services"]]
            db.session.add(staff)
            staff.replace_schedule(_weekday_schedule(*data["hours"]))
            print(f"🗓️  Adding staff member {data['name']}")

        db.session.commit()
        print("✅ Salon seed data ready")


if __name__ == "__main__":
    seed_salon()
