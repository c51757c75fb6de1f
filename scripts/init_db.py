#!/usr/bin/env python3
"""Create the booking tables (users, staff, services, appointments, reviews)."""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from eclat import create_app
from eclat.extensions import db


def init_database(drop: bool = False):
    app = create_app()
    with app.app_context():
        if drop:
            db.drop_all()
        db.create_all()
        print(f"✅ Database tables initialized at {app.config['SQLALCHEMY_DATABASE_URI']}")


if __name__ == "__main__":
    init_database(drop="--drop" in sys.argv[1:])
