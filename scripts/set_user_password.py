"""Create an account or reset its password, e.g. to bootstrap a salon admin."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure the project root is on sys.path so ``eclat`` can be imported when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from eclat import create_app
from eclat.auth import hash_password
from eclat.extensions import db
from eclat.models import AuthAccount, User

ROLES = ("user", "admin")


def set_password(email: str, password: str, role: str | None = None, name: str | None = None) -> None:
    if len(password) < 6:
        print("Error: password must be at least 6 characters")
        return

    app = create_app()

    with app.app_context():
        user = User.query.filter_by(email=email.lower()).first()
        if user is None:
            user = User(name=name or email.split("@")[0], email=email.lower(), role=role or "user")
            db.session.add(user)
            db.session.flush()
            print(f"Created new {user.role} account: {email}")
        elif role and user.role != role:
            print(f"Changing role of {email} from '{user.role}' to '{role}'")
            user.role = role

        if user.auth_account is None:
            user.auth_account = AuthAccount(password_hash=hash_password(password))
        else:
            user.auth_account.password_hash = hash_password(password)
        db.session.commit()

        print(f"Password for '{email}' has been set successfully.")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create an account or reset its password.")
    parser.add_argument("email", help="Account email address")
    parser.add_argument("password", help="Plain-text password to hash and store")
    parser.add_argument("--role", choices=ROLES, help="Set the account role (new accounts default to user)")
    parser.add_argument("--name", help="Display name for a new account")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    set_password(args.email, args.password, args.role, args.name)


if __name__ == "__main__":
    main()
