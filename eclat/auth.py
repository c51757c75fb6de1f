"""Bearer token helpers and access guards for the HTTP routes."""
from __future__ import annotations

from functools import wraps

from flask import current_app, g, jsonify, request
from itsdangerous import BadSignature, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from .extensions import db
from .models import User

TOKEN_SALT = "auth-token"


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def build_token(user: User) -> str:
    return _serializer().dumps({"user_id": user.user_id, "role": user.role})


def get_jwt_identity() -> int | None:
    """Extract and validate user_id from the Authorization header token.

    Returns the user_id if the token is valid, None if missing, tampered
    with or expired.
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]  # Remove "Bearer " prefix

    try:
        payload = _serializer().loads(token, max_age=current_app.config["TOKEN_MAX_AGE_SECONDS"])
    except BadSignature:
        return None
    return payload.get("user_id") if isinstance(payload, dict) else None


def login_required(view):
    """Reject the request with 401 unless a valid token names an existing user."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        user_id = get_jwt_identity()
        user = db.session.get(User, user_id) if user_id else None
        if user is None:
            return jsonify({"error": "unauthorized", "message": "Invalid or missing token"}), 401
        g.current_user = user
        return view(*args, **kwargs)

    return wrapper


def admin_required(view):
    """Like :func:`login_required`, additionally requiring the admin role."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        if not g.current_user.is_admin:
            return jsonify({"error": "forbidden", "message": "Admin access required"}), 403
        return view(*args, **kwargs)

    return login_required(wrapper)
