from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple
from flask import jsonify
from flask_jwt_extended import create_access_token, create_refresh_token, get_jwt_identity
from extensions import db
from .models import User

utcnow = lambda: datetime.now(timezone.utc)

MAX_FAILED_LOGINS = 5
LOCKOUT = timedelta(minutes=15)


def init_jwt_manager(app, jwt):
    """
    Register JSON responses for the JWTManager failure callbacks.
    Call this in the factory after jwt.init_app(app).
    """
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({"ok": False, "error": {"code": "token_expired", "message": "Token has expired"}}), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(err):
        return jsonify({"ok": False, "error": {"code": "invalid_token", "message": "Invalid token"}}), 422

    @jwt.unauthorized_loader
    def missing_token_callback(err):
        return jsonify({"ok": False, "error": {"code": "unauthorized", "message": "Authorization required"}}), 401

    @jwt.user_lookup_loader
    def load_user(jwt_header, jwt_payload):
        try:
            return db.session.get(User, int(jwt_payload.get("sub")))
        except (TypeError, ValueError):
            return None


def current_user_id() -> int:
    return int(get_jwt_identity())


def jwt_login(user: User) -> Dict[str, str]:
    """Issue JWT access and refresh tokens for an authenticated user."""
    if user.local_auth:
        user.local_auth.failed_logins = 0
        user.local_auth.last_login_at = utcnow()
        db.session.add(user.local_auth)
        db.session.commit()

    str_id = str(user.id)
    return {
        'access_token': create_access_token(identity=str_id),
        'refresh_token': create_refresh_token(identity=str_id),
    }


def login_local(email: str, password: str) -> Tuple[Optional[dict], Optional[str]]:
    """
    Attempt to authenticate a user by email+password.
    On success returns (tokens, None), on failure returns (None, error_msg).
    """
    user = User.query.filter_by(email=User.normalize_email(email)).first()
    la = user.local_auth if user else None

    if la and la.failed_logins >= MAX_FAILED_LOGINS:
        last = la.last_failed_at or utcnow()
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        if utcnow() < last + LOCKOUT:
            return None, "Account locked. Try again later."
        la.failed_logins = 0

    if not user or not la or not la.check_password(password):
        # record failed attempt
        if la:
            la.failed_logins += 1
            la.last_failed_at = utcnow()
            db.session.commit()
        return None, "Invalid credentials"

    return jwt_login(user), None
