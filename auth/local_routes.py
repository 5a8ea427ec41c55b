from flask import current_app, jsonify, request
from flask_jwt_extended import create_access_token, get_jwt_identity, jwt_required, current_user
from flask_limiter.util import get_remote_address
from sqlalchemy.exc import IntegrityError

from extensions import db, limiter
from account.models import Profile
from plans.catalog import DEFAULT_TIER
from . import auth_bp
from .models import LocalAuth, User
from .utils import login_local


@auth_bp.route('/signup', methods=['POST'])
@limiter.limit("10 per hour")
def signup():
    data = request.get_json(silent=True) or {}
    email     = User.normalize_email(data.get('email', ''))
    password  = data.get('password', '')
    full_name = (data.get('full_name') or '').strip() or None

    # 1) Required fields
    if not email or not password:
        return jsonify(message="Email and password are required."), 400

    # 2) Email shape
    try:
        User._validate_email(email)
    except ValueError as ve:
        return jsonify(message=str(ve)), 400

    # 3) Unique email
    if User.query.filter_by(email=email).first():
        return jsonify(message="Email already registered."), 409

    user = User(email=email)
    la = LocalAuth(user=user)
    try:
        la.set_password(password, email)
    except ValueError as ve:
        return jsonify(message=str(ve)), 400

    user.profile = Profile(email=email, full_name=full_name,
                           subscription_tier=DEFAULT_TIER.value, subscription_status="active")
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.exception("Signup failed on commit")
        return jsonify(message="Email already registered."), 409

    current_app.logger.info("[auth] signup user=%s", user.id)
    return jsonify(message="Signup successful.", user={"id": user.id, "email": user.email}), 201


def _signin_key():
    data = (request.get_json(silent=True) or {})
    email = (data.get('email') or "").strip().lower()
    ip = get_remote_address()
    return f"{ip}:{email}" if email else ip

@auth_bp.route('/signin', methods=['POST'])
@limiter.limit("5 per 15 minutes", key_func=_signin_key)
def local_login():
    data = request.get_json(silent=True) or {}
    email    = data.get('email', '')
    password = data.get('password', '')

    tokens, err = login_local(email, password)
    if err:
        return jsonify(message=err), 401
    return jsonify(tokens), 200


@auth_bp.route('/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    return jsonify(access_token=create_access_token(identity=get_jwt_identity())), 200


@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def me():
    return jsonify(id=current_user.id, email=current_user.email), 200
