import os
import enum
import logging
import click
from datetime import timedelta
from flask import Flask, jsonify, request
from dotenv import load_dotenv
from flask.json.provider import DefaultJSONProvider

from auth import auth_bp
from account import account_bp
from user_dashboard import user_dashboard_bp
from extensions import db, bcrypt, migrate, limiter, jwt
from auth.utils import init_jwt_manager
from scanner.simulator import init_scanner

load_dotenv()

class EnumJSONProvider(DefaultJSONProvider):
    def default(self, o):
        if isinstance(o, enum.Enum):
            return o.value
        return super().default(o)

def _env_bool(name, default="0"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")

def create_app(config_overrides=None):
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_mapping(
        SECRET_KEY=os.getenv('SECRET_KEY', 'dev'),
        JWT_SECRET_KEY=os.getenv('JWT_SECRET_KEY', os.getenv('SECRET_KEY', 'dev')),
        SQLALCHEMY_DATABASE_URI=os.getenv(
            'DATABASE_URL', f"sqlite:///{os.path.join(app.instance_path, 'app.db')}"
        ),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        LOG_LEVEL=os.getenv('LOG_LEVEL', 'INFO'),

        JWT_TOKEN_LOCATION=["headers"],
        JWT_ACCESS_TOKEN_EXPIRES=timedelta(days=1),
        JWT_REFRESH_TOKEN_EXPIRES=timedelta(days=7),

        # scan simulator
        SCAN_TICK_INTERVAL_MS=int(os.getenv('SCAN_TICK_INTERVAL_MS', 100)),
        SCAN_FILES_PER_TICK_MIN=float(os.getenv('SCAN_FILES_PER_TICK_MIN', 25)),
        SCAN_FILES_PER_TICK_MAX=float(os.getenv('SCAN_FILES_PER_TICK_MAX', 75)),
        SCAN_MAX_THREATS=int(os.getenv('SCAN_MAX_THREATS', 2)),
        SCAN_RANDOM_SEED=os.getenv('SCAN_RANDOM_SEED') or None,
        QUARANTINE_PREFIX=os.getenv('QUARANTINE_PREFIX', '/quarantine/'),
        SCAN_STALE_AFTER_MINUTES=int(os.getenv('SCAN_STALE_AFTER_MINUTES', 60)),

        CELERY_BROKER_URL=os.getenv('CELERY_BROKER_URL', 'redis://127.0.0.1:6379/0'),
        CELERY_RESULT_BACKEND=os.getenv('CELERY_RESULT_BACKEND', 'redis://127.0.0.1:6379/1'),

        RATELIMIT_ENABLED=_env_bool('RATELIMIT_ENABLED', '1'),
        RATELIMIT_HEADERS_ENABLED=True,
    )
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO))

    os.makedirs(app.instance_path, exist_ok=True)

    db.init_app(app)
    bcrypt.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    app.json_provider_class = EnumJSONProvider
    app.json = app.json_provider_class(app)

    # make sure every table is registered on the metadata
    from auth import models as _auth_models          # noqa: F401
    from account import models as _account_models    # noqa: F401
    from scanner import models as _scanner_models    # noqa: F401

    app.register_blueprint(auth_bp)
    app.register_blueprint(account_bp)
    app.register_blueprint(user_dashboard_bp)

    init_jwt_manager(app, jwt)
    init_scanner(app)

    @app.cli.command("init-db")
    def init_db():
        """Create all tables (use `flask db upgrade` once migrations exist)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.after_request
    def set_security_headers(resp):
        resp.headers['X-Frame-Options'] = 'DENY'
        resp.headers['X-Content-Type-Options'] = 'nosniff'
        resp.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        if request.is_secure or app.config.get('FORCE_HTTPS'):
            resp.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains; preload'
        return resp

    @app.errorhandler(404)
    def not_found(_e):
        return jsonify({"ok": False, "error": {"code": "not_found", "message": "Not found"}}), 404

    @app.errorhandler(429)
    def too_many(e):
        return jsonify({"ok": False, "error": {"code": "rate_limited", "message": str(e.description)}}), 429

    @app.route('/')
    def index():
        return jsonify({"ok": True, "data": {"service": "n0dr1e"}, "meta": {}})

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', 5000)), debug=True)
