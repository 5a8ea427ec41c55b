import os
from flask_bcrypt import Bcrypt
from flask_jwt_extended import JWTManager, get_jwt_identity
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db      = SQLAlchemy()
bcrypt  = Bcrypt()
migrate = Migrate()
jwt     = JWTManager()


def _rate_limit_key():
    """Signed-in callers are limited per user, everyone else per client IP."""
    try:
        ident = get_jwt_identity()
    except RuntimeError:
        # no verified JWT on this request
        ident = None
    if ident is not None and str(ident).strip():
        return f"user:{ident}"
    return get_remote_address()


limiter = Limiter(
    key_func=_rate_limit_key,
    storage_uri=os.environ.get("RATELIMIT_STORAGE_URI") or os.environ.get("REDIS_URL") or "memory://",
    default_limits=["300 per 5 minutes"],
)
