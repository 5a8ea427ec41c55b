from flask import Blueprint

account_bp = Blueprint(
    "account",
    __name__,
    url_prefix="/account",
)

# Route modules
from .routes import profile, cli  # noqa: E402,F401
