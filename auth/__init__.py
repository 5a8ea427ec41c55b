from flask import Blueprint, request

auth_bp = Blueprint(
    'auth',
    __name__,
    url_prefix="/auth",
)

# --- Security headers (auth endpoints only) ---
@auth_bp.after_app_request
def _auth_security_headers(response):
    if not (request.blueprint == "auth" or request.path.startswith("/auth")):
        return response

    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Cache-Control", "no-store")
    response.headers.setdefault("X-Frame-Options", "DENY")
    return response


from . import local_routes  # noqa: E402,F401
