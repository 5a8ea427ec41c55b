from __future__ import annotations
from flask_jwt_extended import jwt_required
from extensions import db
from account.models import Profile
from auth.utils import current_user_id
from scanner.errors import NotFoundError
from user_dashboard.api.common import get_json, ok
from user_dashboard.api.schemas import coerce_str
from .. import account_bp


def load_profile(user_id: int) -> Profile:
    prof = Profile.query.filter_by(user_id=user_id).first()
    if prof is None:
        raise NotFoundError("Profile not found")
    return prof


@account_bp.get("/api/profile")
@jwt_required()
def get_profile():
    return ok(load_profile(current_user_id()).to_dict())


@account_bp.patch("/api/profile")
@jwt_required()
def update_profile():
    prof = load_profile(current_user_id())
    data = get_json(required=("full_name",))
    name = coerce_str(data, "full_name", max_len=255)
    prof.full_name = name or None
    db.session.commit()
    return ok(prof.to_dict())
