from flask import current_app, jsonify, request
from flask_jwt_extended import jwt_required
from werkzeug.exceptions import HTTPException

from auth.utils import current_user_id
from extensions import limiter
from scanner.errors import ScannerError, ServerError
from scanner.models import ScanStatus, ThreatStatus
from .. import user_dashboard_bp
from ..services.dashboard_service import (
    get_overview, start_scan, stop_scan, current_scan, list_scans,
    list_threats, quarantine_threat, delete_threat, ignore_threat, list_quarantine,
)
from .common import get_json, ok
from .schemas import coerce_choice, coerce_optional_str, coerce_str

# ---- errors ----------------------------------------------------------------

@user_dashboard_bp.app_errorhandler(ScannerError)
def handle_scanner_error(err: ScannerError):
    if err.status_code >= 500:
        current_app.logger.error("[dashboard] %s: %s %s", err.code, err.message, err.details)
    return jsonify(err.to_dict()), err.status_code

@user_dashboard_bp.app_errorhandler(Exception)
def handle_uncaught_error(err: Exception):
    if isinstance(err, HTTPException):
        return jsonify({"ok": False, "error": {"code": "http_error", "message": err.description}}), err.code
    current_app.logger.exception("[dashboard] unhandled error")
    payload = ServerError("Something went wrong").to_dict()
    if current_app.debug:
        payload["error"]["details"] = {"exception": repr(err)}
    return jsonify(payload), 500

def _status_arg(choices):
    status = request.args.get("status")
    if not status:
        return None
    return coerce_choice({"status": status}, "status", choices)

# ---- overview --------------------------------------------------------------

@user_dashboard_bp.get("/api/overview")
@jwt_required()
def api_overview():
    return ok(get_overview(current_user_id()))

# ---- scans -----------------------------------------------------------------

@user_dashboard_bp.post("/api/scans")
@jwt_required()
@limiter.limit("30/minute")
def api_start_scan():
    data = get_json(required=("scan_type",), optional=("scan_path",))
    snap = start_scan(
        current_user_id(),
        coerce_str(data, "scan_type", min_len=1, max_len=16),
        coerce_optional_str(data, "scan_path"),
    )
    return ok(snap, status=202)

@user_dashboard_bp.post("/api/scans/stop")
@jwt_required()
def api_stop_scan():
    return ok(stop_scan(current_user_id()))

@user_dashboard_bp.get("/api/scans/current")
@jwt_required()
def api_current_scan():
    return ok(current_scan(current_user_id()))

@user_dashboard_bp.get("/api/scans")
@jwt_required()
def api_scans():
    items = list_scans(current_user_id(), status=_status_arg(s.value for s in ScanStatus))
    return ok(items, meta={"total": len(items)})

# ---- threats ---------------------------------------------------------------

@user_dashboard_bp.get("/api/threats")
@jwt_required()
def api_threats():
    items = list_threats(current_user_id(), status=_status_arg(s.value for s in ThreatStatus))
    return ok(items, meta={"total": len(items)})

@user_dashboard_bp.post("/api/threats/<threat_id>/quarantine")
@jwt_required()
def api_quarantine(threat_id: str):
    data = get_json(optional=("file_path",))
    items = quarantine_threat(current_user_id(), threat_id, coerce_optional_str(data, "file_path"))
    return ok(items, meta={"total": len(items)})

@user_dashboard_bp.post("/api/threats/<threat_id>/delete")
@jwt_required()
def api_delete(threat_id: str):
    items = delete_threat(current_user_id(), threat_id)
    return ok(items, meta={"total": len(items)})

@user_dashboard_bp.post("/api/threats/<threat_id>/ignore")
@jwt_required()
def api_ignore(threat_id: str):
    items = ignore_threat(current_user_id(), threat_id)
    return ok(items, meta={"total": len(items)})

@user_dashboard_bp.get("/api/quarantine")
@jwt_required()
def api_quarantine_list():
    items = list_quarantine(current_user_id())
    return ok(items, meta={"total": len(items)})
