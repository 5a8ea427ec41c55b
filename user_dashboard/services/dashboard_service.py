from typing import Optional
from flask import current_app

from scanner.simulator import get_registry
from scanner.store import serialize
from scanner.threats import ThreatResolutionWorkflow
from ..repositories.scans_repo import repo_get_overview, repo_list_scans
from ..repositories.threats_repo import repo_list_quarantine
from ..repositories.account_repo import repo_effective_tier


def _store():
    return get_registry().store


def _workflow(user_id: int) -> ThreatResolutionWorkflow:
    return ThreatResolutionWorkflow(
        _store(),
        user_id,
        rng=get_registry().rng_factory(),
        quarantine_prefix=current_app.config.get("QUARANTINE_PREFIX", "/quarantine/"),
    )


def get_overview(user_id: int):
    store = _store()
    data = repo_get_overview(store, user_id)
    data["tier"] = repo_effective_tier(store, user_id).value
    data["current_scan"] = get_registry().get(user_id).snapshot()
    return data


# ---- scan commands ---------------------------------------------------------

def start_scan(user_id: int, scan_type: str, scan_path: Optional[str] = None):
    tier = repo_effective_tier(_store(), user_id)
    return get_registry().get(user_id).start(scan_type, scan_path, tier=tier)


def stop_scan(user_id: int):
    return get_registry().get(user_id).stop()


def current_scan(user_id: int):
    return get_registry().get(user_id).snapshot()


def list_scans(user_id: int, status: Optional[str] = None):
    return repo_list_scans(_store(), user_id, status=status)


# ---- threat commands -------------------------------------------------------

def list_threats(user_id: int, status: Optional[str] = None):
    return [serialize(t) for t in _workflow(user_id).list_threats(status)]


def quarantine_threat(user_id: int, threat_id: str, file_path: Optional[str] = None):
    return [serialize(t) for t in _workflow(user_id).quarantine(threat_id, file_path)]


def delete_threat(user_id: int, threat_id: str):
    return [serialize(t) for t in _workflow(user_id).delete(threat_id)]


def ignore_threat(user_id: int, threat_id: str):
    return [serialize(t) for t in _workflow(user_id).ignore(threat_id)]


def list_quarantine(user_id: int):
    return repo_list_quarantine(_store(), user_id)
