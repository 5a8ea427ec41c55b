from typing import Optional
from scanner.models import ScanStatus, ThreatStatus
from scanner.store import RecordStore, serialize


def repo_list_scans(store: RecordStore, user_id: int, status: Optional[str] = None):
    filters = {"user_id": user_id}
    if status:
        filters["status"] = status
    rows = store.select("scans", filters, order_by="started_at", descending=True)
    return [serialize(r) for r in rows]


def repo_last_scan(store: RecordStore, user_id: int):
    rows = store.select("scans", {"user_id": user_id}, order_by="started_at", descending=True)
    return serialize(rows[0]) if rows else None


def repo_get_overview(store: RecordStore, user_id: int):
    open_threats = store.count("threats", {"user_id": user_id, "status": ThreatStatus.DETECTED.value})
    return {
        "protection": "at_risk" if open_threats else "secure",
        "open_threats": open_threats,
        "last_scan": repo_last_scan(store, user_id),
        "scans_total": store.count("scans", {"user_id": user_id}),
        "scans_completed": store.count("scans", {"user_id": user_id, "status": ScanStatus.COMPLETED.value}),
        "threats_total": store.count("threats", {"user_id": user_id}),
        "quarantined_total": store.count("quarantine", {"user_id": user_id}),
    }
