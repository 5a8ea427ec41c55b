from datetime import datetime, timedelta, timezone

from extensions import db
from scanner.models import Scan
from scanner.store import SqlRecordStore
from scanner.tasks import fail_stale_scans


def test_fail_stale_scans_only_touches_old_running_scans(user):
    now = datetime.now(timezone.utc)
    store = SqlRecordStore()
    for scan_id, status, age in (("old", "running", 120), ("fresh", "running", 5), ("done", "completed", 120)):
        store.create("scans", {"id": scan_id, "user_id": user.id, "scan_type": "quick",
                               "status": status, "started_at": now - timedelta(minutes=age)})

    assert fail_stale_scans(now - timedelta(minutes=60)) == 1

    assert db.session.get(Scan, "old").status == "failed"
    assert db.session.get(Scan, "old").completed_at is not None
    assert db.session.get(Scan, "fresh").status == "running"
    assert db.session.get(Scan, "done").status == "completed"
    assert fail_stale_scans(now - timedelta(minutes=60)) == 0
