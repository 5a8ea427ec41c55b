# scanner/tasks.py
from __future__ import annotations
from datetime import datetime, timedelta, timezone
from celery.utils.log import get_task_logger
from flask import current_app
from celery_app import celery
from extensions import db
from scanner.models import Scan, ScanStatus

utcnow = lambda: datetime.now(timezone.utc)
log = get_task_logger(__name__)


def fail_stale_scans(cutoff: datetime) -> int:
    """
    Scans still 'running' after the cutoff lost their in-memory session
    (process restart, worker crash). Close them out as failed.
    """
    stale = (
        db.session.query(Scan)
        .filter(Scan.status == ScanStatus.RUNNING.value,
                Scan.started_at < cutoff)
        .all()
    )
    now = utcnow()
    for s in stale:
        s.status = ScanStatus.FAILED.value
        s.completed_at = now
    if stale:
        db.session.commit()
    return len(stale)


@celery.task(name="scanner.tasks.reconcile_stale_scans")
def reconcile_stale_scans():
    minutes = int(current_app.config.get("SCAN_STALE_AFTER_MINUTES", 60))
    changed = fail_stale_scans(utcnow() - timedelta(minutes=minutes))
    if changed:
        log.info(f"[reconcile_stale_scans] failed {changed} stale scan(s) older than {minutes}m")
    return {"stale": changed}
