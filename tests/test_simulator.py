from datetime import datetime, timedelta, timezone

import pytest

from extensions import db
from plans.catalog import Tier
from scanner.errors import AuthorizationError, PersistenceError, ValidationError
from scanner.models import Scan, Threat
from scanner.simulator import SAMPLE_FILES, ScanSession, SessionState, SimulatorSettings
from scanner.store import SqlRecordStore
from scanner.tasks import fail_stale_scans

from conftest import FlakyStore, ScriptedRandom


@pytest.fixture
def session(user, scheduler, rng):
    return ScanSession(user.id, SqlRecordStore(), scheduler, rng=rng, settings=SimulatorSettings())


def test_target_files_per_scan_type(make_user, scheduler, rng):
    pro = make_user("pro@example.com", tier="pro")
    for scan_type, path, target in (("quick", None, 1000), ("full", None, 50000), ("custom", "/home/me", 5000)):
        sess = ScanSession(pro.id, SqlRecordStore(), scheduler, rng=rng)
        snap = sess.start(scan_type, path, tier=Tier.PRO)
        assert snap["state"] == "running"
        assert snap["target_files"] == target
        assert snap["progress"] == 0


def test_free_tier_cannot_start_full_scan(session, scheduler):
    with pytest.raises(AuthorizationError) as exc:
        session.start("full", tier=Tier.FREE)
    assert exc.value.code == "upgrade_required"
    assert Scan.query.count() == 0
    assert scheduler.tasks == []
    assert session.state == SessionState.IDLE


def test_custom_scan_needs_a_path(session):
    with pytest.raises(ValidationError):
        session.start("custom", "   ")
    assert Scan.query.count() == 0


def test_unknown_scan_type_is_rejected(session):
    with pytest.raises(ValidationError):
        session.start("deep")


def test_start_persists_running_record(session, user):
    snap = session.start("custom", " /srv/data ")
    scan = db.session.get(Scan, snap["scan_id"])
    assert scan.user_id == user.id
    assert scan.status == "running"
    assert scan.scan_type == "custom"
    assert scan.scan_path == "/srv/data"
    assert scan.files_scanned == 0


def test_progress_is_monotonic_and_completes_once(session, scheduler):
    session.start("quick")
    seen = []
    while scheduler.live:
        scheduler.step()
        seen.append(session.snapshot()["progress"])

    assert seen == sorted(seen)
    assert seen.count(100.0) == 1
    assert all(0 <= p <= 100 for p in seen)
    # 75 files per tick over 1000 files: 13 ticks below 100, the 14th completes
    assert len(seen) == 14

    snap = session.snapshot()
    assert snap["state"] == "completed"
    assert snap["files_scanned"] == 1000
    assert snap["current_file"] == ""
    assert snap["completed_at"] is not None


def test_running_ticks_report_sample_files(session, scheduler):
    session.start("quick")
    scheduler.step()
    snap = session.snapshot()
    assert snap["progress"] == 7.5
    assert snap["files_scanned"] == 75
    assert snap["current_file"] in SAMPLE_FILES


def test_threats_found_matches_persisted_threats(user, scheduler):
    sess = ScanSession(user.id, SqlRecordStore(), scheduler, rng=ScriptedRandom(threats=2))
    snap = sess.start("quick")
    scheduler.run_until_idle()

    scan = db.session.get(Scan, snap["scan_id"])
    threats = Threat.query.filter_by(scan_id=scan.id).all()
    assert scan.status == "completed"
    assert scan.files_scanned == 1000
    assert scan.threats_found == 2 == len(threats)
    assert sess.snapshot()["threats_found"] == 2
    for t in threats:
        assert t.status == "detected"
        assert t.user_id == user.id
        assert t.file_path in SAMPLE_FILES
        assert t.threat_name.startswith("Threat.")
        assert t.threat_type in ("virus", "malware", "trojan")


def test_clean_scan_writes_no_threats(user, scheduler):
    sess = ScanSession(user.id, SqlRecordStore(), scheduler, rng=ScriptedRandom(threats=0))
    snap = sess.start("quick")
    scheduler.run_until_idle()
    assert db.session.get(Scan, snap["scan_id"]).threats_found == 0
    assert Threat.query.count() == 0


def test_stop_resets_session_and_cancels_record(session, scheduler):
    snap = session.start("quick")
    scheduler.step()
    scheduler.step()

    stopped = session.stop()
    assert stopped["state"] == "idle"
    assert stopped["progress"] == 0
    assert stopped["scan_id"] is None
    assert scheduler.live == []

    scan = db.session.get(Scan, snap["scan_id"])
    assert scan.status == "cancelled"
    assert scan.completed_at is not None
    assert Threat.query.count() == 0


def test_stop_is_idempotent(session):
    assert session.stop()["state"] == "idle"
    session.start("quick")
    session.stop()
    again = session.stop()
    assert again["state"] == "idle"
    assert Scan.query.filter_by(status="cancelled").count() == 1


def test_tick_after_stop_does_nothing(session, scheduler):
    session.start("quick")
    _, tick = scheduler.tasks[0]
    session.stop()
    assert tick() is False
    assert session.snapshot()["progress"] == 0


def test_duplicate_start_is_a_noop(session, scheduler):
    first = session.start("quick")
    second = session.start("custom", "/tmp")
    assert second["scan_id"] == first["scan_id"]
    assert second["scan_type"] == "quick"
    assert Scan.query.count() == 1
    assert len(scheduler.tasks) == 1


def test_new_scan_after_completion(session, scheduler):
    first = session.start("quick")
    scheduler.run_until_idle()
    second = session.start("quick")
    assert second["state"] == "running"
    assert second["scan_id"] != first["scan_id"]
    assert second["progress"] == 0
    assert Scan.query.count() == 2


def test_failed_threat_write_marks_scan_failed(user, scheduler):
    store = FlakyStore(("create_many", "threats"))
    sess = ScanSession(user.id, store, scheduler, rng=ScriptedRandom(threats=2))
    snap = sess.start("quick")
    scheduler.run_until_idle()

    final = sess.snapshot()
    assert final["state"] == "completed"
    assert final["last_error"]["code"] == "persistence_error"
    assert db.session.get(Scan, snap["scan_id"]).status == "failed"
    assert Threat.query.count() == 0


def test_settings_from_config():
    s = SimulatorSettings.from_config({"SCAN_TICK_INTERVAL_MS": 250, "SCAN_MAX_THREATS": 5})
    assert s.tick_interval_s == 0.25
    assert s.max_threats == 5
    with pytest.raises(ValueError):
        SimulatorSettings.from_config({"SCAN_FILES_PER_TICK_MIN": 80, "SCAN_FILES_PER_TICK_MAX": 10})


def test_non_string_scan_type_is_a_validation_error(session, scheduler):
    with pytest.raises(ValidationError):
        session.start(123)
    assert scheduler.tasks == []


def test_failed_start_write_leaves_session_idle(user, scheduler):
    sess = ScanSession(user.id, FlakyStore(("create", "scans")), scheduler)
    with pytest.raises(PersistenceError):
        sess.start("quick")
    assert sess.snapshot()["state"] == "idle"
    assert scheduler.tasks == []
    assert Scan.query.count() == 0


def test_failed_completion_update_skips_threat_writes(user, scheduler):
    store = FlakyStore(("update", "scans"))
    sess = ScanSession(user.id, store, scheduler, rng=ScriptedRandom(threats=2))
    snap = sess.start("quick")
    scheduler.run_until_idle()

    assert ("create_many", "threats") not in store.calls
    assert Threat.query.count() == 0
    final = sess.snapshot()
    assert final["state"] == "completed"
    assert final["last_error"]["code"] == "persistence_error"
    assert db.session.get(Scan, snap["scan_id"]).status == "running"


class _BrokenUpdateStore(SqlRecordStore):
    def update(self, table, match, partial):
        raise RuntimeError("driver went away")


def test_unexpected_completion_error_does_not_wedge_session(user, scheduler):
    sess = ScanSession(user.id, _BrokenUpdateStore(), scheduler, rng=ScriptedRandom(threats=1))
    first = sess.start("quick")
    scheduler.run_until_idle()

    final = sess.snapshot()
    assert final["state"] == "completed"
    assert final["last_error"]["code"] == "server_error"
    assert sess.stop()["state"] == "completed"

    second = sess.start("quick")
    assert second["state"] == "running"
    assert second["scan_id"] != first["scan_id"]


def test_completion_keeps_record_failed_by_reconciler(session, scheduler):
    snap = session.start("quick")
    scheduler.step()
    assert fail_stale_scans(datetime.now(timezone.utc) + timedelta(minutes=1)) == 1

    scheduler.run_until_idle()

    scan = db.session.get(Scan, snap["scan_id"])
    assert scan.status == "failed"
    assert scan.threats_found == 0
    assert Threat.query.count() == 0
    final = session.snapshot()
    assert final["state"] == "completed"
    assert final["last_error"]["code"] == "precondition_failed"
