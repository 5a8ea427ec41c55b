from datetime import datetime, timedelta, timezone

import pytest

from extensions import db
from scanner.errors import NotFoundError, PersistenceError, PreconditionError
from scanner.models import QuarantineEntry, Threat
from scanner.store import SqlRecordStore
from scanner.threats import (
    ACTION_DELETED, ACTION_IGNORED, ACTION_QUARANTINED,
    ThreatResolutionWorkflow, base_name, quarantine_path_for,
)

from conftest import FlakyStore, ScriptedRandom

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def seed_threat(user):
    store = SqlRecordStore()
    store.create("scans", {"id": "s1", "user_id": user.id, "scan_type": "quick",
                           "status": "completed", "started_at": NOW})

    def _seed(threat_id, file_path="C:\\Temp\\suspicious.tmp", owner=None, detected_at=NOW):
        return store.create("threats", {
            "id": threat_id,
            "user_id": owner or user.id,
            "scan_id": "s1",
            "file_path": file_path,
            "threat_name": "Threat.abc123",
            "threat_type": "trojan",
            "severity": "high",
            "status": "detected",
            "detected_at": detected_at,
        })
    return _seed


@pytest.fixture
def workflow(user):
    return ThreatResolutionWorkflow(SqlRecordStore(), user.id, rng=ScriptedRandom(size=2048))


def test_base_name_handles_both_separators():
    assert base_name("/a/b/evil.exe") == "evil.exe"
    assert base_name("C:\\Windows\\System32\\driver.sys") == "driver.sys"
    assert base_name("plain.txt") == "plain.txt"


def test_quarantine_path_format():
    assert quarantine_path_for("t1", "/a/b/evil.exe") == "/quarantine/t1_evil.exe"
    assert quarantine_path_for("t2", "C:\\Temp\\x.tmp", prefix="/vault/") == "/vault/t2_x.tmp"


def test_quarantine_moves_threat_and_creates_entry(seed_threat, workflow, user):
    seed_threat("t1", "/a/b/evil.exe")

    threats = workflow.quarantine("t1")
    (t1,) = [t for t in threats if t["id"] == "t1"]
    assert t1["status"] == "quarantined"
    assert t1["action_taken"] == ACTION_QUARANTINED
    assert t1["resolved_at"] is not None

    entry = QuarantineEntry.query.filter_by(threat_id="t1").one()
    assert entry.user_id == user.id
    assert entry.original_path == "/a/b/evil.exe"
    assert entry.quarantine_path == "/quarantine/t1_evil.exe"
    assert entry.file_size == 2048


def test_quarantine_uses_supplied_file_path(seed_threat, workflow):
    seed_threat("t1")
    workflow.quarantine("t1", "/home/me/Downloads/setup.bin")
    entry = QuarantineEntry.query.filter_by(threat_id="t1").one()
    assert entry.original_path == "/home/me/Downloads/setup.bin"
    assert entry.quarantine_path.endswith("t1_setup.bin")


def test_resolved_threat_cannot_be_resolved_again(seed_threat, workflow):
    seed_threat("t1")
    workflow.quarantine("t1")
    with pytest.raises(PreconditionError):
        workflow.quarantine("t1")
    with pytest.raises(PreconditionError):
        workflow.delete("t1")
    assert QuarantineEntry.query.count() == 1
    assert db.session.get(Threat, "t1").status == "quarantined"


def test_delete_and_ignore_set_action_text(seed_threat, workflow):
    seed_threat("t1")
    seed_threat("t2")

    workflow.delete("t1")
    threats = {t["id"]: t for t in workflow.ignore("t2")}

    assert threats["t1"]["status"] == "deleted"
    assert threats["t1"]["action_taken"] == ACTION_DELETED
    assert threats["t2"]["status"] == "ignored"
    assert threats["t2"]["action_taken"] == ACTION_IGNORED
    assert QuarantineEntry.query.count() == 0


def test_failed_quarantine_insert_reverts_threat(seed_threat, user):
    seed_threat("t1")
    wf = ThreatResolutionWorkflow(FlakyStore(("create", "quarantine")), user.id)

    with pytest.raises(PersistenceError):
        wf.quarantine("t1")

    threat = db.session.get(Threat, "t1")
    assert threat.status == "detected"
    assert threat.resolved_at is None
    assert threat.action_taken is None
    # still resolvable afterwards
    wf.ignore("t1")
    assert db.session.get(Threat, "t1").status == "ignored"


def test_other_users_threat_is_not_found(seed_threat, make_user, workflow):
    other = make_user("bob@example.com")
    seed_threat("t9", owner=other.id)
    with pytest.raises(NotFoundError):
        workflow.delete("t9")
    with pytest.raises(NotFoundError):
        workflow.ignore("missing")
    assert db.session.get(Threat, "t9").status == "detected"


def test_list_is_newest_first_and_filterable(seed_threat, workflow):
    seed_threat("old", detected_at=NOW - timedelta(days=1))
    seed_threat("new", detected_at=NOW)
    assert [t["id"] for t in workflow.list_threats()] == ["new", "old"]

    workflow.ignore("old")
    assert [t["id"] for t in workflow.list_threats("detected")] == ["new"]
    assert [t["id"] for t in workflow.list_threats("ignored")] == ["old"]
