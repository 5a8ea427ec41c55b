from __future__ import annotations
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from flask import current_app

from scanner.errors import NotFoundError, PersistenceError, PreconditionError
from scanner.models import ThreatStatus, new_id
from scanner.randomness import ScanRandom
from scanner.store import RecordStore

utcnow = lambda: datetime.now(timezone.utc)

DEFAULT_QUARANTINE_PREFIX = "/quarantine/"

ACTION_QUARANTINED = "File moved to quarantine"
ACTION_DELETED     = "File permanently deleted"
ACTION_IGNORED     = "User chose to ignore this threat"


def base_name(path: str) -> str:
    # sample paths are Windows-style, user paths may be POSIX
    return re.split(r"[\\/]", path or "")[-1]


def quarantine_path_for(threat_id: str, file_path: str, prefix: str = DEFAULT_QUARANTINE_PREFIX) -> str:
    return f"{prefix}{threat_id}_{base_name(file_path)}"


class ThreatResolutionWorkflow:
    """
    Moves a detected threat into one of its terminal states. Each operation
    returns the owner's full threat list, re-read after the write.
    """

    def __init__(self, store: RecordStore, user_id: int, *,
                 rng: Optional[ScanRandom] = None, quarantine_prefix: str = DEFAULT_QUARANTINE_PREFIX):
        self.store = store
        self.user_id = user_id
        self.rng = rng or ScanRandom()
        self.quarantine_prefix = quarantine_prefix

    def list_threats(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        filters: Dict[str, Any] = {"user_id": self.user_id}
        if status:
            filters["status"] = status
        return self.store.select("threats", filters, order_by="detected_at", descending=True)

    def _require_detected(self, threat_id: str) -> Dict[str, Any]:
        threat = self.store.get("threats", threat_id)
        if threat is None or threat["user_id"] != self.user_id:
            raise NotFoundError("Threat not found", details={"threat_id": threat_id})
        if threat["status"] != ThreatStatus.DETECTED.value:
            raise PreconditionError(
                f"Threat already resolved ({threat['status']})",
                details={"threat_id": threat_id, "status": threat["status"]},
            )
        return threat

    def _resolve(self, threat_id: str, status: ThreatStatus, action: str) -> Dict[str, Any]:
        threat = self._require_detected(threat_id)
        now = utcnow()
        changed = self.store.update(
            "threats",
            {"id": threat_id, "user_id": self.user_id, "status": ThreatStatus.DETECTED.value},
            {"status": status.value, "resolved_at": now, "action_taken": action},
        )
        if changed != 1:
            # somebody else resolved it between the read and the write
            raise PreconditionError("Threat already resolved", details={"threat_id": threat_id})
        threat.update(status=status.value, resolved_at=now, action_taken=action)
        return threat

    def quarantine(self, threat_id: str, file_path: Optional[str] = None) -> List[Dict[str, Any]]:
        threat = self._resolve(threat_id, ThreatStatus.QUARANTINED, ACTION_QUARANTINED)
        original = file_path or threat["file_path"]
        try:
            self.store.create("quarantine", {
                "id": new_id(),
                "threat_id": threat_id,
                "user_id": self.user_id,
                "original_path": original,
                "quarantine_path": quarantine_path_for(threat_id, original, self.quarantine_prefix),
                "file_size": self.rng.file_size(),
                "quarantined_at": threat["resolved_at"],
            })
        except PersistenceError:
            self._revert(threat_id)
            raise
        current_app.logger.info("[threats] quarantined threat=%s user=%s", threat_id, self.user_id)
        return self.list_threats()

    def delete(self, threat_id: str) -> List[Dict[str, Any]]:
        self._resolve(threat_id, ThreatStatus.DELETED, ACTION_DELETED)
        current_app.logger.info("[threats] deleted threat=%s user=%s", threat_id, self.user_id)
        return self.list_threats()

    def ignore(self, threat_id: str) -> List[Dict[str, Any]]:
        self._resolve(threat_id, ThreatStatus.IGNORED, ACTION_IGNORED)
        current_app.logger.info("[threats] ignored threat=%s user=%s", threat_id, self.user_id)
        return self.list_threats()

    def _revert(self, threat_id: str) -> None:
        # no quarantine entry means the threat must not stay quarantined
        try:
            self.store.update(
                "threats",
                {"id": threat_id, "status": ThreatStatus.QUARANTINED.value},
                {"status": ThreatStatus.DETECTED.value, "resolved_at": None, "action_taken": None},
            )
        except PersistenceError:
            current_app.logger.exception("[threats] could not revert threat=%s after failed quarantine", threat_id)
