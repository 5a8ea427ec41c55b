"""
Scan lifecycle simulator.

A ``ScanSession`` owns at most one scan at a time for one user and walks it
through ``idle -> running -> completed`` (or back to ``idle`` on stop). While
running, a periodic tick advances a progress percentage by a random number of
"files"; the tick that reaches 100% is the only one that takes the completion
branch, which persists the final scan record and the fabricated threats.

Nothing here touches a real filesystem. Randomness comes from ``ScanRandom``
and timing from a scheduler, both injected, so a test can replay a scan tick
by tick.
"""
from __future__ import annotations
import enum
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from flask import current_app

from plans.catalog import ScanType, Tier, parse_scan_type, parse_tier, target_files, tier_allows
from scanner.errors import (
    AuthorizationError, PersistenceError, PreconditionError, ScannerError, ServerError, ValidationError,
)
from scanner.models import ScanStatus, Severity, ThreatStatus, ThreatType, new_id
from scanner.randomness import ScanRandom
from scanner.scheduler import TaskHandle, ThreadScheduler
from scanner.store import RecordStore, SqlRecordStore

utcnow = lambda: datetime.now(timezone.utc)

SAMPLE_FILES: Tuple[str, ...] = (
    "C:\\Program Files\\App\\file1.exe",
    "C:\\Users\\Documents\\document.pdf",
    "C:\\Windows\\System32\\driver.sys",
    "C:\\Temp\\suspicious.tmp",
    "C:\\Downloads\\installer.exe",
)


class SessionState(str, enum.Enum):
    IDLE      = "idle"
    RUNNING   = "running"
    COMPLETED = "completed"


@dataclass(frozen=True)
class SimulatorSettings:
    tick_interval_s: float = 0.1
    files_per_tick_min: float = 25.0
    files_per_tick_max: float = 75.0
    max_threats: int = 2
    sample_files: Tuple[str, ...] = SAMPLE_FILES

    @classmethod
    def from_config(cls, config) -> "SimulatorSettings":
        lo = float(config.get("SCAN_FILES_PER_TICK_MIN", cls.files_per_tick_min))
        hi = float(config.get("SCAN_FILES_PER_TICK_MAX", cls.files_per_tick_max))
        if lo <= 0 or hi < lo:
            raise ValueError("SCAN_FILES_PER_TICK_MIN/MAX must satisfy 0 < min <= max")
        return cls(
            tick_interval_s=int(config.get("SCAN_TICK_INTERVAL_MS", 100)) / 1000.0,
            files_per_tick_min=lo,
            files_per_tick_max=hi,
            max_threats=max(0, int(config.get("SCAN_MAX_THREATS", cls.max_threats))),
        )


class ScanSession:
    def __init__(self, user_id: int, store: RecordStore, scheduler,
                 rng: Optional[ScanRandom] = None, settings: Optional[SimulatorSettings] = None):
        self.user_id = user_id
        self.store = store
        self.scheduler = scheduler
        self.rng = rng or ScanRandom()
        self.settings = settings or SimulatorSettings()

        self._lock = threading.RLock()
        self._handle: Optional[TaskHandle] = None
        self._token: Optional[object] = None
        self._completing = False
        self.state = SessionState.IDLE
        self.last_error: Optional[Dict[str, Any]] = None
        self._clear_run()

    def _clear_run(self) -> None:
        self.scan_id: Optional[str] = None
        self.scan_type: Optional[ScanType] = None
        self.scan_path: Optional[str] = None
        self.target_files = 0
        self.progress = 0.0
        self.files_scanned = 0
        self.threats_found = 0
        self.current_file = ""
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None

    @property
    def handle(self) -> Optional[TaskHandle]:
        return self._handle

    # ---- commands ----------------------------------------------------------

    def start(self, scan_type, scan_path: Optional[str] = None, tier=Tier.FREE) -> Dict[str, Any]:
        with self._lock:
            if self.state == SessionState.RUNNING:
                # duplicate start is a no-op by contract
                current_app.logger.info("[scanner] start ignored; user=%s already running scan=%s",
                                        self.user_id, self.scan_id)
                return self.snapshot()

            stype, path = self._validate(scan_type, scan_path)
            if not tier_allows(tier, stype):
                raise AuthorizationError(
                    "Upgrade required: full system scans need a Pro or Enterprise subscription.",
                    details={"scan_type": stype.value, "tier": parse_tier(tier).value},
                )

            now = utcnow()
            record = self.store.create("scans", {
                "id": new_id(),
                "user_id": self.user_id,
                "scan_type": stype.value,
                "scan_path": path,
                "status": ScanStatus.RUNNING.value,
                "files_scanned": 0,
                "threats_found": 0,
                "started_at": now,
            })

            self._clear_run()
            self.scan_id = record["id"]
            self.scan_type = stype
            self.scan_path = path
            self.target_files = target_files(stype)
            self.started_at = now
            self.last_error = None
            self.state = SessionState.RUNNING

            token = object()
            self._token = token
            self._handle = self.scheduler.every(
                self.settings.tick_interval_s,
                lambda: self._tick(token),
                name=f"scan-{self.scan_id}",
            )
            current_app.logger.info("[scanner] started %s scan=%s user=%s target=%s",
                                    stype.value, self.scan_id, self.user_id, self.target_files)
            return self.snapshot()

    def stop(self) -> Dict[str, Any]:
        with self._lock:
            if self.state != SessionState.RUNNING or self._completing:
                return self.snapshot()
            handle, scan_id = self._handle, self.scan_id
            self._handle = None
            self._token = None
            if handle is not None:
                handle.cancel()
            self._clear_run()
            self.state = SessionState.IDLE
            snap = self.snapshot()

        current_app.logger.info("[scanner] stopped scan=%s user=%s", scan_id, self.user_id)
        # only a still-running record is moved; never overwrite a terminal one
        self.store.update(
            "scans",
            {"id": scan_id, "status": ScanStatus.RUNNING.value},
            {"status": ScanStatus.CANCELLED.value, "completed_at": utcnow()},
        )
        return snap

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self.state.value,
                "scan_id": self.scan_id,
                "scan_type": self.scan_type.value if self.scan_type else None,
                "scan_path": self.scan_path,
                "progress": round(self.progress, 2),
                "files_scanned": self.files_scanned,
                "target_files": self.target_files,
                "threats_found": self.threats_found,
                "current_file": self.current_file,
                "started_at": self.started_at.isoformat() if self.started_at else None,
                "completed_at": self.completed_at.isoformat() if self.completed_at else None,
                "last_error": self.last_error,
            }

    # ---- internals ---------------------------------------------------------

    @staticmethod
    def _validate(scan_type, scan_path) -> Tuple[ScanType, Optional[str]]:
        try:
            stype = parse_scan_type(scan_type)
        except ValueError:
            raise ValidationError(
                f"Unknown scan type '{scan_type}'",
                details={"allowed": [t.value for t in ScanType]},
            )
        path = (scan_path or "").strip()
        if stype == ScanType.CUSTOM:
            if not path:
                raise ValidationError("A custom scan needs a folder path.", details={"fields": ["scan_path"]})
            return stype, path
        return stype, None

    def _tick(self, token: object) -> bool:
        s = self.settings
        with self._lock:
            if token is not self._token or self.state != SessionState.RUNNING or self._completing:
                return False

            step = self.rng.files_per_tick(s.files_per_tick_min, s.files_per_tick_max)
            self.progress = min(100.0, self.progress + (100.0 / self.target_files) * step)
            if self.progress < 100.0:
                self.files_scanned = round(self.progress / 100.0 * self.target_files)
                self.current_file = self.rng.choice(s.sample_files)
                return True

            # terminal tick: claim completion while holding the lock
            self._completing = True
            self.files_scanned = self.target_files
            found = self.rng.threat_count(s.max_threats)
            scan_id, target = self.scan_id, self.target_files

        self._complete(token, scan_id, target, found)
        return False

    def _threat_records(self, scan_id: str, count: int, now: datetime):
        samples = self.settings.sample_files
        return [{
            "id": new_id(),
            "user_id": self.user_id,
            "scan_id": scan_id,
            "file_path": samples[i % len(samples)],
            "threat_name": self.rng.threat_name(),
            "threat_type": self.rng.choice(list(ThreatType)).value,
            "severity": self.rng.choice(list(Severity)).value,
            "status": ThreatStatus.DETECTED.value,
            "detected_at": now,
        } for i in range(count)]

    def _complete(self, token: object, scan_id: str, target: int, found: int) -> None:
        now = utcnow()
        error: Optional[ScannerError] = None
        try:
            # a record the reconciler already failed stays failed
            changed = self.store.update("scans", {"id": scan_id, "status": ScanStatus.RUNNING.value}, {
                "status": ScanStatus.COMPLETED.value,
                "files_scanned": target,
                "threats_found": found,
                "completed_at": now,
            })
            if not changed:
                error = PreconditionError("Scan record is no longer running", details={"scan_id": scan_id})
            elif found:
                try:
                    self.store.create_many("threats", self._threat_records(scan_id, found, now))
                except PersistenceError as exc:
                    error = exc
                    self._mark_failed(scan_id)
        except PersistenceError as exc:
            error = exc
        except Exception as exc:  # noqa: BLE001
            current_app.logger.exception("[scanner] completion of scan=%s crashed", scan_id)
            error = ServerError("Scan completion failed", details={"scan_id": scan_id, "reason": repr(exc)})
        finally:
            # every path ends in a terminal state with _completing cleared
            with self._lock:
                self._completing = False
                if token is self._token:
                    self._handle = None
                    self.progress = 100.0
                    self.threats_found = found
                    self.current_file = ""
                    self.completed_at = now
                    self.last_error = error.to_dict()["error"] if error else None
                    self.state = SessionState.COMPLETED

        if error:
            current_app.logger.error("[scanner] completion of scan=%s not fully persisted: %s",
                                     scan_id, error.message)
        else:
            current_app.logger.info("[scanner] completed scan=%s files=%s threats=%s",
                                    scan_id, target, found)

    def _mark_failed(self, scan_id: str) -> None:
        # compensate: a completed record must not claim threats that were never stored
        try:
            self.store.update("scans", {"id": scan_id}, {"status": ScanStatus.FAILED.value})
        except PersistenceError:
            current_app.logger.exception("[scanner] could not mark scan=%s failed", scan_id)


class ScanSessionRegistry:
    """One ScanSession per user, created on first use."""

    def __init__(self, store: RecordStore, scheduler, settings: SimulatorSettings,
                 rng_factory: Callable[[], ScanRandom] = ScanRandom):
        self.store = store
        self.scheduler = scheduler
        self.settings = settings
        self.rng_factory = rng_factory
        self._sessions: Dict[int, ScanSession] = {}
        self._lock = threading.Lock()

    def get(self, user_id: int) -> ScanSession:
        with self._lock:
            sess = self._sessions.get(user_id)
            if sess is None:
                sess = ScanSession(user_id, self.store, self.scheduler,
                                   rng=self.rng_factory(), settings=self.settings)
                self._sessions[user_id] = sess
            return sess


def init_scanner(app, *, scheduler=None, rng_factory=None) -> ScanSessionRegistry:
    seed = app.config.get("SCAN_RANDOM_SEED")
    registry = ScanSessionRegistry(
        store=SqlRecordStore(),
        scheduler=scheduler or ThreadScheduler(app),
        settings=SimulatorSettings.from_config(app.config),
        rng_factory=rng_factory or (lambda: ScanRandom(int(seed) if seed not in (None, "") else None)),
    )
    app.extensions["scanner"] = registry
    return registry


def get_registry() -> ScanSessionRegistry:
    return current_app.extensions["scanner"]
