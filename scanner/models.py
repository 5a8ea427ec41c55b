from __future__ import annotations
import enum
import uuid
from datetime import datetime, timezone
from extensions import db

utcnow = lambda: datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class ScanStatus(str, enum.Enum):
    PENDING   = "pending"
    RUNNING   = "running"
    COMPLETED = "completed"
    FAILED    = "failed"
    CANCELLED = "cancelled"


class ThreatStatus(str, enum.Enum):
    DETECTED    = "detected"
    QUARANTINED = "quarantined"
    DELETED     = "deleted"
    IGNORED     = "ignored"


class ThreatType(str, enum.Enum):
    VIRUS   = "virus"
    MALWARE = "malware"
    TROJAN  = "trojan"


class Severity(str, enum.Enum):
    LOW      = "low"
    MEDIUM   = "medium"
    HIGH     = "high"
    CRITICAL = "critical"


class Scan(db.Model):
    """
    One invocation of the simulated scanner. Created as 'running' when a
    session starts, written once more when it completes or is stopped.
    """
    __tablename__ = "scans"

    id            = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id       = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    scan_type     = db.Column(db.String(16), nullable=False)     # 'quick' | 'full' | 'custom'
    scan_path     = db.Column(db.String(1024), nullable=True)    # only for 'custom'
    status        = db.Column(db.String(16), nullable=False, default=ScanStatus.PENDING.value)
    files_scanned = db.Column(db.Integer, nullable=False, default=0)
    threats_found = db.Column(db.Integer, nullable=False, default=0)
    started_at    = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    completed_at  = db.Column(db.DateTime(timezone=True), nullable=True)

    threats = db.relationship("Threat", back_populates="scan", passive_deletes=True)

    __table_args__ = (
        db.Index("ix_scans_user_started", "user_id", "started_at"),
        db.CheckConstraint("files_scanned >= 0", name="scans_files_scanned_nonneg"),
        db.CheckConstraint("threats_found >= 0", name="scans_threats_found_nonneg"),
    )


class Threat(db.Model):
    """
    A file flagged by a completed scan. Status moves out of 'detected'
    exactly once; resolved_at and action_taken are set on that move.
    """
    __tablename__ = "threats"

    id           = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id      = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    scan_id      = db.Column(db.String(36), db.ForeignKey("scans.id", ondelete="CASCADE"), nullable=False, index=True)
    file_path    = db.Column(db.String(1024), nullable=False)
    threat_name  = db.Column(db.String(255), nullable=False)
    threat_type  = db.Column(db.String(16), nullable=False)      # 'virus' | 'malware' | 'trojan'
    severity     = db.Column(db.String(16), nullable=False)      # 'low' .. 'critical'
    status       = db.Column(db.String(16), nullable=False, default=ThreatStatus.DETECTED.value)
    detected_at  = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    resolved_at  = db.Column(db.DateTime(timezone=True), nullable=True)
    action_taken = db.Column(db.String(255), nullable=True)

    scan = db.relationship("Scan", back_populates="threats")
    quarantine_entry = db.relationship("QuarantineEntry", back_populates="threat", uselist=False, passive_deletes=True)

    __table_args__ = (
        db.Index("ix_threats_user_detected", "user_id", "detected_at"),
    )


class QuarantineEntry(db.Model):
    __tablename__ = "quarantine"

    id              = db.Column(db.String(36), primary_key=True, default=new_id)
    threat_id       = db.Column(db.String(36), db.ForeignKey("threats.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    user_id         = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    original_path   = db.Column(db.String(1024), nullable=False)
    quarantine_path = db.Column(db.String(1024), nullable=False)
    file_size       = db.Column(db.BigInteger, nullable=True)       # bytes
    quarantined_at  = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    restored_at     = db.Column(db.DateTime(timezone=True), nullable=True)

    threat = db.relationship("Threat", back_populates="quarantine_entry")
