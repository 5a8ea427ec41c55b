from __future__ import annotations
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import ForeignKey, Integer, String, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from extensions import db
from plans.catalog import DEFAULT_TIER, PLANS, Tier, parse_tier

utcnow = lambda: datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything we store is UTC
    if dt is None:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def effective_tier(tier, subscription_end: Optional[datetime], now: Optional[datetime] = None) -> Tier:
    """A subscription whose end date has passed falls back to free."""
    end = as_utc(subscription_end)
    if end is not None and end <= (now or utcnow()):
        return Tier.FREE
    return parse_tier(tier)


class Profile(db.Model):
    """
    One row per user: display data plus the subscription that gates scan types.
    """
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, index=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    subscription_tier: Mapped[str] = mapped_column(String(16), default=DEFAULT_TIER.value, nullable=False) # free, pro, enterprise
    subscription_status: Mapped[Optional[str]] = mapped_column(String(32), default="active") # active, past_due, canceled
    subscription_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="profile")

    @property
    def tier(self) -> Tier:
        return effective_tier(self.subscription_tier, self.subscription_end)

    def to_dict(self):
        plan = PLANS[self.tier]
        return {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.email,
            "full_name": self.full_name,
            "subscription_tier": self.subscription_tier,
            "subscription_status": self.subscription_status,
            "subscription_end": self.subscription_end.isoformat() if self.subscription_end else None,
            "effective_tier": plan.tier.value,
            "plan_label": plan.label,
            "scan_types": sorted(t.value for t in plan.scan_types),
        }
