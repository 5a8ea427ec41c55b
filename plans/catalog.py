from __future__ import annotations
import enum
from dataclasses import dataclass
from typing import Dict, FrozenSet


class Tier(str, enum.Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class ScanType(str, enum.Enum):
    QUICK = "quick"
    FULL = "full"
    CUSTOM = "custom"


DEFAULT_TIER = Tier.FREE


# Files a scan of each type walks through before it completes
SCAN_TARGET_FILES: Dict[ScanType, int] = {
    ScanType.QUICK: 1000,
    ScanType.FULL: 50000,
    ScanType.CUSTOM: 5000,
}


@dataclass(frozen=True)
class PlanEntitlements:
    tier: Tier
    scan_types: FrozenSet[ScanType]
    label: str


PLANS: Dict[Tier, PlanEntitlements] = {
    Tier.FREE: PlanEntitlements(
        Tier.FREE, frozenset({ScanType.QUICK, ScanType.CUSTOM}), "Free"),
    Tier.PRO: PlanEntitlements(
        Tier.PRO, frozenset({ScanType.QUICK, ScanType.FULL, ScanType.CUSTOM}), "Pro"),
    Tier.ENTERPRISE: PlanEntitlements(
        Tier.ENTERPRISE, frozenset({ScanType.QUICK, ScanType.FULL, ScanType.CUSTOM}), "Enterprise"),
}


def parse_tier(value) -> Tier:
    """Unknown or empty tiers count as free."""
    if isinstance(value, Tier):
        return value
    try:
        return Tier((value or "").strip().lower())
    except ValueError:
        return DEFAULT_TIER


def parse_scan_type(value) -> ScanType:
    if isinstance(value, ScanType):
        return value
    if not isinstance(value, str):
        raise ValueError(f"scan type must be a string, got {type(value).__name__}")
    return ScanType((value or "").strip().lower())


def target_files(scan_type: ScanType) -> int:
    return SCAN_TARGET_FILES[parse_scan_type(scan_type)]


def tier_allows(tier, scan_type) -> bool:
    return parse_scan_type(scan_type) in PLANS[parse_tier(tier)].scan_types
