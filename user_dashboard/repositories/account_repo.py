from account.models import effective_tier
from plans.catalog import DEFAULT_TIER, Tier
from scanner.store import RecordStore


def repo_find_profile(store: RecordStore, user_id: int):
    rows = store.select("profiles", {"user_id": user_id})
    return rows[0] if rows else None


def repo_effective_tier(store: RecordStore, user_id: int) -> Tier:
    prof = repo_find_profile(store, user_id)
    if not prof:
        return DEFAULT_TIER
    return effective_tier(prof.get("subscription_tier"), prof.get("subscription_end"))
