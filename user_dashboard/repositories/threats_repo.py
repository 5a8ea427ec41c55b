from scanner.store import RecordStore, serialize


def repo_list_quarantine(store: RecordStore, user_id: int):
    rows = store.select("quarantine", {"user_id": user_id}, order_by="quarantined_at", descending=True)
    return [serialize(r) for r in rows]
