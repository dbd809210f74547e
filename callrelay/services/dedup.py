from typing import Any, Callable, Dict, Optional, Tuple

from callrelay.storage.base import CallRecordStore, DuplicateRecord, StoreError, call_dedup_key
from callrelay.util.logger import get_logger

log = get_logger("dedup")


def insert_once(
    insert: Callable[[Dict[str, Any]], Any],
    fetch_existing: Callable[[], Optional[Any]],
    values: Dict[str, Any],
) -> Tuple[Any, bool]:
    """
    Insert `values`; if another writer already created the row (unique
    conflict) return that row instead. Returns (row, created).
    Other StoreErrors propagate.
    """
    try:
        return insert(values), True
    except DuplicateRecord as e:
        existing = fetch_existing()
        if existing is None:
            # conflict on something we can't look up; treat as a real failure
            raise StoreError(f"duplicate without existing row: {e}") from e
        log.info("duplicate insert resolved to existing row id=%s", getattr(existing, "id", None))
        return existing, False


def insert_call_detail(store: CallRecordStore, values: Dict[str, Any]) -> Tuple[Any, bool]:
    """Conflicts on either the source log row or the call_id/event_type pair."""
    wid = values.get("webhook_request_id")
    key = values.get("dedup_key") or call_dedup_key(values)

    def existing():
        row = store.get_call_by_webhook_request(wid) if wid is not None else None
        return row or store.get_call_by_dedup_key(key)

    return insert_once(store.insert_call, existing, values)


def insert_message_event(store: CallRecordStore, values: Dict[str, Any]) -> Tuple[Any, bool]:
    eid = values.get("event_id")
    return insert_once(store.insert_message_event, lambda: store.get_message_event(eid), values)
