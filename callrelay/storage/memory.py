import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from callrelay.services import phone
from callrelay.storage.base import CallRecordStore, DuplicateRecord, call_dedup_key
from callrelay.storage.models import CallDetail, MessageEvent, OutboundMessage, WebhookRequest


def _now():
    return datetime.now(timezone.utc)


class MemoryStore(CallRecordStore):
    """
    Process-local store with the same contract as SqlStore, including the
    unique constraints (check-then-insert under one lock). Used when no
    database is configured and in tests; contents vanish on restart.
    """

    backend = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._tables: Dict[str, Dict[int, Any]] = {
            "webhook_requests": {},
            "call_details": {},
            "message_events": {},
            "outbound_queue": {},
        }
        self._seq: Dict[str, int] = {k: 0 for k in self._tables}

    def _add(self, model, values: Dict[str, Any]):
        table = model.__tablename__
        now = _now()
        row = model(**values)
        self._seq[table] += 1
        row.id = self._seq[table]
        for col in ("created_at", "updated_at", "received_at"):
            if hasattr(model, col) and getattr(row, col) is None:
                setattr(row, col, now)
        self._tables[table][row.id] = row
        return row

    def _rows(self, table: str, newest_first: bool = False) -> List[Any]:
        rows = list(self._tables[table].values())
        return sorted(rows, key=lambda r: r.id, reverse=newest_first)

    # ---------- call details ----------
    def insert_call(self, values):
        values = dict(values)
        if not values.get("phone_key"):
            values["phone_key"] = phone.key_for(values.get("phone_number")) or None
        if not values.get("dedup_key"):
            values["dedup_key"] = call_dedup_key(values)
        with self._lock:
            wid = values.get("webhook_request_id")
            if wid is not None and self._find_call_by_request(wid) is not None:
                raise DuplicateRecord(f"call_details.webhook_request_id={wid}")
            key = values.get("dedup_key")
            if key is not None and self._find_call_by_key(key) is not None:
                raise DuplicateRecord(f"call_details.dedup_key={key}")
            return self._add(CallDetail, values)

    def _find_call_by_request(self, wid):
        for row in self._tables["call_details"].values():
            if row.webhook_request_id == wid:
                return row
        return None

    def _find_call_by_key(self, key):
        for row in self._tables["call_details"].values():
            if row.dedup_key == key:
                return row
        return None

    def get_call_by_webhook_request(self, webhook_request_id):
        with self._lock:
            return self._find_call_by_request(webhook_request_id)

    def get_call_by_dedup_key(self, dedup_key):
        if not dedup_key:
            return None
        with self._lock:
            return self._find_call_by_key(dedup_key)

    def find_by_comparison_key(self, key):
        if not key:
            return []
        with self._lock:
            return [r for r in self._rows("call_details") if phone.keys_match(key, r.phone_key or "")]

    def update_bill_received(self, ids, value=True):
        changed = 0
        with self._lock:
            for i in ids:
                row = self._tables["call_details"].get(i)
                if row is None or row.bill_received is value:
                    continue
                row.bill_received = value
                row.updated_at = _now()
                changed += 1
        return changed

    def list_calls(self, limit=100, offset=0):
        with self._lock:
            return self._rows("call_details", newest_first=True)[offset:offset + limit]

    def get_call(self, call_id):
        with self._lock:
            for row in self._rows("call_details", newest_first=True):
                if row.call_id == call_id:
                    return row
        return None

    # ---------- webhook log ----------
    def log_request(self, values):
        with self._lock:
            return self._add(WebhookRequest, values)

    def list_requests(self, limit=100, offset=0, call_only=False, path=None, direction=None):
        with self._lock:
            rows = [
                r for r in self._rows("webhook_requests", newest_first=True)
                if (not call_only or r.is_call_event)
                and (not path or r.path == path)
                and (not direction or r.direction == direction)
            ]
        return rows[offset:offset + limit]

    def count_requests(self, call_only=False):
        with self._lock:
            return sum(1 for r in self._tables["webhook_requests"].values() if not call_only or r.is_call_event)

    # ---------- message events ----------
    def insert_message_event(self, values):
        with self._lock:
            eid = values.get("event_id")
            if eid is not None and self._find_message(eid) is not None:
                raise DuplicateRecord(f"message_events.event_id={eid}")
            return self._add(MessageEvent, values)

    def _find_message(self, event_id):
        for row in self._tables["message_events"].values():
            if row.event_id == event_id:
                return row
        return None

    def get_message_event(self, event_id):
        with self._lock:
            return self._find_message(event_id)

    # ---------- outbound queue ----------
    def enqueue_outbound(self, values):
        values = {"status": "pending", "attempts": 0, **values}
        with self._lock:
            return self._add(OutboundMessage, values)

    def list_outbound(self, status=None, limit=100):
        with self._lock:
            rows = [r for r in self._rows("outbound_queue") if not status or r.status == status]
        return rows[:limit]

    def mark_outbound(self, item_id, status, error=None):
        with self._lock:
            item = self._tables["outbound_queue"].get(item_id)
            if item is None:
                return False
            item.status = status
            item.attempts = (item.attempts or 0) + 1
            item.last_error = error
            if status == "sent":
                item.sent_at = _now()
            return True

    # ---------- maintenance ----------
    def purge(self):
        with self._lock:
            counts = {name: len(rows) for name, rows in self._tables.items()}
            for rows in self._tables.values():
                rows.clear()
        return counts
