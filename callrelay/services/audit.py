import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from callrelay import settings
from callrelay.services import classifier, phone
from callrelay.storage.base import CallRecordStore, StoreError
from callrelay.util.logger import get_logger

log = get_logger("audit")

REDACTED_HEADERS = ("authorization", "x-webhook-secret", "cookie")


class RequestBuffer:
    """Last N raw requests, newest first. Debugging aid only."""

    def __init__(self, capacity: int = 100):
        self.capacity = max(1, int(capacity))
        self._items: deque = deque(maxlen=self.capacity)
        self._lock = threading.Lock()
        self._seq = 0

    def append(self, item: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            self._seq += 1
            item = {"id": self._seq, **item}
            self._items.appendleft(item)   # maxlen drops the oldest from the right
        return item

    def snapshot(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._items)

    def __len__(self):
        with self._lock:
            return len(self._items)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def log_request(
    store: CallRecordStore,
    buffer: Optional[RequestBuffer],
    *,
    method: str,
    path: str,
    url: str,
    headers: Mapping[str, Any],
    query: Mapping[str, Any],
    body: Any,
    raw_body: str,
    ip: str,
    call_fields: Optional[Dict[str, Any]] = None,
):
    """
    Append one WebhookLogEntry. Returns the stored row, or None when the
    store write failed (logged, never raised).
    """
    headers = {k: v for k, v in dict(headers or {}).items() if k.lower() not in REDACTED_HEADERS}
    query = {k: v for k, v in dict(query or {}).items() if k != "secret"}
    user_agent = headers.get("user-agent", "unknown")
    if buffer is not None:
        buffer.append({
            "timestamp": _now_iso(),
            "method": method,
            "path": path,
            "url": url,
            "headers": headers,
            "query": dict(query or {}),
            "body": body,
            "raw_body": raw_body,
            "ip": ip,
            "user_agent": user_agent,
        })

    cf = call_fields or {}
    values = {
        "method": method,
        "path": path,
        "url": url,
        "headers": headers,
        "query": dict(query or {}),
        "body": body if isinstance(body, (dict, list)) else None,
        "raw_body": raw_body,
        "ip_address": ip,
        "user_agent": user_agent,
        "is_call_event": call_fields is not None,
        "call_id": cf.get("call_id"),
        "event_type": cf.get("event_type"),
        "phone_number": cf.get("phone_number"),
        "status": cf.get("status"),
        "duration": cf.get("duration"),
        "direction": "inbound",
    }
    try:
        row = store.log_request(values)
    except StoreError:
        log.exception("failed to save request %s %s", method, path)
        return None
    log.info("saved request %s %s id=%s%s", method, path, row.id, " (call)" if call_fields is not None else "")
    return row


def log_outbound(store: CallRecordStore, to: str, message: str, provider_response: Any, context: Optional[Dict[str, Any]] = None):
    """Synthetic entry for a message we sent, so history shows both directions."""
    body = {
        "from_me": True,
        "to": to,
        "body": message,
        "provider_response": provider_response,
        "context": context or {},
    }
    values = {
        "method": "POST",
        "path": settings.OUTBOUND_LOG_PATH,
        "url": settings.OUTBOUND_LOG_PATH,
        "headers": {},
        "query": {},
        "body": body,
        "raw_body": None,
        "ip_address": None,
        "user_agent": "callrelay",
        "is_call_event": False,
        "phone_number": to,
        "direction": "outbound",
    }
    return store.log_request(values)


def message_history(store: CallRecordStore, phone_number: str, limit: int = 500) -> List[Dict[str, Any]]:
    """Sent and received messages for one number, newest first."""
    rows = store.list_requests(limit=limit)
    out = []
    for r in rows:
        if r.direction == "outbound":
            if not phone.phones_match(r.phone_number, phone_number):
                continue
            body = r.body if isinstance(r.body, dict) else {}
            out.append({
                "id": r.id,
                "direction": "outbound",
                "phone": r.phone_number,
                "text": body.get("body", ""),
                "type": "text",
                "created_at": r.created_at.isoformat() if r.created_at else None,
            })
            continue
        if r.is_call_event or r.body is None:
            continue
        ev = classifier.parse_message(r.body)
        if ev is None or ev.is_outbound or not phone.phones_match(ev.from_raw, phone_number):
            continue
        out.append({
            "id": r.id,
            "direction": "inbound",
            "phone": ev.normalized_phone,
            "text": ev.text,
            "type": ev.message_type,
            "created_at": r.created_at.isoformat() if r.created_at else None,
        })
    return out
