# callrelay/services/classifier.py
"""
Inbound payload classification.

Call-center payloads arrive in whatever shape the dialer template produced
(snake_case or camelCase, sometimes wrapped in {"data": {...}}). Gateway
payloads come in two shapes:

  structured: {"messages": {"key": {"fromMe": false, "senderPn": "39..."},
               "messageBody": "...", "message": {"conversation": "..."}}}
  flat:       {"messages": [{"from": "39...", "from_me": false,
               "text": {"body": "..."}, "type": "text"}]}
              or {"from": "...", "body": "..."} directly.

classify() never raises; anything it cannot make sense of is Unclassified.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from callrelay import settings
from callrelay.services import phone
from callrelay.util.logger import get_logger

log = get_logger("classifier")

# Ordered synonyms per logical field; order is precedence.
CALL_FIELDS: Dict[str, tuple] = {
    "call_id": ("call_id", "callId", "id"),
    "event_type": ("event_type", "eventType", "type"),
    "phone_number": ("caller_number", "phone_number", "phoneNumber", "to", "number"),
    "phone_number_from": ("phone_number_from", "phoneNumberFrom", "from"),
    "status": ("status", "call_status"),
    "duration": ("duration", "call_duration"),
    "direction": ("direction", "call_direction"),
    "agent_id": ("agent_id", "agentId"),
    "agent_name": ("agent_name", "agentName"),
    "customer_name": ("customer_name", "customerName", "contact_name", "contactName"),
    "recording_url": ("recording_url", "recordingUrl", "recording"),
    "transcript": ("transcript", "transcription", "text"),
    "call_start_time": ("call_start_time", "callStartTime", "start_time", "startTime", "timestamp", "date"),
    "call_end_time": ("call_end_time", "callEndTime", "end_time", "endTime"),
    "call_result": ("call_result", "callResult", "result"),
    "call_outcome": ("call_outcome", "callOutcome", "outcome"),
    "contact_name": ("contact_name", "contactName"),
    "company_name": ("company_name", "companyName"),
    "ateco_code": ("ateco_code", "atecoCode"),
    "ateco_eligible": ("ateco_eligible", "atecoEligible"),
    "interest_confirmed": ("interest_confirmed", "interestConfirmed"),
    "bill_received": ("electricity_bill_received", "electricityBillReceived"),
    "annual_consumption_kwh": ("annual_consumption_kwh", "annualConsumptionKwh", "consumption"),
    "should_send": ("should_send", "shouldSend"),
    "reason": ("reason", "message"),
}

# Fields that only a call-center payload carries
STRONG_CALL_KEYS = ("call_id", "callId", "call_result", "callResult", "event_type", "eventType")
PHONE_CALL_KEYS = ("phone_number", "phoneNumber")

BOOL_FIELDS = ("ateco_eligible", "interest_confirmed", "bill_received", "should_send")
TEXT_FIELDS = tuple(k for k in CALL_FIELDS if k not in BOOL_FIELDS and k != "duration")

SENDER_KEYS = ("senderPn", "cleanedSenderPn", "remoteJid")
LEGACY_SENDER_KEYS = ("from", "phone_number", "number")
MEDIA_TYPES = (
    ("imageMessage", "image"),
    ("documentMessage", "document"),
    ("audioMessage", "audio"),
    ("videoMessage", "video"),
)


@dataclass
class InboundMessageEvent:
    from_raw: str
    normalized_phone: str
    text: str = ""
    message_type: str = "text"
    is_outbound: bool = False
    event_id: Optional[str] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw: Any = None

    @property
    def comparison_key(self) -> str:
        return phone.comparison_key(self.normalized_phone)


@dataclass
class CallEvent:
    fields: Dict[str, Any]
    kind: str = "call"


@dataclass
class MessageEvent:
    event: InboundMessageEvent
    kind: str = "message"


@dataclass
class Unclassified:
    reason: str = ""
    kind: str = "unclassified"


ClassifiedEvent = Union[CallEvent, MessageEvent, Unclassified]


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------
def first_present(body: Mapping[str, Any], names: Iterable[str]) -> Any:
    """First value among `names` that is neither None nor an empty string."""
    for n in names:
        v = body.get(n)
        if v is None or (isinstance(v, str) and not v.strip()):
            continue
        return v
    return None


def _as_dict(x: Any) -> Dict[str, Any]:
    return x if isinstance(x, dict) else {}


def resolve_body(payload: Any) -> Dict[str, Any]:
    """Unwrap one level of {"data": {...}} nesting."""
    body = _as_dict(payload)
    inner = body.get("data")
    return inner if isinstance(inner, dict) else body


def _to_bool(v: Any) -> Optional[bool]:
    if v is None:
        return None
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return bool(v)
    s = str(v).strip().lower()
    if s in ("true", "1", "yes", "si", "sì", "y"):
        return True
    if s in ("false", "0", "no", "n"):
        return False
    return None


# fits a 32-bit INTEGER column on every backend
INT_MAX = 2**31 - 1


def _to_int(v: Any) -> Optional[int]:
    try:
        n = int(float(v))
    except (TypeError, ValueError, OverflowError):
        return None
    return n if -INT_MAX <= n <= INT_MAX else None


def _text_of(v: Any) -> str:
    # whapi style {"body": "..."} or a plain string
    if isinstance(v, dict):
        v = v.get("body")
    return v.strip() if isinstance(v, str) else ""


def _header(headers: Optional[Mapping[str, Any]], name: str) -> str:
    if not headers:
        return ""
    for k, v in headers.items():
        if str(k).lower() == name:
            return str(v or "")
    return ""


# ---------------------------------------------------------------------------
# call events
# ---------------------------------------------------------------------------
def has_call_marker(path: str, headers: Optional[Mapping[str, Any]]) -> bool:
    marker = settings.CALL_MARKER
    if not marker:
        return False
    return marker in (path or "").lower() or marker in _header(headers, "user-agent").lower()


def extract_call_fields(payload: Any) -> Dict[str, Any]:
    body = resolve_body(payload)
    out: Dict[str, Any] = {}
    for name, synonyms in CALL_FIELDS.items():
        out[name] = first_present(body, synonyms)

    for name in BOOL_FIELDS:
        out[name] = _to_bool(out[name])
    out["duration"] = _to_int(out["duration"])
    for name in TEXT_FIELDS:
        v = out[name]
        if v is not None and not isinstance(v, str):
            out[name] = str(v)
    out["raw_data"] = body
    return out


# ---------------------------------------------------------------------------
# message events
# ---------------------------------------------------------------------------
def _first_message(body: Dict[str, Any]) -> Dict[str, Any]:
    msgs = body.get("messages")
    if isinstance(msgs, list):
        return _as_dict(msgs[0]) if msgs else {}
    return _as_dict(msgs)


def _structured_message(body: Dict[str, Any]) -> Optional[InboundMessageEvent]:
    msg = _first_message(body)
    key = msg.get("key")
    if not isinstance(key, dict):
        return None

    sender = first_present(key, SENDER_KEYS) or first_present(msg, ("from",))
    if sender is None:
        return None

    content = _as_dict(msg.get("message"))
    text = (
        _text_of(msg.get("messageBody"))
        or _text_of(content.get("conversation"))
        or _text_of(_as_dict(content.get("extendedTextMessage")).get("text"))
    )
    mtype = "text" if text else "unknown"
    for k, label in MEDIA_TYPES:
        if k in content:
            mtype = label
            break

    return InboundMessageEvent(
        from_raw=str(sender),
        normalized_phone=phone.normalize(sender),
        text=text,
        message_type=mtype,
        is_outbound=bool(_to_bool(key.get("fromMe"))),
        event_id=_str_or_none(key.get("id") or msg.get("id")),
        raw=body,
    )


def _legacy_message(body: Dict[str, Any]) -> Optional[InboundMessageEvent]:
    candidates = [_first_message(body), _as_dict(body.get("message")), body]
    for data in candidates:
        if not data:
            continue
        sender = first_present(data, LEGACY_SENDER_KEYS)
        if sender is None or not ("body" in data or "text" in data):
            continue
        text = _text_of(data.get("body")) or _text_of(data.get("text"))
        mtype = data.get("type") if isinstance(data.get("type"), str) else ("text" if text else "unknown")
        from_me = first_present(data, ("from_me", "fromMe"))
        return InboundMessageEvent(
            from_raw=str(sender),
            normalized_phone=phone.normalize(sender),
            text=text,
            message_type=mtype,
            is_outbound=bool(_to_bool(from_me)),
            event_id=_str_or_none(data.get("id") or data.get("message_id")),
            raw=body,
        )
    return None


def _str_or_none(v: Any) -> Optional[str]:
    if v is None or v == "":
        return None
    return str(v)


def parse_message(payload: Any) -> Optional[InboundMessageEvent]:
    body = resolve_body(payload)
    return _structured_message(body) or _legacy_message(body)


# ---------------------------------------------------------------------------
# entrypoint
# ---------------------------------------------------------------------------
def classify(payload: Any, headers: Optional[Mapping[str, Any]] = None, path: str = "") -> ClassifiedEvent:
    try:
        return _classify(payload, headers, path)
    except (AttributeError, TypeError, ValueError, IndexError, KeyError, ArithmeticError) as e:
        log.warning("classify failed path=%s err=%s", path, e)
        return Unclassified(reason="malformed")


def _classify(payload: Any, headers: Optional[Mapping[str, Any]], path: str) -> ClassifiedEvent:
    if not isinstance(payload, dict):
        return Unclassified(reason="not-an-object")

    if has_call_marker(path, headers):
        return CallEvent(fields=extract_call_fields(payload))

    body = resolve_body(payload)

    structured = _structured_message(body)
    if structured:
        return MessageEvent(event=structured)

    if any(k in body for k in STRONG_CALL_KEYS):
        return CallEvent(fields=extract_call_fields(payload))

    legacy = _legacy_message(body)
    if legacy:
        return MessageEvent(event=legacy)

    if any(k in body for k in PHONE_CALL_KEYS):
        return CallEvent(fields=extract_call_fields(payload))

    return Unclassified(reason="no-known-shape")
