from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, JSON
from datetime import datetime, timezone
from .db import Base


def _now():
    return datetime.now(timezone.utc)


class WebhookRequest(Base):
    """Append-only log of every inbound POST (and of sent messages)."""
    __tablename__ = "webhook_requests"
    id = Column(Integer, primary_key=True, autoincrement=True)
    method = Column(String(10))
    path = Column(String(255), index=True)
    url = Column(Text)
    headers = Column(JSON)
    query = Column(JSON)
    body = Column(JSON)
    raw_body = Column(Text)
    ip_address = Column(String(64))
    user_agent = Column(String(512))
    is_call_event = Column(Boolean, default=False, index=True)
    call_id = Column(String(128))
    event_type = Column(String(64))
    phone_number = Column(String(64))
    status = Column(String(64))
    duration = Column(Integer)
    direction = Column(String(16), default="inbound")   # inbound | outbound
    created_at = Column(DateTime(timezone=True), default=_now, index=True)


class CallDetail(Base):
    __tablename__ = "call_details"
    id = Column(Integer, primary_key=True, autoincrement=True)
    # one derived row per logged webhook; the dedup key
    webhook_request_id = Column(Integer, ForeignKey("webhook_requests.id"), unique=True)
    # call_id|event_type; NULL when the dialer sent no call_id
    dedup_key = Column(String(255), unique=True)
    call_id = Column(String(128), index=True)
    event_type = Column(String(64))
    phone_number = Column(String(64))
    phone_key = Column(String(16), index=True)
    phone_number_from = Column(String(64))
    status = Column(String(64))
    duration = Column(Integer)
    direction = Column(String(32))
    agent_id = Column(String(64))
    agent_name = Column(String(255))
    customer_name = Column(String(255))
    recording_url = Column(Text)
    transcript = Column(Text)
    call_start_time = Column(String(64))
    call_end_time = Column(String(64))
    call_result = Column(String(128))
    call_outcome = Column(String(128))
    contact_name = Column(String(255))
    company_name = Column(String(255))
    ateco_code = Column(String(32))
    ateco_eligible = Column(Boolean)
    interest_confirmed = Column(Boolean)
    bill_received = Column(Boolean)      # None/False = not yet, True = received
    annual_consumption_kwh = Column(String(64))
    should_send = Column(Boolean)        # stored for reference only
    reason = Column(Text)
    raw_data = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)


class MessageEvent(Base):
    __tablename__ = "message_events"
    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(128), unique=True)   # NULLs don't collide
    from_raw = Column(String(128))
    normalized_phone = Column(String(32))
    phone_key = Column(String(16), index=True)
    text = Column(Text)
    message_type = Column(String(32))
    matched_count = Column(Integer, default=0)
    updated_count = Column(Integer, default=0)
    received_at = Column(DateTime(timezone=True), default=_now)


class OutboundMessage(Base):
    __tablename__ = "outbound_queue"
    id = Column(Integer, primary_key=True, autoincrement=True)
    phone_number = Column(String(64))
    message = Column(Text)
    status = Column(String(16), default="pending", index=True)   # pending | sent | failed
    attempts = Column(Integer, default=0)
    last_error = Column(Text)
    call_detail_id = Column(Integer, ForeignKey("call_details.id"))
    created_at = Column(DateTime(timezone=True), default=_now)
    sent_at = Column(DateTime(timezone=True))


def to_dict(row) -> dict:
    """Column values of a row, JSON-friendly."""
    out = {}
    for c in row.__table__.columns:
        v = getattr(row, c.name)
        out[c.name] = v.isoformat() if isinstance(v, datetime) else v
    return out
