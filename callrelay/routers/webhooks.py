# callrelay/routers/webhooks.py
import hmac
import json
from typing import Any, Optional, Tuple

from fastapi import APIRouter, HTTPException, Request

from callrelay import settings
from callrelay.services import audit, classifier, relay
from callrelay.services.classifier import CallEvent, MessageEvent
from callrelay.util.logger import get_logger

log = get_logger("webhooks")
router = APIRouter()


async def _read(req: Request) -> Tuple[str, Optional[Any]]:
    """Raw body text and parsed JSON (None when not JSON)."""
    raw = (await req.body()).decode("utf-8", errors="replace")
    if not raw.strip():
        return raw, None
    try:
        return raw, json.loads(raw)
    except ValueError:
        return raw, None


def _log(req: Request, raw: str, body: Any, call_fields=None):
    st = req.app.state
    return audit.log_request(
        st.store,
        st.buffer,
        method=req.method,
        path=req.url.path,
        url=str(req.url),
        headers=req.headers,
        query=req.query_params,
        body=body,
        raw_body=raw,
        ip=(req.client.host if req.client else None) or req.headers.get("x-forwarded-for", "unknown"),
        call_fields=call_fields,
    )


def _authorized(req: Request, body: Any) -> bool:
    secret = settings.WEBHOOK_SECRET
    if not secret:
        return True  # auth disabled
    given = req.headers.get("x-webhook-secret") or req.query_params.get("secret")
    if not given and isinstance(body, dict):
        given = body.get("secret")
    return bool(given) and hmac.compare_digest(str(given).encode("utf-8"), secret.encode("utf-8"))


async def _process_call(req: Request, raw: str, body: Any, fields: dict) -> dict:
    st = req.app.state
    entry = _log(req, raw, body, call_fields=fields)
    outcome = await relay.handle_call_event(st.store, st.dispatcher, fields, getattr(entry, "id", None))
    return {
        "success": True,
        "message": "Call event received",
        "webhook_request_id": getattr(entry, "id", None),
        **outcome,
    }


def _process_message(req: Request, event: classifier.InboundMessageEvent) -> dict:
    if event.is_outbound:
        log.info("ignoring outbound echo to=%s", event.from_raw)
        return {"success": True, "ignored": "outbound"}
    result = relay.handle_message_event(req.app.state.engine, event)
    return {
        "success": True,
        "from": event.normalized_phone,
        "type": event.message_type,
        "reconciliation": result.as_dict() if result else None,
    }


# -----------------------------------------------------------------------------
# Call center → call details + follow-up message
# -----------------------------------------------------------------------------
@router.post(settings.CALL_EVENT_PATH)
async def call_event(req: Request):
    raw, body = await _read(req)
    if body is None and raw.strip():
        _log(req, raw, None)
        raise HTTPException(400, "Body is not valid JSON")

    ev = classifier.classify(body, req.headers, req.url.path)
    if not isinstance(ev, CallEvent):
        _log(req, raw, body)
        return {"success": True, "ignored": getattr(ev, "reason", ev.kind)}
    return await _process_call(req, raw, body, ev.fields)


# -----------------------------------------------------------------------------
# WhatsApp gateway → reconciliation
# -----------------------------------------------------------------------------
@router.post(settings.MESSAGE_WEBHOOK_PATH)
async def message_event(req: Request):
    raw, body = await _read(req)
    if not _authorized(req, body):
        raise HTTPException(401, "Invalid webhook secret")

    _log(req, raw, body)
    if body is None:
        return {"success": True, "ignored": "unparseable"}

    parsed = classifier.parse_message(body)
    if parsed is None:
        log.info("message webhook with unknown shape keys=%s", list(body)[:10] if isinstance(body, dict) else type(body).__name__)
        return {"success": True, "ignored": "no-known-shape"}
    return _process_message(req, parsed)


# -----------------------------------------------------------------------------
# Generic endpoint: classify and route
# -----------------------------------------------------------------------------
@router.post("/webhook")
async def generic_webhook(req: Request):
    raw, body = await _read(req)
    ev = classifier.classify(body, req.headers, req.url.path)

    if isinstance(ev, CallEvent):
        return await _process_call(req, raw, body, ev.fields)

    if isinstance(ev, MessageEvent):
        if not _authorized(req, body):
            raise HTTPException(401, "Invalid webhook secret")
        _log(req, raw, body)
        return _process_message(req, ev.event)

    _log(req, raw, body)
    return {"success": True, "ignored": ev.reason, "message": "Webhook received"}
