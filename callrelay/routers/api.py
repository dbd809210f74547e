# callrelay/routers/api.py
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from callrelay.services import audit, relay
from callrelay.storage.models import to_dict
from callrelay.util.logger import get_logger

log = get_logger("api")
router = APIRouter(prefix="/api")


# -----------------------------------------------------------------------------
# Outbound send (manual or from another system)
# -----------------------------------------------------------------------------
@router.post("/send-message")
async def send_message(req: Request):
    try:
        payload = await req.json()
    except ValueError:
        raise HTTPException(400, "Body is not valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(400, "Body must be a JSON object")

    to = payload.get("phoneNumber") or payload.get("phone_number") or payload.get("to")
    message = payload.get("message") or payload.get("body")
    if not to or not message:
        raise HTTPException(400, "phoneNumber and message are required")

    context = {
        "queue_id": payload.get("queueId") or payload.get("queue_id"),
        "call_id": payload.get("callId") or payload.get("call_id"),
        "call_record_id": payload.get("callRecordId") or payload.get("call_record_id"),
        "source": "api",
    }
    res = await req.app.state.dispatcher.send(to, message, {k: v for k, v in context.items() if v is not None})
    # provider failures are reported, not raised: the caller did its part
    return res.as_dict()


@router.post("/outbound-queue/drain")
async def drain_queue(req: Request, limit: int = Query(50, ge=1, le=500)):
    st = req.app.state
    return await relay.drain_outbound_queue(st.store, st.dispatcher, limit=limit)


@router.get("/outbound-queue")
def list_queue(req: Request, status: Optional[str] = None, limit: int = Query(100, ge=1, le=1000)):
    rows = req.app.state.store.list_outbound(status=status, limit=limit)
    return {"data": [to_dict(r) for r in rows], "count": len(rows)}


# -----------------------------------------------------------------------------
# Read paths
# -----------------------------------------------------------------------------
@router.get("/requests")
def recent_requests(req: Request):
    items = req.app.state.buffer.snapshot()
    return {"requests": items, "count": len(items)}


@router.get("/webhooks")
def list_webhooks(
    req: Request,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    call_only: bool = False,
):
    rows = req.app.state.store.list_requests(limit=limit, offset=offset, call_only=call_only)
    return {"data": [to_dict(r) for r in rows], "count": len(rows)}


@router.get("/call-webhooks")
def list_call_webhooks(req: Request, limit: int = Query(100, ge=1, le=1000)):
    rows = req.app.state.store.list_requests(limit=limit, call_only=True)
    return {"data": [to_dict(r) for r in rows], "count": len(rows)}


@router.get("/calls")
def list_calls(req: Request, limit: int = Query(100, ge=1, le=1000), offset: int = Query(0, ge=0)):
    rows = req.app.state.store.list_calls(limit=limit, offset=offset)
    return {"data": [to_dict(r) for r in rows], "count": len(rows)}


@router.get("/calls/{call_id}")
def get_call(req: Request, call_id: str):
    row = req.app.state.store.get_call(call_id)
    if row is None:
        raise HTTPException(404, "Call not found")
    return {"data": to_dict(row)}


@router.get("/messages/{phone_number}")
def messages_by_number(req: Request, phone_number: str, limit: int = Query(500, ge=1, le=5000)):
    items = audit.message_history(req.app.state.store, phone_number, limit=limit)
    return {"phone": phone_number, "data": items, "count": len(items)}


@router.get("/provider/messages")
def provider_messages(req: Request, limit: int = Query(100, ge=1, le=500)):
    # straight from the gateway; empty in dry run
    items = req.app.state.provider.list_messages(limit=limit)
    return {"data": items, "count": len(items)}
