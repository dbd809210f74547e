from typing import Any, Dict, Optional

from callrelay import settings
from callrelay.services import dedup
from callrelay.services.classifier import InboundMessageEvent
from callrelay.services.dispatcher import DispatchResult, OutboundDispatcher
from callrelay.services.reconcile import ReconciliationEngine, ReconciliationResult
from callrelay.storage.base import CallRecordStore, StoreError
from callrelay.util.logger import get_logger

log = get_logger("relay")


async def handle_call_event(
    store: CallRecordStore,
    dispatcher: OutboundDispatcher,
    fields: Dict[str, Any],
    webhook_request_id: Optional[int],
) -> Dict[str, Any]:
    """
    Persist the call detail row and send the follow-up message.

    The follow-up goes out whenever the call carries a phone number. The
    dialer's should_send flag is stored but not consulted. A redelivered
    event (same call_id and event_type) finds its existing row and sends nothing.
    """
    record = None
    created = False
    values = {**fields, "webhook_request_id": webhook_request_id}
    try:
        record, created = dedup.insert_call_detail(store, values)
        log.info("call detail %s id=%s call_id=%s", "saved" if created else "exists", record.id, fields.get("call_id"))
    except StoreError:
        # keep going: the send only needs the in-memory fields
        log.exception("failed to save call detail call_id=%s", fields.get("call_id"))

    duplicate = record is not None and not created
    phone_number = fields.get("phone_number")
    dispatch: Optional[DispatchResult] = None
    if duplicate:
        log.info("redelivered call event call_id=%s, follow-up already handled", fields.get("call_id"))
    elif phone_number:
        if fields.get("should_send") is False:
            log.info("should_send=false ignored for call_id=%s", fields.get("call_id"))
        context = {"call_id": fields.get("call_id"), "call_record_id": getattr(record, "id", None)}
        dispatch = await dispatcher.send(phone_number, settings.FOLLOWUP_MESSAGE, context)
        if not dispatch.success and not dispatch.dry_run:
            _enqueue_retry(store, phone_number, settings.FOLLOWUP_MESSAGE, record, dispatch.error)

    return {
        "call_record_id": getattr(record, "id", None),
        "created": created,
        "duplicate": duplicate,
        "dispatch": dispatch.as_dict() if dispatch else None,
    }


def _enqueue_retry(store: CallRecordStore, phone_number: str, message: str, record, error: Optional[str]):
    try:
        item = store.enqueue_outbound({
            "phone_number": phone_number,
            "message": message,
            "status": "pending",
            "attempts": 1,
            "last_error": error,
            "call_detail_id": getattr(record, "id", None),
        })
        log.warning("follow-up to %s queued for retry id=%s err=%s", phone_number, item.id, error)
    except StoreError:
        log.exception("failed to queue follow-up for %s", phone_number)


def handle_message_event(engine: ReconciliationEngine, event: InboundMessageEvent) -> Optional[ReconciliationResult]:
    try:
        return engine.match_and_update(event)
    except StoreError:
        log.exception("reconciliation failed from=%s", event.from_raw)
        return None


async def drain_outbound_queue(store: CallRecordStore, dispatcher: OutboundDispatcher, limit: int = 50) -> Dict[str, Any]:
    """Retry pending outbound items once each; give up after MAX_SEND_ATTEMPTS."""
    items = store.list_outbound(status="pending", limit=limit)
    results = []
    for item in items:
        res = await dispatcher.send(item.phone_number, item.message, {"queue_id": item.id})
        status = "sent" if res.success else "pending"
        if not res.success:
            if (item.attempts or 0) + 1 >= settings.MAX_SEND_ATTEMPTS:
                status = "failed"
                log.error("giving up on queue item %s to=%s after %s attempts", item.id, item.phone_number, (item.attempts or 0) + 1)
            try:
                store.mark_outbound(item.id, status, error=res.error)
            except StoreError:
                log.exception("failed to update queue item %s", item.id)
        results.append({"id": item.id, "to": res.to, "ok": res.success, "status": status, "error": res.error})
    ok = sum(1 for r in results if r["ok"])
    return {"processed": len(results), "sent": ok, "failed": len(results) - ok, "results": results}
