# callrelay/services/reconcile.py
"""
Links an inbound WhatsApp message to the call records of the same number
and marks them bill_received=True.

Any inbound message counts (text, photo, PDF, voice note): the question is
"did the contact send something back after the call", content is not
inspected. Repeated deliveries are harmless because the update only
touches rows that are not already True.
"""
from __future__ import annotations

from dataclasses import dataclass

from callrelay.services import dedup, phone
from callrelay.services.classifier import InboundMessageEvent
from callrelay.storage.base import CallRecordStore, StoreError
from callrelay.util.logger import get_logger

log = get_logger("reconcile")


@dataclass
class ReconciliationResult:
    matched_count: int = 0
    updated_count: int = 0
    duplicate: bool = False
    skipped: str = ""

    def as_dict(self) -> dict:
        return {
            "matched": self.matched_count,
            "updated": self.updated_count,
            "duplicate": self.duplicate,
            "skipped": self.skipped or None,
        }


class ReconciliationEngine:
    def __init__(self, store: CallRecordStore):
        self.store = store

    def match_and_update(self, event: InboundMessageEvent) -> ReconciliationResult:
        if event.is_outbound:
            # our own sends echoed back by the gateway
            return ReconciliationResult(skipped="outbound")

        normalized = phone.normalize(event.from_raw)
        key = phone.comparison_key(normalized)

        records = self.store.find_by_comparison_key(key) if key else []
        result = ReconciliationResult(matched_count=len(records))

        if records:
            ids = [r.id for r in records]
            result.updated_count = self.store.update_bill_received(ids, True)
            log.info({
                "event": "reconciled",
                "phone": normalized,
                "matched": result.matched_count,
                "updated": result.updated_count,
                "type": event.message_type,
            })
        else:
            log.info({"event": "reconcile_no_match", "phone": normalized, "type": event.message_type})

        result.duplicate = self._record(event, normalized, key, result)
        return result

    def _record(self, event: InboundMessageEvent, normalized: str, key: str, result: ReconciliationResult) -> bool:
        """Persist the message event; True when this event_id was seen before."""
        values = {
            "event_id": event.event_id,
            "from_raw": event.from_raw,
            "normalized_phone": normalized,
            "phone_key": key or None,
            "text": event.text,
            "message_type": event.message_type,
            "matched_count": result.matched_count,
            "updated_count": result.updated_count,
            "received_at": event.received_at,
        }
        try:
            _row, created = dedup.insert_message_event(self.store, values)
        except StoreError:
            log.exception("message event audit failed from=%s", event.from_raw)
            return False
        if not created:
            log.info("message event %s already recorded", event.event_id)
        return not created
