from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import desc, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from callrelay.services import phone
from callrelay.storage.base import CallRecordStore, DuplicateRecord, StoreError, call_dedup_key
from callrelay.storage.db import Base
from callrelay.storage.models import CallDetail, MessageEvent, OutboundMessage, WebhookRequest
from callrelay.util.logger import get_logger

log = get_logger("store.sql")


def _is_unique_violation(e: IntegrityError) -> bool:
    orig = getattr(e, "orig", None)
    if getattr(orig, "pgcode", None) == "23505":
        return True
    msg = str(orig or e).lower()
    return "unique" in msg or "duplicate" in msg


class SqlStore(CallRecordStore):
    backend = "sql"

    def __init__(self, session_factory, engine=None):
        self.session_factory = session_factory
        self.engine = engine

    def create_all(self):
        if self.engine is not None:
            Base.metadata.create_all(bind=self.engine)

    # ---------- internals ----------
    def _insert(self, model, values: Dict[str, Any]):
        db = self.session_factory()
        try:
            row = model(**values)
            db.add(row)
            db.commit()
            return row
        except IntegrityError as e:
            db.rollback()
            if _is_unique_violation(e):
                raise DuplicateRecord(str(e.orig)) from e
            raise StoreError(str(e.orig)) from e
        except (SQLAlchemyError, OverflowError, ValueError) as e:
            # DBAPI conversion errors (e.g. int out of range) are not wrapped by SQLAlchemy
            db.rollback()
            raise StoreError(str(e)) from e
        finally:
            db.close()

    def _read(self, fn):
        db = self.session_factory()
        try:
            return fn(db)
        except (SQLAlchemyError, OverflowError, ValueError) as e:
            raise StoreError(str(e)) from e
        finally:
            db.close()

    def _write(self, fn):
        db = self.session_factory()
        try:
            out = fn(db)
            db.commit()
            return out
        except (SQLAlchemyError, OverflowError, ValueError) as e:
            db.rollback()
            raise StoreError(str(e)) from e
        finally:
            db.close()

    # ---------- call details ----------
    def insert_call(self, values):
        values = dict(values)
        if not values.get("phone_key"):
            values["phone_key"] = phone.key_for(values.get("phone_number")) or None
        if not values.get("dedup_key"):
            values["dedup_key"] = call_dedup_key(values)
        return self._insert(CallDetail, values)

    def get_call_by_webhook_request(self, webhook_request_id):
        return self._read(
            lambda db: db.query(CallDetail).filter(CallDetail.webhook_request_id == webhook_request_id).first()
        )

    def get_call_by_dedup_key(self, dedup_key):
        if not dedup_key:
            return None
        return self._read(lambda db: db.query(CallDetail).filter(CallDetail.dedup_key == dedup_key).first())

    def find_by_comparison_key(self, key):
        if not key:
            return []

        def q(db):
            query = db.query(CallDetail)
            if len(key) >= phone.MIN_SUFFIX_DIGITS:
                # every match under the suffix rule shares the last 9 digits
                tail = key[-phone.MIN_SUFFIX_DIGITS:]
                query = query.filter(or_(CallDetail.phone_key == key, CallDetail.phone_key.like(f"%{tail}")))
            else:
                query = query.filter(CallDetail.phone_key == key)
            rows = query.order_by(CallDetail.id.asc()).all()
            return [r for r in rows if phone.keys_match(key, r.phone_key or "")]

        return self._read(q)

    def update_bill_received(self, ids: Iterable[int], value: bool = True) -> int:
        ids = list(ids)
        if not ids:
            return 0

        def upd(db):
            pending = or_(CallDetail.bill_received.is_(None), CallDetail.bill_received != value)
            return (
                db.query(CallDetail)
                .filter(CallDetail.id.in_(ids), pending)
                .update(
                    {CallDetail.bill_received: value, CallDetail.updated_at: datetime.now(timezone.utc)},
                    synchronize_session=False,
                )
            )

        return self._write(upd)

    def list_calls(self, limit=100, offset=0):
        return self._read(
            lambda db: db.query(CallDetail)
            .order_by(desc(CallDetail.created_at), desc(CallDetail.id))
            .offset(offset)
            .limit(limit)
            .all()
        )

    def get_call(self, call_id):
        return self._read(
            lambda db: db.query(CallDetail)
            .filter(CallDetail.call_id == call_id)
            .order_by(desc(CallDetail.created_at), desc(CallDetail.id))
            .first()
        )

    # ---------- webhook log ----------
    def log_request(self, values):
        return self._insert(WebhookRequest, values)

    def list_requests(self, limit=100, offset=0, call_only=False, path=None, direction=None):
        def q(db):
            query = db.query(WebhookRequest)
            if call_only:
                query = query.filter(WebhookRequest.is_call_event.is_(True))
            if path:
                query = query.filter(WebhookRequest.path == path)
            if direction:
                query = query.filter(WebhookRequest.direction == direction)
            return (
                query.order_by(desc(WebhookRequest.created_at), desc(WebhookRequest.id))
                .offset(offset)
                .limit(limit)
                .all()
            )

        return self._read(q)

    def count_requests(self, call_only=False):
        def q(db):
            query = db.query(WebhookRequest)
            if call_only:
                query = query.filter(WebhookRequest.is_call_event.is_(True))
            return query.count()

        return self._read(q)

    # ---------- message events ----------
    def insert_message_event(self, values):
        return self._insert(MessageEvent, values)

    def get_message_event(self, event_id):
        return self._read(lambda db: db.query(MessageEvent).filter(MessageEvent.event_id == event_id).first())

    # ---------- outbound queue ----------
    def enqueue_outbound(self, values):
        return self._insert(OutboundMessage, values)

    def list_outbound(self, status=None, limit=100):
        def q(db):
            query = db.query(OutboundMessage)
            if status:
                query = query.filter(OutboundMessage.status == status)
            return query.order_by(OutboundMessage.id.asc()).limit(limit).all()

        return self._read(q)

    def mark_outbound(self, item_id, status, error=None):
        def upd(db):
            item = db.get(OutboundMessage, item_id)
            if item is None:
                return False
            item.status = status
            item.attempts = (item.attempts or 0) + 1
            item.last_error = error
            if status == "sent":
                item.sent_at = datetime.now(timezone.utc)
            return True

        return self._write(upd)

    # ---------- maintenance ----------
    def purge(self):
        def rm(db):
            counts = {}
            # children first
            for model in (OutboundMessage, MessageEvent, CallDetail, WebhookRequest):
                counts[model.__tablename__] = db.query(model).delete(synchronize_session=False)
            return counts

        counts = self._write(rm)
        log.warning({"event": "store_purged", **counts})
        return counts
