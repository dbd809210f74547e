import pytest

from callrelay.services import dedup
from callrelay.storage.base import StoreError
from callrelay.storage.memory import MemoryStore


def test_duplicate_call_detail_returns_existing_row():
    store = MemoryStore()
    first, created = dedup.insert_call_detail(store, {"webhook_request_id": 10, "call_id": "c1", "phone_number": "3331234567"})
    again, created_again = dedup.insert_call_detail(store, {"webhook_request_id": 10, "call_id": "c1", "phone_number": "3331234567"})

    assert created is True
    assert created_again is False
    assert again.id == first.id
    assert len(store.list_calls()) == 1


def test_rows_without_source_id_do_not_collide():
    store = MemoryStore()
    dedup.insert_call_detail(store, {"webhook_request_id": None, "phone_number": "1"})
    dedup.insert_call_detail(store, {"webhook_request_id": None, "phone_number": "2"})
    assert len(store.list_calls()) == 2


def test_other_store_errors_propagate():
    def broken_insert(values):
        raise StoreError("disk full")

    with pytest.raises(StoreError):
        dedup.insert_once(broken_insert, lambda: None, {"x": 1})


def test_redelivered_call_event_resolves_by_call_id_and_event_type():
    store = MemoryStore()
    values = {"call_id": "c-dup", "event_type": "call_ended", "phone_number": "3331234567"}
    first, created = dedup.insert_call_detail(store, {**values, "webhook_request_id": 1})
    again, created_again = dedup.insert_call_detail(store, {**values, "webhook_request_id": 2})

    assert (created, created_again) == (True, False)
    assert again.id == first.id
    assert len(store.list_calls()) == 1

    # a different event for the same call is its own row
    _, created_other = dedup.insert_call_detail(store, {**values, "event_type": "call_answered", "webhook_request_id": 3})
    assert created_other is True
