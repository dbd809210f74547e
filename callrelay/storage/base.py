from typing import Any, Dict, Iterable, List, Optional


class StoreError(Exception):
    """Any persistence failure."""


class DuplicateRecord(StoreError):
    """Insert hit a uniqueness constraint."""


def call_dedup_key(values: Dict[str, Any]) -> Optional[str]:
    """Natural key of a call event: the dialer re-sends the same call_id/event_type pair on retries."""
    call_id = values.get("call_id")
    if not call_id:
        return None
    return f"{call_id}|{values.get('event_type') or ''}"


class CallRecordStore:
    """
    Persistence used by the relay. Implementations:
      - SqlStore (storage/repository.py): SQLAlchemy tables
      - MemoryStore (storage/memory.py): process-local, same constraints

    Rows are returned as model instances (storage/models.py).
    """

    backend = "abstract"

    # ---------- call details ----------
    def insert_call(self, values: Dict[str, Any]):
        """Raises DuplicateRecord when webhook_request_id or the call dedup key already has a row."""
        raise NotImplementedError

    def get_call_by_webhook_request(self, webhook_request_id: int):
        raise NotImplementedError

    def get_call_by_dedup_key(self, dedup_key: str):
        raise NotImplementedError

    def find_by_comparison_key(self, key: str) -> List[Any]:
        """All rows whose phone_key matches `key` (see services/phone.keys_match)."""
        raise NotImplementedError

    def update_bill_received(self, ids: Iterable[int], value: bool = True) -> int:
        """Set bill_received on rows not already at `value`; returns rows changed."""
        raise NotImplementedError

    def list_calls(self, limit: int = 100, offset: int = 0) -> List[Any]:
        raise NotImplementedError

    def get_call(self, call_id: str):
        raise NotImplementedError

    # ---------- webhook log ----------
    def log_request(self, values: Dict[str, Any]):
        raise NotImplementedError

    def list_requests(
        self,
        limit: int = 100,
        offset: int = 0,
        call_only: bool = False,
        path: Optional[str] = None,
        direction: Optional[str] = None,
    ) -> List[Any]:
        raise NotImplementedError

    def count_requests(self, call_only: bool = False) -> int:
        raise NotImplementedError

    # ---------- message events ----------
    def insert_message_event(self, values: Dict[str, Any]):
        """Raises DuplicateRecord when event_id was already stored."""
        raise NotImplementedError

    def get_message_event(self, event_id: str):
        raise NotImplementedError

    # ---------- outbound queue ----------
    def enqueue_outbound(self, values: Dict[str, Any]):
        raise NotImplementedError

    def list_outbound(self, status: Optional[str] = None, limit: int = 100) -> List[Any]:
        raise NotImplementedError

    def mark_outbound(self, item_id: int, status: str, error: Optional[str] = None) -> bool:
        raise NotImplementedError

    # ---------- maintenance ----------
    def purge(self) -> Dict[str, int]:
        raise NotImplementedError
