# callrelay/services/dispatcher.py
"""
Outbound follow-up sends.

send() never raises: the caller has usually already persisted something
(the call record) and a provider outage must not undo or abort that.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from callrelay import settings
from callrelay.providers.base import MessagingProvider
from callrelay.services import audit, phone
from callrelay.storage.base import CallRecordStore, StoreError
from callrelay.util.logger import get_logger

log = get_logger("dispatcher")


@dataclass
class DispatchResult:
    success: bool
    provider_response: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    endpoint: Optional[str] = None
    status_code: Optional[int] = None
    dry_run: bool = False
    to: str = ""

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "to": self.to,
            "provider_response": self.provider_response,
            "error": self.error,
            "endpoint": self.endpoint,
            "status_code": self.status_code,
            "dry_run": self.dry_run,
        }


def _provider_error(status: int, data: Dict[str, Any]) -> Optional[str]:
    """Error text when the provider answered but refused the message."""
    err = data.get("error")
    if isinstance(err, dict):
        err = err.get("message") or err.get("details") or str(err)
    if not 200 <= status < 300:
        return str(err or data.get("message") or f"HTTP {status}")
    if err:
        return str(err)
    if data.get("sent") is False:
        return str(data.get("message") or "provider reported sent=false")
    return None


class OutboundDispatcher:
    def __init__(
        self,
        provider: MessagingProvider,
        store: Optional[CallRecordStore] = None,
        timeout: Optional[float] = None,
    ):
        self.provider = provider
        self.store = store
        self.timeout = settings.SEND_TIMEOUT_SECONDS if timeout is None else timeout

    @property
    def dry_run(self) -> bool:
        return bool(self.provider.dry_run or not self.provider.is_enabled())

    async def send(self, phone_number: Any, message: str, context: Optional[Dict[str, Any]] = None) -> DispatchResult:
        context = dict(context or {})
        to = phone.normalize(phone_number)
        try:
            if not to or not (message or "").strip():
                return DispatchResult(False, error="missing phone number or message", to=to)

            if self.dry_run:
                fake = self.provider.fake_id()
                log.info("[DRY_RUN SEND] to=%s ctx=%s body=%r -> id=%s", to, context, message, fake)
                result = DispatchResult(True, provider_response={"id": fake}, dry_run=True, to=to)
            else:
                result = await self._deliver(to, message)

            if result.success:
                self._bookkeep(to, message, result, context)
            return result
        except Exception as e:
            # last line of defence: callers get a result, not an exception
            log.exception("dispatch error to=%s", to)
            return DispatchResult(False, error=str(e), to=to)

    async def _deliver(self, to: str, message: str) -> DispatchResult:
        endpoints = self.provider.endpoints()
        if not endpoints:
            return DispatchResult(False, error="no provider endpoints configured", to=to)

        last_error = None
        for endpoint in endpoints:
            try:
                status, data = await asyncio.wait_for(
                    asyncio.to_thread(self.provider.post, endpoint, to, message, self.timeout),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                last_error = f"{endpoint}: timed out after {self.timeout}s"
                log.warning("send timeout endpoint=%s", endpoint)
                continue
            except requests.RequestException as e:
                last_error = f"{endpoint}: {e}"
                log.warning("send transport error endpoint=%s err=%s", endpoint, e)
                continue

            # connected: this endpoint's answer is final
            err = _provider_error(status, data)
            if err:
                log.error("provider rejected send endpoint=%s status=%s data=%s", endpoint, status, data)
                return DispatchResult(False, provider_response=data, error=err, endpoint=endpoint, status_code=status, to=to)
            log.info({"event": "message_sent", "to": to, "endpoint": endpoint, "status": status})
            return DispatchResult(True, provider_response=data, endpoint=endpoint, status_code=status, to=to)

        return DispatchResult(False, error=last_error or "all endpoints failed", to=to)

    def _bookkeep(self, to: str, message: str, result: DispatchResult, context: Dict[str, Any]):
        if self.store is None:
            return
        try:
            audit.log_outbound(self.store, to, message, result.provider_response, context)
        except StoreError:
            log.exception("failed to log outbound message to=%s", to)
        queue_id = context.get("queue_id")
        if queue_id is not None:
            try:
                self.store.mark_outbound(int(queue_id), "sent")
            except (StoreError, ValueError):
                log.exception("failed to mark queue item %s sent", queue_id)
