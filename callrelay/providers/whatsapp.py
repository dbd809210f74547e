import json
from typing import Any, Dict, List, Optional, Tuple

import requests

from callrelay import settings
from callrelay.providers.base import MessagingProvider
from callrelay.util.logger import get_logger

log = get_logger("providers.whatsapp")


class WhatsAppGatewayProvider(MessagingProvider):
    """
    HTTP WhatsApp gateway (whapi-style): bearer token, JSON {"to", "body"}.

    The gateway's URL layout has moved around, so the send URL is not fixed:
    every configured base URL is combined with every configured send path,
    in order, and the dispatcher walks that list.
    """

    name = "whatsapp"

    def __init__(
        self,
        dry_run: bool = False,
        api_base: Optional[str] = None,
        token: Optional[str] = None,
        fallback_bases: Optional[List[str]] = None,
        send_paths: Optional[List[str]] = None,
    ):
        super().__init__(dry_run=dry_run)
        self.api_base = (api_base if api_base is not None else settings.WHATSAPP_API_URL).rstrip("/")
        self.token = token if token is not None else settings.WHATSAPP_API_TOKEN
        self.fallback_bases = list(fallback_bases if fallback_bases is not None else settings.WHATSAPP_API_FALLBACK_URLS)
        self.send_paths = list(send_paths if send_paths is not None else settings.WHATSAPP_SEND_PATHS)

    # ---------- capability ----------
    def is_enabled(self) -> bool:
        return bool(self.api_base and self.token)

    def _headers(self) -> Dict[str, str]:
        token = self.token if self.token.startswith("Bearer ") else f"Bearer {self.token}"
        return {
            "Authorization": token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def endpoints(self) -> List[str]:
        out = []
        for base in [self.api_base, *self.fallback_bases]:
            for path in self.send_paths:
                url = f"{base.rstrip('/')}/{path.lstrip('/')}"
                if base and url not in out:
                    out.append(url)
        return out

    # ---------- outbound ----------
    def post(self, endpoint: str, to: str, body: str, timeout: float) -> Tuple[int, Dict[str, Any]]:
        payload = {"to": to, "body": body}
        r = requests.post(endpoint, headers=self._headers(), data=json.dumps(payload), timeout=timeout)
        try:
            data = r.json()
        except ValueError:
            data = {"_raw": r.text}
        if not isinstance(data, dict):
            data = {"_raw": data}
        return r.status_code, data

    # ---------- history ----------
    def list_messages(self, limit: int = 100) -> List[Dict[str, Any]]:
        if not self.is_enabled():
            return []
        url = f"{self.api_base}/messages/list"
        try:
            r = requests.get(url, headers=self._headers(), params={"limit": limit}, timeout=settings.SEND_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            log.error("gateway list_messages unreachable url=%s err=%s", url, e)
            return []
        try:
            data = r.json()
        except ValueError:
            data = {"_raw": r.text, "_status": r.status_code}
        if r.status_code != 200:
            log.error("gateway list_messages failed %s %s", r.status_code, data)
            return []
        if isinstance(data, list):
            return data
        return data.get("messages") or []
