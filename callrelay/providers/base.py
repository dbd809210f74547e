import time
from typing import Any, Dict, List, Tuple

from callrelay.util.logger import get_logger

log = get_logger("providers.base")


class MessagingProvider:
    """
    Provider adapter used by the OutboundDispatcher. This base class is the
    dry-run provider: no endpoints, nothing leaves the process.
    """

    name = "dry-run"

    def __init__(self, dry_run: bool = True):
        self.dry_run = dry_run

    def is_enabled(self) -> bool:
        return False

    def endpoints(self) -> List[str]:
        """Ordered candidate send URLs; the dispatcher tries them in turn."""
        return []

    def post(self, endpoint: str, to: str, body: str, timeout: float) -> Tuple[int, Dict[str, Any]]:
        """
        One send attempt. Returns (http_status, parsed_json).
        Network-level failures raise requests.RequestException.
        """
        raise NotImplementedError

    def fake_id(self) -> str:
        return f"dev-{int(time.time() * 1000)}"

    def list_messages(self, limit: int = 100) -> List[Dict[str, Any]]:
        log.info("[DRY_RUN] list_messages limit=%d", limit)
        return []
