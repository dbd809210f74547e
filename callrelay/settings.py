import os

from dotenv import load_dotenv, find_dotenv

# Load .env from project root if present (real environment wins)
load_dotenv(find_dotenv(usecwd=True), override=False)


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _csv(name: str, default: str = "") -> list[str]:
    raw = os.getenv(name, default)
    return [p.strip() for p in raw.split(",") if p.strip()]


APP_ENV = os.getenv("APP_ENV", "local")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Storage
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
STORE_BACKEND = os.getenv("STORE_BACKEND", "sql").strip().lower()  # sql | memory

# Inbound routing
CALL_MARKER = os.getenv("CALL_MARKER", "cloudtalk").strip().lower()
CALL_EVENT_PATH = os.getenv("CALL_EVENT_PATH", "/webhook/cloudtalk")
MESSAGE_WEBHOOK_PATH = os.getenv("MESSAGE_WEBHOOK_PATH", "/api/whatsapp-webhook")
OUTBOUND_LOG_PATH = os.getenv("OUTBOUND_LOG_PATH", "/outbound/whatsapp")
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET", "")

# Phone numbers
DEFAULT_COUNTRY_PREFIX = os.getenv("DEFAULT_COUNTRY_PREFIX", "39")

# Outbound
DRY_RUN = _flag("DRY_RUN", "1")
FOLLOWUP_MESSAGE = os.getenv(
    "FOLLOWUP_MESSAGE",
    "Buongiorno, grazie per la disponibilità al telefono. "
    "Può inviarci qui una foto o un PDF della sua ultima bolletta della luce?",
)
WHATSAPP_API_TOKEN = os.getenv("WHATSAPP_API_TOKEN", "")
WHATSAPP_API_URL = os.getenv("WHATSAPP_API_URL", "https://gate.whapi.cloud").rstrip("/")
WHATSAPP_API_FALLBACK_URLS = [u.rstrip("/") for u in _csv("WHATSAPP_API_FALLBACK_URLS")]
WHATSAPP_SEND_PATHS = _csv("WHATSAPP_SEND_PATHS", "/messages/text")
SEND_TIMEOUT_SECONDS = float(os.getenv("SEND_TIMEOUT_SECONDS", "10"))
# queue items are marked failed after this many attempts
MAX_SEND_ATTEMPTS = int(os.getenv("MAX_SEND_ATTEMPTS", "5"))

# Inspector
REQUEST_BUFFER_SIZE = int(os.getenv("REQUEST_BUFFER_SIZE", "100"))
