import os

# settings are read at import time
os.environ["STORE_BACKEND"] = "memory"
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["DRY_RUN"] = "1"
os.environ["WEBHOOK_SECRET"] = ""
os.environ["WHATSAPP_API_TOKEN"] = ""

import pytest
from fastapi.testclient import TestClient

from callrelay.main import app, init_state
from callrelay.providers.base import MessagingProvider
from callrelay.services.dispatcher import DispatchResult
from callrelay.storage.memory import MemoryStore


class FakeProvider(MessagingProvider):
    """Scripted provider: each post() pops the next response or raises it."""

    name = "fake"

    def __init__(self, responses=None, endpoints=("http://gw-a/messages/text", "http://gw-b/messages/text")):
        super().__init__(dry_run=False)
        self.responses = list(responses or [])
        self._endpoints = list(endpoints)
        self.calls = []

    def is_enabled(self):
        return True

    def endpoints(self):
        return list(self._endpoints)

    def post(self, endpoint, to, body, timeout):
        self.calls.append({"endpoint": endpoint, "to": to, "body": body, "timeout": timeout})
        r = self.responses.pop(0) if self.responses else (200, {"sent": True, "message": {"id": "wamid-1"}})
        if isinstance(r, Exception):
            raise r
        return r


class SpyDispatcher:
    """Records send() calls instead of talking to a provider."""

    dry_run = False

    def __init__(self, success=True):
        self.sent = []
        self.success = success

    async def send(self, phone_number, message, context=None):
        self.sent.append({"phone": phone_number, "message": message, "context": context or {}})
        if self.success:
            return DispatchResult(True, provider_response={"id": "spy"}, to=str(phone_number))
        return DispatchResult(False, error="spy failure", to=str(phone_number))


@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def client(store):
    init_state(app, store=store, provider=MessagingProvider(dry_run=True))
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def spy_dispatcher(client):
    spy = SpyDispatcher()
    app.state.dispatcher = spy
    return spy
