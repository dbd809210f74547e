import requests

from callrelay.providers.whatsapp import WhatsAppGatewayProvider


class FakeResponse:
    def __init__(self, status_code, data=None, text=""):
        self.status_code = status_code
        self._data = data
        self.text = text

    def json(self):
        if self._data is None:
            raise ValueError("no json")
        return self._data


def _gateway(**kw):
    opts = {"api_base": "https://gw.example/", "token": "tok", "fallback_bases": ["https://backup.example"],
            "send_paths": ["/messages/text", "messages"]}
    opts.update(kw)
    return WhatsAppGatewayProvider(**opts)


def test_endpoints_cover_every_base_and_path():
    assert _gateway().endpoints() == [
        "https://gw.example/messages/text",
        "https://gw.example/messages",
        "https://backup.example/messages/text",
        "https://backup.example/messages",
    ]


def test_disabled_without_token():
    assert _gateway(token="").is_enabled() is False
    assert _gateway(token="").list_messages() == []


def test_post_sends_bearer_json(monkeypatch):
    seen = {}

    def fake_post(url, headers=None, data=None, timeout=None):
        seen.update(url=url, headers=headers, data=data, timeout=timeout)
        return FakeResponse(200, {"sent": True})

    monkeypatch.setattr(requests, "post", fake_post)
    status, data = _gateway().post("https://gw.example/messages/text", "393331234567", "ciao", 5)

    assert (status, data) == (200, {"sent": True})
    assert seen["headers"]["Authorization"] == "Bearer tok"
    assert '"to": "393331234567"' in seen["data"]
    assert seen["timeout"] == 5


def test_post_keeps_non_json_body(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResponse(502, text="Bad Gateway"))
    status, data = _gateway().post("https://gw.example/messages/text", "39333", "x", 5)
    assert status == 502
    assert data == {"_raw": "Bad Gateway"}


def test_list_messages(monkeypatch):
    monkeypatch.setattr(requests, "get", lambda *a, **kw: FakeResponse(200, {"messages": [{"id": "m1"}]}))
    assert _gateway().list_messages(limit=1) == [{"id": "m1"}]

    monkeypatch.setattr(requests, "get", lambda *a, **kw: FakeResponse(401, {"error": "bad token"}))
    assert _gateway().list_messages() == []


def test_list_messages_when_gateway_unreachable(monkeypatch):
    def boom(*a, **kw):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(requests, "get", boom)
    assert _gateway().list_messages() == []
