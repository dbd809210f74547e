from callrelay import settings
from callrelay.services.audit import RequestBuffer


def test_health(client):
    assert client.get("/healthz").json() == {"ok": True}
    r = client.get("/health").json()
    assert r["store"] == "memory"
    assert r["dry_run"] is True


def test_send_message_requires_phone_and_text(client):
    assert client.post("/api/send-message", json={"message": "hi"}).status_code == 400
    assert client.post("/api/send-message", json={"phoneNumber": "3331234567"}).status_code == 400
    assert client.post("/api/send-message", content=b"nope").status_code == 400


def test_send_message_dry_run(client, store):
    r = client.post("/api/send-message", json={"phoneNumber": "+39 333 123 4567", "message": "ciao"})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["dry_run"] is True
    assert body["to"] == "393331234567"
    assert body["provider_response"]["id"].startswith("dev-")
    assert store.list_requests(direction="outbound")[0].path == settings.OUTBOUND_LOG_PATH


def test_send_message_accepts_synonyms(client, spy_dispatcher):
    r = client.post("/api/send-message", json={"to": "3331234567", "body": "ciao", "callId": "c1"})
    assert r.status_code == 200
    assert spy_dispatcher.sent[0]["context"]["call_id"] == "c1"


def test_calls_read_paths(client):
    client.post(settings.CALL_EVENT_PATH, json={"call_id": "c-9", "phone_number": "3331234567"})

    calls = client.get("/api/calls").json()
    assert calls["count"] == 1
    assert calls["data"][0]["call_id"] == "c-9"

    assert client.get("/api/calls/c-9").json()["data"]["phone_number"] == "3331234567"
    assert client.get("/api/calls/missing").status_code == 404


def test_webhook_log_listing(client):
    client.post(settings.CALL_EVENT_PATH, json={"call_id": "c-1"})
    client.post(settings.MESSAGE_WEBHOOK_PATH, json={"status": "delivered"})

    assert client.get("/api/webhooks").json()["count"] == 2
    assert client.get("/api/webhooks", params={"call_only": True}).json()["count"] == 1
    assert client.get("/api/call-webhooks").json()["data"][0]["call_id"] == "c-1"
    assert client.get("/api/webhooks", params={"limit": 1, "offset": 1}).json()["count"] == 1


def test_recent_requests_buffer(client):
    client.post(settings.MESSAGE_WEBHOOK_PATH, json={"n": 1})
    client.post(settings.MESSAGE_WEBHOOK_PATH, json={"n": 2})
    items = client.get("/api/requests").json()["requests"]
    assert [i["body"]["n"] for i in items] == [2, 1]


def test_buffer_keeps_newest():
    buf = RequestBuffer(3)
    for n in range(5):
        buf.append({"n": n})
    assert len(buf) == 3
    assert [i["n"] for i in buf.snapshot()] == [4, 3, 2]


def test_message_history_both_directions(client):
    client.post(settings.CALL_EVENT_PATH, json={"call_id": "c-1", "phone_number": "3331234567"})
    client.post(settings.MESSAGE_WEBHOOK_PATH, json={"from": "393331234567@c.us", "body": "eccola", "fromMe": False})
    client.post(settings.MESSAGE_WEBHOOK_PATH, json={"from": "393479999999", "body": "other", "fromMe": False})

    r = client.get("/api/messages/+393331234567").json()
    assert r["count"] == 2
    assert [m["direction"] for m in r["data"]] == ["inbound", "outbound"]
    assert r["data"][0]["text"] == "eccola"
    assert r["data"][1]["text"] == settings.FOLLOWUP_MESSAGE


def test_outbound_queue_listing(client, store):
    store.enqueue_outbound({"phone_number": "3331234567", "message": "x"})
    r = client.get("/api/outbound-queue", params={"status": "pending"}).json()
    assert r["count"] == 1


def test_inspector_page(client):
    client.post(settings.CALL_EVENT_PATH, json={"call_id": "c-1"})
    r = client.get("/")
    assert r.status_code == 200
    assert "text/html" in r.headers["content-type"]


def test_provider_messages_empty_in_dry_run(client):
    assert client.get("/api/provider/messages").json() == {"data": [], "count": 0}
