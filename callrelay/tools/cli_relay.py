#!/usr/bin/env python3
import argparse, json, sys, time, uuid

import requests


def post(base, path, payload, headers=None):
    r = requests.post(f"{base}{path}", json=payload, headers=headers or {}, timeout=30)
    r.raise_for_status()
    if r.headers.get("content-type", "").startswith("application/json"):
        return r.json()
    return {"text": r.text}


def get(base, path, params=None):
    r = requests.get(f"{base}{path}", params=params or {}, timeout=30)
    r.raise_for_status()
    return r.json()


def show(obj):
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def cmd_simulate_call(args):
    payload = {
        "call_id": args.call_id or f"cli-{uuid.uuid4().hex[:8]}",
        "event_type": "call_ended",
        "phone_number": args.phone,
        "call_result": "answered",
    }
    show(post(args.base, "/webhook/cloudtalk", payload, {"User-Agent": "CloudTalk-cli"}))


def cmd_simulate_reply(args):
    # structured gateway shape, as delivered for an inbound chat message
    payload = {
        "data": {
            "messages": {
                "key": {"id": f"cli-{int(time.time() * 1000)}", "fromMe": False, "senderPn": f"{args.phone}@s.whatsapp.net"},
                "messageBody": args.text,
            }
        }
    }
    headers = {"X-Webhook-Secret": args.secret} if args.secret else {}
    show(post(args.base, "/api/whatsapp-webhook", payload, headers))


def cmd_send(args):
    show(post(args.base, "/api/send-message", {"phoneNumber": args.phone, "message": args.message}))


def cmd_messages(args):
    res = get(args.base, f"/api/messages/{args.phone}")
    if not res.get("data"):
        print(f"No messages for {args.phone}")
        return
    for m in res["data"]:
        arrow = "->" if m["direction"] == "outbound" else "<-"
        print(f"[{m.get('created_at')}] {arrow} {m.get('phone')} ({m.get('type')}): {m.get('text') or '(non-text)'}")


def cmd_last(args):
    res = get(args.base, "/api/webhooks", {"limit": args.limit})
    for row in res.get("data", []):
        print(f"#{row['id']} {row.get('created_at')} {row.get('method')} {row.get('path')} phone={row.get('phone_number')}")


def cmd_purge(args):
    if not args.yes:
        print("Refusing to delete every stored record without --yes")
        sys.exit(2)
    from callrelay.main import app
    show(app.state.store.purge())


def main():
    p = argparse.ArgumentParser(description="Operator tool for the call relay.")
    p.add_argument("--base", default="http://127.0.0.1:8000", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("simulate-call", help="post a call-center event")
    s.add_argument("--phone", required=True)
    s.add_argument("--call-id")
    s.set_defaults(fn=cmd_simulate_call)

    s = sub.add_parser("simulate-reply", help="post an inbound WhatsApp message")
    s.add_argument("--phone", required=True)
    s.add_argument("--text", default="Ecco la bolletta")
    s.add_argument("--secret")
    s.set_defaults(fn=cmd_simulate_reply)

    s = sub.add_parser("send", help="send a message through the relay")
    s.add_argument("--phone", required=True)
    s.add_argument("--message", required=True)
    s.set_defaults(fn=cmd_send)

    s = sub.add_parser("messages", help="sent and received messages for a number")
    s.add_argument("--phone", required=True)
    s.set_defaults(fn=cmd_messages)

    s = sub.add_parser("last", help="latest stored webhooks")
    s.add_argument("--limit", type=int, default=5)
    s.set_defaults(fn=cmd_last)

    s = sub.add_parser("purge", help="delete every stored record (uses local settings, not --base)")
    s.add_argument("--yes", action="store_true")
    s.set_defaults(fn=cmd_purge)

    args = p.parse_args()
    try:
        args.fn(args)
    except requests.HTTPError as he:
        print(f"[server HTTP {he.response.status_code}] {he.response.text}")
        sys.exit(1)
    except requests.RequestException as e:
        print(f"[error] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
