from datetime import datetime
import base64
import hashlib
import hmac
import json

import httpx

from app.core.config import settings
from app.database import billing_repository, chat_repository, document_repository, thread_repository
from app.services.gmail_service import gmail_service


def _ndjson(response):
    return [json.loads(line) for line in response.text.splitlines() if line]


# ---------------------------
# System & auth
# ---------------------------

def test_public_health_endpoints(client):
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/api/v1/system/health").json()["status"] == "ok"


def test_protected_route_requires_token(client):
    response = client.get("/api/v1/chat?user_id=x")
    assert response.status_code == 401
    assert response.json() == {"detail": "Authentication required"}


def test_invalid_token_is_rejected(client):
    response = client.get("/api/v1/user", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token"


def test_me_and_profile(client, user, auth_headers):
    assert client.get("/api/v1/auth/me", headers=auth_headers).json()["id"] == user.id

    profile = client.get("/api/v1/user", headers=auth_headers).json()
    assert profile["email"] == "alice@acme.io"
    assert profile["onboarding_completed_at"] is None


def test_providers_listed_without_login(client):
    response = client.get("/api/v1/auth/providers")
    assert response.status_code == 200
    assert isinstance(response.json()["providers"], list)


# ---------------------------
# Users
# ---------------------------

def test_user_count_is_public(client, user):
    billing_repository.save_customer(user.id, "cus_1", user.email)
    assert client.get("/api/v1/users/count").json() == {"count": 1}


def test_update_user_only_self(client, user, other_user, auth_headers):
    response = client.put("/api/v1/users/update", json={"id": other_user.id, "first_name": "Eve"}, headers=auth_headers)
    assert response.status_code == 403

    response = client.put("/api/v1/users/update", json={"id": user.id, "first_name": "Ally"}, headers=auth_headers)
    assert response.json() == {"success": True}


def test_onboarding(client, auth_headers):
    response = client.post(
        "/api/v1/onboarding",
        json={"first_name": "Alice", "last_name": "Smith", "usage_type": "business"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["onboarding_completed_at"] is not None


# ---------------------------
# Chat
# ---------------------------

def test_chat_turn_streams_ndjson(client, user, auth_headers, fake_openai):
    fake_openai.text = "Greeting"
    fake_openai.chat_turns = [[{"type": "text", "content": "Hello!"}]]

    response = client.post("/api/v1/chat", headers=auth_headers, json={
        "id": "chat-1",
        "messages": [{"id": "u1", "role": "user", "content": "Hi"}],
        "selectedChatModel": "chat-model-small",
    })

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    events = _ndjson(response)
    assert {"type": "text-delta", "content": "Hello!"} in events
    assert events[-1]["type"] == "message-id"
    assert chat_repository.get_chat_by_id("chat-1").title == "Greeting"


def test_chat_turn_without_user_message(client, auth_headers):
    response = client.post("/api/v1/chat", headers=auth_headers, json={
        "id": "chat-1",
        "messages": [{"id": "a1", "role": "assistant", "content": "Hi"}],
    })
    assert response.status_code == 400
    assert response.json() == {"detail": "No user message found"}


def test_chat_turn_in_foreign_chat(client, user, other_headers, fake_openai):
    chat_repository.save_chat("chat-1", user.id, "Private")
    response = client.post("/api/v1/chat", headers=other_headers, json={
        "id": "chat-1",
        "messages": [{"id": "u1", "role": "user", "content": "Hi"}],
    })
    assert response.status_code == 401


def test_delete_chat_owner_only(client, user, auth_headers, other_headers):
    chat_repository.save_chat("chat-1", user.id, "Chat")

    assert client.delete("/api/v1/chat", headers=auth_headers).status_code == 404
    assert client.delete("/api/v1/chat?id=chat-1", headers=other_headers).status_code == 401
    assert client.delete("/api/v1/chat?id=chat-1", headers=auth_headers).status_code == 200
    assert chat_repository.get_chat_by_id("chat-1") is None


def test_list_chats(client, user, auth_headers):
    chat_repository.save_chat("chat-1", user.id, "One")
    chat_repository.save_chat("chat-2", user.id, "Two")

    assert client.get("/api/v1/chat", headers=auth_headers).status_code == 400
    assert client.get("/api/v1/chat?user_id=someone-else", headers=auth_headers).status_code == 401

    body = client.get(f"/api/v1/chat?user_id={user.id}&limit=1", headers=auth_headers).json()
    assert [c["id"] for c in body["chats"]] == ["chat-2"]
    assert body["has_more"] is True


def test_messages_and_votes(client, user, auth_headers, other_headers):
    chat_repository.save_chat("chat-1", user.id, "Chat")
    chat_repository.save_messages([{
        "id": "m1", "chat_id": "chat-1", "role": "assistant", "parts": [{"type": "text", "text": "Hi"}],
    }])

    assert client.get("/api/v1/messages?chat_id=missing", headers=auth_headers).status_code == 404
    assert client.get("/api/v1/messages?chat_id=chat-1", headers=other_headers).status_code == 401
    assert [m["id"] for m in client.get("/api/v1/messages?chat_id=chat-1", headers=auth_headers).json()] == ["m1"]

    vote = client.post("/api/v1/vote", headers=auth_headers, json={"chat_id": "chat-1", "message_id": "m1", "type": "up"})
    assert vote.json()["is_upvoted"] is True
    assert len(client.get("/api/v1/vote?chat_id=chat-1", headers=auth_headers).json()) == 1


def test_public_chat_messages_readable_by_others(client, user, auth_headers, other_headers):
    chat_repository.save_chat("chat-1", user.id, "Chat")

    response = client.patch(
        "/api/v1/chat/visibility", headers=auth_headers, json={"chat_id": "chat-1", "visibility": "public"}
    )
    assert response.json()["visibility"] == "public"
    assert client.get("/api/v1/messages?chat_id=chat-1", headers=other_headers).status_code == 200


def test_delete_trailing_messages(client, user, auth_headers):
    chat_repository.save_chat("chat-1", user.id, "Chat")
    chat_repository.save_messages([
        {"id": "m1", "chat_id": "chat-1", "role": "user", "parts": [], "created_at": datetime(2024, 1, 1, 10)},
        {"id": "m2", "chat_id": "chat-1", "role": "assistant", "parts": [], "created_at": datetime(2024, 1, 1, 11)},
    ])

    response = client.delete("/api/v1/chat/messages/trailing?id=m2", headers=auth_headers)

    assert response.json() == {"deleted": 1}
    assert [m.id for m in chat_repository.get_messages_by_chat_id("chat-1")] == ["m1"]


# ---------------------------
# Documents
# ---------------------------

def test_document_lifecycle(client, user, auth_headers, other_headers):
    first = client.post(
        "/api/v1/document?id=doc-1",
        headers=auth_headers,
        json={"title": "Essay", "content": "v1", "kind": "text", "chat_id": "chat-9"},
    )
    assert first.status_code == 200
    assert chat_repository.is_chat_owner("chat-9", user.id)

    client.post("/api/v1/document?id=doc-1", headers=auth_headers, json={"title": "Essay", "content": "v2"})

    versions = client.get("/api/v1/document?id=doc-1", headers=auth_headers).json()
    assert [v["content"] for v in versions] == ["v1", "v2"]
    assert client.get("/api/v1/document?id=doc-1", headers=other_headers).status_code == 403
    assert client.get("/api/v1/document?id=nope", headers=auth_headers).status_code == 404
    assert client.get("/api/v1/document", headers=auth_headers).status_code == 400

    timestamp = first.json()["created_at"]
    assert client.delete(f"/api/v1/document?id=doc-1&timestamp={timestamp}", headers=other_headers).status_code == 403
    deleted = client.delete(f"/api/v1/document?id=doc-1&timestamp={timestamp}", headers=auth_headers).json()
    assert [d["content"] for d in deleted] == ["v2"]


def test_list_documents(client, user, auth_headers):
    document_repository.save_document("doc-1", "Script", "code", "print(1)", user.id, None)

    assert client.get("/api/v1/documents?kind=video", headers=auth_headers).status_code == 400
    assert [d["id"] for d in client.get("/api/v1/documents?kind=code", headers=auth_headers).json()] == ["doc-1"]


def test_suggestions_require_parameters(client, auth_headers):
    assert client.get("/api/v1/suggestions?document_id=doc-1", headers=auth_headers).status_code == 400


def test_suggestions_forbidden_for_other_users(client, user, other_headers):
    doc = document_repository.save_document("doc-1", "Essay", "text", "Text.", user.id)

    response = client.get(
        "/api/v1/suggestions",
        params={"document_id": "doc-1", "document_created_at": doc.created_at.isoformat()},
        headers=other_headers,
    )
    assert response.status_code == 403


# ---------------------------
# Threads
# ---------------------------

def test_threads_visible_to_participants(client, user, auth_headers, other_headers):
    chat_repository.save_chat("chat-1", user.id, "Chat")
    party = thread_repository.save_external_party("Plumber", email="help@plumber.co")
    thread = thread_repository.save_thread("chat-1", party.id, "Quote", "gt-1")
    thread_repository.save_thread_message(thread.id, "user", {"text": "Quote?"})

    assert [t["id"] for t in client.get("/api/v1/threads?chat_id=chat-1", headers=auth_headers).json()] == [thread.id]
    assert client.get("/api/v1/threads?chat_id=chat-1", headers=other_headers).status_code == 401

    messages = client.get(f"/api/v1/thread-messages?thread_id={thread.id}", headers=auth_headers).json()
    assert messages[0]["content"] == {"text": "Quote?"}
    assert client.get("/api/v1/thread-messages?thread_id=nope", headers=auth_headers).status_code == 404


# ---------------------------
# Vendor webhooks & integrations
# ---------------------------

def test_vapi_webhook_signature(client):
    payload = json.dumps({"other": True}).encode()
    response = client.post("/api/v1/vapi", content=payload, headers={"x-vapi-signature": "bad"})
    assert response.status_code == 401

    digest = hmac.new(b"vapi-test-secret", payload, hashlib.sha256).hexdigest()
    response = client.post("/api/v1/vapi", content=payload, headers={"x-vapi-signature": digest})
    assert response.status_code == 400


def test_stripe_webhook_rejects_bad_signature(client):
    response = client.post("/api/v1/stripe/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=bad"})
    assert response.status_code == 400


def test_stripe_products(client, auth_headers):
    product = billing_repository.create_product("prod_1", "Lifetime")
    billing_repository.create_price("price_1", product.id, "one_time", 1900)

    products = client.get("/api/v1/stripe/products", headers=auth_headers).json()["products"]
    assert products[0]["prices"][0]["stripe_price_id"] == "price_1"


def test_payment_status(client, user, auth_headers):
    assert client.get("/api/v1/stripe/payment-status", headers=auth_headers).json() == {"paid": False}
    billing_repository.save_payment(user.id, "pi_1", "price_1", 1900, "usd", "succeeded", "card", {})
    assert client.get("/api/v1/stripe/payment-status", headers=auth_headers).json() == {"paid": True}


def test_portal_without_customer(client, auth_headers):
    response = client.post("/api/v1/stripe/portal", headers=auth_headers, json={"return_url": "http://x"})
    assert response.status_code == 404


def test_gmail_status_and_webhook_auth(client, auth_headers):
    assert client.get("/api/v1/gmail/status", headers=auth_headers).json() == {"connected": False}
    assert client.post("/api/v1/gmail/webhook", json={"subscription": "s"}).status_code == 401


def test_gmail_disconnect_without_credentials(client, auth_headers):
    assert client.delete("/api/v1/gmail/disconnect", headers=auth_headers).status_code == 404


def test_gmail_callback_rejects_state_mismatch(client, auth_headers, mock_http):
    sent = mock_http(lambda request: httpx.Response(200, json={"access_token": "a"}))
    client.cookies.set("gmail_oauth_state", "settings:expected")

    response = client.get(
        "/api/v1/gmail/callback",
        params={"code": "c", "state": "settings:forged"},
        headers=auth_headers,
        follow_redirects=False,
    )

    assert response.status_code == 307
    assert response.headers["location"] == "http://localhost:3000/settings?tab=accounts&error=Invalid+state+parameter"
    assert sent == []


def test_gmail_callback_requires_state_cookie(client, auth_headers):
    response = client.get(
        "/api/v1/gmail/callback",
        params={"code": "c", "state": "home:abc"},
        headers=auth_headers,
        follow_redirects=False,
    )
    assert response.headers["location"] == "http://localhost:3000/gmail-connect?error=Invalid+state+parameter"


def test_login_callback_rejects_state_mismatch(client, mock_http, monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", "google-id")
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_SECRET", "google-secret")
    sent = mock_http(lambda request: httpx.Response(200, json={"access_token": "a"}))
    client.cookies.set("oauth_state", "expected")

    response = client.get(
        "/api/v1/auth/google/callback",
        params={"code": "c", "state": "forged"},
        follow_redirects=False,
    )

    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid state parameter"}
    assert sent == []


def _pubsub_push(subscription, notification):
    data = base64.b64encode(json.dumps(notification).encode()).decode()
    return {"subscription": subscription, "message": {"data": data, "messageId": "1"}}


def test_gmail_webhook_processes_history(client, user, monkeypatch):
    monkeypatch.setattr("app.api.v1.endpoints.gmail.verify_pubsub_token", lambda authorization: True)
    monkeypatch.setattr(settings, "GMAIL_ALLOWED_SUBSCRIPTIONS", ["projects/p/subscriptions/gmail"])
    updates = []

    async def process_history_update(user_id, history_id):
        updates.append((user_id, history_id))
        return True

    monkeypatch.setattr(gmail_service, "process_history_update", process_history_update)

    response = client.post(
        "/api/v1/gmail/webhook",
        json=_pubsub_push("projects/p/subscriptions/gmail", {"emailAddress": "alice@acme.io", "historyId": 4321}),
        headers={"Authorization": "Bearer pubsub-token"},
    )

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert updates == [(user.id, "4321")]


def test_gmail_webhook_rejects_unknown_subscription(client, user, monkeypatch):
    monkeypatch.setattr("app.api.v1.endpoints.gmail.verify_pubsub_token", lambda authorization: True)
    monkeypatch.setattr(settings, "GMAIL_ALLOWED_SUBSCRIPTIONS", ["projects/p/subscriptions/gmail"])

    response = client.post(
        "/api/v1/gmail/webhook",
        json=_pubsub_push("projects/other/subscriptions/x", {"emailAddress": "alice@acme.io", "historyId": 1}),
    )
    assert response.status_code == 400


def test_browser_session_unconfigured(client, auth_headers):
    response = client.post("/api/v1/browser/session", headers=auth_headers, json={"timezone": "UTC"})
    assert response.status_code == 500
    assert response.json() == {"detail": "BROWSERBASE_API_KEY is not configured"}
