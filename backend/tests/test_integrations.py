import asyncio
import base64
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta
from types import SimpleNamespace

import httpx
import pytest

from app.core.config import settings
from app.core.exceptions import ConfigurationError, IntegrationError, NotFoundError
from app.database import billing_repository, chat_repository, credential_repository, thread_repository
from app.services.browser_service import browser_service, get_closest_region
from app.services.firecrawl_service import firecrawl_service, format_search_results
from app.services.gmail_client import GmailClient, extract_message_content
from app.services.gmail_service import gmail_service
from app.services.vapi_service import vapi_service, verify_signature


def _b64(text):
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


# ---------------------------
# Browserbase
# ---------------------------

@pytest.mark.parametrize("timezone, region", [
    (None, "us-west-2"),
    ("America/New_York", "us-east-1"),
    ("America/Los_Angeles", "us-west-2"),
    ("Europe/Berlin", "eu-central-1"),
    ("Asia/Tokyo", "ap-southeast-1"),
    ("Etc/GMT-9", "ap-southeast-1"),
    ("UTC", "eu-central-1"),
    ("Not/AZone", "us-west-2"),
])
def test_get_closest_region(timezone, region):
    assert get_closest_region(timezone) == region


@pytest.mark.asyncio
async def test_browser_session_requires_configuration(monkeypatch):
    monkeypatch.setattr(settings, "BROWSERBASE_API_KEY", None)
    with pytest.raises(ConfigurationError):
        await browser_service.create_session("Europe/Berlin")


@pytest.mark.asyncio
async def test_browser_session_creates_context_and_session(monkeypatch, mock_http):
    monkeypatch.setattr(settings, "BROWSERBASE_API_KEY", "bb-key")
    monkeypatch.setattr(settings, "BROWSERBASE_PROJECT_ID", "proj-1")

    def handler(request):
        if request.url.path.endswith("/contexts"):
            return httpx.Response(200, json={"id": "ctx-1"})
        if request.url.path.endswith("/debug"):
            return httpx.Response(200, json={"debuggerFullscreenUrl": "https://debug/1"})
        return httpx.Response(200, json={"id": "sess-1"})

    sent = mock_http(handler)

    result = await browser_service.create_session("Europe/Berlin")

    assert result == {"session_id": "sess-1", "session_url": "https://debug/1", "context_id": "ctx-1"}
    session_body = json.loads(sent[1].content)
    assert session_body["region"] == "eu-central-1"
    assert session_body["keepAlive"] is True
    assert sent[1].headers["X-BB-API-Key"] == "bb-key"


@pytest.mark.asyncio
async def test_browser_recording_must_be_a_list(monkeypatch, mock_http):
    monkeypatch.setattr(settings, "BROWSERBASE_API_KEY", "bb-key")
    monkeypatch.setattr(settings, "BROWSERBASE_PROJECT_ID", "proj-1")
    mock_http(lambda request: httpx.Response(200, json={"unexpected": True}))

    with pytest.raises(IntegrationError):
        await browser_service.get_recording_events("sess-1")


# ---------------------------
# Firecrawl
# ---------------------------

def test_format_search_results_empty():
    assert format_search_results("tea", []) == "No search results found."


@pytest.mark.asyncio
async def test_scrape_without_content_fails(monkeypatch, mock_http):
    monkeypatch.setattr(settings, "FIRECRAWL_API_KEY", "fc-test")
    mock_http(lambda request: httpx.Response(200, json={"success": True, "data": {"metadata": {}}}))

    with pytest.raises(IntegrationError):
        await firecrawl_service.scrape("https://empty.page")


@pytest.mark.asyncio
async def test_firecrawl_http_error(monkeypatch, mock_http):
    monkeypatch.setattr(settings, "FIRECRAWL_API_KEY", "fc-test")
    mock_http(lambda request: httpx.Response(500, text="boom"))

    with pytest.raises(IntegrationError):
        await firecrawl_service.search("tea")


# ---------------------------
# Vapi
# ---------------------------

def test_verify_signature():
    payload = b'{"message": {"type": "call.started"}}'
    digest = hmac.new(b"vapi-test-secret", payload, hashlib.sha256).hexdigest()

    assert verify_signature(payload, digest)
    assert not verify_signature(payload, "0" * 64)
    assert not verify_signature(payload, None)
    assert not verify_signature(payload, "\u00e9" * 64)


@pytest.mark.asyncio
async def test_end_call_function_saves_transcript(user, monkeypatch, mock_http):
    monkeypatch.setattr(settings, "VAPI_API_KEY", "vapi-key")
    chat_repository.save_chat("chat-1", user.id, "Chat")
    party = thread_repository.save_external_party("Plumber", phone="+15551234567")
    thread = thread_repository.save_thread("chat-1", party.id, "Call with Plumber")
    mock_http(lambda request: httpx.Response(200, json={"id": "call-1", "messages": [
        {"role": "system", "message": "prompt"},
        {"role": "bot", "message": "Hi, I'm calling about a quote."},
        {"role": "user", "message": "Sure, 200 dollars."},
    ]}))

    await vapi_service.handle_webhook_message({
        "type": "function",
        "callId": "call-1",
        "function": {"name": "end_call", "parameters": {"threadId": thread.id}},
    })

    messages = thread_repository.get_thread_messages_by_thread_id(thread.id)
    assert [m.role for m in messages] == ["ai", "external"]
    assert messages[1].external_message_id == "call-1:1"
    assert thread_repository.get_thread_by_id(thread.id).status == "replied"


@pytest.mark.asyncio
async def test_call_transcript_saved_once_on_webhook_retry(user, monkeypatch, mock_http):
    monkeypatch.setattr(settings, "VAPI_API_KEY", "vapi-key")
    chat_repository.save_chat("chat-1", user.id, "Chat")
    party = thread_repository.save_external_party("Plumber", phone="+15551234567")
    thread = thread_repository.save_thread("chat-1", party.id, "Call with Plumber")
    mock_http(lambda request: httpx.Response(200, json={"id": "call-1", "messages": [
        {"role": "bot", "message": "Hi, I'm calling about a quote."},
        {"role": "system", "message": "prompt"},
        {"role": "customer", "message": "Sure, 200 dollars."},
    ]}))

    assert await vapi_service.save_call_messages("call-1", thread.id) == 2
    assert await vapi_service.save_call_messages("call-1", thread.id) == 0

    messages = thread_repository.get_thread_messages_by_thread_id(thread.id)
    assert [m.external_message_id for m in messages] == ["call-1:0", "call-1:1"]


# ---------------------------
# Gmail
# ---------------------------

def test_extract_message_content_multipart():
    message = {
        "id": "m1",
        "threadId": "t1",
        "payload": {
            "headers": [
                {"name": "Subject", "value": "Re: Quote"},
                {"name": "From", "value": "Plumber <help@plumber.co>"},
                {"name": "Date", "value": "Mon, 20 May 2024 10:00:00 +0000"},
            ],
            "parts": [
                {"mimeType": "text/plain", "body": {"data": _b64("200 dollars")}},
                {"mimeType": "text/html", "body": {"data": _b64("<p>200 dollars</p>")}},
            ],
        },
    }

    content = extract_message_content(message)

    assert content["subject"] == "Re: Quote"
    assert content["body"] == "200 dollars"
    assert content["date"].year == 2024


@pytest.mark.asyncio
async def test_process_new_messages_skips_own_and_known_messages(user, mock_http):
    chat_repository.save_chat("chat-1", user.id, "Chat")
    credential_repository.save_oauth_credentials(user.id, "gmail", "token", None, [], None)
    party = thread_repository.save_external_party("Plumber", email="help@plumber.co")
    thread = thread_repository.save_thread("chat-1", party.id, "Quote", "gt-1")
    thread_repository.save_thread_message(thread.id, "user", {"text": "Quote?"}, "Quote", "g1")

    def gmail_message(message_id, sender, text):
        return {
            "id": message_id,
            "threadId": "gt-1",
            "payload": {
                "headers": [{"name": "From", "value": sender}, {"name": "Subject", "value": "Re: Quote"}],
                "body": {"data": _b64(text)},
            },
        }

    mock_http(lambda request: httpx.Response(200, json={"messages": [
        gmail_message("g1", "alice@acme.io", "Quote?"),
        gmail_message("g2", "Plumber <help@plumber.co>", "200 dollars"),
        gmail_message("g3", "Alice <alice@acme.io>", "Thanks"),
    ]}))

    assert await gmail_service.process_new_messages(user.id, thread.id)

    messages = thread_repository.get_thread_messages_by_thread_id(thread.id)
    assert [m.external_message_id for m in messages] == ["g1", "g2"]
    assert messages[1].role == "external"
    assert thread_repository.get_thread_by_id(thread.id).last_message_preview == "New message from Plumber"


@pytest.mark.asyncio
async def test_initiate_thread_requires_gmail_connection(user):
    with pytest.raises(IntegrationError):
        await gmail_service.initiate_thread(user.id, "help@plumber.co", "Quote", "Hello", "chat-1")


def _connect_gmail(user, expires_at=None, refresh_token=None):
    chat_repository.save_chat("chat-1", user.id, "Chat")
    return credential_repository.save_oauth_credentials(user.id, "gmail", "token", refresh_token, [], expires_at)


@pytest.mark.asyncio
async def test_history_update_processes_each_thread_once(user, mock_http):
    _connect_gmail(user)
    party = thread_repository.save_external_party("Plumber", email="help@plumber.co")
    thread = thread_repository.save_thread("chat-1", party.id, "Quote", "gt-1")
    thread_repository.save_thread_message(thread.id, "user", {"text": "Quote?"}, "Quote", "g1")
    credential_repository.save_gmail_watch(user.id, "100", "projects/p/topics/gmail", datetime.utcnow())

    reply = {
        "id": "g2",
        "threadId": "gt-1",
        "payload": {
            "headers": [{"name": "From", "value": "Plumber <help@plumber.co>"}],
            "body": {"data": _b64("200 dollars")},
        },
    }

    def handler(request):
        if request.url.path.endswith("/history"):
            assert request.url.params["startHistoryId"] == "100"
            return httpx.Response(200, json={"history": [
                {"messagesAdded": [{"message": {"id": "g2", "threadId": "gt-1"}}]},
                {"messagesAdded": [{"message": {"id": "g2", "threadId": "gt-1"}}]},
            ]})
        return httpx.Response(200, json={"messages": [reply]})

    sent = mock_http(handler)

    assert await gmail_service.process_history_update(user.id, "102")

    messages = thread_repository.get_thread_messages_by_thread_id(thread.id)
    assert [m.external_message_id for m in messages] == ["g1", "g2"]
    assert len([r for r in sent if "/threads/" in r.url.path]) == 1
    assert credential_repository.get_latest_gmail_watch(user.id).history_id == "102"


@pytest.mark.asyncio
async def test_history_update_runs_in_batches_of_ten(user, mock_http, monkeypatch):
    _connect_gmail(user)
    credential_repository.save_gmail_watch(user.id, "100", "projects/p/topics/gmail", datetime.utcnow())
    mock_http(lambda request: httpx.Response(200, json={"history": [
        {"messagesAdded": [{"message": {"id": f"m{i}", "threadId": f"gt-{i}"}}]} for i in range(11)
    ]}))

    in_flight = []
    seen = []

    async def sync_thread(user_id, external_thread_id):
        in_flight.append(external_thread_id)
        seen.append((external_thread_id, len(in_flight)))
        await asyncio.sleep(0)
        in_flight.remove(external_thread_id)

    monkeypatch.setattr(gmail_service, "_sync_external_thread", sync_thread)

    assert await gmail_service.process_history_update(user.id, "200")

    assert [thread_id for thread_id, _ in seen] == [f"gt-{i}" for i in range(11)]
    assert max(count for _, count in seen[:10]) == 10
    assert seen[10] == ("gt-10", 1)
    assert credential_repository.get_latest_gmail_watch(user.id).history_id == "200"


@pytest.mark.asyncio
async def test_history_update_without_watch(user):
    _connect_gmail(user)
    assert not await gmail_service.process_history_update(user.id, "200")


@pytest.mark.asyncio
async def test_setup_watch_reuses_watch_with_a_day_left(user, mock_http, monkeypatch):
    monkeypatch.setattr(settings, "GMAIL_PUBSUB_TOPIC", "projects/p/topics/gmail")
    _connect_gmail(user)
    credential_repository.save_gmail_watch(
        user.id, "100", "projects/p/topics/gmail", datetime.utcnow() + timedelta(days=2)
    )
    sent = mock_http(lambda request: httpx.Response(500))

    assert await gmail_service.setup_gmail_watch(user.id)
    assert sent == []


@pytest.mark.asyncio
async def test_setup_watch_renews_watch_close_to_expiry(user, mock_http, monkeypatch):
    monkeypatch.setattr(settings, "GMAIL_PUBSUB_TOPIC", "projects/p/topics/gmail")
    _connect_gmail(user)
    credential_repository.save_gmail_watch(
        user.id, "100", "projects/p/topics/gmail", datetime.utcnow() + timedelta(hours=3)
    )
    sent = mock_http(lambda request: httpx.Response(200, json={"historyId": 300, "expiration": "4102444800000"}))

    assert await gmail_service.setup_gmail_watch(user.id)

    assert json.loads(sent[0].content) == {"topicName": "projects/p/topics/gmail"}
    watch = credential_repository.get_latest_gmail_watch(user.id)
    assert watch.history_id == "300"
    assert watch.expires_at == datetime(2100, 1, 1)


@pytest.mark.asyncio
async def test_setup_watch_requires_topic(user, mock_http, monkeypatch):
    monkeypatch.setattr(settings, "GMAIL_PUBSUB_TOPIC", None)
    _connect_gmail(user)
    sent = mock_http(lambda request: httpx.Response(500))

    with pytest.raises(ConfigurationError, match="GMAIL_PUBSUB_TOPIC"):
        await gmail_service.setup_gmail_watch(user.id)
    assert sent == []


@pytest.mark.asyncio
async def test_setup_watch_defaults_to_seven_days(user, mock_http, monkeypatch):
    monkeypatch.setattr(settings, "GMAIL_PUBSUB_TOPIC", "projects/p/topics/gmail")
    _connect_gmail(user)
    mock_http(lambda request: httpx.Response(200, json={"historyId": "555"}))

    before = datetime.utcnow()
    assert await gmail_service.setup_gmail_watch(user.id)

    watch = credential_repository.get_latest_gmail_watch(user.id)
    assert watch.history_id == "555"
    assert before + timedelta(days=7) <= watch.expires_at <= datetime.utcnow() + timedelta(days=7)


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_and_saved(user, mock_http, monkeypatch):
    credentials = _connect_gmail(user, expires_at=datetime.utcnow() - timedelta(minutes=5), refresh_token="refresh-1")
    refreshed = []

    class FakeGmailOAuth:
        async def refresh_access_token(self, refresh_token):
            refreshed.append(refresh_token)
            return {"access_token": "new-token", "expires_in": 3600}

    monkeypatch.setattr("app.services.gmail_client.get_gmail_oauth", lambda: FakeGmailOAuth())
    sent = mock_http(lambda request: httpx.Response(200, json={"messages": []}))

    client = GmailClient(user.id, credentials)
    await client.get_message_thread("gt-1")

    assert refreshed == ["refresh-1"]
    assert sent[0].headers["Authorization"] == "Bearer new-token"
    stored = credential_repository.get_oauth_credentials(user.id, "gmail")
    assert stored.access_token == "new-token"
    assert stored.refresh_token == "refresh-1"
    assert stored.expires_at > datetime.utcnow()


@pytest.mark.asyncio
async def test_valid_token_is_not_refreshed(user, mock_http, monkeypatch):
    credentials = _connect_gmail(user, expires_at=datetime.utcnow() + timedelta(hours=1), refresh_token="refresh-1")

    def fail():
        raise AssertionError("token refresh not expected")

    monkeypatch.setattr("app.services.gmail_client.get_gmail_oauth", fail)
    sent = mock_http(lambda request: httpx.Response(200, json={"messages": []}))

    await GmailClient(user.id, credentials).get_message_thread("gt-1")

    assert sent[0].headers["Authorization"] == "Bearer token"


# ---------------------------
# Stripe
# ---------------------------

class FakeStripeClient:
    def __init__(self):
        self.calls = []
        self.promotion_codes = SimpleNamespace(list=self._list_promotion_codes)
        self.customers = SimpleNamespace(create=self._create_customer, retrieve=self._retrieve_customer)
        self.checkout = SimpleNamespace(sessions=SimpleNamespace(create=self._create_session))
        self.payment_intents = SimpleNamespace(retrieve=self._retrieve_intent)

    def _list_promotion_codes(self, params):
        self.calls.append(("promotion_codes.list", params))
        return {"data": [{"id": f"promo_{params['code']}"}]}

    def _create_customer(self, params):
        self.calls.append(("customers.create", params))
        return {"id": "cus_new"}

    def _retrieve_customer(self, customer_id):
        return {"id": customer_id, "email": "alice@acme.io", "metadata": {}}

    def _create_session(self, params):
        self.calls.append(("checkout.sessions.create", params))
        return {"id": "cs_1", "url": "https://checkout.stripe.com/cs_1"}

    def _retrieve_intent(self, intent_id):
        return {"id": intent_id, "amount": 1900, "currency": "usd", "status": "succeeded",
                "payment_method_types": ["card"]}


@pytest.fixture
def stripe_client(monkeypatch):
    from app.services.stripe_service import stripe_service

    client = FakeStripeClient()
    monkeypatch.setattr(stripe_service, "_client", client)
    return client


@pytest.fixture
def price():
    product = billing_repository.create_product("prod_1", "Lifetime")
    return billing_repository.create_price("price_123", product.id, "one_time", 1900)


@pytest.mark.asyncio
async def test_resolve_price_by_stripe_or_local_id(price):
    from app.services.stripe_service import stripe_service

    assert (await stripe_service.resolve_price("price_123")).id == price.id
    assert (await stripe_service.resolve_price(str(price.id))).stripe_price_id == "price_123"
    with pytest.raises(NotFoundError):
        await stripe_service.resolve_price("price_missing")


@pytest.mark.asyncio
async def test_checkout_applies_free_code_on_localhost(user, price, stripe_client, monkeypatch):
    from app.services.stripe_service import stripe_service

    monkeypatch.setattr(settings, "FRONTEND_URL", "http://localhost:3000")

    url = await stripe_service.create_checkout_session(user, "price_123")

    assert url == "https://checkout.stripe.com/cs_1"
    params = dict(stripe_client.calls)["checkout.sessions.create"]
    assert params["discounts"] == [{"promotion_code": "promo_FREEFOREVER"}]
    assert params["metadata"] == {"userId": user.id, "priceId": str(price.id)}
    assert billing_repository.get_customer_by_user_id(user.id).stripe_customer_id == "cus_new"


@pytest.mark.asyncio
async def test_launch_code_only_for_new_customers_under_limit(user, other_user, stripe_client, monkeypatch):
    from app.services.stripe_service import stripe_service

    monkeypatch.setattr(settings, "FRONTEND_URL", "https://app.tasks.io")
    assert await stripe_service.select_promotion_code(user) == "promo_LAUNCHOFFER"

    billing_repository.save_customer(user.id, "cus_existing", user.email)
    assert await stripe_service.select_promotion_code(user) is None

    monkeypatch.setattr(settings, "STRIPE_LAUNCH_CUSTOMER_LIMIT", 1)
    assert await stripe_service.select_promotion_code(other_user) is None


@pytest.mark.asyncio
async def test_checkout_completed_webhook_records_payment(user, price, stripe_client):
    from app.services.stripe_service import stripe_service

    await stripe_service.handle_webhook_event({
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_1",
            "mode": "payment",
            "customer": "cus_1",
            "payment_intent": "pi_1",
            "metadata": {"userId": user.id, "priceId": str(price.id)},
        }},
    })

    assert await stripe_service.has_user_paid(user.id, "price_123")
    assert billing_repository.get_customer_by_user_id(user.id).stripe_customer_id == "cus_1"


@pytest.mark.asyncio
async def test_fully_discounted_checkout_records_free_payment(user, price, stripe_client):
    from app.services.stripe_service import stripe_service

    await stripe_service.handle_webhook_event({
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_free",
            "mode": "payment",
            "payment_status": "paid",
            "amount_total": 0,
            "metadata": {"userId": user.id, "priceId": "price_123"},
        }},
    })

    payments = billing_repository.get_payments_by_user_id(user.id)
    assert payments[0].stripe_payment_intent_id == "free_payment_cs_free"
    assert payments[0].amount == 0


@pytest.mark.asyncio
async def test_price_updated_webhook_updates_existing_price(price):
    from app.services.stripe_service import stripe_service

    await stripe_service.handle_webhook_event({
        "type": "price.updated",
        "data": {"object": {"id": "price_123", "product": "prod_1", "unit_amount": 2900, "active": True}},
    })

    assert billing_repository.get_price_by_stripe_id("price_123").unit_amount == 2900


@pytest.mark.asyncio
async def test_product_webhooks_mirror_catalog(price):
    from app.services.stripe_service import stripe_service

    await stripe_service.handle_webhook_event({
        "type": "product.updated",
        "data": {"object": {"id": "prod_1", "name": "Lifetime Pro", "active": False}},
    })
    await stripe_service.handle_webhook_event({
        "type": "product.created",
        "data": {"object": {"id": "prod_2", "name": "Team", "description": "Five seats"}},
    })

    assert billing_repository.get_product_by_stripe_id("prod_1").name == "Lifetime Pro"
    assert [p.stripe_product_id for p in billing_repository.get_active_products_with_prices()] == ["prod_2"]
    assert billing_repository.get_product_by_stripe_id("prod_2").description == "Five seats"


def test_parse_webhook_event_checks_signature():
    from app.core.exceptions import ValidationError
    from app.services.stripe_service import stripe_service

    payload = json.dumps({"id": "evt_1", "type": "invoice.paid"}).encode()
    timestamp = int(time.time())
    signature = hmac.new(b"whsec_test", f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()

    event = stripe_service.parse_webhook_event(payload, f"t={timestamp},v1={signature}")
    assert event["type"] == "invoice.paid"

    with pytest.raises(ValidationError):
        stripe_service.parse_webhook_event(payload, f"t={timestamp},v1={'0' * 64}")
