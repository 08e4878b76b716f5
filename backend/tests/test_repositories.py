from datetime import datetime, timedelta

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ForbiddenError, NotFoundError
from app.database import (
    billing_repository,
    chat_repository,
    credential_repository,
    document_repository,
    memory_repository,
    thread_repository,
    user_repository,
)
from app.database.manager import DatabaseManager
from app.database.migration_manager import MigrationManager
from app.models.database_models import ThreadMessage as SQLThreadMessage
from app.schemas.document import SuggestionDraft
from app.schemas.user import OnboardingRequest, UserCreate, UserUpdate


def _message(message_id, chat_id, role="user", text="hi", created_at=None):
    return {
        "id": message_id,
        "chat_id": chat_id,
        "role": role,
        "parts": [{"type": "text", "text": text}],
        "attachments": [],
        "created_at": created_at or datetime.utcnow(),
    }


# ---------------------------
# Users
# ---------------------------

def test_create_user_returns_existing_for_same_email(user):
    again = user_repository.create_user(UserCreate(email="alice@acme.io"))
    assert again.id == user.id
    assert user.name == "Alice Smith"


def test_update_user_and_onboarding(user):
    updated = user_repository.update_user(UserUpdate(id=user.id, first_name="Alicia"))
    assert updated.first_name == "Alicia"
    assert updated.last_name == "Smith"

    onboarded = user_repository.complete_onboarding(
        user.id, OnboardingRequest(first_name="Alicia", last_name="Smith", usage_type="personal")
    )
    assert onboarded.onboarding_completed_at is not None
    assert onboarded.usage_type == "personal"


def test_update_unknown_user_returns_none():
    assert user_repository.update_user(UserUpdate(id="missing", first_name="X")) is None


def test_user_count(user, other_user):
    assert user_repository.get_user_count() == 2


# ---------------------------
# Chats
# ---------------------------

def test_save_chat_makes_creator_owner(user, other_user):
    chat_repository.save_chat("chat-1", user.id, "Trip planning")

    assert chat_repository.is_chat_owner("chat-1", user.id)
    assert chat_repository.is_chat_participant("chat-1", user.id)
    assert not chat_repository.is_chat_participant("chat-1", other_user.id)

    chat_repository.add_chat_participant("chat-1", other_user.id, "viewer")
    assert chat_repository.is_chat_participant("chat-1", other_user.id)
    assert not chat_repository.is_chat_owner("chat-1", other_user.id)


def test_participant_roles_and_removal(user, other_user):
    chat_repository.save_chat("chat-1", user.id, "Trip planning")
    chat_repository.add_chat_participant("chat-1", other_user.id, "editor")

    assert chat_repository.get_participant_role("chat-1", other_user.id) == "editor"
    assert {p.role for p in chat_repository.get_chat_participants("chat-1")} == {"owner", "editor"}

    assert chat_repository.remove_chat_participant("chat-1", other_user.id)
    assert not chat_repository.remove_chat_participant("chat-1", other_user.id)
    assert chat_repository.get_participant_role("chat-1", other_user.id) is None


def test_get_chats_pagination(user):
    for i in range(5):
        chat_repository.save_chat(f"chat-{i}", user.id, f"Chat {i}")

    first_page = chat_repository.get_chats_by_user_id(user.id, limit=2)
    assert [c.id for c in first_page.chats] == ["chat-4", "chat-3"]
    assert first_page.has_more

    older = chat_repository.get_chats_by_user_id(user.id, limit=10, ending_before="chat-3")
    assert [c.id for c in older.chats] == ["chat-2", "chat-1", "chat-0"]
    assert not older.has_more

    newer = chat_repository.get_chats_by_user_id(user.id, limit=10, starting_after="chat-3")
    assert [c.id for c in newer.chats] == ["chat-4"]


def test_get_chats_unknown_cursor(user):
    with pytest.raises(NotFoundError):
        chat_repository.get_chats_by_user_id(user.id, starting_after="nope")


def test_delete_trailing_messages_removes_votes(user):
    chat_repository.save_chat("chat-1", user.id, "Chat")
    base = datetime.utcnow()
    chat_repository.save_messages([
        _message("m1", "chat-1", created_at=base),
        _message("m2", "chat-1", role="assistant", created_at=base + timedelta(seconds=1)),
        _message("m3", "chat-1", created_at=base + timedelta(seconds=2)),
    ])
    chat_repository.vote_message("chat-1", "m2", "up")

    deleted = chat_repository.delete_messages_by_chat_id_after_timestamp("chat-1", base + timedelta(seconds=1))

    assert deleted == 2
    assert [m.id for m in chat_repository.get_messages_by_chat_id("chat-1")] == ["m1"]
    assert chat_repository.get_votes_by_chat_id("chat-1") == []


def test_vote_message_overwrites_previous_vote(user):
    chat_repository.save_chat("chat-1", user.id, "Chat")
    chat_repository.save_messages([_message("m1", "chat-1", role="assistant")])

    assert chat_repository.vote_message("chat-1", "m1", "up").is_upvoted
    assert not chat_repository.vote_message("chat-1", "m1", "down").is_upvoted
    assert len(chat_repository.get_votes_by_chat_id("chat-1")) == 1


def test_should_create_new_summary(user):
    chat_repository.save_chat("chat-1", user.id, "Chat")
    assert chat_repository.should_create_new_summary("chat-1")

    chat_repository.save_chat_summary("chat-1", "Short summary", None)
    chat_repository.save_messages([_message("m1", "chat-1", text="tiny")])
    assert not chat_repository.should_create_new_summary("chat-1")

    chat_repository.save_messages([_message("m2", "chat-1", text="x" * 5000)])
    assert chat_repository.should_create_new_summary("chat-1")


# ---------------------------
# Documents
# ---------------------------

def test_document_versions_and_access(user, other_user):
    document_repository.save_document("doc-1", "Essay", "text", "v1", user.id)
    second = document_repository.save_document("doc-1", "Essay", "text", "v2", user.id)

    versions = document_repository.get_documents_by_id("doc-1")
    assert [d.content for d in versions] == ["v1", "v2"]
    assert document_repository.get_document_by_id("doc-1").content == "v2"

    assert document_repository.get_user_document_role("doc-1", user.id) == "owner"
    assert not document_repository.has_document_access("doc-1", other_user.id)

    document_repository.grant_document_access("doc-1", second.created_at, other_user.id, "viewer")
    assert document_repository.has_document_access("doc-1", other_user.id)
    assert not document_repository.has_document_access("doc-1", other_user.id, ("owner", "editor"))

    roles = {a.user_id: a.role for a in document_repository.get_document_access("doc-1", second.created_at)}
    assert roles == {user.id: "owner", other_user.id: "viewer"}


def test_delete_document_versions_after_timestamp(user):
    first = document_repository.save_document("doc-1", "Essay", "text", "v1", user.id)
    document_repository.save_document("doc-1", "Essay", "text", "v2", user.id)

    deleted = document_repository.delete_documents_by_id_after_timestamp("doc-1", first.created_at)

    assert [d.content for d in deleted] == ["v2"]
    assert [d.content for d in document_repository.get_documents_by_id("doc-1")] == ["v1"]


def test_documents_by_kind_only_include_accessible(user, other_user):
    document_repository.save_document("doc-1", "Code", "code", "print(1)", user.id)
    document_repository.save_document("doc-2", "Other", "code", "print(2)", other_user.id)

    docs = document_repository.get_documents_by_kind("code", user.id)
    assert [d.id for d in docs] == ["doc-1"]


def test_suggestions_require_edit_access(user, other_user):
    doc = document_repository.save_document("doc-1", "Essay", "text", "Some text.", user.id)
    draft = SuggestionDraft(
        id="s1",
        document_id="doc-1",
        original_text="Some text.",
        suggested_text="Some better text.",
        description="Clearer",
    )

    with pytest.raises(ForbiddenError):
        document_repository.save_suggestions([draft], doc.created_at, other_user.id)

    saved = document_repository.save_suggestions([draft], doc.created_at, user.id)
    assert saved[0].suggested_text == "Some better text."

    fetched = document_repository.get_suggestions_by_document_id("doc-1", user.id, doc.created_at)
    assert [s.id for s in fetched] == ["s1"]

    with pytest.raises(ForbiddenError):
        document_repository.get_suggestions_by_document_id("doc-1", other_user.id)


# ---------------------------
# Threads & credentials
# ---------------------------

def test_threads_and_messages(user):
    chat_repository.save_chat("chat-1", user.id, "Chat")
    party = thread_repository.save_external_party("Plumber Co", email="help@plumber.co")
    thread = thread_repository.save_thread("chat-1", party.id, "Leaky sink", "gmail-thread-1")

    thread_repository.save_thread_message(thread.id, "user", {"text": "Can you come Monday?"}, "Leaky sink", "gm-1")

    assert thread_repository.get_thread_by_external_system_id("gmail-thread-1").id == thread.id
    assert thread_repository.get_thread_message_by_external_id("gm-1").thread_id == thread.id
    assert [t.id for t in thread_repository.get_threads_by_chat_id("chat-1")] == [thread.id]

    updated = thread_repository.update_thread_status(thread.id, "replied", "See you Monday")
    assert updated.status == "replied"
    assert updated.last_message_preview == "See you Monday"


def test_thread_message_saved_once_per_external_id(user, db):
    chat_repository.save_chat("chat-1", user.id, "Chat")
    party = thread_repository.save_external_party("Plumber Co", email="help@plumber.co")
    thread = thread_repository.save_thread("chat-1", party.id, "Leaky sink", "gmail-thread-1")

    first = thread_repository.save_thread_message(thread.id, "external", {"text": "Monday"}, "Re: sink", "gm-2")
    again = thread_repository.save_thread_message(thread.id, "external", {"text": "Monday"}, "Re: sink", "gm-2")

    assert again.id == first.id
    assert len(thread_repository.get_thread_messages_by_thread_id(thread.id)) == 1

    with pytest.raises(IntegrityError):
        with db.get_session() as session:
            session.add(SQLThreadMessage(thread_id=thread.id, role="external", content={}, external_message_id="gm-2"))


def test_oauth_credentials_upsert_and_delete(user):
    credential_repository.save_oauth_credentials(user.id, "gmail", "a1", "r1", ["scope"], None)
    credential_repository.save_oauth_credentials(user.id, "gmail", "a2", None, ["scope"], None)

    creds = credential_repository.get_oauth_credentials(user.id, "gmail")
    assert creds.access_token == "a2"

    assert credential_repository.delete_oauth_credentials(user.id, "gmail")
    assert credential_repository.get_oauth_credentials(user.id, "gmail") is None


def test_gmail_watch_deactivation(user):
    credential_repository.save_gmail_watch(user.id, "100", "projects/p/topics/t", datetime.utcnow() + timedelta(days=7))
    assert credential_repository.get_latest_gmail_watch(user.id).active

    assert credential_repository.deactivate_gmail_watches(user.id) == 1
    assert credential_repository.get_active_gmail_watches() == []


# ---------------------------
# Billing
# ---------------------------

def test_products_with_active_prices_sorted(user):
    product = billing_repository.create_product("prod_1", "Lifetime")
    billing_repository.create_price("price_b", product.id, "one_time", 4900)
    billing_repository.create_price("price_a", product.id, "one_time", 1900)
    billing_repository.create_price("price_old", product.id, "one_time", 900, active=False)

    products = billing_repository.get_active_products_with_prices()

    assert len(products) == 1
    assert [p.stripe_price_id for p in products[0].prices] == ["price_a", "price_b"]


def test_has_user_paid(user):
    assert not billing_repository.has_user_paid(user.id)

    billing_repository.save_payment(user.id, "pi_1", "price_a", 1900, "usd", "succeeded", "card", {})

    assert billing_repository.has_user_paid(user.id)
    assert billing_repository.has_user_paid(user.id, "price_a")
    assert not billing_repository.has_user_paid(user.id, "price_b")


def test_has_user_paid_with_subscription(user, other_user):
    billing_repository.upsert_subscription(user.id, "sub_1", "price_pro", "trialing")
    billing_repository.upsert_subscription(other_user.id, "sub_2", "price_pro", "canceled")

    assert billing_repository.has_user_paid(user.id)
    assert billing_repository.has_user_paid(user.id, "price_pro")
    assert not billing_repository.has_user_paid(user.id, "price_basic")
    assert not billing_repository.has_user_paid(other_user.id)


def test_save_customer_mirrors_id_on_user(user):
    billing_repository.save_customer(user.id, "cus_1", user.email)

    assert billing_repository.get_customer_count() == 1
    assert user_repository.get_user_by_id(user.id).stripe_customer_id == "cus_1"


# ---------------------------
# Memory
# ---------------------------

def test_resources_store_chunk_embeddings(user, other_user):
    memory_repository.create_resource(user.id, "Likes tea. Hates coffee.", [
        ("Likes tea.", [1.0, 0.0]),
        ("Hates coffee.", [0.0, 1.0]),
    ])

    assert [r.content for r in memory_repository.get_resources_by_user_id(user.id)] == ["Likes tea. Hates coffee."]
    assert sorted(c for c, _ in memory_repository.get_user_embeddings(user.id)) == ["Hates coffee.", "Likes tea."]
    assert memory_repository.get_user_embeddings(other_user.id) == []


# ---------------------------
# Migrations
# ---------------------------

def test_init_db_applies_migrations(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'assistant.db'}")

    manager.init_db()

    assert MigrationManager(manager.db_url, engine=manager.engine).is_database_up_to_date()
    assert {"users", "chats", "documents"} <= set(inspect(manager.engine).get_table_names())
