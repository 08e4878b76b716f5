import json

import httpx
import pytest

from app.core.config import settings
from app.database import chat_repository, document_repository
from app.services.data_stream import DataStream
from app.services.gmail_service import gmail_service
from app.services.memory_service import memory_service
from app.services.tools import TOOL_CLASSES, ToolContext, get_tools
from app.services.vapi_service import vapi_service


@pytest.fixture
def stream():
    return DataStream()


@pytest.fixture
def tools(user, stream):
    chat_repository.save_chat("chat-1", user.id, "Chat")
    return get_tools(ToolContext(user=user, chat_id="chat-1", stream=stream))


def test_tool_schemas_use_function_format(tools):
    assert len(tools) == len(TOOL_CLASSES)
    schema = tools["create_document"].schema()
    assert schema["type"] == "function"
    assert schema["function"]["name"] == "create_document"
    assert set(schema["function"]["parameters"]["properties"]) == {"title", "kind"}


@pytest.mark.asyncio
async def test_plan_task_returns_generated_plan(tools, fake_openai):
    fake_openai.json = {"goal": "Book a table", "steps": [{"description": "Search restaurants"}]}

    plan = await tools["plan_task"].run(json.dumps({"task": "Book a table", "context": "Friday"}))

    assert plan["goal"] == "Book a table"
    assert "Friday" in fake_openai.prompts[-1]


@pytest.mark.asyncio
async def test_plan_task_falls_back_on_bad_structure(tools, fake_openai):
    fake_openai.json = {"plan": "nope"}

    plan = await tools["plan_task"].run(json.dumps({"task": "Book a table"}))

    assert plan == {"goal": "Book a table", "steps": []}


@pytest.mark.asyncio
async def test_create_document_emits_artifact_events(tools, stream, fake_openai, user):
    fake_openai.stream_chunks = ["Hello"]

    result = await tools["create_document"].run(json.dumps({"title": "Greeting", "kind": "text"}))

    types = [e["type"] for e in stream.events]
    assert types[:4] == ["kind", "id", "title", "clear"]
    assert types[-1] == "finish"
    saved = document_repository.get_document_by_id(result["id"])
    assert saved.chat_id == "chat-1"
    assert saved.content == "Hello"


@pytest.mark.asyncio
async def test_update_missing_document(tools):
    result = await tools["update_document"].run(json.dumps({"id": "nope", "description": "shorter"}))
    assert result == {"error": "Document not found"}


@pytest.mark.asyncio
async def test_request_suggestions_saves_valid_entries(tools, stream, fake_openai, user):
    document_repository.save_document("doc-1", "Essay", "text", "This are bad. It is fine.", user.id)
    fake_openai.json = {"suggestions": [
        {"original_sentence": "This are bad.", "suggested_sentence": "This is bad.", "description": "Grammar"},
        {"original_sentence": "", "suggested_sentence": "ignored"},
    ]}

    result = await tools["request_suggestions"].run(json.dumps({"document_id": "doc-1"}))

    assert result["id"] == "doc-1"
    assert len(stream.events_of_type("suggestion")) == 1
    saved = document_repository.get_suggestions_by_document_id("doc-1", user.id)
    assert saved[0].suggested_text == "This is bad."


@pytest.mark.asyncio
async def test_request_suggestions_needs_edit_access(stream, other_user, user, fake_openai):
    document_repository.save_document("doc-1", "Essay", "text", "Text.", user.id)
    tools = get_tools(ToolContext(user=other_user, chat_id="chat-x", stream=stream))

    result = await tools["request_suggestions"].run(json.dumps({"document_id": "doc-1"}))

    assert "error" in result


@pytest.mark.asyncio
async def test_store_memory_merges_similar_memories(tools, fake_openai, user):
    await memory_service.create_resource(user.id, "Alice likes green tea.")
    chat_repository.save_messages([{
        "id": "m1",
        "chat_id": "chat-1",
        "role": "user",
        "parts": [{"type": "text", "text": "Remember that I like green tea"}],
    }])
    fake_openai.text = "Alice likes green tea."

    result = await tools["store_memory"].run("{}")

    assert result.startswith("Updated existing memory")


@pytest.mark.asyncio
async def test_retrieve_memory_without_memories(tools, fake_openai):
    result = await tools["retrieve_memory"].run(json.dumps({"query": "tea preferences"}))
    assert result == "No relevant memories found."


@pytest.mark.asyncio
async def test_search_web_formats_results(tools, mock_http, monkeypatch):
    monkeypatch.setattr(settings, "FIRECRAWL_API_KEY", "fc-test")
    sent = mock_http(lambda request: httpx.Response(200, json={"success": True, "data": [
        {"title": "Tea shop", "url": "https://tea.shop", "description": "Best tea", "markdown": "# Tea"},
        {"title": "No description", "url": "https://x.io"},
    ]}))

    result = await tools["search_web"].run(json.dumps({"query": "green tea"}))

    assert result.startswith('Search results for "green tea"')
    assert "Tea shop" in result
    assert "No description" not in result
    assert json.loads(sent[0].content)["scrapeOptions"] == {"formats": ["markdown", "links"]}


@pytest.mark.asyncio
async def test_send_email_starts_gmail_thread(tools, fake_openai, monkeypatch):
    calls = []

    async def fake_initiate(user_id, to, subject, body, chat_id):
        calls.append((to, subject, chat_id))
        return "thread-1"

    monkeypatch.setattr(gmail_service, "initiate_thread", fake_initiate)
    fake_openai.text = '"Table for two"'

    result = await tools["send_email"].run(json.dumps({
        "to": "info@bistro.fr",
        "task_context": {"task_type": "reservation", "business_name": "Bistro", "user_goal": "book a table"},
    }))

    assert result["thread_id"] == "thread-1"
    assert calls == [("info@bistro.fr", "Table for two", "chat-1")]


@pytest.mark.asyncio
async def test_call_phone_schedules_call(tools, fake_openai, monkeypatch):
    captured = {}

    async def fake_create_call(phone_number, first_message, system_prompt, **kwargs):
        captured.update(kwargs, phone_number=phone_number, system_prompt=system_prompt)
        return {"id": "call-1"}

    monkeypatch.setattr(vapi_service, "create_call", fake_create_call)

    result = await tools["call_phone"].run(json.dumps({
        "phone_number": "+15551234567",
        "schedule_time": "2030-05-30T10:00:00Z",
        "task_context": {"task_type": "inquiry", "business_type": "plumber", "user_goal": "get a quote"},
    }))

    assert result["call_id"] == "call-1"
    assert result["message"].startswith("Call scheduled")
    assert captured["schedule_time"] == "2030-05-30T10:00:00Z"
    assert "## General Guidelines" in captured["system_prompt"]
