"""
One chat turn: access checks, persistence and the streamed tool loop.
"""
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.exceptions import AppError, UnauthorizedError, ValidationError
from app.database import chat_repository, document_repository
from app.schemas.chat import ChatMessageIn, ChatRequest, MessageRole
from app.schemas.user import User
from app.services.ai_actions import generate_title_from_user_message, summarize_chat_if_needed
from app.services.data_stream import DataStream
from app.services.openai_service import openai_service
from app.services.tools import ToolContext, get_tools
from app.utils.async_utils import run_sync

logger = logging.getLogger(__name__)

MAX_STEPS = 5
REASONING_MODEL = "chat-model-reasoning"
STREAM_ERROR_MESSAGE = "Oops, an error occurred!"

TOOLS_PROMPT = """
You have access to specialized tools to complete user tasks more efficiently. Use these tools only when necessary and appropriate.

- Use `plan_task` to create a step-by-step plan for complex tasks before proceeding with actions.
- Use `retrieve_memory` to find if the user has previously mentioned anything related to the current conversation.
- Use `store_memory` to save important new information about the user, such as preferences, goals, or key facts.
- Use `search_web` when you need to find general information or websites.
- Use `scrape_website` when you need to extract data from a website without interacting.
- Use `send_email` to send an email to a contact. Always show the draft to the user and confirm before sending.
- Use `call_phone` to place a phone call on the user's behalf. Always confirm with the user first.
- Use `create_document` for substantial content (>10 lines) or code, and `update_document` only after the user asks for changes.

Prefer the simplest tool that accomplishes the task. Ask the user for clarification if you're unsure which tool to use.
"""

ARTIFACTS_PROMPT = """
Artifacts is a special user interface mode that helps users with writing, editing, and other content creation tasks. When creating or updating documents, changes are reflected in real-time on the artifacts and visible to the user.

When asked to write code, always use artifacts. The default language is Python.

DO NOT UPDATE DOCUMENTS IMMEDIATELY AFTER CREATING THEM. WAIT FOR USER FEEDBACK OR REQUEST TO UPDATE IT.
"""


def get_most_recent_user_message(messages: List[ChatMessageIn]) -> Optional[ChatMessageIn]:
    for message in reversed(messages):
        if message.role == MessageRole.USER:
            return message
    return None


def to_openai_messages(messages: List[ChatMessageIn]) -> List[Dict[str, Any]]:
    converted = []
    for message in messages:
        if message.role == MessageRole.TOOL:
            continue
        converted.append({"role": message.role.value, "content": message.text})
    return converted


class ChatService:
    def resolve_model(self, selected_chat_model: Optional[str]) -> str:
        if selected_chat_model == "chat-model-small":
            return settings.OPENAI_SMALL_MODEL
        return settings.OPENAI_MODEL

    async def build_context(self, chat_id: str, user_id: str) -> str:
        """Latest chat summary plus summaries of the chat's documents."""
        summary = await run_sync(chat_repository.get_latest_chat_summary, chat_id)
        documents = await run_sync(document_repository.get_documents_by_chat_id, chat_id, user_id)

        context = ""
        if summary and summary.summary:
            context += f"\nCurrent conversation summary:\n{summary.summary}\n"
        if documents:
            context += "\nRelevant documents:\n"
            for doc in documents:
                context += f"- {doc.title} ({doc.kind}): {doc.summary or 'No summary available.'}\n"
        return context

    async def build_system_prompt(self, chat_id: str, user_id: str, selected_chat_model: Optional[str]) -> str:
        context = await self.build_context(chat_id, user_id)
        prompt = (
            "You are an AI assistant focused on helping users accomplish their tasks effectively.\n"
            f"{context}\n"
            "When referring to documents or previous context, use it naturally in the conversation "
            "without explicitly mentioning where the information came from."
        )
        if selected_chat_model != REASONING_MODEL:
            prompt += f"\n{TOOLS_PROMPT}\n{ARTIFACTS_PROMPT}"
        return prompt

    async def start_turn(self, request: ChatRequest, user: User) -> ChatMessageIn:
        """
        Validate the request, create the chat on first use and store the user
        message. Returns the message the turn answers.
        """
        user_message = get_most_recent_user_message(request.messages)
        if not user_message:
            raise ValidationError("No user message found")

        chat = await run_sync(chat_repository.get_chat_by_id, request.id)
        if not chat:
            title = await generate_title_from_user_message(user_message.text)
            await run_sync(chat_repository.save_chat, request.id, user.id, title)
            logger.info(f"Created chat {request.id} for user {user.id}")
        elif not await run_sync(chat_repository.is_chat_participant, request.id, user.id):
            raise UnauthorizedError("Unauthorized")

        await run_sync(chat_repository.save_messages, [{
            "id": user_message.id,
            "chat_id": request.id,
            "role": "user",
            "parts": user_message.parts_payload(),
            "attachments": user_message.attachments,
            "created_at": datetime.utcnow(),
        }])
        return user_message

    async def run_turn(self, request: ChatRequest, user: User, stream: DataStream) -> None:
        """Stream the model's answer and close the stream when done."""
        try:
            await self._run_tool_loop(request, user, stream)
        except Exception as e:
            logger.exception(f"Chat stream for {request.id} failed: {e}")
            stream.write_error(STREAM_ERROR_MESSAGE)
        finally:
            stream.close()

    async def _run_tool_loop(self, request: ChatRequest, user: User, stream: DataStream) -> None:
        use_tools = request.selected_chat_model != REASONING_MODEL
        tools = get_tools(ToolContext(user=user, chat_id=request.id, stream=stream, messages=request.messages))
        tool_schemas = [t.schema() for t in tools.values()] if use_tools else None

        system = await self.build_system_prompt(request.id, user.id, request.selected_chat_model)
        messages = [{"role": "system", "content": system}] + to_openai_messages(request.messages)
        model = self.resolve_model(request.selected_chat_model)

        parts: List[Dict[str, Any]] = []
        for _ in range(MAX_STEPS):
            text = ""
            tool_calls: List[Dict[str, str]] = []
            async for chunk in openai_service.stream_chat(messages, tools=tool_schemas, model=model):
                if chunk["type"] == "text":
                    text += chunk["content"]
                    stream.write_data("text-delta", chunk["content"])
                elif chunk["type"] == "tool_calls":
                    tool_calls = chunk["content"]

            if text:
                parts.append({"type": "text", "text": text})
            if not tool_calls:
                break

            messages.append({
                "role": "assistant",
                "content": text or None,
                "tool_calls": [
                    {"id": c["id"], "type": "function", "function": {"name": c["name"], "arguments": c["arguments"]}}
                    for c in tool_calls
                ],
            })
            for call in tool_calls:
                result = await self._call_tool(tools, call, stream)
                parts.append({
                    "type": "tool-invocation",
                    "tool_invocation": {
                        "state": "result",
                        "tool_call_id": call["id"],
                        "tool_name": call["name"],
                        "args": call["arguments"],
                        "result": result,
                    },
                })
                messages.append({
                    "role": "tool",
                    "tool_call_id": call["id"],
                    "content": result if isinstance(result, str) else json.dumps(result, default=str),
                })
        else:
            logger.warning(f"Chat {request.id} reached the {MAX_STEPS} step limit")

        assistant_id = str(uuid.uuid4())
        await run_sync(chat_repository.save_messages, [{
            "id": assistant_id,
            "chat_id": request.id,
            "role": "assistant",
            "parts": parts,
            "attachments": [],
            "created_at": datetime.utcnow(),
        }])
        stream.write_data("message-id", assistant_id)
        await summarize_chat_if_needed(request.id)

    async def _call_tool(self, tools: Dict[str, Any], call: Dict[str, str], stream: DataStream) -> Any:
        stream.write_data("tool-call", {"id": call["id"], "name": call["name"], "args": call["arguments"]})

        tool = tools.get(call["name"])
        if tool is None:
            result: Any = {"error": f"Unknown tool: {call['name']}"}
        else:
            try:
                result = await tool.run(call["arguments"])
            except AppError as e:
                logger.warning(f"Tool {call['name']} failed: {e}")
                result = {"error": e.message}
            except (PydanticValidationError, json.JSONDecodeError) as e:
                logger.warning(f"Invalid arguments for tool {call['name']}: {e}")
                result = {"error": f"Invalid arguments: {e}"}

        stream.write_data("tool-result", {"id": call["id"], "name": call["name"], "result": result})
        return result


chat_service = ChatService()
