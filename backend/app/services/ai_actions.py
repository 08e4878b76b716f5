"""
Small model-backed helpers used around a chat turn: titles, summaries,
plus the trailing-message and visibility actions exposed to the client.
"""
import json
import logging
from typing import Optional

from app.core.exceptions import NotFoundError
from app.database import chat_repository
from app.services.openai_service import openai_service
from app.utils.async_utils import run_sync

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 80

TITLE_SYSTEM_PROMPT = """
- you will generate a short title based on the first message a user begins a conversation with
- ensure it is not more than 80 characters long
- the title should be a summary of the user's message
- do not use quotes or colons"""

SUMMARY_SYSTEM_PROMPT = (
    "You are a conversation summarizer. Create concise but informative summaries "
    "that capture key points, decisions, and context."
)

DOCUMENT_SUMMARY_SYSTEM_PROMPT = (
    "You are a document summarization assistant. Create concise, informative "
    "summaries that capture the essence of the content."
)

DOCUMENT_SUMMARY_PROMPTS = {
    "code": "Summarize this code snippet focusing on its main functionality and purpose:",
    "sheet": "Summarize this spreadsheet data focusing on its structure and key information:",
}
DEFAULT_DOCUMENT_SUMMARY_PROMPT = "Summarize this text focusing on its main points and key information:"

CHAT_SUMMARY_PROMPT = "Summarize the conversation so far, keeping facts, decisions and open tasks."


def clean_title(title: str) -> str:
    cleaned = title.replace('"', "").replace("'", "").replace(":", "").strip()
    return cleaned[:TITLE_MAX_LENGTH].strip() or "New chat"


async def generate_title_from_user_message(message_text: str) -> str:
    title = await openai_service.generate_text(
        prompt=json.dumps({"role": "user", "content": message_text}),
        system=TITLE_SYSTEM_PROMPT,
    )
    return clean_title(title)


async def summarize_messages(chat_id: str, prompt: str) -> str:
    """Summarize the messages added since the latest stored summary, folding the old summary in."""
    latest = await run_sync(chat_repository.get_latest_chat_summary, chat_id)
    messages = await run_sync(chat_repository.get_messages_by_chat_id, chat_id)

    if latest:
        unsummarized = [
            m for m in messages
            if m.id != latest.last_message_id and m.created_at > latest.created_at
        ]
    else:
        unsummarized = messages

    if not unsummarized:
        return latest.summary if latest else ""

    context = (
        f"Previous summary:\n{latest.summary}\n\nNew messages to incorporate:"
        if latest else "Summarize these messages:"
    )
    transcript = "\n".join(f"{m.role}: {json.dumps(m.parts)}" for m in unsummarized)

    return await openai_service.generate_text(
        prompt=f"{context}\n\n{transcript}\n\n{prompt}",
        system=SUMMARY_SYSTEM_PROMPT,
    )


async def summarize_chat_if_needed(chat_id: str) -> Optional[str]:
    """Store a fresh chat summary once enough new content accumulated."""
    if not await run_sync(chat_repository.should_create_new_summary, chat_id):
        return None

    summary = await summarize_messages(chat_id, CHAT_SUMMARY_PROMPT)
    if not summary:
        return None

    messages = await run_sync(chat_repository.get_messages_by_chat_id, chat_id)
    last_message_id = messages[-1].id if messages else None
    await run_sync(chat_repository.save_chat_summary, chat_id, summary, last_message_id)
    logger.info(f"Saved new summary for chat {chat_id}")
    return summary


async def generate_document_summary(content: str, kind: str) -> str:
    prompt = DOCUMENT_SUMMARY_PROMPTS.get(kind, DEFAULT_DOCUMENT_SUMMARY_PROMPT)
    return await openai_service.generate_text(
        prompt=f"{prompt}\n\n{content}",
        system=DOCUMENT_SUMMARY_SYSTEM_PROMPT,
    )


async def delete_trailing_messages(message_id: str) -> int:
    """Drop a message and everything after it in the same chat."""
    message = await run_sync(chat_repository.get_message_by_id, message_id)
    if not message:
        raise NotFoundError("Message not found")
    return await run_sync(
        chat_repository.delete_messages_by_chat_id_after_timestamp,
        message.chat_id,
        message.created_at,
    )


async def update_chat_visibility(chat_id: str, visibility: str) -> None:
    await run_sync(chat_repository.update_chat_visibility, chat_id, visibility)
