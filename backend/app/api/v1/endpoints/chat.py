from typing import List, Optional, Set
import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from app.auth.deps import get_current_user
from app.core.exceptions import AppError, NotFoundError
from app.database import chat_repository
from app.schemas.chat import (
    ChatListResponse,
    ChatRequest,
    Message,
    VisibilityUpdate,
    Vote,
    VoteRequest,
)
from app.schemas.user import User
from app.services import ai_actions
from app.services.chat_service import chat_service
from app.services.data_stream import DataStream
from app.utils.async_utils import run_sync

router = APIRouter(tags=["chat"])

logger = logging.getLogger(__name__)

# Running chat turns, kept referenced until they finish
_running_turns: Set[asyncio.Task] = set()


async def _require_participant(chat_id: str, user: User) -> None:
    chat = await run_sync(chat_repository.get_chat_by_id, chat_id)
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")
    if chat.visibility == "private" and not await run_sync(chat_repository.is_chat_participant, chat_id, user.id):
        raise HTTPException(status_code=401, detail="Unauthorized")


# ===========================
# Chat turn
# ===========================
@router.post("/chat")
async def chat(request: ChatRequest, current_user: User = Depends(get_current_user)):
    """
    Run one chat turn. The response is newline-delimited JSON events
    (text deltas, tool calls and results, artifact updates).
    """
    try:
        await chat_service.start_turn(request, current_user)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.exception(f"Failed to start chat turn for {request.id}: {e}")
        raise HTTPException(status_code=404, detail="An error occurred while processing your request!")

    stream = DataStream()
    task = asyncio.create_task(chat_service.run_turn(request, current_user, stream))
    _running_turns.add(task)
    task.add_done_callback(_running_turns.discard)

    return StreamingResponse(stream.iter_ndjson(), media_type="application/x-ndjson")


@router.delete("/chat")
async def delete_chat(id: Optional[str] = None, current_user: User = Depends(get_current_user)):
    if not id:
        raise HTTPException(status_code=404, detail="Not Found")

    if not await run_sync(chat_repository.is_chat_owner, id, current_user.id):
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        await run_sync(chat_repository.delete_chat_by_id, id)
    except Exception as e:
        logger.exception(f"Failed to delete chat {id}: {e}")
        raise HTTPException(status_code=500, detail="An error occurred while processing your request!")
    return {"message": "Chat deleted"}


@router.get("/chat", response_model=ChatListResponse)
async def list_chats(
    user_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    starting_after: Optional[str] = None,
    ending_before: Optional[str] = None,
    current_user: User = Depends(get_current_user),
):
    """Chats of the current user, newest first, with cursor pagination."""
    if not user_id:
        raise HTTPException(status_code=400, detail="Missing user_id parameter")
    if user_id != current_user.id:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        return await run_sync(
            chat_repository.get_chats_by_user_id,
            user_id,
            limit,
            starting_after,
            ending_before,
        )
    except NotFoundError:
        raise
    except Exception as e:
        logger.exception(f"Failed to fetch chats for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch chats")


@router.patch("/chat/visibility")
async def update_visibility(body: VisibilityUpdate, current_user: User = Depends(get_current_user)):
    if not await run_sync(chat_repository.is_chat_owner, body.chat_id, current_user.id):
        raise HTTPException(status_code=401, detail="Unauthorized")
    await ai_actions.update_chat_visibility(body.chat_id, body.visibility)
    return {"chat_id": body.chat_id, "visibility": body.visibility}


@router.delete("/chat/messages/trailing")
async def delete_trailing_messages(id: str, current_user: User = Depends(get_current_user)):
    """Delete a message and every later message of its chat."""
    message = await run_sync(chat_repository.get_message_by_id, id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    if not await run_sync(chat_repository.is_chat_participant, message.chat_id, current_user.id):
        raise HTTPException(status_code=401, detail="Unauthorized")

    deleted = await ai_actions.delete_trailing_messages(id)
    return {"deleted": deleted}


# ===========================
# Messages & votes
# ===========================
@router.get("/messages", response_model=List[Message])
async def get_messages(chat_id: Optional[str] = None, current_user: User = Depends(get_current_user)):
    if not chat_id:
        raise HTTPException(status_code=400, detail="Missing chat_id parameter")

    await _require_participant(chat_id, current_user)
    return await run_sync(chat_repository.get_messages_by_chat_id, chat_id)


@router.get("/vote", response_model=List[Vote])
async def get_votes(chat_id: Optional[str] = None, current_user: User = Depends(get_current_user)):
    if not chat_id:
        raise HTTPException(status_code=400, detail="chat_id is required")

    await _require_participant(chat_id, current_user)
    return await run_sync(chat_repository.get_votes_by_chat_id, chat_id)


@router.post("/vote", response_model=Vote)
async def vote_message(body: VoteRequest, current_user: User = Depends(get_current_user)):
    await _require_participant(body.chat_id, current_user)
    return await run_sync(chat_repository.vote_message, body.chat_id, body.message_id, body.type)
