from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException

from app.auth.deps import get_current_user
from app.database import chat_repository, thread_repository
from app.schemas.thread import Thread, ThreadMessage
from app.schemas.user import User
from app.utils.async_utils import run_sync

router = APIRouter(tags=["threads"])

logger = logging.getLogger(__name__)


async def _require_chat_participant(chat_id: str, user: User) -> None:
    if not await run_sync(chat_repository.is_chat_participant, chat_id, user.id):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/threads", response_model=List[Thread])
async def get_threads(chat_id: Optional[str] = None, current_user: User = Depends(get_current_user)):
    """Email and phone threads started from a chat."""
    if not chat_id:
        raise HTTPException(status_code=400, detail="Missing chat_id parameter")

    await _require_chat_participant(chat_id, current_user)
    return await run_sync(thread_repository.get_threads_by_chat_id, chat_id)


@router.get("/thread-messages", response_model=List[ThreadMessage])
async def get_thread_messages(thread_id: Optional[str] = None, current_user: User = Depends(get_current_user)):
    if not thread_id:
        raise HTTPException(status_code=400, detail="Missing thread_id parameter")

    thread = await run_sync(thread_repository.get_thread_by_id, thread_id)
    if not thread:
        raise HTTPException(status_code=404, detail="Thread not found")

    await _require_chat_participant(thread.chat_id, current_user)
    return await run_sync(thread_repository.get_thread_messages_by_thread_id, thread_id)
