from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.auth.deps import get_current_user
from app.schemas.user import User
from app.services.browser_service import browser_service

router = APIRouter(prefix="/browser", tags=["browser"])

logger = logging.getLogger(__name__)


class BrowserSessionRequest(BaseModel):
    timezone: Optional[str] = None
    context_id: Optional[str] = None


@router.post("/session")
async def create_session(body: BrowserSessionRequest, current_user: User = Depends(get_current_user)):
    """Open a Browserbase session in the region closest to the user's timezone."""
    result = await browser_service.create_session(body.timezone, body.context_id)
    logger.info(f"Browser session {result['session_id']} created for user {current_user.id}")
    return {"success": True, "result": result}


@router.delete("/session")
async def end_session(session_id: Optional[str] = None, current_user: User = Depends(get_current_user)):
    if not session_id:
        raise HTTPException(status_code=400, detail="Missing session_id parameter")
    await browser_service.end_session(session_id)
    return {"success": True}


@router.get("/recording")
async def get_recording(session_id: Optional[str] = None, current_user: User = Depends(get_current_user)):
    if not session_id:
        raise HTTPException(status_code=400, detail="Missing session_id parameter")
    return await browser_service.get_recording_events(session_id)
