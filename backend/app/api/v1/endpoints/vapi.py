import json
import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request

from app.services.vapi_service import vapi_service, verify_signature

router = APIRouter(tags=["vapi"])

logger = logging.getLogger(__name__)


@router.post("/vapi")
async def vapi_webhook(request: Request, x_vapi_signature: Optional[str] = Header(None)):
    """Vapi server messages (call lifecycle and function calls)."""
    payload = await request.body()
    if not verify_signature(payload, x_vapi_signature):
        logger.warning("Rejected Vapi webhook with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        body = json.loads(payload)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    message = body.get("message") if isinstance(body, dict) else None
    if not message:
        raise HTTPException(status_code=400, detail="No message in payload")

    await vapi_service.handle_webhook_message(message)
    return {}
