from datetime import datetime

from fastapi import APIRouter

from app.core.config import settings

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/health")
def health_check():
    """
    Check the health status of the API.

    GET /api/v1/system/health
    """
    return {
        "status": "ok",
        "message": f"{settings.PROJECT_NAME} is running",
        "version": settings.VERSION,
        "model": settings.OPENAI_MODEL,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/info")
def get_api_info():
    """
    Information about the API.

    GET /api/v1/system/info
    """
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "api_version": "v1",
        "integrations": {
            "gmail": bool(settings.GOOGLE_CLIENT_ID and settings.GMAIL_PUBSUB_TOPIC),
            "stripe": bool(settings.STRIPE_SECRET_KEY),
            "vapi": bool(settings.VAPI_API_KEY),
            "browserbase": bool(settings.BROWSERBASE_API_KEY),
            "firecrawl": bool(settings.FIRECRAWL_API_KEY),
        },
    }
