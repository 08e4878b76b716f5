from fastapi import APIRouter

from app.api.v1.endpoints import (
    auth,
    browser,
    chat,
    documents,
    gmail,
    stripe,
    system,
    threads,
    users,
    vapi,
)

# Main API v1 router
api_router = APIRouter()

api_router.include_router(system.router)
api_router.include_router(auth.router, prefix="/auth")
api_router.include_router(users.router)
api_router.include_router(chat.router)
api_router.include_router(documents.router)
api_router.include_router(threads.router)
api_router.include_router(stripe.router)
api_router.include_router(gmail.router)
api_router.include_router(vapi.router)
api_router.include_router(browser.router)
