import logging

from fastapi import APIRouter, Depends, HTTPException

from app.auth.deps import get_current_user
from app.database import billing_repository, user_repository
from app.schemas.user import OnboardingRequest, User, UserCount, UserProfile, UserUpdate
from app.utils.async_utils import run_sync

router = APIRouter(tags=["users"])

logger = logging.getLogger(__name__)


@router.get("/user", response_model=UserProfile)
async def get_profile(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("/users/count", response_model=UserCount)
async def get_user_count():
    """Number of paying customers. Public, shown on the pricing page."""
    count = await run_sync(billing_repository.get_customer_count)
    return {"count": count}


@router.put("/users/update")
async def update_user(body: UserUpdate, current_user: User = Depends(get_current_user)):
    if body.id != current_user.id:
        raise HTTPException(status_code=403, detail="Forbidden")

    user = await run_sync(user_repository.update_user, body)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    logger.info(f"Updated profile of user {user.id}")
    return {"success": True}


@router.post("/onboarding", response_model=User)
async def complete_onboarding(body: OnboardingRequest, current_user: User = Depends(get_current_user)):
    """Store the onboarding answers and mark onboarding as done."""
    user = await run_sync(user_repository.complete_onboarding, current_user.id, body)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
