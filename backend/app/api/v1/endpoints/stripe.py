from typing import Optional
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from app.auth.deps import get_current_user
from app.core.exceptions import AppError
from app.database import billing_repository
from app.schemas.billing import CheckoutRequest, PaymentStatus, PortalRequest, ProductsResponse, UrlResponse
from app.schemas.user import User
from app.services.stripe_service import stripe_service
from app.utils.async_utils import run_sync

router = APIRouter(prefix="/stripe", tags=["stripe"])

logger = logging.getLogger(__name__)


@router.post("/checkout", response_model=UrlResponse)
async def create_checkout(body: CheckoutRequest, current_user: User = Depends(get_current_user)):
    """Start a Stripe Checkout session for one price."""
    url = await stripe_service.create_checkout_session(current_user, body.price_id)
    return {"url": url}


@router.post("/portal", response_model=UrlResponse)
async def create_portal(body: PortalRequest, current_user: User = Depends(get_current_user)):
    url = await stripe_service.create_portal_session(current_user.id, body.return_url)
    return {"url": url}


@router.get("/products", response_model=ProductsResponse)
async def list_products():
    products = await run_sync(billing_repository.get_active_products_with_prices)
    return {"products": products}


@router.get("/payment-status", response_model=PaymentStatus)
async def payment_status(price_id: Optional[str] = None, current_user: User = Depends(get_current_user)):
    paid = await stripe_service.has_user_paid(current_user.id, price_id)
    return {"paid": paid}


@router.get("/session")
async def get_session(session_id: Optional[str] = None, current_user: User = Depends(get_current_user)):
    if not session_id:
        raise HTTPException(status_code=400, detail="Missing session_id parameter")
    return await stripe_service.get_checkout_session(session_id)


@router.post("/webhook")
async def stripe_webhook(request: Request, stripe_signature: Optional[str] = Header(None)):
    """
    Stripe event receiver. The signature is checked against the raw body
    before anything is written to the database.
    """
    payload = await request.body()
    try:
        event = stripe_service.parse_webhook_event(payload, stripe_signature)
        await stripe_service.handle_webhook_event(event)
    except AppError as e:
        logger.error(f"Stripe webhook rejected: {e}")
        raise HTTPException(status_code=400, detail=f"Webhook Error: {e.message}")
    except Exception as e:
        logger.exception(f"Stripe webhook handler failed: {e}")
        raise HTTPException(status_code=400, detail="Webhook handler failed")

    return {"received": True}
