"""
Stripe payments: checkout, customer portal, webhook processing.

The Stripe SDK is synchronous; every call runs through ``run_sync``.
Webhook payloads are verified with the SDK and then handled as plain dicts.
"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

import stripe

from app.core.config import settings
from app.core.exceptions import ConfigurationError, NotFoundError, ValidationError
from app.database import billing_repository
from app.schemas.billing import Customer, Price
from app.schemas.user import User
from app.utils.async_utils import run_sync

logger = logging.getLogger(__name__)


def _to_dict(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict) and not isinstance(obj, stripe.StripeObject):
        return obj
    return obj.to_dict()


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    return datetime.utcfromtimestamp(value) if value else None


def _first_payment_method(types: Any) -> str:
    return types[0] if isinstance(types, list) and types else "card"


class StripeService:
    def __init__(self) -> None:
        self._client: Optional[stripe.StripeClient] = None

    @property
    def client(self) -> stripe.StripeClient:
        if self._client is None:
            if not settings.STRIPE_SECRET_KEY:
                raise ConfigurationError("STRIPE_SECRET_KEY")
            self._client = stripe.StripeClient(settings.STRIPE_SECRET_KEY)
        return self._client

    # ---------------------------
    # Prices & customers
    # ---------------------------

    async def resolve_price(self, price_id: Union[str, int]) -> Price:
        """Look a price up by Stripe id ("price_...") or local numeric id."""
        price = None
        raw = str(price_id)
        if raw.startswith("price_"):
            price = await run_sync(billing_repository.get_price_by_stripe_id, raw)
        elif raw.isdigit():
            price = await run_sync(billing_repository.get_price_by_id, int(raw))

        if price is None:
            price = await run_sync(billing_repository.get_price_by_stripe_id, raw)
        if price is None:
            raise NotFoundError(f"Price not found for ID: {price_id}")
        return price

    async def get_or_create_customer(self, user: User) -> Customer:
        existing = await run_sync(billing_repository.get_customer_by_user_id, user.id)
        if existing:
            return existing

        created = _to_dict(await run_sync(
            self.client.customers.create,
            params={"email": user.email, "metadata": {"userId": user.id}},
        ))
        logger.info(f"Created Stripe customer {created['id']} for user {user.id}")
        return await run_sync(
            billing_repository.save_customer, user.id, created["id"], user.email, None, {}
        )

    async def _find_promotion_code(self, code: str) -> Optional[str]:
        result = _to_dict(await run_sync(
            self.client.promotion_codes.list, params={"code": code, "active": True}
        ))
        promos = result.get("data") or []
        if not promos:
            logger.warning(f"Promotion code {code} not found or inactive")
            return None
        return promos[0]["id"]

    async def select_promotion_code(self, user: User) -> Optional[str]:
        """
        Free code for local development and corporate accounts. Launch code for
        new customers while the customer count is under the launch limit.
        """
        is_localhost = "localhost" in settings.FRONTEND_URL
        domain = settings.CORPORATE_EMAIL_DOMAIN
        is_corporate = bool(domain) and user.email.lower().endswith(f"@{domain.lower()}")
        if is_localhost or is_corporate:
            return await self._find_promotion_code(settings.STRIPE_FREE_PROMO_CODE)

        customer_count = await run_sync(billing_repository.get_customer_count)
        if customer_count >= settings.STRIPE_LAUNCH_CUSTOMER_LIMIT:
            return None
        if await run_sync(billing_repository.get_customer_by_user_id, user.id):
            return None
        return await self._find_promotion_code(settings.STRIPE_LAUNCH_PROMO_CODE)

    # ---------------------------
    # Sessions
    # ---------------------------

    async def create_checkout_session(self, user: User, price_id: Union[str, int]) -> str:
        price = await self.resolve_price(price_id)
        promotion_code = await self.select_promotion_code(user)
        customer = await self.get_or_create_customer(user)

        params: Dict[str, Any] = {
            "customer": customer.stripe_customer_id,
            "payment_method_types": ["card"],
            "line_items": [{"price": price.stripe_price_id, "quantity": 1}],
            "mode": "payment",
            "success_url": f"{settings.FRONTEND_URL}?payment=success&session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{settings.FRONTEND_URL}/payment/canceled",
            "metadata": {"userId": user.id, "priceId": str(price.id)},
        }
        if promotion_code:
            params["discounts"] = [{"promotion_code": promotion_code}]

        session = _to_dict(await run_sync(self.client.checkout.sessions.create, params=params))
        logger.info(f"Created checkout session {session.get('id')} for user {user.id}")
        return session["url"]

    async def create_portal_session(self, user_id: str, return_url: str) -> str:
        customer = await run_sync(billing_repository.get_customer_by_user_id, user_id)
        if not customer:
            raise NotFoundError("No Stripe customer found")
        session = _to_dict(await run_sync(
            self.client.billing_portal.sessions.create,
            params={"customer": customer.stripe_customer_id, "return_url": return_url},
        ))
        return session["url"]

    async def get_checkout_session(self, session_id: str) -> Dict[str, Any]:
        session = _to_dict(await run_sync(self.client.checkout.sessions.retrieve, session_id))
        return {
            "id": session.get("id"),
            "payment_status": session.get("payment_status"),
            "metadata": session.get("metadata") or {},
        }

    async def has_user_paid(self, user_id: str, price_id: Optional[Union[str, int]] = None) -> bool:
        stripe_price_id = None
        if price_id is not None:
            stripe_price_id = (await self.resolve_price(price_id)).stripe_price_id
        return await run_sync(billing_repository.has_user_paid, user_id, stripe_price_id)

    # ---------------------------
    # Webhooks
    # ---------------------------

    def parse_webhook_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if not signature or not settings.STRIPE_WEBHOOK_SECRET:
            raise ValidationError("Missing stripe-signature or webhook secret")
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except stripe.SignatureVerificationError as e:
            raise ValidationError("Invalid Stripe signature", str(e))
        return json.loads(payload)

    async def handle_webhook_event(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}
        logger.info(f"Processing Stripe event {event.get('id')} ({event_type})")

        if event_type == "checkout.session.completed":
            if obj.get("mode") == "payment":
                await self._handle_successful_payment(obj)
            elif obj.get("mode") == "subscription":
                await self._handle_subscription_checkout(obj)
        elif event_type == "payment_intent.succeeded":
            if (obj.get("metadata") or {}).get("userId"):
                await run_sync(billing_repository.update_payment_status, obj["id"], obj["status"])
        elif event_type == "invoice.paid":
            await self._handle_invoice_paid(obj)
        elif event_type in ("customer.subscription.updated", "customer.subscription.created"):
            await self._handle_subscription_updated(obj)
        elif event_type == "customer.subscription.deleted":
            await run_sync(billing_repository.update_subscription_status, obj["id"], obj.get("status") or "canceled")
        elif event_type in ("product.created", "product.updated"):
            await self._handle_product_updated(obj)
        elif event_type == "price.updated":
            await self._handle_price_updated(obj)
        else:
            logger.debug(f"Ignoring Stripe event type {event_type}")

    async def _handle_successful_payment(self, session: Dict[str, Any]) -> None:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("userId")
        price_id = metadata.get("priceId")
        if not user_id or not price_id:
            logger.warning(f"Checkout session {session.get('id')} has no user/price metadata")
            return

        price = await self.resolve_price(price_id)

        customer_id = session.get("customer")
        if customer_id:
            customer = _to_dict(await run_sync(self.client.customers.retrieve, customer_id))
            if not customer.get("deleted"):
                await run_sync(
                    billing_repository.save_customer,
                    user_id,
                    customer["id"],
                    customer.get("email") or "",
                    customer.get("name"),
                    customer.get("metadata") or {},
                )

        payment_intent_id = session.get("payment_intent")
        if payment_intent_id:
            intent = _to_dict(await run_sync(self.client.payment_intents.retrieve, payment_intent_id))
            await run_sync(
                billing_repository.save_payment,
                user_id,
                payment_intent_id,
                price.stripe_price_id,
                intent["amount"],
                intent["currency"],
                intent["status"],
                _first_payment_method(intent.get("payment_method_types")),
                metadata,
            )
        elif session.get("payment_status") == "paid":
            # fully discounted checkout, no payment intent exists
            await run_sync(
                billing_repository.save_payment,
                user_id,
                f"free_payment_{session['id']}",
                price.stripe_price_id,
                session.get("amount_total") or 0,
                session.get("currency") or "usd",
                "succeeded",
                _first_payment_method(session.get("payment_method_types")),
                metadata,
            )

    async def _handle_subscription_checkout(self, session: Dict[str, Any]) -> None:
        subscription_id = session.get("subscription")
        if not (session.get("metadata") or {}).get("userId") or not subscription_id:
            return
        subscription = _to_dict(await run_sync(self.client.subscriptions.retrieve, subscription_id))
        await self._handle_subscription_updated(subscription)

    async def _handle_subscription_updated(self, subscription: Dict[str, Any]) -> None:
        customer = _to_dict(await run_sync(self.client.customers.retrieve, subscription["customer"]))
        user_id = None if customer.get("deleted") else (customer.get("metadata") or {}).get("userId")
        if not user_id:
            logger.warning(f"Subscription {subscription.get('id')} has no linked user")
            return

        items = (subscription.get("items") or {}).get("data") or []
        if not items:
            return
        first_item = items[0]
        await run_sync(
            billing_repository.upsert_subscription,
            user_id,
            subscription["id"],
            first_item["price"]["id"],
            subscription.get("status") or "active",
            _timestamp(subscription.get("current_period_start") or first_item.get("current_period_start")),
            _timestamp(subscription.get("current_period_end") or first_item.get("current_period_end")),
            bool(subscription.get("cancel_at_period_end")),
        )

    async def _handle_invoice_paid(self, invoice: Dict[str, Any]) -> None:
        subscription_id = invoice.get("subscription") or (
            ((invoice.get("parent") or {}).get("subscription_details") or {}).get("subscription")
        )
        if not subscription_id:
            return
        subscription = _to_dict(await run_sync(self.client.subscriptions.retrieve, subscription_id))
        await self._handle_subscription_updated(subscription)

    async def _handle_product_updated(self, product: Dict[str, Any]) -> None:
        values = {
            "name": product.get("name") or "",
            "description": product.get("description"),
            "active": bool(product.get("active", True)),
            "metadata": product.get("metadata") or {},
        }
        updated = await run_sync(billing_repository.update_product, product["id"], **values)
        if updated is None:
            await run_sync(billing_repository.create_product, product["id"], **values)

    async def _handle_price_updated(self, price: Dict[str, Any]) -> None:
        """Mirror a Stripe price (and its product, when new) into the local catalog."""
        existing = await run_sync(billing_repository.get_price_by_stripe_id, price["id"])
        price_type = price.get("type") or "one_time"

        if existing:
            await run_sync(
                billing_repository.update_price,
                price["id"],
                active=bool(price.get("active")),
                unit_amount=price.get("unit_amount") or 0,
                currency=price.get("currency") or "usd",
                type=price_type,
                recurring=price.get("recurring"),
                metadata=price.get("metadata") or {},
            )
            return

        product_id = price["product"] if isinstance(price["product"], str) else price["product"]["id"]
        product = await run_sync(billing_repository.get_product_by_stripe_id, product_id)
        if product is None:
            remote = _to_dict(await run_sync(self.client.products.retrieve, product_id))
            product = await run_sync(
                billing_repository.create_product,
                remote["id"],
                remote.get("name") or "",
                remote.get("description"),
                bool(remote.get("active", True)),
                remote.get("metadata") or {},
            )

        await run_sync(
            billing_repository.create_price,
            price["id"],
            product.id,
            price_type,
            price.get("unit_amount") or 0,
            price.get("currency") or "usd",
            price.get("recurring"),
            bool(price.get("active", True)),
            price.get("metadata") or {},
        )


stripe_service = StripeService()
