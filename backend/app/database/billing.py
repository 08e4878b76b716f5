from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import selectinload

from app.database.manager import DatabaseManager, db_manager
from app.models.database_models import (
    StripeCustomer as SQLCustomer,
    StripePayment as SQLPayment,
    StripePrice as SQLPrice,
    StripeProduct as SQLProduct,
    StripeSubscription as SQLSubscription,
    User as SQLUser,
)
from app.schemas.billing import Customer, Payment, Price, Product, ProductWithPrices, Subscription

logger = logging.getLogger(__name__)

ACTIVE_SUBSCRIPTION_STATUSES = ("active", "trialing")


class BillingRepository:
    """Local mirror of Stripe products, prices, customers, payments and subscriptions."""

    def __init__(self, db: DatabaseManager) -> None:
        self.db = db

    # ---------------------------
    # Products & prices
    # ---------------------------

    def get_active_products_with_prices(self) -> List[ProductWithPrices]:
        try:
            with self.db.get_session() as session:
                products = (
                    session.query(SQLProduct)
                    .options(selectinload(SQLProduct.prices))
                    .filter(SQLProduct.active.is_(True))
                    .order_by(SQLProduct.id.asc())
                    .all()
                )
                result = []
                for product in products:
                    item = ProductWithPrices.model_validate(product)
                    item.prices = [
                        Price.model_validate(p)
                        for p in sorted(product.prices, key=lambda p: p.unit_amount)
                        if p.active
                    ]
                    result.append(item)
                return result
        except Exception as e:
            logger.error(f"Failed to get active products: {e}")
            raise

    def get_product_by_stripe_id(self, stripe_product_id: str) -> Optional[Product]:
        try:
            with self.db.get_session() as session:
                row = session.query(SQLProduct).filter_by(stripe_product_id=stripe_product_id).first()
                return Product.model_validate(row) if row else None
        except Exception as e:
            logger.error(f"Failed to get product {stripe_product_id}: {e}")
            raise

    def create_product(
        self,
        stripe_product_id: str,
        name: str,
        description: Optional[str] = None,
        active: bool = True,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Product:
        try:
            with self.db.get_session() as session:
                row = SQLProduct(
                    stripe_product_id=stripe_product_id,
                    name=name,
                    description=description,
                    active=active,
                    product_metadata=metadata or {},
                )
                session.add(row)
                session.flush()
                session.refresh(row)
                return Product.model_validate(row)
        except Exception as e:
            logger.error(f"Failed to create product {stripe_product_id}: {e}")
            raise

    def update_product(self, stripe_product_id: str, **values: Any) -> Optional[Product]:
        try:
            with self.db.get_session() as session:
                row = session.query(SQLProduct).filter_by(stripe_product_id=stripe_product_id).first()
                if row is None:
                    return None
                if "metadata" in values:
                    values["product_metadata"] = values.pop("metadata")
                for field, value in values.items():
                    setattr(row, field, value)
                row.updated_at = datetime.utcnow()
                session.flush()
                return Product.model_validate(row)
        except Exception as e:
            logger.error(f"Failed to update product {stripe_product_id}: {e}")
            raise

    def create_price(
        self,
        stripe_price_id: str,
        product_id: int,
        type: str,
        unit_amount: int,
        currency: str = "usd",
        recurring: Optional[Dict[str, Any]] = None,
        active: bool = True,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Price:
        try:
            with self.db.get_session() as session:
                row = SQLPrice(
                    stripe_price_id=stripe_price_id,
                    product_id=product_id,
                    type=type,
                    unit_amount=unit_amount,
                    currency=currency,
                    recurring=recurring,
                    active=active,
                    price_metadata=metadata or {},
                )
                session.add(row)
                session.flush()
                session.refresh(row)
                return Price.model_validate(row)
        except Exception as e:
            logger.error(f"Failed to create price {stripe_price_id}: {e}")
            raise

    def update_price(self, stripe_price_id: str, **values: Any) -> Optional[Price]:
        try:
            with self.db.get_session() as session:
                row = session.query(SQLPrice).filter_by(stripe_price_id=stripe_price_id).first()
                if row is None:
                    return None
                if "metadata" in values:
                    values["price_metadata"] = values.pop("metadata")
                for field, value in values.items():
                    setattr(row, field, value)
                row.updated_at = datetime.utcnow()
                session.flush()
                return Price.model_validate(row)
        except Exception as e:
            logger.error(f"Failed to update price {stripe_price_id}: {e}")
            raise

    def get_price_by_id(self, price_id: int) -> Optional[Price]:
        try:
            with self.db.get_session() as session:
                row = session.get(SQLPrice, price_id)
                return Price.model_validate(row) if row else None
        except Exception as e:
            logger.error(f"Failed to get price {price_id}: {e}")
            raise

    def get_price_by_stripe_id(self, stripe_price_id: str) -> Optional[Price]:
        try:
            with self.db.get_session() as session:
                row = session.query(SQLPrice).filter_by(stripe_price_id=stripe_price_id).first()
                return Price.model_validate(row) if row else None
        except Exception as e:
            logger.error(f"Failed to get price {stripe_price_id}: {e}")
            raise

    # ---------------------------
    # Customers
    # ---------------------------

    def get_customer_by_user_id(self, user_id: str) -> Optional[Customer]:
        try:
            with self.db.get_session() as session:
                row = session.query(SQLCustomer).filter_by(user_id=user_id).first()
                return Customer.model_validate(row) if row else None
        except Exception as e:
            logger.error(f"Failed to get Stripe customer for {user_id}: {e}")
            raise

    def save_customer(
        self,
        user_id: str,
        stripe_customer_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Customer:
        """Insert or update the customer and mirror its id on the user row."""
        try:
            with self.db.get_session() as session:
                row = session.query(SQLCustomer).filter_by(user_id=user_id).first()
                if row is None:
                    row = SQLCustomer(user_id=user_id, stripe_customer_id=stripe_customer_id)
                    session.add(row)
                row.stripe_customer_id = stripe_customer_id
                row.email = email
                row.name = name
                row.customer_metadata = metadata or {}
                row.updated_at = datetime.utcnow()
                session.query(SQLUser).filter_by(id=user_id).update({"stripe_customer_id": stripe_customer_id})
                session.flush()
                session.refresh(row)
                return Customer.model_validate(row)
        except Exception as e:
            logger.error(f"Failed to save Stripe customer for {user_id}: {e}")
            raise

    def get_customer_count(self) -> int:
        try:
            with self.db.get_session() as session:
                return session.query(func.count(SQLCustomer.id)).scalar() or 0
        except Exception as e:
            logger.error(f"Failed to count Stripe customers: {e}")
            raise

    # ---------------------------
    # Payments
    # ---------------------------

    def save_payment(
        self,
        user_id: str,
        stripe_payment_intent_id: str,
        stripe_price_id: Optional[str],
        amount: int,
        currency: str,
        status: str,
        payment_method: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Payment:
        try:
            with self.db.get_session() as session:
                row = session.query(SQLPayment).filter_by(stripe_payment_intent_id=stripe_payment_intent_id).first()
                if row is None:
                    row = SQLPayment(user_id=user_id, stripe_payment_intent_id=stripe_payment_intent_id)
                    session.add(row)
                row.stripe_price_id = stripe_price_id
                row.amount = amount
                row.currency = currency
                row.status = status
                row.payment_method = payment_method
                row.payment_metadata = metadata or {}
                row.updated_at = datetime.utcnow()
                session.flush()
                session.refresh(row)
                return Payment.model_validate(row)
        except Exception as e:
            logger.error(f"Failed to save payment {stripe_payment_intent_id}: {e}")
            raise

    def update_payment_status(self, stripe_payment_intent_id: str, status: str) -> bool:
        try:
            with self.db.get_session() as session:
                updated = (
                    session.query(SQLPayment)
                    .filter_by(stripe_payment_intent_id=stripe_payment_intent_id)
                    .update({"status": status, "updated_at": datetime.utcnow()})
                )
                return updated > 0
        except Exception as e:
            logger.error(f"Failed to update payment {stripe_payment_intent_id}: {e}")
            raise

    def get_payments_by_user_id(self, user_id: str) -> List[Payment]:
        try:
            with self.db.get_session() as session:
                rows = (
                    session.query(SQLPayment)
                    .filter_by(user_id=user_id)
                    .order_by(SQLPayment.created_at.desc())
                    .all()
                )
                return [Payment.model_validate(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to get payments for {user_id}: {e}")
            raise

    # ---------------------------
    # Subscriptions
    # ---------------------------

    def upsert_subscription(
        self,
        user_id: str,
        stripe_subscription_id: str,
        stripe_price_id: str,
        status: str,
        current_period_start: Optional[datetime] = None,
        current_period_end: Optional[datetime] = None,
        cancel_at_period_end: bool = False,
    ) -> Subscription:
        try:
            with self.db.get_session() as session:
                row = (
                    session.query(SQLSubscription)
                    .filter_by(stripe_subscription_id=stripe_subscription_id)
                    .first()
                )
                if row is None:
                    row = SQLSubscription(user_id=user_id, stripe_subscription_id=stripe_subscription_id)
                    session.add(row)
                row.stripe_price_id = stripe_price_id
                row.status = status
                row.current_period_start = current_period_start
                row.current_period_end = current_period_end
                row.cancel_at_period_end = cancel_at_period_end
                row.updated_at = datetime.utcnow()
                session.flush()
                session.refresh(row)
                return Subscription.model_validate(row)
        except Exception as e:
            logger.error(f"Failed to upsert subscription {stripe_subscription_id}: {e}")
            raise

    def update_subscription_status(self, stripe_subscription_id: str, status: str) -> bool:
        try:
            with self.db.get_session() as session:
                updated = (
                    session.query(SQLSubscription)
                    .filter_by(stripe_subscription_id=stripe_subscription_id)
                    .update({"status": status, "updated_at": datetime.utcnow()})
                )
                return updated > 0
        except Exception as e:
            logger.error(f"Failed to update subscription {stripe_subscription_id}: {e}")
            raise

    def has_user_paid(self, user_id: str, stripe_price_id: Optional[str] = None) -> bool:
        """A succeeded payment or a live subscription, optionally for one price."""
        try:
            with self.db.get_session() as session:
                payments = session.query(SQLPayment).filter_by(user_id=user_id, status="succeeded")
                subscriptions = session.query(SQLSubscription).filter(
                    SQLSubscription.user_id == user_id,
                    SQLSubscription.status.in_(ACTIVE_SUBSCRIPTION_STATUSES),
                )
                if stripe_price_id:
                    payments = payments.filter_by(stripe_price_id=stripe_price_id)
                    subscriptions = subscriptions.filter(SQLSubscription.stripe_price_id == stripe_price_id)
                return payments.first() is not None or subscriptions.first() is not None
        except Exception as e:
            logger.error(f"Failed to check payment status for {user_id}: {e}")
            raise


billing_repository = BillingRepository(db_manager)
