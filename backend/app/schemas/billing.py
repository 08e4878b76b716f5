"""
Pydantic schemas for Stripe products, prices and payments.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Union
from datetime import datetime


class Price(BaseModel):
    id: int
    stripe_price_id: str
    product_id: int
    type: str
    currency: str = "usd"
    unit_amount: int
    recurring: Optional[Dict[str, Any]] = None
    active: bool = True

    model_config = ConfigDict(from_attributes=True)


class Product(BaseModel):
    id: int
    stripe_product_id: str
    name: str
    description: Optional[str] = None
    active: bool = True
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="product_metadata")

    model_config = ConfigDict(from_attributes=True)


class ProductWithPrices(Product):
    prices: List[Price] = []


class ProductsResponse(BaseModel):
    products: List[ProductWithPrices]


class Customer(BaseModel):
    id: int
    user_id: str
    stripe_customer_id: str
    email: Optional[str] = None
    name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class Payment(BaseModel):
    id: int
    user_id: str
    stripe_payment_intent_id: str
    stripe_price_id: Optional[str] = None
    amount: int
    currency: str
    status: str
    payment_method: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Subscription(BaseModel):
    id: int
    user_id: str
    stripe_subscription_id: str
    stripe_price_id: str
    status: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False

    model_config = ConfigDict(from_attributes=True)


class CheckoutRequest(BaseModel):
    # Stripe id ("price_...") or local numeric id
    price_id: Union[str, int]


class PortalRequest(BaseModel):
    return_url: str


class UrlResponse(BaseModel):
    url: str


class PaymentStatus(BaseModel):
    paid: bool
