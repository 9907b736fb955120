# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Dict, Any
from datetime import datetime


class ItemIn(BaseModel):
    """Schema dla dodawania produktu do koszyka."""

    product_id: str = Field(..., min_length=1, description="ID produktu")
    variant_id: str | None = Field(None, description="ID wariantu (opcjonalnie)")
    quantity: int = Field(1, ge=1, description="Ilość produktu (musi być >= 1)")


class QuantityIn(BaseModel):
    """Schema dla zmiany ilości pozycji."""

    quantity: int = Field(..., ge=1, description="Nowa ilość (>= 1, do zera służy DELETE)")


class CartItemOut(BaseModel):
    """Schema dla pozycji w koszyku (response)."""

    id: str
    product_id: str
    variant_id: str | None = None
    product_name: str | None = None
    variant_name: str | None = None
    quantity: int
    unit_price_cents: int
    line_total_cents: int


class CartOut(BaseModel):
    """Snapshot koszyka (response)."""

    cart_id: str | None = None
    items: List[CartItemOut] = []
    subtotal_cents: int = 0
    item_count: int = 0
    expires_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class CheckoutSessionIn(BaseModel):
    success_url: str = Field(..., min_length=1)
    cancel_url: str = Field(..., min_length=1)


class CheckoutSessionOut(BaseModel):
    session_id: str
    url: str | None = None


class OrderItemOut(BaseModel):
    product_id: str | None = None
    variant_id: str | None = None
    sku: str | None = None
    product_name: str
    variant_name: str | None = None
    quantity: int
    unit_price_cents: int
    total_cents: int

    model_config = ConfigDict(from_attributes=True)


class OrderSummaryOut(BaseModel):
    """Schema dla listy zamówień (response)."""

    id: str
    status: str
    total_cents: int
    currency: str
    customer_email: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderOut(OrderSummaryOut):
    """Schema dla zamówienia ze snapshotem pozycji (response)."""

    user_id: str | None = None
    stripe_session_id: str
    stripe_payment_intent_id: str | None = None
    subtotal_cents: int
    tax_cents: int
    shipping_cents: int
    discount_cents: int
    customer_name: str | None = None
    shipping_address: Dict[str, Any] | None = None
    billing_address: Dict[str, Any] | None = None
    items: List[OrderItemOut] = []


class WebhookAck(BaseModel):
    """Odpowiedz dla Stripe - 2xx konczy redelivery."""

    received: bool = True
    event_id: str
    status: str
    duplicate: bool = False
