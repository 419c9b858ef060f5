from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime

FulfillmentType = Literal["pickup", "delivery"]


# Single cart line as sent by the storefront
class OrderLine(BaseModel):
    product: str
    qty: int = Field(gt=0)
    price: Optional[float] = None  # unit price in dollars
    price_id: Optional[str] = None  # Stripe Price ID


class CustomerInfo(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""


class DeliveryAddress(BaseModel):
    street: str = ""
    apt_unit: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""


# Chosen drop window, times already in the buyer's local timezone
class SlotChoice(BaseModel):
    id: str
    date: str
    start_time: str = ""
    end_time: str = ""


class FulfillmentInfo(BaseModel):
    type: FulfillmentType = "pickup"
    address: Optional[DeliveryAddress] = None
    slot: Optional[SlotChoice] = None


# Order submitted by the checkout page; also the body of POST /session
class OrderPayload(BaseModel):
    customer: CustomerInfo = Field(default_factory=CustomerInfo)
    fulfillment: FulfillmentInfo = Field(default_factory=FulfillmentInfo)
    order: List[OrderLine] = Field(default_factory=list)
    subtotal: float = 0.0
    promo_code: Optional[str] = None
    discount: float = 0.0
    tax: float = 0.0
    fee: float = 0.0
    total: float = 0.0
    submitted_at: Optional[datetime] = None


# Response schema for a created checkout session
class SessionResponse(BaseModel):
    url: str


class ErrorResponse(BaseModel):
    error: str
    message: Optional[str] = None


# Normalised order forwarded to the order sheet after payment
class CompletedOrder(BaseModel):
    id: str
    amount_total: float
    customer_email: Optional[str] = None
    metadata: dict = Field(default_factory=dict)
    status: Optional[str] = None
    created: str
