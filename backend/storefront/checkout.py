# backend/storefront/checkout.py
"""Checkout flow: validation, order payload assembly and submission.

The page drives a ``Checkout`` through named commands instead of DOM
events. State moves EMPTY -> FILLING -> SUBMITTING -> SUCCESS | ERROR, and
``retry()`` returns from ERROR to FILLING with cart and form untouched.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

import httpx

from config import CheckoutConfig
from schemas.checkout import (
    CustomerInfo,
    DeliveryAddress,
    FulfillmentInfo,
    OrderLine,
    OrderPayload,
    SlotChoice,
)
from storefront.cart import CartStore, format_money
from storefront.errors import (
    EmptyCartError,
    MaxQuantityExceededError,
    ValidationError,
    ZipNotServedError,
)
from storefront.pricing import (
    ActivePromo,
    PriceBreakdown,
    PromoResult,
    PromoStatus,
    compute_breakdown,
    resolve_promo,
)
from storefront.slot_selector import SlotSelector

logger = logging.getLogger(__name__)

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
ZIP_REGEX = re.compile(r"^\d{5}(-\d{4})?$")


class CheckoutState(str, Enum):
    EMPTY = "empty"
    FILLING = "filling"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    ERROR = "error"


# Values typed into the checkout form
@dataclass
class CheckoutForm:
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    street_address: str = ""
    apt_unit: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""


@dataclass
class SubmissionResult:
    success: bool
    payload: OrderPayload
    error: Optional[str] = None
    redirect_url: Optional[str] = None
    summary: Optional[str] = None


def validate_customer_fields(form: CheckoutForm) -> Dict[str, str]:
    errors = {}
    if not form.first_name.strip():
        errors["first_name"] = "First name is required"
    if not form.last_name.strip():
        errors["last_name"] = "Last name is required"
    email = form.email.strip()
    if not email:
        errors["email"] = "Email is required"
    elif not EMAIL_REGEX.match(email):
        errors["email"] = "Please enter a valid email address"
    if not form.phone.strip():
        errors["phone"] = "Phone number is required"
    return errors


def validate_address_fields(form: CheckoutForm) -> Dict[str, str]:
    errors = {}
    if not form.street_address.strip():
        errors["street_address"] = "Street address is required"
    if not form.city.strip():
        errors["city"] = "City is required"
    if not form.state.strip():
        errors["state"] = "State is required"
    zip_code = form.zip_code.strip()
    if not zip_code:
        errors["zip_code"] = "ZIP code is required"
    elif not ZIP_REGEX.match(zip_code):
        errors["zip_code"] = "Please enter a valid ZIP code"
    return errors


def is_zip_served(zip_code: str, config: CheckoutConfig) -> bool:
    # ZIP+4 is matched on its first five digits
    return zip_code.strip()[:5] in config.allowed_zips


def render_order_summary(payload: OrderPayload) -> str:
    customer = payload.customer
    lines = [
        f"Name: {customer.first_name} {customer.last_name}",
        f"Email: {customer.email}",
        f"Phone: {customer.phone}",
    ]
    fulfillment = payload.fulfillment
    if fulfillment.type == "delivery" and fulfillment.address:
        addr = fulfillment.address
        street = f"{addr.street}, {addr.apt_unit}" if addr.apt_unit else addr.street
        lines.append("Delivery to:")
        lines.append(street)
        lines.append(f"{addr.city}, {addr.state} {addr.zip}")
    else:
        lines.append("Pickup")
    if fulfillment.slot:
        lines.append(f"Time: {fulfillment.slot.date} {fulfillment.slot.start_time} - {fulfillment.slot.end_time}")

    lines.append("Order Items")
    for item in payload.order:
        lines.append(f"{item.product} x {item.qty}  {format_money((item.price or 0) * item.qty)}")
    lines.append(f"Total: {format_money(payload.total)}")
    return "\n".join(lines)


class Checkout:
    def __init__(self, config: CheckoutConfig, cart_store: CartStore,
                 slot_selector: Optional[SlotSelector] = None,
                 client: Optional[httpx.Client] = None,
                 fulfillment_type: str = "pickup",
                 origin: Optional[str] = None):
        self.config = config
        self.cart_store = cart_store
        self.slot_selector = slot_selector
        self.client = client
        self.origin = origin or config.site_origin
        self.fulfillment_type = fulfillment_type
        self.active_promo: Optional[ActivePromo] = None
        self.last_error: Optional[str] = None
        self.state = CheckoutState.EMPTY if cart_store.is_empty() else CheckoutState.FILLING

        if self.slot_selector is not None:
            self.slot_selector.init(fulfillment_type)

    @property
    def slots_active(self) -> bool:
        return self.slot_selector is not None and self.slot_selector.is_enabled

    def breakdown(self) -> PriceBreakdown:
        return compute_breakdown(self.cart_store.get_cart(), self.active_promo, self.config)

    # ---- commands ----

    def on_cart_mutated(self) -> PriceBreakdown:
        if self.state is not CheckoutState.SUBMITTING:
            self.state = CheckoutState.EMPTY if self.cart_store.is_empty() else CheckoutState.FILLING
        return self.breakdown()

    def apply_promo(self, raw_code: str) -> PromoResult:
        result = resolve_promo(raw_code, self.config.promo_codes)
        if result.status is PromoStatus.APPLIED:
            self.active_promo = result.promo
        elif result.status is PromoStatus.INVALID:
            self.active_promo = None
        return result

    def on_fulfillment_type_changed(self, fulfillment_type: str) -> None:
        if fulfillment_type == "delivery" and not self.config.delivery_enabled:
            raise ValueError("Delivery is not available")
        if fulfillment_type == "pickup" and not self.config.pickup_enabled:
            raise ValueError("Pickup is not available")
        if fulfillment_type == self.fulfillment_type:
            return
        self.fulfillment_type = fulfillment_type
        if self.slot_selector is not None:
            self.slot_selector.set_fulfillment_type(fulfillment_type)

    def on_slot_selected(self, slot_id: str):
        if self.slot_selector is None:
            raise ValueError("Slot selection is not enabled")
        return self.slot_selector.select_slot(slot_id)

    # Answer to the "delivery unavailable" prompt
    def switch_to_pickup(self) -> None:
        self.on_fulfillment_type_changed("pickup")

    def max_quantity_warning(self) -> Optional[str]:
        if self.cart_store.count() <= self.config.max_order_quantity:
            return None
        return self.config.max_order_message or (
            f"For orders of more than {self.config.max_order_quantity} cookies, "
            f"please contact us at {self.config.contact_email} to discuss."
        )

    def can_increment(self) -> bool:
        return self.cart_store.count() < self.config.max_order_quantity

    # ---- submission ----

    def validate(self, form: CheckoutForm) -> None:
        """Raises the first failing check, in the order the page reports them."""
        if self.cart_store.is_empty():
            raise EmptyCartError()

        if self.cart_store.count() > self.config.max_order_quantity:
            raise MaxQuantityExceededError(self.max_quantity_warning(), self.config.max_order_quantity)

        errors = validate_customer_fields(form)
        if errors:
            raise ValidationError(errors)

        if self.fulfillment_type == "delivery":
            errors = validate_address_fields(form)
            if errors:
                raise ValidationError(errors)
            if not is_zip_served(form.zip_code, self.config):
                raise ZipNotServedError(form.zip_code.strip())

        if self.slots_active and not self.slot_selector.validate():
            raise ValidationError({"fulfillment_slot": self.slot_selector.error})

    def build_payload(self, form: CheckoutForm) -> OrderPayload:
        cart = self.cart_store.get_cart()
        # Recomputed here rather than reusing what was last displayed
        prices = compute_breakdown(cart, self.active_promo, self.config)

        fulfillment = FulfillmentInfo(type=self.fulfillment_type)
        if self.fulfillment_type == "delivery":
            fulfillment.address = DeliveryAddress(
                street=form.street_address.strip(),
                apt_unit=form.apt_unit.strip(),
                city=form.city.strip(),
                state=form.state.strip(),
                zip=form.zip_code.strip(),
            )
        if self.slots_active:
            selected = self.slot_selector.get_selected_slot()
            if selected:
                fulfillment.slot = SlotChoice(
                    id=selected.id,
                    date=selected.date,
                    start_time=selected.start_time,
                    end_time=selected.end_time,
                )

        return OrderPayload(
            customer=CustomerInfo(
                first_name=form.first_name.strip(),
                last_name=form.last_name.strip(),
                email=form.email.strip(),
                phone=form.phone.strip(),
            ),
            fulfillment=fulfillment,
            order=[
                OrderLine(
                    product=item.product,
                    qty=item.quantity,
                    price=item.unit_price_cents / 100,
                    price_id=item.price_ref,
                )
                for item in cart.items
            ],
            subtotal=prices.subtotal,
            promo_code=self.active_promo.code if self.active_promo else None,
            discount=prices.discount,
            tax=prices.tax,
            fee=prices.fee,
            total=prices.total,
            submitted_at=datetime.now(timezone.utc),
        )

    def _post(self, payload: OrderPayload) -> Dict:
        headers = {"Origin": self.origin} if self.origin else {}
        body = payload.model_dump(mode="json")
        if self.client is not None:
            response = self.client.post(self.config.order_endpoint_url, json=body, headers=headers)
        else:
            response = httpx.post(self.config.order_endpoint_url, json=body, headers=headers, timeout=10.0)
        if not response.is_success:
            raise httpx.HTTPStatusError(
                f"Order endpoint returned HTTP {response.status_code}",
                request=response.request,
                response=response,
            )
        return response.json()

    def submit(self, form: CheckoutForm) -> SubmissionResult:
        """Validates, then posts the order.

        Validation failures raise (storefront.errors) and nothing is sent.
        Network and server failures come back as an unsuccessful result with
        the checkout in the ERROR state.
        """
        self.validate(form)

        self.state = CheckoutState.SUBMITTING
        payload = self.build_payload(form)

        if not self.config.order_endpoint_url:
            logger.info("No order endpoint configured - simulating successful order")
            return self._succeed(payload)

        try:
            data = self._post(payload)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Order submission error: %s", e)
            return self._fail(payload, str(e))

        if not isinstance(data, dict):
            return self._fail(payload, "Order submission failed")
        if data.get("success") or data.get("url"):
            return self._succeed(payload, redirect_url=data.get("url"))
        return self._fail(payload, data.get("error") or "Order submission failed")

    def _succeed(self, payload: OrderPayload, redirect_url: Optional[str] = None) -> SubmissionResult:
        self.state = CheckoutState.SUCCESS
        self.last_error = None
        summary = render_order_summary(payload)
        self.cart_store.clear()

        slot = payload.fulfillment.slot
        if self.slots_active and slot and slot.date:
            self.slot_selector.record_order(slot.date, sum(item.qty for item in payload.order))

        return SubmissionResult(success=True, payload=payload, redirect_url=redirect_url, summary=summary)

    def _fail(self, payload: OrderPayload, error: str) -> SubmissionResult:
        self.state = CheckoutState.ERROR
        self.last_error = error
        return SubmissionResult(success=False, payload=payload, error=error)

    def retry(self) -> None:
        if self.state is CheckoutState.ERROR:
            self.last_error = None
            self.state = CheckoutState.EMPTY if self.cart_store.is_empty() else CheckoutState.FILLING
