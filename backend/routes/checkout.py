# backend/routes/checkout.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from config import Settings, get_settings
from schemas.checkout import CompletedOrder, ErrorResponse, OrderPayload, SessionResponse
from utils.origins import cors_origin, is_origin_allowed
from utils.sheet_client import SheetClient, get_sheet_client
from utils.stripe_client import (
    SignatureVerificationError,
    StripeClient,
    StripeError,
    get_stripe_client,
    verify_webhook,
)

router = APIRouter(tags=["Checkout"])
logger = logging.getLogger(__name__)

COMPLETED_EVENT = "checkout.session.completed"


# Flatten order details into Stripe metadata (string values only)
def _session_metadata(payload: OrderPayload) -> Dict[str, str]:
    fulfillment = payload.fulfillment
    customer = payload.customer

    pickup_time = "N/A"
    if fulfillment.slot:
        pickup_time = f"{fulfillment.slot.date} {fulfillment.slot.start_time}"

    delivery_address = "N/A"
    if fulfillment.type == "delivery" and fulfillment.address:
        addr = fulfillment.address
        delivery_address = f"{addr.street}, {addr.city}, {addr.zip}"

    return {
        "fulfillment_type": fulfillment.type,
        "customer_email": customer.email,
        "customer_name": f"{customer.first_name} {customer.last_name}",
        "customer_phone": customer.phone,
        "pickup_time": pickup_time,
        "delivery_address": delivery_address,
        "items_summary": ", ".join(f"{line.qty}x {line.product}" for line in payload.order),
    }


# Map a provider failure to the status code and body returned to the storefront
def classify_stripe_error(err: StripeError) -> Tuple[int, Dict[str, Any]]:
    status = 500
    body = {"error": "Internal Server Error", "message": err.message}

    if err.type == "invalid_request_error" or err.code == "resource_missing":
        status = 400
        body = {"error": "INVALID_CART", "message": err.message or "Invalid items in cart."}

    if err.message and "inventory" in err.message:
        status = 409
        body = {"error": "SOLD_OUT", "message": err.message}

    return status, body


def _error(status_code: int, error: str, message: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=error, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def _return_base_url(origin: Optional[str], settings: Settings) -> str:
    base = cors_origin(origin, settings)
    if not base or base == "*":
        base = settings.SITE_URL
    return base.rstrip("/")


# Create a hosted checkout session for the storefront cart
@router.post("/session", response_model=SessionResponse)
async def create_session(
    request: Request,
    settings: Settings = Depends(get_settings),
    stripe: StripeClient = Depends(get_stripe_client),
):
    # Origin is checked before the body is read
    origin = request.headers.get("origin")
    if not is_origin_allowed(origin, settings):
        logger.warning("Rejected checkout session from origin %s", origin)
        return _error(403, "Forbidden", "Origin not allowed")

    try:
        payload = OrderPayload.model_validate_json(await request.body())
    except ValidationError as e:
        logger.warning("Invalid checkout session body: %d error(s)", e.error_count())
        return _error(400, "INVALID_CART", "Invalid order data.")

    if not payload.order:
        return _error(400, "Empty cart")

    for line in payload.order:
        if not line.price_id:
            return _error(400, "INVALID_CART", f"Missing price_id for {line.product}")

    base_url = _return_base_url(origin, settings)
    params = {
        "payment_method_types": ["card"],
        "line_items": [{"price": line.price_id, "quantity": line.qty} for line in payload.order],
        "mode": "payment",
        "success_url": f"{base_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{base_url}/checkout/cancel",
        "metadata": _session_metadata(payload),
        "customer_email": payload.customer.email or None,
    }

    try:
        session = await stripe.create_checkout_session(params)
    except StripeError as e:
        status, body = classify_stripe_error(e)
        logger.error("Checkout session failed (%s): %s", status, e.message)
        return JSONResponse(status_code=status, content=body)

    logger.info("Checkout session %s created (%d lines)", session.get("id"), len(payload.order))
    return SessionResponse(url=session["url"])


def _completed_order(session: Dict[str, Any]) -> CompletedOrder:
    created = datetime.fromtimestamp(int(session.get("created") or 0), tz=timezone.utc)
    return CompletedOrder(
        id=session["id"],
        amount_total=(session.get("amount_total") or 0) / 100,
        # Email verified by the payment page, not the one typed at checkout
        customer_email=(session.get("customer_details") or {}).get("email"),
        metadata=session.get("metadata") or {},
        status=session.get("payment_status"),
        created=created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    )


# Stripe webhook: verify the signature, then hand completed orders to the order sheet
@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    sheets: SheetClient = Depends(get_sheet_client),
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
):
    body = await request.body()

    try:
        event = verify_webhook(
            body,
            stripe_signature,
            settings.STRIPE_WEBHOOK_SECRET,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
        )
    except SignatureVerificationError as e:
        logger.warning("Webhook verification failed: %s", e)
        return PlainTextResponse("Webhook Error: signature verification failed", status_code=400)

    event_type = event.get("type")
    logger.info("Webhook event %s received (%s)", event.get("id"), event_type)

    if event_type == COMPLETED_EVENT:
        session = (event.get("data") or {}).get("object") or {}
        try:
            order = _completed_order(session)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Malformed checkout session in event %s: %s", event.get("id"), e)
        else:
            await sheets.forward_order(settings.ORDER_SHEET_SCRIPT_URL, order.model_dump())

    return PlainTextResponse("Received", status_code=200)
