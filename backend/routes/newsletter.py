# backend/routes/newsletter.py
import logging
import re
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, JSONResponse

from config import Settings, get_settings
from schemas.newsletter import SignupRequest, SignupResponse
from utils import unsubscribe_token
from utils.pages import render_unsubscribe_page
from utils.sheet_client import SheetClient, get_sheet_client

router = APIRouter(tags=["Newsletter"])
logger = logging.getLogger(__name__)

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_EMAIL_LENGTH = 254
SIGNUP_SOURCE = "coming-soon-page"
GENERIC_ERROR = "Something went wrong. Please try again."


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and len(email) <= MAX_EMAIL_LENGTH and EMAIL_REGEX.match(email) is not None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _page(settings: Settings, status_code: int, success: bool, title: str, message: str) -> HTMLResponse:
    return HTMLResponse(
        render_unsubscribe_page(success, title, message, settings.SITE_URL),
        status_code=status_code,
    )


# Newsletter signup forwarded to the subscriber sheet
@router.post("/", response_model=SignupResponse, response_model_exclude_none=True)
async def signup(
    payload: SignupRequest,
    settings: Settings = Depends(get_settings),
    sheets: SheetClient = Depends(get_sheet_client),
):
    # Trimmed before validation, the same way the checkout form is checked
    email = (payload.email or "").strip()
    if not is_valid_email(email):
        return JSONResponse(status_code=400, content={"error": "Please enter a valid email address"})

    email = unsubscribe_token.normalize_email(email)

    if not settings.NEWSLETTER_SCRIPT_URL:
        logger.error("NEWSLETTER_SCRIPT_URL not configured")
        return JSONResponse(status_code=500, content={"error": "Service not configured. Please try again later."})

    sink_payload = {
        "email": email,
        "timestamp": _now_iso(),
        "action": "signup",
        "source": SIGNUP_SOURCE,
    }
    first_name = (payload.first_name or "").strip()
    if first_name:
        sink_payload["first_name"] = first_name

    result = await sheets.post(settings.NEWSLETTER_SCRIPT_URL, sink_payload)
    if not result.success:
        logger.error("Subscriber sheet error: %s", result.error)
        return JSONResponse(status_code=500, content={"error": GENERIC_ERROR})

    if result.duplicate:
        return SignupResponse(success=True, message="This email is already signed up!", duplicate=True)
    if result.resubscribed:
        return SignupResponse(
            success=True,
            message="Welcome back! You've been resubscribed to our newsletter.",
            resubscribed=True,
        )
    return SignupResponse(success=True, message="Thanks for signing up! We'll let you know when we launch.")


# Unsubscribe link from newsletter emails: /unsubscribe?email=...&token=...
@router.get("/unsubscribe", response_class=HTMLResponse)
async def unsubscribe(
    email: Optional[str] = Query(None),
    token: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
    sheets: SheetClient = Depends(get_sheet_client),
):
    if not email or not token:
        return _page(settings, 400, False, "Invalid Link", "This unsubscribe link is invalid or incomplete.")

    normalized = unsubscribe_token.normalize_email(email)

    if not settings.UNSUBSCRIBE_SECRET:
        logger.error("UNSUBSCRIBE_SECRET not configured")
        return _page(settings, 500, False, "Service Error", "Unsubscribe service is not properly configured.")

    if not unsubscribe_token.verify(normalized, token, settings.UNSUBSCRIBE_SECRET):
        logger.warning("Invalid unsubscribe token presented")
        return _page(
            settings, 400, False, "Invalid Link",
            "This unsubscribe link is invalid or has expired. Please use the link from your most recent email.",
        )

    if not settings.NEWSLETTER_SCRIPT_URL:
        logger.error("NEWSLETTER_SCRIPT_URL not configured")
        return _page(settings, 500, False, "Service Error", "Service is not properly configured.")

    result = await sheets.post(
        settings.NEWSLETTER_SCRIPT_URL,
        {"email": normalized, "timestamp": _now_iso(), "action": "unsubscribe"},
    )
    if result.success:
        return _page(
            settings, 200, True, "Unsubscribed Successfully",
            f"You have been unsubscribed from our newsletter. You will no longer receive emails at {normalized}.",
        )

    logger.error("Subscriber sheet unsubscribe error: %s", result.error)
    if result.error == "Email not found":
        return _page(
            settings, 404, False, "Email Not Found",
            f"The email address {normalized} was not found in our subscriber list.",
        )
    return _page(
        settings, 500, False, "Something Went Wrong",
        "We couldn't process your unsubscribe request. Please try again later.",
    )
