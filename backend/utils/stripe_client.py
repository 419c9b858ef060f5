# backend/utils/stripe_client.py
import hashlib
import hmac
import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode, urljoin

import httpx
from fastapi import Depends

from config import Settings, get_settings

logger = logging.getLogger(__name__)


class StripeError(Exception):
    """Error reported by the Stripe API (or raised while talking to it)."""

    def __init__(self, message: str, *, type: Optional[str] = None, code: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.type = type
        self.code = code
        self.status_code = status_code


class SignatureVerificationError(Exception):
    pass


def _flatten_params(value: Any, prefix: str = "") -> List[Tuple[str, str]]:
    # Stripe expects form encoding with bracketed keys: line_items[0][price]=...
    pairs: List[Tuple[str, str]] = []
    if isinstance(value, dict):
        for key, item in value.items():
            pairs.extend(_flatten_params(item, f"{prefix}[{key}]" if prefix else str(key)))
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            pairs.extend(_flatten_params(item, f"{prefix}[{index}]"))
    elif value is None:
        pass
    elif isinstance(value, bool):
        pairs.append((prefix, "true" if value else "false"))
    else:
        pairs.append((prefix, str(value)))
    return pairs


class StripeClient:
    def __init__(self, secret_key: str, api_url: str = "https://api.stripe.com",
                 api_version: str = "2023-10-16", timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.secret_key = secret_key
        self.api_url = api_url
        self.api_version = api_version
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Stripe-Version": self.api_version,
            "Content-Type": "application/x-www-form-urlencoded",
        }

    async def create_checkout_session(self, params: Dict[str, Any]) -> Dict[str, Any]:
        # Create a hosted Checkout Session and return the session object
        session_url = urljoin(self.api_url, "/v1/checkout/sessions")
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    session_url,
                    content=urlencode(_flatten_params(params)),
                    headers=self._headers(),
                )
            except httpx.RequestError as e:
                logger.error(f"Stripe connection error: {e}")
                raise StripeError(f"Could not reach payment provider: {e}", type="api_connection_error") from e

        if response.status_code >= 400:
            try:
                error = response.json().get("error", {})
            except ValueError:
                error = {}
            message = error.get("message") or f"Stripe returned HTTP {response.status_code}"
            logger.error(f"Stripe create session error: status={response.status_code} message={message}")
            raise StripeError(
                message,
                type=error.get("type"),
                code=error.get("code"),
                status_code=response.status_code,
            )

        return response.json()


def _parse_signature_header(header: str) -> Tuple[Optional[int], List[str]]:
    timestamp = None
    signatures = []
    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


def verify_webhook(payload: bytes, sig_header: Optional[str], secret: str,
                   tolerance: int = 300, now: Optional[float] = None) -> Dict[str, Any]:
    """Verifies a Stripe-Signature header and returns the decoded event.

    The signed content is ``"<timestamp>.<raw body>"`` under HMAC-SHA256 with
    the endpoint secret. Raises SignatureVerificationError on any mismatch.
    """
    if not secret:
        raise SignatureVerificationError("Webhook secret not configured")
    if not sig_header:
        raise SignatureVerificationError("Missing Stripe-Signature header")

    timestamp, signatures = _parse_signature_header(sig_header)
    if timestamp is None or not signatures:
        raise SignatureVerificationError("Unable to extract timestamp and signatures from header")

    signed_payload = str(timestamp).encode("utf-8") + b"." + payload
    expected = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, s) for s in signatures if s.isascii()):
        raise SignatureVerificationError("No signatures found matching the expected signature for payload")

    now = time.time() if now is None else now
    if tolerance and timestamp < now - tolerance:
        raise SignatureVerificationError("Timestamp outside the tolerance zone")

    try:
        return json.loads(payload)
    except ValueError as e:
        raise SignatureVerificationError(f"Invalid payload: {e}") from e


# Header value for a payload, used when sending test events
def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed_payload = str(timestamp).encode("utf-8") + b"." + payload
    signature = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def get_stripe_client(settings: Settings = Depends(get_settings)) -> StripeClient:
    return StripeClient(
        secret_key=settings.STRIPE_SECRET_KEY,
        api_url=settings.STRIPE_API_URL,
        api_version=settings.STRIPE_API_VERSION,
        timeout=settings.HTTP_TIMEOUT,
    )
