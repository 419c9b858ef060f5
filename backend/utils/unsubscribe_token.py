# backend/utils/unsubscribe_token.py
import hashlib
import hmac
import logging
from typing import Optional
from urllib.parse import urlencode, urljoin

logger = logging.getLogger(__name__)

# Hex characters kept from the digest (shorter unsubscribe links)
TOKEN_LENGTH = 32


def normalize_email(email: str) -> str:
    return email.strip().lower()


def issue(email: str, secret: str) -> str:
    """Returns the unsubscribe token for an address.

    The spreadsheet backend computes the same value independently, so the
    normalisation and truncation here must not change.
    """
    digest = hmac.new(
        secret.encode("utf-8"),
        normalize_email(email).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return digest[:TOKEN_LENGTH]


def verify(email: Optional[str], token: Optional[str], secret: Optional[str]) -> bool:
    # Any missing piece is simply an invalid link
    if not email or not token or not secret:
        return False
    try:
        expected = issue(email, secret)
    except (TypeError, AttributeError, UnicodeError) as e:
        logger.warning("Unsubscribe token check failed: %s", e)
        return False
    return hmac.compare_digest(expected.encode("utf-8"), token.encode("utf-8"))


# Link embedded in newsletter emails
def build_unsubscribe_url(base_url: str, email: str, secret: str) -> str:
    query = urlencode({"email": normalize_email(email), "token": issue(email, secret)})
    return f"{urljoin(base_url, '/unsubscribe')}?{query}"
