# backend/utils/origins.py
from typing import Optional
from urllib.parse import urlsplit

from config import Settings


# Check if the request origin is permitted
def is_origin_allowed(origin: Optional[str], settings: Settings) -> bool:
    if settings.ALLOWED_ORIGINS.strip() == "*":
        return True
    if not origin:
        return False
    if origin in settings.allowed_origins:
        return True

    # Any subdomain of the site or of the preview host is trusted as well
    try:
        hostname = (urlsplit(origin).hostname or "").lower()
    except ValueError:
        return False
    if not hostname:
        return False
    return any(
        hostname == domain or hostname.endswith("." + domain)
        for domain in settings.trusted_domains
    )


# Value for Access-Control-Allow-Origin: mirror when allowed, else the first configured origin
def cors_origin(origin: Optional[str], settings: Settings) -> str:
    if origin and is_origin_allowed(origin, settings):
        return origin
    allowed = settings.allowed_origins
    return allowed[0] if allowed else "*"
