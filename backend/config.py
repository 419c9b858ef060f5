# backend/config.py
from functools import lru_cache
from pathlib import Path
from typing import ClassVar, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"


class Settings(BaseSettings):
    # Comma separated; "*" allows every origin
    ALLOWED_ORIGINS: str = "https://thecookieisle.com"
    TRUSTED_DOMAINS: str = "thecookieisle.com,cookieisle.com,pages.dev"

    STRIPE_SECRET_KEY: str = ""
    STRIPE_API_URL: str = "https://api.stripe.com"
    STRIPE_API_VERSION: str = "2023-10-16"
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE: int = 300

    # Spreadsheet-backed web apps (orders and newsletter subscribers)
    ORDER_SHEET_SCRIPT_URL: str = ""
    NEWSLETTER_SCRIPT_URL: str = ""
    UNSUBSCRIBE_SECRET: str = ""

    CALENDAR_ICAL_URL: str = ""
    EVENT_PREFIX: str = "Drop Window"
    CACHE_TTL: int = 300

    SITE_URL: str = "https://thecookieisle.com"
    HTTP_TIMEOUT: float = 10.0

    # Optional JSON document with storefront checkout rules
    CHECKOUT_CONFIG_PATH: str = ""

    class Config:
        env_file: ClassVar[str] = str(env_path)

    @property
    def allowed_origins(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def trusted_domains(self) -> List[str]:
        return [d.strip().lower() for d in self.TRUSTED_DOMAINS.split(",") if d.strip()]


# Promo code definition as configured by the site owner
class PromoCode(BaseModel):
    type: Literal["flat", "percent"]
    value: float


# Storefront checkout rules, built once and passed to the pricing/checkout code
class CheckoutConfig(BaseModel):
    order_endpoint_url: str = ""
    allowed_zips: List[str] = Field(default_factory=lambda: ["92118"])
    max_order_quantity: int = 50
    max_order_message: str = "For orders of more than 50 cookies, please contact us."
    contact_email: str = ""
    pickup_enabled: bool = True
    delivery_enabled: bool = True
    slots_feed_url: str = ""
    drop_window_unit_limit: int = 200
    drop_window_sold_out_message: str = "Sold out for this date"
    tax_rate: float = 0.0775
    small_order_fee_threshold: float = 10.0
    promo_codes: Dict[str, PromoCode] = Field(default_factory=dict)
    # Sent as the Origin header when posting orders
    site_origin: str = ""

    # Promo lookups are case-insensitive, so keys are stored lowercased
    @field_validator("promo_codes")
    @classmethod
    def lowercase_promo_codes(cls, value: Dict[str, PromoCode]) -> Dict[str, PromoCode]:
        return {code.lower(): promo for code, promo in value.items()}


def load_checkout_config(path: Optional[str] = None) -> CheckoutConfig:
    if not path:
        return CheckoutConfig()
    raw = Path(path).read_text(encoding="utf-8")
    return CheckoutConfig.model_validate_json(raw)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


# Checkout rules for the storefront, read from CHECKOUT_CONFIG_PATH when set
def get_checkout_config() -> CheckoutConfig:
    return load_checkout_config(get_settings().CHECKOUT_CONFIG_PATH)
