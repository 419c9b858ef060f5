import pytest
from fastapi.testclient import TestClient

from config import CheckoutConfig, PromoCode, Settings, get_settings
from main import create_app
from storefront.cart import CartStore
from storefront.storage import MemoryStorage
from utils.sheet_client import SinkResult, get_sheet_client
from utils.stripe_client import get_stripe_client

ORIGIN = "https://thecookieisle.com"


# Records everything posted to the spreadsheet sinks
class FakeSheetClient:
    def __init__(self, result=None):
        self.result = result or SinkResult(success=True)
        self.posts = []
        self.orders = []

    async def post(self, url, payload):
        self.posts.append((url, payload))
        return self.result

    async def forward_order(self, url, payload):
        self.orders.append((url, payload))
        return True


class FakeStripeClient:
    def __init__(self, session=None, error=None):
        self.session = session or {"id": "cs_test_123", "url": "https://checkout.stripe.com/c/pay/cs_test_123"}
        self.error = error
        self.calls = []

    async def create_checkout_session(self, params):
        self.calls.append(params)
        if self.error:
            raise self.error
        return self.session


@pytest.fixture()
def settings():
    return Settings(
        ALLOWED_ORIGINS=ORIGIN,
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_WEBHOOK_SECRET="whsec_test",
        ORDER_SHEET_SCRIPT_URL="https://sheets.example.com/orders",
        NEWSLETTER_SCRIPT_URL="https://sheets.example.com/newsletter",
        UNSUBSCRIBE_SECRET="unsub-secret",
        CALENDAR_ICAL_URL="https://calendar.example.com/basic.ics",
        SITE_URL=ORIGIN,
    )


@pytest.fixture()
def sheets():
    return FakeSheetClient()


@pytest.fixture()
def stripe():
    return FakeStripeClient()


@pytest.fixture()
def client(settings, sheets, stripe):
    app = create_app(settings)
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_sheet_client] = lambda: sheets
    app.dependency_overrides[get_stripe_client] = lambda: stripe
    return TestClient(app)


@pytest.fixture()
def checkout_config():
    return CheckoutConfig(
        allowed_zips=["92118"],
        max_order_quantity=50,
        max_order_message="For orders of more than 50 cookies, please contact us.",
        tax_rate=0.0775,
        small_order_fee_threshold=10.0,
        promo_codes={
            "save10": PromoCode(type="percent", value=10),
            "fiver": PromoCode(type="flat", value=5),
        },
    )


@pytest.fixture()
def cart_store():
    return CartStore(MemoryStorage())
