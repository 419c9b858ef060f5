import json
from datetime import timezone

import httpx
import pytest

from storefront.checkout import Checkout, CheckoutForm, CheckoutState, is_zip_served
from storefront.errors import (
    EmptyCartError,
    MaxQuantityExceededError,
    ValidationError,
    ZipNotServedError,
)
from storefront.slot_selector import SlotSelector
from storefront.storage import MemoryStorage

ORDER_URL = "https://api.example.com/session"

SLOTS = [
    {
        "id": "sat-both",
        "date": "2024-12-21",
        "date_formatted": "Saturday, December 21",
        "start_time": "6:00 PM",
        "end_time": "8:00 PM",
        "start_timestamp": "2024-12-21T18:00:00Z",
        "end_timestamp": "2024-12-21T20:00:00Z",
        "type": "both",
        "title": "Drop Window",
        "description": "",
    }
]


def pickup_form(**overrides):
    values = dict(first_name="Ann", last_name="Baker", email="ann@example.com", phone="555-0100")
    values.update(overrides)
    return CheckoutForm(**values)


def delivery_form(**overrides):
    values = dict(street_address="1 Orange Ave", city="Coronado", state="CA", zip_code="92118")
    values.update(overrides)
    return pickup_form(**values)


def http_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture()
def filled_cart(cart_store):
    cart_store.add_item("Chocolate Chip", 350, 2, "price_cc")
    return cart_store


def test_initial_state_follows_cart(checkout_config, cart_store):
    checkout = Checkout(checkout_config, cart_store)
    assert checkout.state is CheckoutState.EMPTY
    cart_store.add_item("Sugar", 125, 1)
    checkout.on_cart_mutated()
    assert checkout.state is CheckoutState.FILLING


def test_apply_promo_updates_breakdown(checkout_config, filled_cart):
    checkout = Checkout(checkout_config, filled_cart)
    result = checkout.apply_promo("save10")
    assert result.message == "Code SAVE10 applied!"
    assert checkout.breakdown().discount == pytest.approx(0.70)

    # An invalid code clears the active one, an empty one leaves it
    checkout.apply_promo("")
    assert checkout.active_promo is not None
    checkout.apply_promo("bogus")
    assert checkout.active_promo is None


def test_empty_cart_is_rejected(checkout_config, cart_store):
    with pytest.raises(EmptyCartError):
        Checkout(checkout_config, cart_store).submit(pickup_form())


def test_over_max_quantity_is_rejected(checkout_config, cart_store):
    cart_store.add_item("Sugar", 125, 51)
    checkout = Checkout(checkout_config, cart_store)
    assert checkout.max_quantity_warning() == checkout_config.max_order_message
    assert not checkout.can_increment()
    with pytest.raises(MaxQuantityExceededError):
        checkout.submit(pickup_form())


def test_at_max_quantity_cannot_increment(checkout_config, cart_store):
    cart_store.add_item("Sugar", 125, 50)
    checkout = Checkout(checkout_config, cart_store)
    assert checkout.max_quantity_warning() is None
    assert not checkout.can_increment()


def test_missing_customer_fields(checkout_config, filled_cart):
    with pytest.raises(ValidationError) as exc:
        Checkout(checkout_config, filled_cart).submit(pickup_form(first_name=" ", email="not-an-email"))
    assert set(exc.value.errors) == {"first_name", "email"}


def test_delivery_requires_address(checkout_config, filled_cart):
    checkout = Checkout(checkout_config, filled_cart, fulfillment_type="delivery")
    with pytest.raises(ValidationError) as exc:
        checkout.submit(delivery_form(street_address="", zip_code="9211"))
    assert set(exc.value.errors) == {"street_address", "zip_code"}


def test_delivery_outside_area_offers_pickup(checkout_config, filled_cart):
    checkout = Checkout(checkout_config, filled_cart, fulfillment_type="delivery")
    with pytest.raises(ZipNotServedError) as exc:
        checkout.submit(delivery_form(zip_code="90210"))
    assert exc.value.zip_code == "90210"

    checkout.switch_to_pickup()
    assert checkout.fulfillment_type == "pickup"
    assert checkout.submit(delivery_form(zip_code="90210")).success


def test_zip_plus_four_is_served(checkout_config):
    assert is_zip_served("92118-1234", checkout_config)
    assert not is_zip_served("92119", checkout_config)


def test_disabled_fulfillment_type(checkout_config, filled_cart):
    checkout_config.delivery_enabled = False
    checkout = Checkout(checkout_config, filled_cart)
    with pytest.raises(ValueError):
        checkout.on_fulfillment_type_changed("delivery")


def test_submit_without_endpoint_simulates_success(checkout_config, filled_cart):
    checkout = Checkout(checkout_config, filled_cart)
    result = checkout.submit(pickup_form())
    assert result.success
    assert checkout.state is CheckoutState.SUCCESS
    assert filled_cart.is_empty()
    assert "Name: Ann Baker" in result.summary
    assert "Chocolate Chip x 2  $7.00" in result.summary


def test_submit_posts_recomputed_payload(checkout_config, filled_cart):
    checkout_config.order_endpoint_url = ORDER_URL
    checkout_config.site_origin = "https://thecookieisle.com"
    seen = {}

    def handler(request):
        seen["origin"] = request.headers.get("origin")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"url": "https://checkout.stripe.com/c/pay/cs_1"})

    checkout = Checkout(checkout_config, filled_cart, client=http_client(handler), fulfillment_type="delivery")
    checkout.apply_promo("SAVE10")
    result = checkout.submit(delivery_form(apt_unit="Apt 2"))

    assert result.success
    assert result.redirect_url == "https://checkout.stripe.com/c/pay/cs_1"
    assert seen["origin"] == "https://thecookieisle.com"

    body = seen["body"]
    assert body["customer"]["email"] == "ann@example.com"
    assert body["fulfillment"]["type"] == "delivery"
    assert body["fulfillment"]["address"]["apt_unit"] == "Apt 2"
    assert body["order"] == [{"product": "Chocolate Chip", "qty": 2, "price": 3.5, "price_id": "price_cc"}]
    assert body["promo_code"] == "SAVE10"
    assert body["subtotal"] == pytest.approx(7.00)
    assert body["discount"] == pytest.approx(0.70)
    assert body["total"] == pytest.approx(6.30 * 1.0775 * 1.03 + 0.30)
    assert filled_cart.is_empty()


def test_server_error_keeps_cart_and_allows_retry(checkout_config, filled_cart):
    checkout_config.order_endpoint_url = ORDER_URL
    client = http_client(lambda request: httpx.Response(500, json={"error": "boom"}))
    checkout = Checkout(checkout_config, filled_cart, client=client)

    result = checkout.submit(pickup_form())

    assert not result.success
    assert checkout.state is CheckoutState.ERROR
    assert checkout.last_error
    assert filled_cart.count() == 2

    checkout.retry()
    assert checkout.state is CheckoutState.FILLING
    assert checkout.last_error is None


def test_unsuccessful_body_is_an_error(checkout_config, filled_cart):
    checkout_config.order_endpoint_url = ORDER_URL
    client = http_client(lambda request: httpx.Response(200, json={"success": False, "error": "Sheet locked"}))
    checkout = Checkout(checkout_config, filled_cart, client=client)

    result = checkout.submit(pickup_form())
    assert result.error == "Sheet locked"
    assert checkout.state is CheckoutState.ERROR


def test_network_failure_is_an_error(checkout_config, filled_cart):
    checkout_config.order_endpoint_url = ORDER_URL

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    checkout = Checkout(checkout_config, filled_cart, client=http_client(handler))
    assert not checkout.submit(pickup_form()).success
    assert checkout.state is CheckoutState.ERROR


def test_slot_required_and_recorded(checkout_config, filled_cart):
    checkout_config.slots_feed_url = "https://api.example.com/slots"
    storage = MemoryStorage()
    selector = SlotSelector(
        checkout_config,
        storage=storage,
        fetcher=lambda url: {"success": True, "slots": SLOTS},
        tz=timezone.utc,
    )
    checkout = Checkout(checkout_config, filled_cart, slot_selector=selector)

    with pytest.raises(ValidationError) as exc:
        checkout.submit(pickup_form())
    assert "fulfillment_slot" in exc.value.errors

    checkout.on_slot_selected("sat-both")
    result = checkout.submit(pickup_form())

    assert result.payload.fulfillment.slot.id == "sat-both"
    assert result.payload.fulfillment.slot.start_time == "6:00 PM"
    assert "Time: 2024-12-21 6:00 PM - 8:00 PM" in result.summary
    assert selector.order_counts() == {"2024-12-21": 2}
