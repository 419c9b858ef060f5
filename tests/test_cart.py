import json

import pytest

from storefront.cart import STORAGE_KEY, CartStore, format_money, format_price
from storefront.errors import StorageUnavailableError
from storefront.storage import JsonFileStorage, MemoryStorage


class BrokenStorage:
    def get(self, key):
        raise StorageUnavailableError("quota")

    def set(self, key, value):
        raise StorageUnavailableError("quota")

    def remove(self, key):
        raise StorageUnavailableError("quota")


def test_add_item_merges_same_product(cart_store):
    cart_store.add_item("Chocolate Chip", 350, 1, "price_cc")
    cart = cart_store.add_item("Chocolate Chip", 350, 2)
    assert len(cart.items) == 1
    assert cart.items[0].quantity == 3
    assert cart.items[0].price_ref == "price_cc"


def test_add_item_backfills_missing_price_ref(cart_store):
    cart_store.add_item("Snickerdoodle", 300)
    cart = cart_store.add_item("Snickerdoodle", 300, 1, "price_sd")
    assert cart.items[0].price_ref == "price_sd"


def test_add_item_rejects_bad_input(cart_store):
    with pytest.raises(ValueError):
        cart_store.add_item("Snickerdoodle", 300, 0)
    with pytest.raises(ValueError):
        cart_store.add_item("Snickerdoodle", -1, 1)


def test_totals_and_count(cart_store):
    cart_store.add_item("Chocolate Chip", 350, 2)
    cart_store.add_item("Sugar", 125, 1)
    assert cart_store.total_cents() == 825
    assert cart_store.total_formatted() == "$8.25"
    assert cart_store.count() == 3
    assert not cart_store.is_empty()


def test_set_quantity_zero_removes(cart_store):
    cart_store.add_item("Sugar", 125, 3)
    cart = cart_store.set_quantity("Sugar", 0)
    assert cart.is_empty()


def test_set_quantity_unknown_product_is_noop(cart_store):
    cart_store.add_item("Sugar", 125, 3)
    cart = cart_store.set_quantity("Oatmeal", 5)
    assert cart.count() == 3


def test_increment_and_decrement(cart_store):
    cart_store.add_item("Sugar", 125, 1)
    assert cart_store.increment("Sugar").count() == 2
    assert cart_store.decrement("Sugar").count() == 1
    assert cart_store.decrement("Sugar").is_empty()


def test_remove_item_and_clear(cart_store):
    cart_store.add_item("Sugar", 125, 1)
    cart_store.add_item("Oatmeal", 300, 1)
    assert [i.product for i in cart_store.remove_item("Sugar").items] == ["Oatmeal"]
    assert cart_store.clear().is_empty()
    assert cart_store.is_empty()


def test_cart_is_persisted_as_versioned_document():
    storage = MemoryStorage()
    CartStore(storage).add_item("Sugar", 125, 2, "price_sugar")
    document = json.loads(storage.get(STORAGE_KEY))
    assert document["version"] == "1.0"
    assert document["items"] == [{"product": "Sugar", "price_cents": 125, "qty": 2, "price_id": "price_sugar"}]
    assert document["updated_at"]

    # A second store on the same storage sees the same cart
    assert CartStore(storage).count() == 2


def test_corrupt_storage_falls_back_to_memory():
    storage = MemoryStorage()
    store = CartStore(storage)
    store.add_item("Sugar", 125, 1)
    storage.set(STORAGE_KEY, "{not json")
    assert store.count() == 1


def test_unavailable_storage_uses_memory_cart():
    store = CartStore(BrokenStorage())
    assert not store.is_storage_available()
    store.add_item("Sugar", 125, 2)
    assert store.count() == 2


def test_returned_cart_is_a_copy(cart_store):
    cart_store.add_item("Sugar", 125, 1)
    cart = cart_store.get_cart()
    cart.items[0].quantity = 99
    assert cart_store.count() == 1


def test_json_file_storage(tmp_path):
    path = tmp_path / "storage.json"
    store = CartStore(JsonFileStorage(path))
    store.add_item("Sugar", 125, 2)
    assert CartStore(JsonFileStorage(path)).count() == 2


def test_format_helpers():
    assert format_price(350) == "$3.50"
    assert format_money(7.2919) == "$7.29"
    assert format_money(1234.5) == "$1,234.50"


def test_add_then_remove_restores_previous_cart(cart_store):
    cart_store.add_item("Sugar", 125, 2)
    before = [item.to_dict() for item in cart_store.get_cart().items]
    cart_store.add_item("Oatmeal", 300, 1)
    after = cart_store.remove_item("Oatmeal")
    assert [item.to_dict() for item in after.items] == before
