# backend/storefront/cart.py
import copy
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from storefront.errors import StorageUnavailableError

logger = logging.getLogger(__name__)

STORAGE_KEY = "cookieisle_cart"
CART_VERSION = "1.0"


# Represents a single product line in the cart
@dataclass
class CartItem:
    product: str
    unit_price_cents: int
    quantity: int
    price_ref: Optional[str] = None  # Stripe Price ID

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": self.product,
            "price_cents": self.unit_price_cents,
            "qty": self.quantity,
            "price_id": self.price_ref,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartItem":
        return cls(
            product=data["product"],
            unit_price_cents=int(data["price_cents"]),
            quantity=int(data["qty"]),
            price_ref=data.get("price_id"),
        )


@dataclass
class Cart:
    items: List[CartItem] = field(default_factory=list)
    version: str = CART_VERSION
    updated_at: Optional[datetime] = None

    def find(self, product: str) -> Optional[CartItem]:
        return next((item for item in self.items if item.product == product), None)

    def total_cents(self) -> int:
        return sum(item.line_total_cents for item in self.items)

    def count(self) -> int:
        return sum(item.quantity for item in self.items)

    def is_empty(self) -> bool:
        return not self.items


def format_price(cents: int) -> str:
    return f"${cents / 100:.2f}"


def format_money(dollars: float) -> str:
    return f"${dollars:,.2f}"


class CartStore:
    """Cart persisted in a key/value storage, with an in-memory fallback.

    Every mutation returns the updated Cart. When the storage cannot be used
    the cart keeps working for the lifetime of the store.
    """

    def __init__(self, storage=None):
        self.storage = storage
        self._memory_cart = Cart()
        self._storage_available: Optional[bool] = None

    def is_storage_available(self) -> bool:
        if self._storage_available is not None:
            return self._storage_available
        if self.storage is None:
            self._storage_available = False
            return False
        try:
            test_key = "__storage_test__"
            self.storage.set(test_key, test_key)
            self.storage.remove(test_key)
            self._storage_available = True
        except StorageUnavailableError as e:
            logger.warning("Storage not available, using in-memory cart: %s", e)
            self._storage_available = False
        return self._storage_available

    def get_cart(self) -> Cart:
        if not self.is_storage_available():
            return copy.deepcopy(self._memory_cart)

        try:
            stored = self.storage.get(STORAGE_KEY)
            if not stored:
                return Cart()
            data = json.loads(stored)
            # Older versions share the same item layout
            items = [CartItem.from_dict(raw) for raw in data.get("items") or []]
            updated_at = data.get("updated_at")
            updated_at = datetime.fromisoformat(updated_at) if updated_at else None
        except (StorageUnavailableError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error("Error reading cart from storage: %s", e)
            return copy.deepcopy(self._memory_cart)

        return Cart(items=items, version=data.get("version") or CART_VERSION, updated_at=updated_at)

    def _save(self, cart: Cart) -> Cart:
        cart.version = CART_VERSION
        cart.updated_at = datetime.now(timezone.utc)
        # Memory copy is always kept as a backup
        self._memory_cart = copy.deepcopy(cart)

        if self.is_storage_available():
            document = {
                "version": cart.version,
                "items": [item.to_dict() for item in cart.items],
                "updated_at": cart.updated_at.isoformat(),
            }
            try:
                self.storage.set(STORAGE_KEY, json.dumps(document))
            except StorageUnavailableError as e:
                logger.error("Error saving cart to storage: %s", e)
        return cart

    def add_item(self, product: str, unit_price_cents: int, qty: int = 1, price_ref: Optional[str] = None) -> Cart:
        if qty < 1:
            raise ValueError("qty must be at least 1")
        if unit_price_cents < 0:
            raise ValueError("unit_price_cents must not be negative")

        cart = self.get_cart()
        item = cart.find(product)
        if item:
            item.quantity += qty
            if price_ref and not item.price_ref:
                item.price_ref = price_ref
        else:
            cart.items.append(CartItem(product, unit_price_cents, qty, price_ref))
        return self._save(cart)

    def remove_item(self, product: str) -> Cart:
        cart = self.get_cart()
        cart.items = [item for item in cart.items if item.product != product]
        return self._save(cart)

    def set_quantity(self, product: str, qty: int) -> Cart:
        if qty <= 0:
            return self.remove_item(product)
        cart = self.get_cart()
        item = cart.find(product)
        if item:
            item.quantity = qty
            return self._save(cart)
        return cart

    def increment(self, product: str) -> Cart:
        cart = self.get_cart()
        item = cart.find(product)
        if item:
            item.quantity += 1
            return self._save(cart)
        return cart

    def decrement(self, product: str) -> Cart:
        cart = self.get_cart()
        item = cart.find(product)
        if item:
            if item.quantity <= 1:
                return self.remove_item(product)
            item.quantity -= 1
            return self._save(cart)
        return cart

    def get_item(self, product: str) -> Optional[CartItem]:
        return self.get_cart().find(product)

    def total_cents(self) -> int:
        return self.get_cart().total_cents()

    def total_formatted(self) -> str:
        return format_price(self.total_cents())

    def count(self) -> int:
        return self.get_cart().count()

    def is_empty(self) -> bool:
        return self.get_cart().is_empty()

    def clear(self) -> Cart:
        return self._save(Cart())
