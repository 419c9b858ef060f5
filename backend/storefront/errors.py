# backend/storefront/errors.py
from typing import Dict


class CheckoutError(Exception):
    pass


class EmptyCartError(CheckoutError):
    def __init__(self, message: str = "Your cart is empty. Please add some cookies first!"):
        super().__init__(message)
        self.message = message


class MaxQuantityExceededError(CheckoutError):
    def __init__(self, message: str, limit: int):
        super().__init__(message)
        self.message = message
        self.limit = limit


# Field name -> message, shown next to the offending inputs
class ValidationError(CheckoutError):
    def __init__(self, errors: Dict[str, str]):
        super().__init__(", ".join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = errors


# Delivery address outside the served ZIP codes; the UI offers switching to pickup
class ZipNotServedError(CheckoutError):
    def __init__(self, zip_code: str):
        super().__init__(f"Delivery is not available for ZIP {zip_code}")
        self.zip_code = zip_code


class SlotUnavailableError(CheckoutError):
    pass


class StorageUnavailableError(Exception):
    pass
