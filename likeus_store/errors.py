from typing import Optional


class StoreError(Exception):
    """Base class for storefront errors."""


class ApiError(StoreError):
    """The backend could not be reached or answered with a failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class ValidationError(StoreError, ValueError):
    """A mutation or filter was rejected before it reached the backend."""


class CartError(ValidationError):
    pass


class AuthError(StoreError):
    pass


class PaymentError(StoreError):
    pass


class CheckoutError(StoreError):
    pass
