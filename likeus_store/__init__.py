from .cart import CartLine, CartStore
from .client import DataClient, DeleteResult, InsertOneResult, UpdateResult
from .config import Settings
from .errors import (
    ApiError,
    AuthError,
    CartError,
    CheckoutError,
    PaymentError,
    StoreError,
    ValidationError,
)
from .events import ChangeEvent, EventBus
from .polling import CollectionPoller, PollingSynchronizer
from .storefront import Storefront, create_storefront

__all__ = [
    "ApiError",
    "AuthError",
    "CartError",
    "CartLine",
    "CartStore",
    "ChangeEvent",
    "CheckoutError",
    "CollectionPoller",
    "DataClient",
    "DeleteResult",
    "EventBus",
    "InsertOneResult",
    "PaymentError",
    "PollingSynchronizer",
    "Settings",
    "StoreError",
    "Storefront",
    "UpdateResult",
    "ValidationError",
    "create_storefront",
]
