import logging
from typing import Dict, Optional

from .auth import AuthSession
from .cart import CartStore
from .client import DataClient
from .errors import CheckoutError
from .payments import PaymentGateway
from .utils import money

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = (
    "firstName",
    "lastName",
    "address1",
    "address2",
    "city",
    "state",
    "postalCode",
    "country",
    "phone",
)
ADDRESS_REQUIRED_FIELDS = tuple(field for field in ADDRESS_FIELDS if field != "address2")


def normalize_shipping_address(payload: Optional[Dict]) -> Dict[str, str]:
    if not isinstance(payload, dict):
        payload = {}
    normalized = {field: str(payload.get(field) or "").strip() for field in ADDRESS_FIELDS}
    missing = [field for field in ADDRESS_REQUIRED_FIELDS if not normalized[field]]
    if missing:
        raise CheckoutError(f"Shipping address is missing: {', '.join(missing)}")
    return normalized


class CheckoutService:
    def __init__(
        self,
        cart: CartStore,
        auth: AuthSession,
        client: DataClient,
        payments: PaymentGateway,
    ):
        self.cart = cart
        self.auth = auth
        self.client = client
        self.payments = payments

    def place_order(self, shipping_address: Dict, payment_method: str = "stripe") -> str:
        """Charge the cart, record the order and empty the cart.

        The cart is cleared only after the order insert succeeded; any failure
        before that point propagates and leaves the cart as it was.
        """
        user = self.auth.user
        if not user:
            raise CheckoutError("Please log in to complete your purchase")
        if self.cart.is_empty():
            raise CheckoutError("Your cart is empty")

        address = normalize_shipping_address(shipping_address)
        total = money(self.cart.get_total_price())

        intent = self.payments.create_intent(total)
        self.payments.confirm(intent["id"])

        order_data = {
            "userId": str(user["_id"]),
            "items": self.cart.to_order_items(),
            "total": float(total),
            "status": "processing",
            "shippingAddress": address,
            "paymentMethod": payment_method,
            "paymentStatus": "paid",
            "paymentIntentId": intent["id"],
        }
        result = self.client.orders.insert_one(order_data)

        self.cart.clear_cart()
        logger.info("Order %s placed for user %s", result.inserted_id, user["_id"])
        return result.inserted_id
