"""Client for the backend's mocked payment endpoints."""

import logging
from decimal import Decimal
from typing import Any, Dict

from .client import DataClient
from .errors import ApiError, PaymentError
from .utils import to_cents, to_decimal

logger = logging.getLogger(__name__)


class PaymentGateway:
    def __init__(self, client: DataClient):
        self._client = client

    def create_intent(self, amount: Decimal, currency: str = "usd") -> Dict[str, Any]:
        decimal_amount = to_decimal(amount)
        if decimal_amount is None or decimal_amount <= 0:
            raise PaymentError(f"Cannot charge a non-positive amount: {amount!r}")
        try:
            intent = self._client.request(
                "POST",
                "payment/create-intent",
                payload={"amount": to_cents(decimal_amount), "currency": currency},
            )
        except ApiError as exc:
            logger.error("Error creating payment intent: %s", exc)
            raise PaymentError("Failed to create payment intent") from exc
        if not isinstance(intent, dict) or not intent.get("id"):
            raise PaymentError("Payment provider returned an invalid intent.")
        return intent

    def confirm(self, payment_intent_id: str) -> Dict[str, Any]:
        try:
            result = self._client.request(
                "POST", "payment/success", payload={"paymentIntentId": payment_intent_id}
            )
        except ApiError as exc:
            logger.error("Error handling payment success: %s", exc)
            raise PaymentError("Failed to process payment success") from exc
        if not isinstance(result, dict) or result.get("status") != "succeeded":
            raise PaymentError(f"Payment {payment_intent_id} did not succeed.")
        return result
