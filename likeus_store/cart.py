"""Client-side shopping cart.

The cart keeps one line per (product, color, size) combination and a stored
total that is recomputed from the lines after every mutation. The state is
written to local storage on every change. On startup the lines are
rehydrated verbatim and the total is recomputed from them.
"""

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from .errors import CartError
from .storage import LocalStorage
from .utils import format_money, money, to_decimal

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "like-us-cart"

LineKey = Tuple[str, str, str]


@dataclass
class CartLine:
    product_id: str
    name: str
    price: Decimal
    quantity: int
    image: str = ""
    color: str = ""
    size: str = ""

    @property
    def key(self) -> LineKey:
        return (self.product_id, self.color, self.size)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def to_dict(self) -> Dict[str, object]:
        return {
            "productId": self.product_id,
            "name": self.name,
            "price": format_money(self.price),
            "quantity": self.quantity,
            "image": self.image,
            "color": self.color,
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "CartLine":
        if not isinstance(payload, dict):
            raise ValueError("Cart lines must be objects.")
        price = to_decimal(payload.get("price"))
        if price is None:
            raise ValueError(f"Cart line has an invalid price: {payload.get('price')!r}")
        return cls(
            product_id=str(payload.get("productId") or payload.get("product_id") or ""),
            name=str(payload.get("name") or ""),
            price=price,
            quantity=int(payload.get("quantity") or 0),
            image=str(payload.get("image") or ""),
            color=str(payload.get("color") or ""),
            size=str(payload.get("size") or ""),
        )


def _validate_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise CartError(f"Quantity must be a whole number, got {quantity!r}.")
    if quantity < 1:
        raise CartError(f"Quantity must be at least 1, got {quantity}.")


def validate_line(line: CartLine) -> None:
    if not str(line.product_id or "").strip():
        raise CartError("A cart line needs a product id.")
    price = to_decimal(line.price)
    if price is None or money(price) <= 0:
        raise CartError(f"Price must be greater than zero, got {line.price!r}.")
    _validate_quantity(line.quantity)


def compute_total(items: List[CartLine]) -> Decimal:
    return sum((item.line_total for item in items), Decimal("0"))


class CartStore:
    def __init__(self, storage: Optional[LocalStorage] = None, key: str = CART_STORAGE_KEY):
        self._storage = storage
        self._key = key
        self._items: List[CartLine] = []
        self._total = Decimal("0")
        self._rehydrate()

    @property
    def items(self) -> List[CartLine]:
        return [replace(item) for item in self._items]

    @property
    def total(self) -> Decimal:
        return self._total

    def _find_index(self, product_id: str, size: str, color: str) -> int:
        for index, item in enumerate(self._items):
            if item.key == (product_id, color, size):
                return index
        return -1

    def _commit(self, items: List[CartLine]) -> None:
        self._items = items
        self._total = compute_total(items)
        self._persist()

    def add_item(self, line: CartLine) -> None:
        validate_line(line)
        incoming = replace(line, price=money(to_decimal(line.price)))
        items = list(self._items)
        index = self._find_index(incoming.product_id, incoming.size, incoming.color)
        if index >= 0:
            existing = items[index]
            items[index] = replace(existing, quantity=existing.quantity + incoming.quantity)
        else:
            items.append(incoming)
        self._commit(items)

    def remove_item(self, product_id: str, size: str, color: str) -> None:
        if self._find_index(product_id, size, color) < 0:
            return
        items = [item for item in self._items if item.key != (product_id, color, size)]
        self._commit(items)

    def update_quantity(self, product_id: str, size: str, color: str, quantity: int) -> None:
        _validate_quantity(quantity)
        index = self._find_index(product_id, size, color)
        if index < 0:
            return
        items = list(self._items)
        items[index] = replace(items[index], quantity=quantity)
        self._commit(items)

    def clear_cart(self) -> None:
        self._commit([])

    def update_total(self) -> None:
        self._total = compute_total(self._items)
        self._persist()

    def get_total_items(self) -> int:
        return sum(item.quantity for item in self._items)

    def get_total_price(self) -> Decimal:
        return compute_total(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def to_order_items(self) -> List[Dict[str, object]]:
        return [
            {
                "productId": item.product_id,
                "quantity": item.quantity,
                "color": item.color,
                "size": item.size,
                "price": float(item.price),
                "name": item.name,
                "image": item.image,
            }
            for item in self._items
        ]

    def to_state(self) -> Dict[str, object]:
        return {
            "items": [item.to_dict() for item in self._items],
            "total": format_money(self._total),
        }

    # --- persistence ---

    def _persist(self) -> None:
        if self._storage is None:
            return
        self._storage.set_item(self._key, self.to_state())

    def _rehydrate(self) -> None:
        if self._storage is None:
            return
        try:
            state = self._storage.get_item(self._key)
        except (OSError, ValueError) as exc:
            logger.warning("Unable to read stored cart, starting empty: %s", exc)
            return
        if state is None:
            return
        try:
            items = [CartLine.from_dict(entry) for entry in state.get("items") or []]
            stored_total = to_decimal(state.get("total"))
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("Stored cart is malformed, starting empty: %s", exc)
            return
        total = compute_total(items)
        if stored_total != total:
            logger.warning(
                "Stored cart total %s does not match its lines, using %s", stored_total, total
            )
        self._items = items
        self._total = total
