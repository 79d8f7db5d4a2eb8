"""Admin dashboard view state kept current by change events."""

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List

from .client import DataClient
from .events import EventBus
from .utils import money, to_decimal

logger = logging.getLogger(__name__)


@dataclass
class DashboardStats:
    total_users: int = 0
    total_orders: int = 0
    total_revenue: Decimal = Decimal("0.00")


def _order_total(order: Dict[str, Any]) -> Decimal:
    return to_decimal(order.get("total"), Decimal("0"))


def _contains(records: List[Dict[str, Any]], record: Dict[str, Any]) -> bool:
    return any(existing.get("_id") == record.get("_id") for existing in records)


class DashboardState:
    def __init__(self, client: DataClient, bus: EventBus):
        self._client = client
        self._bus = bus
        self.products: List[Dict[str, Any]] = []
        self.orders: List[Dict[str, Any]] = []
        self.stats = DashboardStats()
        self._attached = False
        # Handlers may run on poller threads as well as the caller's thread.
        self._lock = threading.Lock()

    def _handlers(self):
        return (
            ("productCreated", self.on_product_created),
            ("productUpdated", self.on_product_updated),
            ("productDeleted", self.on_product_deleted),
            ("orderCreated", self.on_order_created),
            ("orderUpdated", self.on_order_updated),
        )

    def load(self) -> DashboardStats:
        users = self._client.users.find({})
        orders = self._client.orders.find({})
        products = self._client.products.find({})
        with self._lock:
            self.orders = orders
            self.products = products
            self.stats = DashboardStats(total_users=len(users))
            self._refresh_order_stats()
            return self.stats

    def attach(self) -> None:
        if self._attached:
            return
        for name, handler in self._handlers():
            self._bus.on(name, handler)
        self._attached = True

    def detach(self) -> None:
        if not self._attached:
            return
        for name, handler in self._handlers():
            self._bus.off(name, handler)
        self._attached = False

    def search(self, query: str) -> List[Dict[str, Any]]:
        needle = str(query or "").strip().lower()
        if not needle:
            return list(self.products)
        return [
            product
            for product in self.products
            if needle in str(product.get("name", "")).lower()
            or needle in str(product.get("category", "")).lower()
        ]

    def _refresh_order_stats(self) -> None:
        self.stats.total_orders = len(self.orders)
        self.stats.total_revenue = money(
            sum((_order_total(order) for order in self.orders), Decimal("0"))
        )

    @staticmethod
    def _replace(records: List[Dict[str, Any]], record: Dict[str, Any]) -> List[Dict[str, Any]]:
        record_id = record.get("_id")
        replaced = False
        updated: List[Dict[str, Any]] = []
        for existing in records:
            if existing.get("_id") == record_id:
                updated.append(record)
                replaced = True
            else:
                updated.append(existing)
        if not replaced:
            updated.append(record)
        return updated

    # --- event handlers ---

    def on_product_created(self, product: Dict[str, Any]) -> None:
        # A poll can deliver the record as an update before the created event lands.
        with self._lock:
            if _contains(self.products, product):
                return
            self.products = [*self.products, product]

    def on_product_updated(self, product: Dict[str, Any]) -> None:
        with self._lock:
            self.products = self._replace(self.products, product)

    def on_product_deleted(self, product: Dict[str, Any]) -> None:
        with self._lock:
            self.products = [p for p in self.products if p.get("_id") != product.get("_id")]

    def on_order_created(self, order: Dict[str, Any]) -> None:
        with self._lock:
            if _contains(self.orders, order):
                return
            self.orders = [order, *self.orders]
            self._refresh_order_stats()

    def on_order_updated(self, order: Dict[str, Any]) -> None:
        with self._lock:
            self.orders = self._replace(self.orders, order)
            self._refresh_order_stats()
        logger.debug("Order %s is now %s", order.get("_id"), order.get("status"))
