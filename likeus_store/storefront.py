import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import requests

from .auth import AuthSession
from .cart import CartStore
from .checkout import CheckoutService
from .client import DataClient
from .config import Settings
from .dashboard import DashboardState
from .events import EventBus
from .payments import PaymentGateway
from .polling import PollingSynchronizer
from .storage import LocalStorage

logger = logging.getLogger(__name__)


@dataclass
class Storefront:
    settings: Settings
    bus: EventBus
    storage: LocalStorage
    client: DataClient
    cart: CartStore
    auth: AuthSession
    payments: PaymentGateway
    checkout: CheckoutService
    synchronizer: PollingSynchronizer

    def dashboard(self) -> DashboardState:
        return DashboardState(self.client, self.bus)

    def close(self) -> None:
        self.synchronizer.stop_all()
        self.client.close()


def create_storefront(
    settings: Optional[Settings] = None,
    session: Optional[requests.Session] = None,
) -> Storefront:
    """Wire the client-side components around one shared event bus."""
    settings = settings or Settings.from_env()
    bus = EventBus()
    storage = LocalStorage(settings.storage_dir)
    client = DataClient(settings.api_url, bus, session=session, timeout=settings.request_timeout)
    cart = CartStore(storage)
    auth = AuthSession(client, storage)
    payments = PaymentGateway(client)
    synchronizer = PollingSynchronizer(
        client,
        bus,
        interval=settings.poll_interval,
        overlap=timedelta(seconds=settings.poll_overlap),
    )
    logger.debug("Storefront configured for %s", settings.api_url)
    return Storefront(
        settings=settings,
        bus=bus,
        storage=storage,
        client=client,
        cart=cart,
        auth=auth,
        payments=payments,
        checkout=CheckoutService(cart, auth, client, payments),
        synchronizer=synchronizer,
    )
