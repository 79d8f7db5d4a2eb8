"""Manual end-to-end checkout against a running backend.

Start the server with SEED_DEMO_DATA=true, then run this script.
"""

import logging
import tempfile

from likeus_store import CartLine, Settings, StoreError, create_storefront

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")

settings = Settings.from_env()
settings = Settings(
    api_url=settings.api_url,
    poll_interval=settings.poll_interval,
    poll_overlap=settings.poll_overlap,
    storage_dir=tempfile.mkdtemp(prefix="like-us-debug-"),
    request_timeout=10,
)
store = create_storefront(settings)
store.bus.on("orderCreated", lambda order: print(f"orderCreated -> {order.get('_id')}"))

try:
    print(f"Signing in against {settings.api_url}...")
    user = store.auth.sign_in("user@example.com", "user123")
    products = store.client.products.find({"featured": True})
    if not products:
        raise SystemExit("No featured products found. Was the database seeded?")

    product = products[0]
    store.cart.add_item(
        CartLine(
            product_id=product["_id"],
            name=product["name"],
            price=product["price"],
            quantity=2,
            image=(product.get("images") or [""])[0],
            color=(product.get("colors") or [""])[0],
            size=(product.get("sizes") or [""])[0],
        )
    )
    print(f"Cart total: {store.cart.total}")

    order_id = store.checkout.place_order(
        {
            "firstName": "Test",
            "lastName": "User",
            "address1": "Test Street 1",
            "city": "Eindhoven",
            "state": "NB",
            "postalCode": "1234AB",
            "country": "NL",
            "phone": "555-0100",
        }
    )
    print(f"Order placed: {order_id}")
    print(store.client.orders.find_one({"_id": order_id}))
except StoreError as e:
    print(f"Error: {e}")
finally:
    store.close()
