from datetime import timedelta

import bcrypt
import pytest
from bson import ObjectId

from likeus_store.server import DEMO_PRODUCTS, create_app, seed_demo_data
from likeus_store.utils import format_iso, parse_iso_date, utcnow


def create(http, collection, payload):
    response = http.post(f"/api/{collection}", json=payload)
    assert response.status_code == 201
    return response.get_json()


class TestHealth:
    @pytest.mark.parametrize("path", ["/health", "/api/health"])
    def test_health(self, http, path):
        response = http.get(path)
        assert response.status_code == 200
        assert response.get_json()["status"] == "ok"


class TestCollectionRoutes:
    def test_create_assigns_id_and_timestamps(self, http, sample_product):
        record = create(http, "products", {**sample_product, "_id": "spoofed", "createdAt": "x"})

        assert ObjectId.is_valid(record["_id"])
        assert record["_id"] != "spoofed"
        assert record["createdAt"].endswith("Z")
        assert record["createdAt"] == record["updatedAt"]
        assert record["name"] == sample_product["name"]

    def test_get_by_id_round_trips(self, http, sample_product):
        record = create(http, "products", sample_product)

        response = http.get(f"/api/products/{record['_id']}")

        assert response.status_code == 200
        assert response.get_json() == record

    def test_missing_record_is_404(self, http):
        response = http.get(f"/api/orders/{ObjectId()}")

        assert response.status_code == 404
        assert response.get_json() == {"error": "Order not found"}

    def test_malformed_identifier_is_400(self, http):
        response = http.get("/api/products/not-an-id")

        assert response.status_code == 400
        assert "Invalid product identifier" in response.get_json()["error"]

    def test_non_object_body_is_rejected(self, http):
        response = http.post("/api/products", json=["not", "an", "object"])

        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_patch_merges_fields_and_stamps_updated_at(self, http, mongo_db, sample_product):
        record = create(http, "products", sample_product)
        earlier = utcnow() - timedelta(minutes=5)
        mongo_db.products.update_one(
            {"_id": ObjectId(record["_id"])}, {"$set": {"updatedAt": earlier}}
        )

        response = http.patch(f"/api/products/{record['_id']}", json={"price": 24.99})

        assert response.get_json() == {"modifiedCount": 1}
        updated = http.get(f"/api/products/{record['_id']}").get_json()
        assert updated["price"] == 24.99
        assert updated["name"] == sample_product["name"]
        assert parse_iso_date(updated["updatedAt"]) > earlier

    def test_patch_cannot_change_identifier(self, http, sample_product):
        record = create(http, "products", sample_product)

        response = http.patch(f"/api/products/{record['_id']}", json={"_id": "other"})

        assert response.status_code == 400

    def test_patch_unknown_record_reports_zero(self, http):
        response = http.patch(f"/api/users/{ObjectId()}", json={"name": "Nobody"})

        assert response.get_json() == {"modifiedCount": 0}

    def test_delete_reports_count(self, http, sample_product):
        record = create(http, "products", sample_product)

        first = http.delete(f"/api/products/{record['_id']}")
        second = http.delete(f"/api/products/{record['_id']}")

        assert first.get_json() == {"deletedCount": 1}
        assert second.get_json() == {"deletedCount": 0}

    def test_unknown_route_uses_error_shape(self, http):
        response = http.get("/api/carts")

        assert response.status_code == 404
        assert response.get_json() == {"error": "Not found"}


class TestFilters:
    def test_product_flags_and_category(self, http, sample_product):
        create(http, "products", sample_product)
        create(http, "products", {**sample_product, "name": "Plain", "featured": False})
        create(http, "products", {**sample_product, "name": "Other", "category": "premium"})

        featured = http.get("/api/products?featured=true").get_json()
        not_featured = http.get("/api/products?featured=false").get_json()
        basics_featured = http.get("/api/products?category=basics&featured=true").get_json()

        assert {p["name"] for p in featured} == {"Classic Logo Tee", "Other"}
        assert [p["name"] for p in not_featured] == ["Plain"]
        assert [p["name"] for p in basics_featured] == ["Classic Logo Tee"]

    def test_orders_filter_and_sort_newest_first(self, http, mongo_db):
        first = create(http, "orders", {"userId": "u1", "status": "pending", "total": 10})
        second = create(http, "orders", {"userId": "u1", "status": "shipped", "total": 20})
        create(http, "orders", {"userId": "u2", "status": "pending", "total": 30})
        mongo_db.orders.update_one(
            {"_id": ObjectId(first["_id"])},
            {"$set": {"createdAt": utcnow() - timedelta(days=1)}},
        )

        mine = http.get("/api/orders?userId=u1").get_json()
        pending = http.get("/api/orders?userId=u1&status=pending").get_json()

        assert [order["_id"] for order in mine] == [second["_id"], first["_id"]]
        assert [order["_id"] for order in pending] == [first["_id"]]

    def test_users_by_role(self, http):
        create(http, "users", {"email": "a@example.com", "role": "admin"})
        create(http, "users", {"email": "b@example.com", "role": "user"})

        admins = http.get("/api/users?role=admin").get_json()

        assert [user["email"] for user in admins] == ["a@example.com"]

    def test_user_lookup_by_email_is_normalized(self, http):
        create(http, "users", {"email": " Shopper@Example.com ", "role": "user"})

        response = http.get("/api/users/email/shopper@example.com")
        missing = http.get("/api/users/email/nobody@example.com")

        assert response.get_json()["email"] == "shopper@example.com"
        assert missing.status_code == 404

    def test_updated_after_returns_only_newer_records(self, http, mongo_db, sample_product):
        old = create(http, "products", sample_product)
        fresh = create(http, "products", {**sample_product, "name": "Fresh"})
        cutoff = utcnow() - timedelta(minutes=1)
        mongo_db.products.update_one(
            {"_id": ObjectId(old["_id"])},
            {"$set": {"updatedAt": cutoff - timedelta(minutes=1)}},
        )

        response = http.get("/api/products", query_string={"updatedAfter": format_iso(cutoff)})

        assert [p["_id"] for p in response.get_json()] == [fresh["_id"]]

    def test_malformed_updated_after_is_400(self, http):
        response = http.get("/api/orders?updatedAfter=yesterday")

        assert response.status_code == 400


class TestPayments:
    def test_create_intent(self, http):
        response = http.post("/api/payment/create-intent", json={"amount": 5998, "currency": "usd"})
        intent = response.get_json()

        assert response.status_code == 200
        assert intent["id"].startswith("pi_")
        assert intent["client_secret"].startswith(f"{intent['id']}_secret_")
        assert intent["amount"] == 5998
        assert intent["currency"] == "usd"
        assert intent["status"] == "requires_payment_method"

    @pytest.mark.parametrize("amount", [0, -1, "10", 12.5, None])
    def test_create_intent_rejects_bad_amounts(self, http, amount):
        response = http.post("/api/payment/create-intent", json={"amount": amount})

        assert response.status_code == 400

    def test_payment_success(self, http):
        response = http.post("/api/payment/success", json={"paymentIntentId": "pi_123"})

        assert response.get_json() == {"id": "pi_123", "status": "succeeded"}

    def test_payment_success_requires_intent(self, http):
        response = http.post("/api/payment/success", json={})

        assert response.status_code == 400


class TestSeeding:
    def test_seed_is_idempotent(self, mongo_db):
        first = seed_demo_data(mongo_db)
        second = seed_demo_data(mongo_db)

        assert first == {"users": 2, "products": len(DEMO_PRODUCTS)}
        assert second == {"users": 0, "products": 0}
        admin = mongo_db.users.find_one({"email": "admin@example.com"})
        assert admin["role"] == "admin"
        assert bcrypt.checkpw(b"admin123", admin["password"].encode("utf-8"))

    def test_seed_on_startup(self, mongo_db, monkeypatch):
        monkeypatch.setenv("SEED_DEMO_DATA", "true")

        create_app(db=mongo_db)

        assert mongo_db.products.count_documents({}) == len(DEMO_PRODUCTS)
