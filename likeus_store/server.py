import os
import secrets
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

import bcrypt
from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_pymongo import PyMongo
from pymongo.errors import PyMongoError
from werkzeug.exceptions import MethodNotAllowed, NotFound
from werkzeug.middleware.proxy_fix import ProxyFix

from .utils import format_iso, normalize_email, parse_iso_date, utcnow

load_dotenv()

DEFAULT_MONGO_URI = "mongodb://localhost:27018/like-us-tshirts"
SERVER_MANAGED_FIELDS = ("_id", "createdAt", "updatedAt")

DEMO_USERS = [
    {"email": "admin@example.com", "password": "admin123", "name": "Admin User", "role": "admin"},
    {"email": "user@example.com", "password": "user123", "name": "Regular User", "role": "user"},
]

DEMO_PRODUCTS = [
    {
        "name": "Classic Logo Tee",
        "description": "Our signature t-shirt with the Like Us logo. Made from 100% organic cotton.",
        "price": 29.99,
        "images": ["https://images.pexels.com/photos/5709661/pexels-photo-5709661.jpeg"],
        "colors": ["#000000", "#FFFFFF", "#6B7280"],
        "sizes": ["S", "M", "L", "XL", "XXL"],
        "category": "basics",
        "featured": True,
        "bestSeller": True,
        "new": False,
        "stock": 100,
    },
    {
        "name": "Minimalist Tee",
        "description": "A clean, minimal design with a subtle embroidered detail.",
        "price": 34.99,
        "images": ["https://images.pexels.com/photos/6311392/pexels-photo-6311392.jpeg"],
        "colors": ["#000000", "#FFFFFF", "#E5E7EB"],
        "sizes": ["S", "M", "L", "XL"],
        "category": "premium",
        "featured": False,
        "bestSeller": False,
        "new": True,
        "stock": 75,
    },
    {
        "name": "Artist Collab Tee",
        "description": "Special edition artwork from our artist collaboration.",
        "price": 39.99,
        "images": ["https://images.pexels.com/photos/6003188/pexels-photo-6003188.jpeg"],
        "colors": ["#000000", "#4B5563", "#9CA3AF"],
        "sizes": ["S", "M", "L", "XL", "XXL"],
        "category": "limited",
        "featured": True,
        "bestSeller": False,
        "new": True,
        "stock": 50,
    },
    {
        "name": "Vintage Washed Tee",
        "description": "Garment-dyed and washed for a broken-in feel from day one.",
        "price": 32.99,
        "images": [],
        "colors": ["#1F2937", "#7C2D12"],
        "sizes": ["S", "M", "L", "XL"],
        "category": "basics",
        "featured": False,
        "bestSeller": True,
        "new": False,
        "stock": 80,
    },
    {
        "name": "Eco-Friendly Tee",
        "description": "Recycled fibres and low-impact dyes.",
        "price": 36.99,
        "images": [],
        "colors": ["#065F46", "#FFFFFF"],
        "sizes": ["S", "M", "L"],
        "category": "sustainable",
        "featured": True,
        "bestSeller": False,
        "new": False,
        "stock": 60,
    },
    {
        "name": "Graphic Print Tee",
        "description": "Bold front print on a heavyweight cotton body.",
        "price": 31.99,
        "images": [],
        "colors": ["#000000", "#FFFFFF"],
        "sizes": ["M", "L", "XL"],
        "category": "graphic",
        "featured": False,
        "bestSeller": True,
        "new": True,
        "stock": 40,
    },
]


def current_timestamp():
    # Mongo keeps millisecond precision; match it so responses agree with re-reads.
    now = utcnow()
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return format_iso(value)
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", "replace")
    if isinstance(value, dict):
        return {key: serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return value


def serialize_document(document) -> Dict:
    if not document:
        return {}
    return serialize_value(dict(document))


def seed_demo_data(db) -> Dict[str, int]:
    created_users = 0
    timestamp = current_timestamp()
    for demo_user in DEMO_USERS:
        email = normalize_email(demo_user["email"])
        if db.users.find_one({"email": email}):
            continue
        db.users.insert_one(
            {
                "email": email,
                "password": bcrypt.hashpw(
                    demo_user["password"].encode("utf-8"), bcrypt.gensalt()
                ).decode("utf-8"),
                "name": demo_user["name"],
                "role": demo_user["role"],
                "createdAt": timestamp,
                "updatedAt": timestamp,
            }
        )
        created_users += 1

    created_products = 0
    if db.products.count_documents({}) == 0:
        documents = [
            {**product, "createdAt": timestamp, "updatedAt": timestamp}
            for product in DEMO_PRODUCTS
        ]
        db.products.insert_many(documents)
        created_products = len(documents)

    return {"users": created_users, "products": created_products}


def create_app(db=None) -> Flask:
    """Create and configure the Flask application.

    ``db`` replaces the Flask-PyMongo database, which lets tests run the app
    against an in-memory database.
    """
    app = Flask(__name__)

    trusted_proxy_hops_raw = os.getenv("TRUSTED_PROXY_HOPS", "1")
    try:
        trusted_proxy_hops = max(0, int(trusted_proxy_hops_raw))
    except (TypeError, ValueError):
        trusted_proxy_hops = 1
    if trusted_proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=trusted_proxy_hops,
            x_proto=trusted_proxy_hops,
            x_host=trusted_proxy_hops,
            x_port=trusted_proxy_hops,
        )

    # --- Configuration ---
    app.config["MONGO_URI"] = os.getenv("MONGO_URI", DEFAULT_MONGO_URI)

    allowed_origins = [
        "http://localhost:5173",
        "http://localhost:4173",
        "http://localhost:3000",
        os.getenv("FRONTEND_URL", "").strip(),
    ]
    cors_extra = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if cors_extra:
        for origin in cors_extra.split(","):
            trimmed = origin.strip()
            if trimmed:
                allowed_origins.append(trimmed)
    allowed_origins = [origin for origin in allowed_origins if origin]

    CORS(app, origins=allowed_origins or "*")

    if db is None:
        mongo = PyMongo(app)
        db = mongo.db
    app.extensions["likeus_db"] = db

    if os.getenv("SEED_DEMO_DATA", "false").strip().lower() in {"1", "true", "yes"}:
        try:
            seeded = seed_demo_data(db)
            app.logger.info("Seeded demo data: %s", seeded)
        except PyMongoError as exc:
            app.logger.warning("Unable to seed demo data: %s", exc)

    # --- Helpers ---

    def error_response(message: str, status: int):
        return jsonify({"error": message}), status

    def parse_object_id(value: str, entity: str):
        try:
            return ObjectId(str(value)), None
        except (InvalidId, TypeError):
            return None, error_response(f"Invalid {entity} identifier.", 400)

    def read_json_object():
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return None, error_response("Request body must be a JSON object.", 400)
        return payload, None

    def normalize_user_fields(payload: Dict) -> Dict:
        if "email" in payload:
            payload["email"] = normalize_email(payload.get("email"))
        return payload

    def parse_bool_param(value: str) -> bool:
        return str(value).strip().lower() == "true"

    def build_user_query(args) -> Dict:
        query: Dict[str, object] = {}
        if args.get("role"):
            query["role"] = args["role"]
        return query

    def build_product_query(args) -> Dict:
        query: Dict[str, object] = {}
        if args.get("category"):
            query["category"] = args["category"]
        for flag in ("featured", "bestSeller", "new"):
            if args.get(flag):
                query[flag] = parse_bool_param(args[flag])
        return query

    def build_order_query(args) -> Dict:
        query: Dict[str, object] = {}
        if args.get("userId"):
            query["userId"] = args["userId"]
        if args.get("status"):
            query["status"] = args["status"]
        return query

    def register_collection(
        name: str,
        entity: str,
        build_query: Callable[[Dict], Dict],
        sort: Optional[List[Tuple[str, int]]] = None,
        normalize: Callable[[Dict], Dict] = lambda payload: payload,
    ):
        label = entity.capitalize()

        def fetch_record(record_id: str):
            object_id, id_error = parse_object_id(record_id, entity)
            if id_error:
                return None, id_error
            document = db[name].find_one({"_id": object_id})
            if not document:
                return None, error_response(f"{label} not found", 404)
            return document, None

        def list_records():
            query = build_query(request.args)
            raw_updated_after = request.args.get("updatedAfter")
            if raw_updated_after:
                updated_after = parse_iso_date(raw_updated_after)
                if updated_after is None:
                    return error_response("updatedAfter must be an ISO-8601 timestamp.", 400)
                query["updatedAt"] = {"$gt": updated_after}
            cursor = db[name].find(query)
            if sort:
                cursor = cursor.sort(sort)
            return jsonify([serialize_document(document) for document in cursor])

        def get_record(record_id: str):
            document, load_error = fetch_record(record_id)
            if load_error:
                return load_error
            return jsonify(serialize_document(document))

        def create_record():
            payload, body_error = read_json_object()
            if body_error:
                return body_error
            fields = {
                key: value for key, value in payload.items() if key not in SERVER_MANAGED_FIELDS
            }
            timestamp = current_timestamp()
            document = {**normalize(fields), "createdAt": timestamp, "updatedAt": timestamp}
            insert_result = db[name].insert_one(document)
            document["_id"] = insert_result.inserted_id
            app.logger.info("Created %s %s", entity, insert_result.inserted_id)
            return jsonify(serialize_document(document)), 201

        def update_record(record_id: str):
            object_id, id_error = parse_object_id(record_id, entity)
            if id_error:
                return id_error
            payload, body_error = read_json_object()
            if body_error:
                return body_error
            if "_id" in payload:
                return error_response(f"The {entity} identifier cannot be changed.", 400)
            fields = {
                key: value for key, value in payload.items() if key not in SERVER_MANAGED_FIELDS
            }
            result = db[name].update_one(
                {"_id": object_id},
                {"$set": {**normalize(fields), "updatedAt": current_timestamp()}},
            )
            return jsonify({"modifiedCount": result.modified_count})

        def delete_record(record_id: str):
            object_id, id_error = parse_object_id(record_id, entity)
            if id_error:
                return id_error
            result = db[name].delete_one({"_id": object_id})
            if result.deleted_count:
                app.logger.info("Deleted %s %s", entity, record_id)
            return jsonify({"deletedCount": result.deleted_count})

        app.add_url_rule(f"/api/{name}", f"list_{name}", list_records, methods=["GET"])
        app.add_url_rule(f"/api/{name}", f"create_{name}", create_record, methods=["POST"])
        app.add_url_rule(
            f"/api/{name}/<record_id>", f"get_{name}", get_record, methods=["GET"]
        )
        app.add_url_rule(
            f"/api/{name}/<record_id>", f"update_{name}", update_record, methods=["PATCH"]
        )
        app.add_url_rule(
            f"/api/{name}/<record_id>", f"delete_{name}", delete_record, methods=["DELETE"]
        )

    # --- ROUTES ---

    @app.route("/health")
    @app.route("/api/health")
    def health():
        return jsonify({"status": "ok", "message": "Server is running"})

    register_collection("users", "user", build_user_query, normalize=normalize_user_fields)
    register_collection("products", "product", build_product_query)
    register_collection("orders", "order", build_order_query, sort=[("createdAt", -1)])

    @app.route("/api/users/email/<email>", methods=["GET"])
    def get_user_by_email(email: str):
        document = db.users.find_one({"email": normalize_email(email)})
        if not document:
            return error_response("User not found", 404)
        return jsonify(serialize_document(document))

    # Payments (mocked; no money moves)
    @app.route("/api/payment/create-intent", methods=["POST"])
    def create_payment_intent():
        payload, body_error = read_json_object()
        if body_error:
            return body_error
        amount = payload.get("amount")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            return error_response("amount must be a positive integer in cents.", 400)
        currency = str(payload.get("currency") or "usd").strip().lower() or "usd"

        intent_id = f"pi_{secrets.token_hex(7)}"
        payment_intent = {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret_{secrets.token_hex(7)}",
            "amount": amount,
            "currency": currency,
            "status": "requires_payment_method",
        }
        app.logger.info("Created mock payment intent %s for %s %s", intent_id, amount, currency)
        return jsonify(payment_intent)

    @app.route("/api/payment/success", methods=["POST"])
    def handle_payment_success():
        payload, body_error = read_json_object()
        if body_error:
            return body_error
        payment_intent_id = str(payload.get("paymentIntentId") or "").strip()
        if not payment_intent_id:
            return error_response("paymentIntentId is required.", 400)
        return jsonify({"id": payment_intent_id, "status": "succeeded"})

    # --- Error handlers ---

    @app.errorhandler(PyMongoError)
    def handle_database_error(exc):
        app.logger.error("Database error: %s", exc)
        return error_response(str(exc) or "Database error", 500)

    @app.errorhandler(NotFound)
    def handle_not_found(exc):
        return error_response("Not found", 404)

    @app.errorhandler(MethodNotAllowed)
    def handle_method_not_allowed(exc):
        return error_response("Method not allowed", 405)

    return app


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    create_app().run(host="0.0.0.0", port=port)
