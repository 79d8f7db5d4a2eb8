"""Shared fixtures: an in-memory backend and a data client wired to it."""

import json
from urllib.parse import urlsplit

import mongomock
import pytest

from likeus_store.client import DataClient
from likeus_store.events import EventBus
from likeus_store.server import create_app
from likeus_store.storage import LocalStorage

BASE_URL = "http://testserver/api"


class FlaskResponse:
    """The slice of ``requests.Response`` the data client reads."""

    def __init__(self, response):
        self.status_code = response.status_code
        self.reason = response.status
        self.text = response.get_data(as_text=True)

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return json.loads(self.text)


class FlaskSession:
    """Routes ``requests.Session.request`` calls into a Flask test client."""

    def __init__(self, test_client):
        self.test_client = test_client
        self.calls = []

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        path = urlsplit(url).path
        self.calls.append((method, path, params))
        response = self.test_client.open(
            path,
            method=method,
            query_string=params,
            json=json,
        )
        return FlaskResponse(response)

    def close(self):
        pass


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient()["like-us-tshirts"]


@pytest.fixture
def app(mongo_db):
    flask_app = create_app(db=mongo_db)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def http(app):
    return app.test_client()


@pytest.fixture
def session(http):
    return FlaskSession(http)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def client(bus, session):
    return DataClient(BASE_URL, bus, session=session)


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "storage"))


@pytest.fixture
def sample_product():
    return {
        "name": "Classic Logo Tee",
        "description": "Organic cotton tee",
        "price": 29.99,
        "images": ["https://example.com/tee.jpg"],
        "colors": ["#000000", "#FFFFFF"],
        "sizes": ["S", "M", "L"],
        "category": "basics",
        "featured": True,
        "bestSeller": False,
        "new": True,
        "stock": 10,
    }


@pytest.fixture
def shipping_address():
    return {
        "firstName": "John",
        "lastName": "Doe",
        "address1": "123 Main St",
        "city": "Anytown",
        "state": "CA",
        "postalCode": "12345",
        "country": "USA",
        "phone": "555-123-4567",
    }
