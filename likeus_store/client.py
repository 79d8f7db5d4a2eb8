"""REST-backed data access for the users, products and orders collections.

Each collection exposes a small Mongo-like surface (``find_one``, ``find``,
``insert_one``, ``update_one``, ``delete_one``) translated into HTTP calls
against the storefront backend. Successful writes announce themselves on the
shared ``EventBus``.

Transport failures stop at this boundary: reads degrade to ``None`` or an
empty list, updates and deletes degrade to a zero count. Inserts re-raise,
since callers must know that a write did not happen.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple
from urllib.parse import quote

import requests

from .errors import ApiError, ValidationError
from .events import ChangeEvent, EventBus
from .utils import format_iso

logger = logging.getLogger(__name__)

SERVER_MANAGED_FIELDS = frozenset({"_id", "createdAt", "updatedAt"})


@dataclass(frozen=True)
class InsertOneResult:
    inserted_id: str


@dataclass(frozen=True)
class UpdateResult:
    modified_count: int


@dataclass(frozen=True)
class DeleteResult:
    deleted_count: int


@dataclass(frozen=True)
class CollectionSpec:
    name: str
    entity_type: str
    fields: FrozenSet[str]
    filter_keys: Tuple[str, ...]
    lookup_keys: Tuple[str, ...] = ("_id",)


USERS = CollectionSpec(
    name="users",
    entity_type="user",
    fields=frozenset({"email", "password", "name", "role"}),
    filter_keys=("role",),
    lookup_keys=("_id", "email"),
)
PRODUCTS = CollectionSpec(
    name="products",
    entity_type="product",
    fields=frozenset(
        {
            "name",
            "description",
            "price",
            "images",
            "colors",
            "sizes",
            "category",
            "featured",
            "bestSeller",
            "new",
            "stock",
        }
    ),
    filter_keys=("category", "featured", "bestSeller", "new"),
)
ORDERS = CollectionSpec(
    name="orders",
    entity_type="order",
    fields=frozenset(
        {
            "userId",
            "items",
            "total",
            "status",
            "shippingAddress",
            "paymentMethod",
            "paymentStatus",
            "paymentIntentId",
        }
    ),
    filter_keys=("userId", "status"),
)


def _encode_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _unwrap_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    if not isinstance(patch, Mapping):
        raise ValidationError("Updates must be a mapping of fields.")
    if "$set" in patch:
        if len(patch) != 1 or not isinstance(patch["$set"], Mapping):
            raise ValidationError("Only a single $set operator is supported.")
        return dict(patch["$set"])
    return dict(patch)


class Collection:
    def __init__(self, client: "DataClient", spec: CollectionSpec):
        self._client = client
        self.spec = spec

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def entity_type(self) -> str:
        return self.spec.entity_type

    def _publish(self, kind: str, record: Dict[str, Any]) -> None:
        self._client.bus.publish(ChangeEvent(kind, self.entity_type, record))

    def _check_fields(self, data: Mapping[str, Any], action: str) -> None:
        if not data:
            raise ValidationError(f"Refusing to {action} {self.entity_type} with no fields.")
        managed = sorted(SERVER_MANAGED_FIELDS.intersection(data))
        if managed:
            raise ValidationError(
                f"Cannot {action} server-managed {self.entity_type} fields: {', '.join(managed)}"
            )
        unknown = sorted(set(data) - self.spec.fields)
        if unknown:
            raise ValidationError(
                f"Unknown {self.entity_type} fields: {', '.join(unknown)}"
            )

    def _require_id(self, filter: Mapping[str, Any]) -> str:
        record_id = str((filter or {}).get("_id") or "").strip()
        if not record_id:
            raise ValidationError(f"A {self.entity_type} filter needs an _id.")
        return record_id

    def _record_endpoint(self, record_id: str) -> str:
        return f"{self.name}/{quote(str(record_id), safe='')}"

    def _lookup_endpoint(self, filter: Mapping[str, Any]) -> Optional[str]:
        filter = filter or {}
        unknown = sorted(set(filter) - set(self.spec.lookup_keys))
        if unknown:
            raise ValidationError(
                f"Cannot look up {self.entity_type} by: {', '.join(unknown)}"
            )
        if filter.get("_id"):
            return self._record_endpoint(filter["_id"])
        if filter.get("email"):
            return f"{self.name}/email/{quote(str(filter['email']), safe='')}"
        return None

    def find_one(self, filter: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        endpoint = self._lookup_endpoint(filter)
        if endpoint is None:
            return None
        try:
            record = self._client.request("GET", endpoint)
        except ApiError as exc:
            if exc.is_not_found:
                logger.debug("No %s matched %s", self.entity_type, dict(filter))
            else:
                logger.error("Error finding %s: %s", self.entity_type, exc)
            return None
        return record or None

    def find(self, filter: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        filter = filter or {}
        unknown = sorted(set(filter) - set(self.spec.filter_keys))
        if unknown:
            raise ValidationError(
                f"Cannot filter {self.name} by: {', '.join(unknown)}"
            )
        params = {
            key: _encode_param(filter[key])
            for key in self.spec.filter_keys
            if filter.get(key) is not None and filter.get(key) != ""
        }
        try:
            result = self._client.request("GET", self.name, params=params or None)
        except ApiError as exc:
            logger.error("Error finding %s: %s", self.name, exc)
            return []
        if not isinstance(result, list):
            logger.error("Unexpected %s listing payload: %r", self.name, result)
            return []
        return result

    def changed_since(self, timestamp: datetime) -> List[Dict[str, Any]]:
        """Records updated strictly after ``timestamp``.

        Raises ``ApiError`` instead of degrading to an empty list, so a poll
        that failed can be told apart from a poll that found nothing.
        """
        result = self._client.request(
            "GET", self.name, params={"updatedAfter": format_iso(timestamp)}
        )
        if not isinstance(result, list):
            raise ApiError(f"Unexpected {self.name} change feed payload.")
        return result

    def insert_one(self, data: Mapping[str, Any]) -> InsertOneResult:
        if not isinstance(data, Mapping):
            raise ValidationError(f"A new {self.entity_type} must be a mapping of fields.")
        self._check_fields(data, "insert")
        try:
            record = self._client.request("POST", self.name, payload=dict(data))
            if not isinstance(record, dict) or not record.get("_id"):
                raise ApiError(f"Failed to insert {self.entity_type}")
        except ApiError as exc:
            logger.error("Error inserting %s: %s", self.entity_type, exc)
            raise
        self._publish("created", record)
        return InsertOneResult(inserted_id=str(record["_id"]))

    def update_one(self, filter: Mapping[str, Any], patch: Mapping[str, Any]) -> UpdateResult:
        record_id = self._require_id(filter)
        changes = _unwrap_patch(patch)
        self._check_fields(changes, "update")
        endpoint = self._record_endpoint(record_id)
        try:
            result = self._client.request("PATCH", endpoint, payload=changes)
            modified_count = int((result or {}).get("modifiedCount", 0) or 0)
        except (ApiError, AttributeError, TypeError, ValueError) as exc:
            logger.error("Error updating %s: %s", self.entity_type, exc)
            return UpdateResult(modified_count=0)

        if modified_count > 0:
            try:
                updated = self._client.request("GET", endpoint)
            except ApiError as exc:
                logger.error(
                    "Updated %s %s but could not re-read it: %s",
                    self.entity_type,
                    record_id,
                    exc,
                )
            else:
                if updated:
                    self._publish("updated", updated)
        return UpdateResult(modified_count=modified_count)

    def delete_one(self, filter: Mapping[str, Any]) -> DeleteResult:
        record_id = self._require_id(filter)
        endpoint = self._record_endpoint(record_id)
        try:
            snapshot = self._client.request("GET", endpoint)
            result = self._client.request("DELETE", endpoint)
            deleted_count = int((result or {}).get("deletedCount", 0) or 0)
        except ApiError as exc:
            if exc.is_not_found:
                logger.debug("No %s %s to delete", self.entity_type, record_id)
            else:
                logger.error("Error deleting %s: %s", self.entity_type, exc)
            return DeleteResult(deleted_count=0)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.error("Error deleting %s: %s", self.entity_type, exc)
            return DeleteResult(deleted_count=0)

        if deleted_count > 0 and snapshot:
            self._publish("deleted", snapshot)
        return DeleteResult(deleted_count=deleted_count)


class DataClient:
    def __init__(
        self,
        base_url: str,
        bus: EventBus,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.bus = bus
        self.session = session or requests.Session()
        self.timeout = timeout
        self.users = Collection(self, USERS)
        self.products = Collection(self, PRODUCTS)
        self.orders = Collection(self, ORDERS)

    @property
    def collections(self) -> Tuple[Collection, ...]:
        return (self.users, self.products, self.orders)

    def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ApiError(f"API request failed: {exc}") from exc

        if not response.ok:
            try:
                error_body = response.json()
            except ValueError:
                error_body = None
            message = None
            if isinstance(error_body, dict):
                message = error_body.get("error")
            raise ApiError(
                f"API error: {message or response.reason or response.status_code}",
                response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(
                f"API returned a malformed body for {method} {endpoint}",
                response.status_code,
            ) from exc

    def close(self) -> None:
        self.session.close()
