"""Signed-in user session backed by the users collection.

Tokens are opaque session markers kept in local storage, not signed
credentials.
"""

import base64
import binascii
import logging
import secrets
import time
from typing import Any, Dict, Optional

import bcrypt

from .client import DataClient
from .errors import AuthError
from .storage import LocalStorage
from .utils import normalize_email

logger = logging.getLogger(__name__)

AUTH_TOKEN_KEY = "auth_token"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, hashed_password: Optional[str]) -> bool:
    if not password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), str(hashed_password).encode("utf-8"))
    except ValueError:
        return False


def generate_token(user_id: str) -> str:
    raw = f"{user_id}:{int(time.time() * 1000)}:{secrets.token_hex(8)}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def verify_token(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    try:
        decoded = base64.urlsafe_b64decode(str(token).encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        return None
    user_id, _, _ = decoded.partition(":")
    return user_id or None


class AuthSession:
    def __init__(self, client: DataClient, storage: LocalStorage):
        self._client = client
        self._storage = storage
        self.user: Optional[Dict[str, Any]] = None

    @property
    def is_admin(self) -> bool:
        return bool(self.user) and self.user.get("role") == "admin"

    @property
    def user_id(self) -> Optional[str]:
        return str(self.user["_id"]) if self.user else None

    def _remember(self, user: Dict[str, Any]) -> None:
        self._storage.set_item(AUTH_TOKEN_KEY, generate_token(str(user["_id"])))
        self.user = user

    def _forget(self) -> None:
        self._storage.remove_item(AUTH_TOKEN_KEY)
        self.user = None

    def restore(self) -> Optional[Dict[str, Any]]:
        try:
            token = self._storage.get_item(AUTH_TOKEN_KEY)
        except ValueError as exc:
            logger.warning("Stored auth token is unreadable: %s", exc)
            token = None
        if not token:
            self.user = None
            return None

        user_id = verify_token(token)
        user = self._client.users.find_one({"_id": user_id}) if user_id else None
        if not user:
            self._forget()
            return None
        self.user = user
        return user

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        normalized_email = normalize_email(email)
        if not normalized_email or not password:
            raise AuthError("Email and password are required.")

        user = self._client.users.find_one({"email": normalized_email})
        if not user:
            raise AuthError("User not found")
        if not check_password(password, user.get("password")):
            raise AuthError("Invalid password")

        self._remember(user)
        logger.info("Signed in %s", normalized_email)
        return user

    def sign_up(self, email: str, password: str, name: Optional[str] = None) -> Dict[str, Any]:
        normalized_email = normalize_email(email)
        if not normalized_email or not password:
            raise AuthError("Email and password are required.")

        if self._client.users.find_one({"email": normalized_email}):
            raise AuthError("Email already in use")

        user_document = {
            "email": normalized_email,
            "password": hash_password(password),
            "role": "user",
        }
        if name and name.strip():
            user_document["name"] = name.strip()

        result = self._client.users.insert_one(user_document)
        user = self._client.users.find_one({"_id": result.inserted_id})
        if not user:
            raise AuthError("Account was created but could not be loaded.")

        self._remember(user)
        logger.info("Registered %s", normalized_email)
        return user

    def sign_out(self) -> None:
        self._forget()
