"""Minimal account store used to obtain the identity behind "session:<userId>"."""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from typing import Optional

from .document_store import JsonDocumentStore
from .models import AuthResponse
from .session_store import session_id_for_user

logger = logging.getLogger("voiceshop.users")

USERS_COLLECTION = "users"
HASH_ITERATIONS = 200_000


class DuplicateEmailError(ValueError):
    """Raised when signing up with an email that already has an account."""


class InvalidCredentialsError(ValueError):
    """Raised when the email is unknown or the password does not match."""


def hash_password(password: str, salt: Optional[str] = None) -> str:
    """Return "salt$hexdigest" using PBKDF2-HMAC-SHA256."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), HASH_ITERATIONS)
    return f"{salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    salt, _, expected = (stored or "").partition("$")
    if not salt or not expected:
        return False
    candidate = hash_password(password, salt).partition("$")[2]
    return hmac.compare_digest(candidate, expected)


class UserDirectory:
    def __init__(self, store: JsonDocumentStore) -> None:
        self._store = store

    def signup(self, name: str, email: str, password: str) -> AuthResponse:
        """Purpose: Create an account and return its chat identity.
        Inputs/Outputs: Inputs are display name, email, and plain password; output
            is AuthResponse with user id and "session:<userId>" session id.
        Side Effects / State: Inserts into the users collection.
        Dependencies: hash_password, JsonDocumentStore.
        Failure Modes: DuplicateEmailError when the email is taken; PersistenceError on write.
        If Removed: No way to obtain an identity for order history.
        Testing Notes: Second signup with the same email (any case) fails.
        """
        normalized = email.strip().lower()
        if self._store.find_one(USERS_COLLECTION, {"email": normalized}):
            raise DuplicateEmailError(normalized)
        user = self._store.insert(
            USERS_COLLECTION,
            {"name": name.strip(), "email": normalized, "passwordHash": hash_password(password)},
        )
        logger.info("user=%s status=signed_up", user["id"])
        return _auth_response(user)

    def login(self, email: str, password: str) -> AuthResponse:
        normalized = email.strip().lower()
        user = self._store.find_one(USERS_COLLECTION, {"email": normalized})
        if not user or not verify_password(password, user.get("passwordHash", "")):
            logger.info("email=%s status=login_rejected", normalized)
            raise InvalidCredentialsError(normalized)
        return _auth_response(user)


def _auth_response(user: dict) -> AuthResponse:
    return AuthResponse(
        user_id=user["id"],
        name=user.get("name", ""),
        email=user["email"],
        session_id=session_id_for_user(user["id"]),
    )
