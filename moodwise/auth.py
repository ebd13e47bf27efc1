"""
auth.py - Account and session endpoints for MoodWise

This module provides:
1. Registration:
   - username, email, password and display name are all required.
   - Email format and password strength are checked before anything is stored.
   - Duplicate username or email is rejected with 409.
   - Default preferences are created for the new account.
   - The new user is signed in immediately (a session token is returned).

2. Login / logout / me:
   - Login looks the user up by email and verifies the bcrypt hash.
   - A successful login issues an opaque session token stored in Redis with a
     TTL of SESSION_TIMEOUT_MINUTES; every authenticated request refreshes it.
   - Logout deletes the token.

3. `get_current_user_id` - FastAPI dependency reading `Authorization: Bearer <token>`
   used by every protected endpoint.

Security notes:
- Passwords are hashed using bcrypt via Passlib (never stored in plain text).
- Password hashes are never returned by any endpoint.
"""

import json
import logging
import re
import secrets
from datetime import datetime
from typing import Any, Dict, Optional

import pytz
import redis
from fastapi import APIRouter, Depends, Header, HTTPException
from passlib.context import CryptContext

from . import config
from .errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from .models import LoginRequest, RegisterRequest, UserPreferences
from .storage import SETTINGS, Storage

# Suppress harmless bcrypt warnings from Passlib
logging.getLogger("passlib.handlers.bcrypt").setLevel(logging.ERROR)

_logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth")

# Password hashing context (bcrypt is used for secure hashing)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# Usernames become Firestore document ids
USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,32}$")
MIN_PASSWORD_LENGTH = 8
SESSION_KEY_PREFIX = "session:"


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def hash_password(password):
    return pwd_context.hash(password)


def validate_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email or ""))


def validate_username(username: str) -> bool:
    if not USERNAME_RE.match(username or ""):
        return False
    if set(username) == {"."}:
        return False
    return not (username.startswith("__") and username.endswith("__"))


def validate_password(password: str) -> Optional[str]:
    """Return a message describing the first unmet strength rule, or None if the password is acceptable."""
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
    if not re.search(r"[a-z]", password):
        return "Password must contain at least one lowercase letter."
    if not re.search(r"[A-Z]", password):
        return "Password must contain at least one uppercase letter."
    if not re.search(r"\d", password):
        return "Password must contain at least one number."
    return None


def public_user(record: Dict[str, Any]) -> Dict[str, Any]:
    """Account fields safe to return to the client."""
    return {k: v for k, v in record.items() if k != "hashed_password"}


# -------------------------
# Redis-backed sessions
# -------------------------
_redis_client = None


def get_redis_client():
    """Create (once) and return the Redis client used for sessions."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(config.REDIS_URL, decode_responses=True)
        _logger.info("Redis client created for session storage at %s", config.REDIS_URL)
    return _redis_client


class SessionStore:
    """Opaque token -> user id, each entry expiring after `ttl_seconds` of inactivity."""

    def __init__(self, client, ttl_seconds: Optional[int] = None):
        self.client = client
        self.ttl_seconds = ttl_seconds or config.SESSION_TIMEOUT_MINUTES * 60

    @staticmethod
    def _key(token: str) -> str:
        return SESSION_KEY_PREFIX + token

    def create(self, user_id: str) -> str:
        token = secrets.token_urlsafe(32)
        session_data = {"user_id": user_id, "last_active": datetime.now(pytz.utc).isoformat()}
        self.client.set(self._key(token), json.dumps(session_data), ex=self.ttl_seconds)
        return token

    def get_user_id(self, token: str) -> Optional[str]:
        """User id for a live token (refreshing its TTL), or None if unknown or expired."""
        session_json = self.client.get(self._key(token))
        if not session_json:
            return None
        self.client.expire(self._key(token), self.ttl_seconds)
        return json.loads(session_json).get("user_id")

    def delete(self, token: str) -> None:
        self.client.delete(self._key(token))


def get_session_store() -> SessionStore:
    return SessionStore(get_redis_client())


def get_storage() -> Storage:
    from .gcp_clients import get_firestore_client
    from .storage import FirestoreStorage

    return FirestoreStorage(get_firestore_client())


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Not authenticated.")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Not authenticated.")
    return token.strip()


def get_current_user_id(
    authorization: Optional[str] = Header(None),
    sessions: SessionStore = Depends(get_session_store),
) -> str:
    """
    FastAPI dependency resolving the bearer token to a user id.
    Raises AuthenticationError (401) if the token is missing or unknown,
    HTTPException(503) if the session store cannot be reached.
    """
    token = _bearer_token(authorization)
    try:
        user_id = sessions.get_user_id(token)
    except redis.exceptions.RedisError as e:
        _logger.error("Session lookup failed: %s", e)
        raise HTTPException(status_code=503, detail="Session service unavailable")
    if not user_id:
        raise AuthenticationError("Not authenticated.")
    return user_id


def _issue_token(sessions: SessionStore, user_id: str) -> str:
    try:
        return sessions.create(user_id)
    except redis.exceptions.RedisError as e:
        _logger.error("Could not create session for user '%s': %s", user_id, e)
        raise HTTPException(status_code=503, detail="Session service unavailable")


# -------------------------
# Endpoints
# -------------------------
@router.post("/register", status_code=201)
async def register(
    payload: RegisterRequest,
    storage: Storage = Depends(get_storage),
    sessions: SessionStore = Depends(get_session_store),
):
    """
    Create a new account and sign it in.
    Steps:
    1. Validate required fields, email format and password strength.
    2. Reject an email or username that is already taken.
    3. Store the account with a bcrypt hash and create default preferences.
    4. Return the public account fields and a session token.
    """
    username = payload.username.strip()
    email = payload.email.strip().lower()
    name = payload.name.strip()
    if not username or not email or not payload.password or not name:
        raise ValidationError("All fields are required.")
    if not validate_username(username):
        raise ValidationError("Username must be 3-32 characters of letters, digits, '.', '_' or '-'.")
    if not validate_email(email):
        raise ValidationError("Invalid email format.")
    problem = validate_password(payload.password)
    if problem:
        raise ValidationError(problem)

    if storage.find_user_by_email(email) or storage.get_user(username):
        _logger.warning("Registration failed: '%s' / '%s' already exists.", username, email)
        raise ConflictError("User already exists with this email or username.")

    user_data = {
        "username": username,
        "email": email,
        "name": name,
        "hashed_password": hash_password(payload.password),
        "created_at": datetime.now(pytz.utc).isoformat(),
    }
    created = storage.create_user(username, user_data)
    storage.set_document(SETTINGS, username, "preferences", UserPreferences(user_id=username, hobbies=[]).model_dump())

    token = _issue_token(sessions, username)
    _logger.info("New user created successfully: %s", username)
    return {"user": public_user(created), "token": token, "message": "Registration successful"}


@router.post("/login")
async def login(
    payload: LoginRequest,
    storage: Storage = Depends(get_storage),
    sessions: SessionStore = Depends(get_session_store),
):
    user = storage.find_user_by_email(payload.email.strip().lower())
    hashed_pwd = user.get("hashed_password") if user else None
    if not hashed_pwd or not verify_password(payload.password, hashed_pwd):
        _logger.warning("Login failed for '%s'.", payload.email)
        raise AuthenticationError("Invalid email or password.")

    token = _issue_token(sessions, user["id"])
    _logger.info("User logged in successfully: %s", user["id"])
    return {"user": public_user(user), "token": token, "message": "Login successful"}


@router.post("/logout")
async def logout(
    authorization: Optional[str] = Header(None),
    sessions: SessionStore = Depends(get_session_store),
):
    token = _bearer_token(authorization)
    try:
        sessions.delete(token)
    except redis.exceptions.RedisError as e:
        _logger.error("Logout failed: %s", e)
        raise HTTPException(status_code=503, detail="Session service unavailable")
    return {"message": "Logout successful"}


@router.get("/me")
async def me(
    user_id: str = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage),
):
    user = storage.get_user(user_id)
    if not user:
        raise NotFoundError("User not found.")
    return {"user": public_user(user)}
