"""
Accounts and bearer-token sessions.

Users and sessions live in the same datastore as the resources, in the
reserved ``users`` and ``sessions`` collections. Each account also owns a
``userNames`` record keyed by its case-folded name; creating that record is
what claims the name, so two registrations can never share one. Only a
SHA-256 digest of a session token is stored; the raw token is handed to the
client once.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from werkzeug.security import check_password_hash, generate_password_hash

from lovenest.config import Settings
from lovenest.datastore import Datastore, DuplicateIdError
from lovenest.dependencies import get_app_settings, get_datastore
from lovenest.schemas import (
    AuthResponse,
    LoginRequest,
    OkResponse,
    RegisterRequest,
    UserResponse,
)
from lovenest.utils import new_id, now_ms

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
SESSIONS_COLLECTION = "sessions"
USER_NAMES_COLLECTION = "userNames"

router = APIRouter()
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    name: str


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


def _token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _public_user(user: dict) -> UserResponse:
    return UserResponse(
        id=user["id"],
        name=user["name"],
        femaleName=user.get("femaleName"),
        maleName=user.get("maleName"),
        createdAt=user["createdAt"],
    )


def _name_key(name: str) -> str:
    return name.strip().casefold()


def _find_user_by_name(db: Datastore, name: str) -> Optional[dict]:
    claim = db.find(USER_NAMES_COLLECTION, _name_key(name))
    if claim is None:
        return None
    return db.find(USERS_COLLECTION, claim["userId"])


def prune_expired_sessions(db: Datastore) -> int:
    now = now_ms()
    removed = 0
    for session in db.all(SESSIONS_COLLECTION):
        if session.get("expiresAt", 0) <= now and db.remove(
            SESSIONS_COLLECTION, session["id"]
        ):
            removed += 1
    return removed


def issue_session(db: Datastore, user_id: str, ttl_seconds: int) -> str:
    """Create a session for ``user_id`` and return its raw bearer token."""
    pruned = prune_expired_sessions(db)
    if pruned:
        logger.info("Pruned %d expired sessions", pruned)
    token = secrets.token_hex(32)
    now = now_ms()
    db.create(
        SESSIONS_COLLECTION,
        {
            "id": _token_digest(token),
            "userId": user_id,
            "createdAt": now,
            "expiresAt": now + ttl_seconds * 1000,
        },
    )
    return token


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=401,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Datastore = Depends(get_datastore),
) -> CurrentUser:
    """Resolve the caller from ``Authorization: Bearer <token>`` or reject with 401."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized()

    digest = _token_digest(credentials.credentials)
    session = db.find(SESSIONS_COLLECTION, digest)
    if session is None:
        raise _unauthorized()
    if session.get("expiresAt", 0) <= now_ms():
        db.remove(SESSIONS_COLLECTION, digest)
        raise _unauthorized()

    user = db.find(USERS_COLLECTION, session["userId"])
    if user is None:
        raise _unauthorized()
    return CurrentUser(id=user["id"], name=user["name"])


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(
    payload: RegisterRequest,
    db: Datastore = Depends(get_datastore),
    settings: Settings = Depends(get_app_settings),
):
    user_id = new_id()
    name_key = _name_key(payload.name)
    try:
        db.create(USER_NAMES_COLLECTION, {"id": name_key, "userId": user_id})
    except DuplicateIdError:
        raise HTTPException(status_code=409, detail="Name already registered")

    user = {
        "id": user_id,
        "name": payload.name,
        "createdAt": now_ms(),
    }
    if payload.femaleName:
        user["femaleName"] = payload.femaleName.strip()
    if payload.maleName:
        user["maleName"] = payload.maleName.strip()
    try:
        user["passwordHash"] = hash_password(payload.password)
        db.create(USERS_COLLECTION, user)
    except Exception:
        db.remove(USER_NAMES_COLLECTION, name_key)
        raise

    token = issue_session(db, user["id"], settings.session_ttl_seconds)
    logger.info("Registered user %s", user["id"])
    return AuthResponse(token=token, user=_public_user(user))


@router.post("/login", response_model=AuthResponse)
def login(
    payload: LoginRequest,
    db: Datastore = Depends(get_datastore),
    settings: Settings = Depends(get_app_settings),
):
    user = _find_user_by_name(db, payload.name)
    if not user or not verify_password(user["passwordHash"], payload.password):
        logger.warning("Rejected login for name %r", payload.name)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = issue_session(db, user["id"], settings.session_ttl_seconds)
    logger.info("User %s logged in", user["id"])
    return AuthResponse(token=token, user=_public_user(user))


@router.get("/me", response_model=UserResponse)
def me(
    current: CurrentUser = Depends(require_auth),
    db: Datastore = Depends(get_datastore),
):
    user = db.find(USERS_COLLECTION, current.id)
    if user is None:
        raise _unauthorized()
    return _public_user(user)


@router.post("/logout", response_model=OkResponse)
def logout(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    current: CurrentUser = Depends(require_auth),
    db: Datastore = Depends(get_datastore),
):
    db.remove(SESSIONS_COLLECTION, _token_digest(credentials.credentials))
    logger.info("User %s logged out", current.id)
    return OkResponse()
