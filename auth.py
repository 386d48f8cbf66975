"""
Auth gateway

Resolves a caller to exactly one user (Google profile or bare nickname),
creating the record on first sight, and binds it to the session cookie.
"""

import logging
import secrets
from urllib.parse import urlencode

import requests
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from pymongo.errors import DuplicateKeyError

import database
import settings
from database import USERS
from errors import AuthenticationRequired, ServiceUnavailable, ValidationError
from schemas import SimpleLoginRequest, User, to_public

logger = logging.getLogger("tech_mastery.auth")

router = APIRouter(tags=["auth"])

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_TIMEOUT = 10

SESSION_USER_KEY = "user_id"
SESSION_STATE_KEY = "oauth_state"


# ---------- Identity resolution ----------

def _public(doc: dict) -> dict:
    return to_public(User, database.sanitize(doc))


def _find_or_create(query: dict, user: User) -> dict:
    key = "login:" + ":".join(f"{k}={v}" for k, v in sorted(query.items()))
    users = database.collection(USERS)
    with database.key_lock(key):
        doc = users.find_one(query)
        if doc:
            return _public(doc)
        try:
            # Absent, not null: the unique login-key indexes are sparse
            user_id = database.create_document(USERS, user.model_dump(exclude_none=True))
        except DuplicateKeyError:
            # Another process won the insert; use its record
            doc = users.find_one(query)
            if doc is None:
                raise
            return _public(doc)
    logger.info("Created user %s for %s", user_id, query)
    return _public(database.get_document(USERS, user_id))


def resolve_nickname_user(nickname: str) -> dict:
    nickname = (nickname or "").strip()
    if not nickname:
        raise ValidationError("Nickname required")
    return _find_or_create(
        {"nickname": nickname},
        User(nickname=nickname, login_nickname=nickname, email=f"{nickname}@techmastery.local"),
    )


def resolve_oauth_user(profile: dict) -> dict:
    """Map a Google userinfo payload (sub, email, name, picture) to a user."""
    subject = profile.get("sub") or profile.get("id")
    if not subject:
        raise ValidationError("OAuth profile has no subject id")
    return _find_or_create(
        {"google_id": str(subject)},
        User(
            google_id=str(subject),
            email=profile.get("email"),
            nickname=profile.get("name") or profile.get("email") or str(subject),
            avatar=profile.get("picture"),
        ),
    )


# ---------- Session ----------

def login_session(request: Request, user: dict):
    request.session[SESSION_USER_KEY] = user["id"]


def logout_session(request: Request):
    request.session.clear()


def session_user_id(request: Request):
    return request.session.get(SESSION_USER_KEY)


def require_user_id(request: Request) -> str:
    """Dependency for routes that need a logged-in user."""
    user_id = session_user_id(request)
    if not user_id:
        raise AuthenticationRequired()
    return user_id


# ---------- Google OAuth ----------

def _callback_url(request: Request) -> str:
    if settings.GOOGLE_CALLBACK_URL.startswith("http"):
        return settings.GOOGLE_CALLBACK_URL
    return str(request.base_url).rstrip("/") + settings.GOOGLE_CALLBACK_URL


def fetch_google_profile(code: str, redirect_uri: str) -> dict:
    token_resp = requests.post(
        GOOGLE_TOKEN_URL,
        data={
            "code": code,
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        },
        timeout=GOOGLE_TIMEOUT,
    )
    token_resp.raise_for_status()
    access_token = token_resp.json()["access_token"]

    profile_resp = requests.get(
        GOOGLE_USERINFO_URL,
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=GOOGLE_TIMEOUT,
    )
    profile_resp.raise_for_status()
    return profile_resp.json()


@router.get("/auth/google")
def google_login(request: Request):
    if not settings.GOOGLE_CLIENT_ID:
        raise ServiceUnavailable("Google login is not configured")
    state = secrets.token_urlsafe(24)
    request.session[SESSION_STATE_KEY] = state
    params = {
        "client_id": settings.GOOGLE_CLIENT_ID,
        "redirect_uri": _callback_url(request),
        "response_type": "code",
        "scope": "openid email profile",
        "state": state,
    }
    return RedirectResponse(f"{GOOGLE_AUTH_URL}?{urlencode(params)}")


@router.get("/auth/google/callback")
def google_callback(request: Request, code: str = "", state: str = ""):
    failure = RedirectResponse(f"{settings.FRONTEND_URL}/")
    expected = request.session.pop(SESSION_STATE_KEY, None)
    if not code or not expected or not secrets.compare_digest(state, expected):
        logger.warning("Rejected OAuth callback with missing code or bad state")
        return failure
    try:
        profile = fetch_google_profile(code, _callback_url(request))
        user = resolve_oauth_user(profile)
    except (requests.RequestException, KeyError, ValidationError):
        logger.exception("Google login failed")
        return failure
    login_session(request, user)
    return RedirectResponse(f"{settings.FRONTEND_URL}/dashboard")


# ---------- Routes ----------

@router.get("/auth/logout")
def logout(request: Request):
    logout_session(request)
    return RedirectResponse(f"{settings.FRONTEND_URL}/")


@router.get("/auth/user")
def current_user(request: Request):
    user = database.get_document(USERS, require_user_id(request))
    if not user:
        logout_session(request)
        raise AuthenticationRequired()
    return {"user": _public(user)}


@router.post("/api/auth/simple-login")
def simple_login(payload: SimpleLoginRequest, request: Request):
    user = resolve_nickname_user(payload.nickname)
    login_session(request, user)
    return {"success": True, "user": user}
