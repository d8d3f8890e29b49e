"""
Request authentication.

Shoppers are authenticated by the hosted identity provider in front of the
API, which forwards the verified identity as ``X-Auth-*`` headers. The first
request of an unknown identity creates its ``user`` document.

The admin back-office uses a single shared-secret session cookie instead.
"""
import hmac
import logging
from typing import Optional

from fastapi import Depends, Request, Response

import settings
from database import collection, create_document
from errors import Unauthorized
from schemas import User

logger = logging.getLogger(__name__)

ADMIN_SESSION_VALUE = "authenticated"


def get_current_user(request: Request) -> Optional[dict]:
    auth_id = request.headers.get("x-auth-user-id")
    if not auth_id:
        return None
    try:
        users = collection("user")
        user = users.find_one({"auth_id": auth_id})
        if user is None:
            create_document("user", User(
                auth_id=auth_id,
                email=request.headers.get("x-auth-email", ""),
                first_name=request.headers.get("x-auth-first-name"),
                last_name=request.headers.get("x-auth-last-name"),
                image_url=request.headers.get("x-auth-image-url"),
            ))
            user = users.find_one({"auth_id": auth_id})
        return user
    except Exception as e:
        # An unreachable database reads as "signed out" so pages still render.
        logger.error("Database error while resolving current user: %s", e)
        return None


def require_user(user: Optional[dict] = Depends(get_current_user)) -> dict:
    if user is None:
        raise Unauthorized()
    return user


def user_id(user: dict) -> str:
    return str(user["_id"])


def full_name(user: dict) -> str:
    return f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()


# ---------- Admin session ----------

def verify_admin_credentials(email: str, password: str) -> bool:
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        raise RuntimeError("Admin credentials not configured in environment variables")
    return hmac.compare_digest(email, settings.ADMIN_EMAIL) and hmac.compare_digest(password, settings.ADMIN_PASSWORD)


def create_admin_session(response: Response):
    response.set_cookie(
        settings.ADMIN_SESSION_COOKIE,
        ADMIN_SESSION_VALUE,
        max_age=settings.ADMIN_SESSION_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=settings.FRONTEND_URL.startswith("https://"),
    )


def destroy_admin_session(response: Response):
    response.delete_cookie(settings.ADMIN_SESSION_COOKIE)


def is_admin_authenticated(request: Request) -> bool:
    return request.cookies.get(settings.ADMIN_SESSION_COOKIE) == ADMIN_SESSION_VALUE


def require_admin(request: Request):
    if not is_admin_authenticated(request):
        raise Unauthorized("Admin authentication required")
